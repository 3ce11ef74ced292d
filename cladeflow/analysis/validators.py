from __future__ import annotations

from typing import Any

from cladeflow.schemas.models import AuspiceTree, Gene, QcRulesConfig


def tree_validate(payload: Any) -> AuspiceTree:
    if not isinstance(payload, dict):
        raise ValueError("reference tree must be a JSON object")
    return AuspiceTree.model_validate(payload)


def qc_rules_config_validate(payload: Any) -> QcRulesConfig:
    if not isinstance(payload, dict):
        raise ValueError("QC rules config must be a JSON object")
    return QcRulesConfig.model_validate(payload)


def validate_gene_map(payload: Any) -> list[Gene]:
    """Accept either a list of genes or an object keyed by gene name."""
    if isinstance(payload, dict):
        bad = [name for name, body in payload.items() if body is not None and not isinstance(body, dict)]
        if bad:
            raise ValueError(f"gene map entries must be JSON objects: {', '.join(bad)}")
        payload = [{"name": name, **(body or {})} for name, body in payload.items()]
    if not isinstance(payload, list):
        raise ValueError("gene map must be a JSON array or object")
    genes = [Gene.model_validate(item) for item in payload]
    names = [g.name for g in genes]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"duplicate gene names in gene map: {', '.join(duplicates)}")
    return genes
