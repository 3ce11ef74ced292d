from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from cladeflow.analysis.primers import load_pcr_primers
from cladeflow.analysis.sequences import parse_root_seq
from cladeflow.analysis.validators import qc_rules_config_validate, tree_validate, validate_gene_map
from cladeflow.errors import ConfigValidationError
from cladeflow.schemas.models import VirusConfig
from cladeflow.utils.files import read_text_file
from cladeflow.utils.logging import log_event, print_step_timing


@dataclass(frozen=True)
class OverrideSource:
    """Raw content of one user-supplied override, read lazily."""

    label: str
    read: Callable[[], str]

    @classmethod
    def from_path(cls, path: str | Path, label: Optional[str] = None) -> "OverrideSource":
        path = Path(path)
        return cls(label=label or str(path), read=lambda: read_text_file(path))

    @classmethod
    def from_text(cls, text: str, label: str) -> "OverrideSource":
        return cls(label=label, read=lambda: text)


@dataclass(frozen=True)
class ConfigOverrides:
    root_seq: Optional[OverrideSource] = None
    tree: Optional[OverrideSource] = None
    qc_config: Optional[OverrideSource] = None
    gene_map: Optional[OverrideSource] = None
    pcr_primers: Optional[OverrideSource] = None

    @classmethod
    def from_paths(cls, **paths: Optional[str | Path]) -> "ConfigOverrides":
        return cls(**{k: OverrideSource.from_path(v) if v else None for k, v in paths.items()})

    def supplied(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def _load_json(content: str) -> Any:
    return json.loads(content)


def _apply_root_seq(config: VirusConfig, content: str) -> dict[str, Any]:
    return {"root_seq": parse_root_seq(content)}


def _apply_tree(config: VirusConfig, content: str) -> dict[str, Any]:
    return {"auspice_data": tree_validate(_load_json(content))}


def _apply_qc_config(config: VirusConfig, content: str) -> dict[str, Any]:
    return {"qc_rules_config": qc_rules_config_validate(_load_json(content))}


def _apply_gene_map(config: VirusConfig, content: str) -> dict[str, Any]:
    return {"gene_map": validate_gene_map(_load_json(content))}


def _apply_pcr_primers(config: VirusConfig, content: str) -> dict[str, Any]:
    # Converted against config.root_seq, which already holds any root override.
    return {"pcr_primers": load_pcr_primers(content, config.root_seq)}


# Order matters: primers are located on the root sequence, so the root
# sequence override must be applied before the primer override. The other
# steps are independent of each other.
RESOLUTION_STEPS: tuple[tuple[str, Callable[[VirusConfig, str], dict[str, Any]]], ...] = (
    ("root_seq", _apply_root_seq),
    ("tree", _apply_tree),
    ("qc_config", _apply_qc_config),
    ("gene_map", _apply_gene_map),
    ("pcr_primers", _apply_pcr_primers),
)


def resolve(base: VirusConfig, overrides: Optional[ConfigOverrides] = None) -> VirusConfig:
    """Merge `overrides` into `base`.

    Each supplied override is read, parsed, validated and replaces the
    corresponding field wholesale. The first failure aborts resolution with
    ConfigValidationError (or InputReadError when the file cannot be read);
    nothing partially resolved is returned. With no overrides `base` itself
    is returned.
    """
    if overrides is None or not overrides.supplied():
        return base

    start = perf_counter()
    config = base
    for slot, apply in RESOLUTION_STEPS:
        source: Optional[OverrideSource] = getattr(overrides, slot)
        if source is None:
            continue
        content = source.read()
        try:
            update = apply(config, content)
        except (ValueError, TypeError) as exc:
            raise ConfigValidationError(source.label, _describe(exc)) from exc
        config = config.model_copy(update=update)
        log_event("config.override_applied", {"slot": slot, "source": source.label})

    print_step_timing("resolve_config", perf_counter() - start)
    return config


def _describe(exc: Exception) -> str:
    if isinstance(exc, PydanticValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in exc.errors()[:3]
        )
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__
