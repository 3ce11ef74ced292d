from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from cladeflow.analysis.primers import load_pcr_primers
from cladeflow.analysis.sequences import parse_root_seq
from cladeflow.analysis.validators import qc_rules_config_validate, tree_validate, validate_gene_map
from cladeflow.errors import ValidationError
from cladeflow.schemas.models import VirusConfig
from cladeflow.utils.config import load_settings

logger = logging.getLogger(__name__)

# File names of a virus profile directory.
ROOT_SEQ_FILE = "root_seq.fasta"
TREE_FILE = "tree.json"
QC_FILE = "qc.json"
GENE_MAP_FILE = "gene_map.json"
PRIMERS_FILE = "primers.csv"
PROFILE_FILES = (ROOT_SEQ_FILE, TREE_FILE, QC_FILE, GENE_MAP_FILE, PRIMERS_FILE)


def available_viruses(data_dir: Optional[Path] = None) -> list[str]:
    root = data_dir or load_settings().data_dir
    if not root.is_dir():
        return []
    return sorted(
        p.name for p in root.iterdir() if p.is_dir() and all((p / f).is_file() for f in PROFILE_FILES)
    )


def load_virus(profile_dir: Path, name: Optional[str] = None) -> VirusConfig:
    """Build a base configuration from a profile directory."""
    root_seq = parse_root_seq((profile_dir / ROOT_SEQ_FILE).read_text(encoding="utf-8"))
    primers_csv = (profile_dir / PRIMERS_FILE).read_text(encoding="utf-8")
    return VirusConfig(
        name=name or profile_dir.name,
        root_seq=root_seq,
        auspice_data=tree_validate(json.loads((profile_dir / TREE_FILE).read_text(encoding="utf-8"))),
        qc_rules_config=qc_rules_config_validate(
            json.loads((profile_dir / QC_FILE).read_text(encoding="utf-8"))
        ),
        gene_map=validate_gene_map(json.loads((profile_dir / GENE_MAP_FILE).read_text(encoding="utf-8"))),
        pcr_primers=load_pcr_primers(primers_csv, root_seq),
    )


@lru_cache(maxsize=8)
def _cached_virus(name: str, data_dir: Path) -> VirusConfig:
    return load_virus(data_dir / name, name)


def get_virus(name: Optional[str] = None, data_dir: Optional[Path] = None) -> VirusConfig:
    """Return the default configuration of a known virus profile.

    The profile defaults to CLADEFLOW_VIRUS. Unknown names raise ValidationError.
    """
    settings = load_settings()
    name = name or settings.virus
    data_dir = data_dir or settings.data_dir
    known = available_viruses(data_dir)
    if name not in known:
        raise ValidationError(
            f"unknown virus '{name}'. Available: {', '.join(known) if known else '(none)'}"
        )
    logger.debug("loading virus profile %s from %s", name, data_dir)
    return _cached_virus(name, data_dir)
