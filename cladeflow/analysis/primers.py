from __future__ import annotations

import io
import logging
import re
from typing import Any, Iterable

import pandas as pd

from cladeflow.analysis.sequences import reverse_complement
from cladeflow.schemas.models import NucleotideLocation, NucleotideRange, PcrPrimer, PcrPrimerEntry
from cladeflow.utils.logging import log_event

logger = logging.getLogger(__name__)

REVERSE_PRIMER_SUFFIX = "_R"

IUPAC_PATTERNS = {
    "A": "A",
    "C": "C",
    "G": "G",
    "T": "T",
    "R": "[AG]",
    "Y": "[CT]",
    "S": "[CG]",
    "W": "[AT]",
    "K": "[GT]",
    "M": "[AC]",
    "B": "[CGT]",
    "D": "[AGT]",
    "H": "[ACT]",
    "V": "[ACG]",
    "N": "[ACGT]",
}


def parse_csv(content: str) -> list[dict[str, Any]]:
    """Parse CSV text into row dicts. Every cell is kept as a string."""
    if not content.strip():
        return []
    frame = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    frame.columns = [str(c).strip() for c in frame.columns]
    return frame.to_dict(orient="records")


def validate_pcr_primer_entries(rows: Iterable[dict[str, Any]]) -> list[PcrPrimerEntry]:
    return [PcrPrimerEntry.model_validate(row) for row in rows]


def _primer_pattern(oligonuc: str) -> re.Pattern[str]:
    parts = []
    for nuc in oligonuc:
        if nuc not in IUPAC_PATTERNS:
            raise ValueError(f"unsupported nucleotide '{nuc}' in primer {oligonuc}")
        parts.append(IUPAC_PATTERNS[nuc])
    return re.compile("".join(parts))


def convert_pcr_primer(entry: PcrPrimerEntry, root_seq: str) -> PcrPrimer | None:
    """Locate a primer on the root sequence.

    Reverse primers are reverse-complemented first. Returns None when the
    primer does not occur in the root sequence.
    """
    oligonuc = entry.primer_oligonuc
    if entry.name.endswith(REVERSE_PRIMER_SUFFIX):
        oligonuc = reverse_complement(oligonuc)

    match = _primer_pattern(oligonuc).search(root_seq)
    if match is None:
        logger.warning("PCR primer %s (%s) not found in root sequence", entry.name, entry.target)
        log_event("primers.not_found", {"name": entry.name, "target": entry.target})
        return None

    begin, end = match.span()
    non_acgts = [
        NucleotideLocation(pos=begin + i, nuc=nuc)
        for i, nuc in enumerate(oligonuc)
        if nuc not in "ACGT"
    ]
    return PcrPrimer(
        name=entry.name,
        target=entry.target,
        source=entry.source,
        root_oligonuc=root_seq[begin:end],
        primer_oligonuc=oligonuc,
        range=NucleotideRange(begin=begin, end=end),
        non_acgts=non_acgts,
    )


def convert_pcr_primers(entries: Iterable[PcrPrimerEntry], root_seq: str) -> list[PcrPrimer]:
    primers = []
    for entry in entries:
        primer = convert_pcr_primer(entry, root_seq)
        if primer is not None:
            primers.append(primer)
    return primers


def validate_pcr_primers(primers: Iterable[PcrPrimer | dict[str, Any]]) -> list[PcrPrimer]:
    return [p if isinstance(p, PcrPrimer) else PcrPrimer.model_validate(p) for p in primers]


def load_pcr_primers(content: str, root_seq: str) -> list[PcrPrimer]:
    """Parse primer CSV content and convert it relative to `root_seq`."""
    entries = validate_pcr_primer_entries(parse_csv(content))
    return validate_pcr_primers(convert_pcr_primers(entries, root_seq))
