from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from cladeflow.analysis.primers import IUPAC_PATTERNS
from cladeflow.analysis.sequences import GAP, UNKNOWN, pad_with_unknown, to_byte_array
from cladeflow.schemas.models import (
    CharacterRange,
    NucleotideDeletion,
    NucleotideSubstitution,
    PcrPrimer,
    PcrPrimerChange,
)

_ACGT_CODES = to_byte_array("ACGT")
_GAP_CODE = ord(GAP)
_UNKNOWN_CODE = ord(UNKNOWN)


@dataclass
class NucleotideSummary:
    aligned_query: str
    substitutions: list[NucleotideSubstitution] = field(default_factory=list)
    deletions: list[NucleotideDeletion] = field(default_factory=list)
    missing: list[CharacterRange] = field(default_factory=list)
    non_acgtns: list[CharacterRange] = field(default_factory=list)

    @property
    def total_gaps(self) -> int:
        return sum(d.length for d in self.deletions)

    @property
    def total_missing(self) -> int:
        return sum(r.end - r.begin for r in self.missing)

    @property
    def total_non_acgtns(self) -> int:
        return sum(r.end - r.begin for r in self.non_acgtns)


def _runs(mask: np.ndarray) -> list[tuple[int, int]]:
    """Half-open [begin, end) spans of consecutive True values."""
    padded = np.concatenate(([0], mask.astype(np.int8), [0]))
    edges = np.flatnonzero(np.diff(padded))
    return list(zip(edges[0::2].tolist(), edges[1::2].tolist()))


def _character_runs(query: str, mask: np.ndarray) -> list[CharacterRange]:
    ranges: list[CharacterRange] = []
    for begin, end in _runs(mask):
        start = begin
        for pos in range(begin + 1, end + 1):
            if pos == end or query[pos] != query[start]:
                ranges.append(CharacterRange(character=query[start], begin=start, end=pos))
                start = pos
    return ranges


def analyze_nucleotides(query: str, root_seq: str) -> NucleotideSummary:
    """Compare a pre-aligned query against the root sequence.

    Shorter queries are padded with N at the 3' end. Longer queries are not
    aligned to the reference and raise ValueError.
    """
    if len(query) > len(root_seq):
        raise ValueError(
            f"sequence length {len(query)} exceeds reference length {len(root_seq)}"
        )
    aligned = pad_with_unknown(query, len(root_seq))
    q = to_byte_array(aligned)
    r = to_byte_array(root_seq)

    is_acgt = np.isin(q, _ACGT_CODES)
    is_gap = q == _GAP_CODE
    is_unknown = q == _UNKNOWN_CODE

    substitutions = [
        NucleotideSubstitution(pos=pos, ref_nuc=root_seq[pos], query_nuc=aligned[pos])
        for pos in np.flatnonzero(is_acgt & (q != r)).tolist()
    ]
    deletions = [NucleotideDeletion(start=b, length=e - b) for b, e in _runs(is_gap)]
    missing = [CharacterRange(character=UNKNOWN, begin=b, end=e) for b, e in _runs(is_unknown)]
    non_acgtns = _character_runs(aligned, ~(is_acgt | is_gap | is_unknown))

    return NucleotideSummary(
        aligned_query=aligned,
        substitutions=substitutions,
        deletions=deletions,
        missing=missing,
        non_acgtns=non_acgtns,
    )


def _is_covered_by_ambiguity(primer: PcrPrimer, sub: NucleotideSubstitution) -> bool:
    for loc in primer.non_acgts:
        if loc.pos == sub.pos:
            return sub.query_nuc in IUPAC_PATTERNS.get(loc.nuc, "")
    return False


def get_pcr_primer_changes(
    substitutions: list[NucleotideSubstitution], primers: list[PcrPrimer]
) -> list[PcrPrimerChange]:
    """Substitutions falling inside primer sites. Marks each affected substitution."""
    changes: list[PcrPrimerChange] = []
    for primer in primers:
        hits = [
            sub
            for sub in substitutions
            if primer.range.contains(sub.pos) and not _is_covered_by_ambiguity(primer, sub)
        ]
        if not hits:
            continue
        for sub in hits:
            sub.pcr_primers_changed.append(primer.name)
        changes.append(PcrPrimerChange(primer=primer.name, substitutions=hits))
    return changes
