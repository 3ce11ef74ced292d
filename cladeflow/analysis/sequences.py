"""
Sequence helpers shared by the analysis and the configuration loaders:
- Parsing FASTA input and plain-text root sequences
- Computing reverse complements (IUPAC-aware)
- 3' padding and conversion to byte arrays
"""

from dataclasses import dataclass
from typing import Dict, List

import numpy as np


ACGT = "ACGT"
GAP = "-"
UNKNOWN = "N"

# IUPAC nucleotide complements
COMPLEMENT_MAP: Dict[str, str] = {
    'A': 'T', 'T': 'A',
    'C': 'G', 'G': 'C',
    'R': 'Y', 'Y': 'R',
    'K': 'M', 'M': 'K',
    'B': 'V', 'V': 'B',
    'D': 'H', 'H': 'D',
    'S': 'S', 'W': 'W',
    'N': 'N', '-': '-',
}


@dataclass(frozen=True)
class FastaRecord:
    seq_name: str
    seq: str


def reverse_complement(sequence: str) -> str:
    """Uppercased reverse complement; IUPAC ambiguity codes map to their complements.

    >>> reverse_complement("ACGTR")
    'YACGT'
    """
    complement = ''.join(COMPLEMENT_MAP.get(base, base) for base in sequence.upper())
    return complement[::-1]


def pad_with_unknown(sequence: str, length: int) -> str:
    """Extend a sequence to `length` with N at the 3' end."""
    if len(sequence) > length:
        raise ValueError(f"sequence length {len(sequence)} exceeds target length {length}")
    return sequence + UNKNOWN * (length - len(sequence))


def to_byte_array(sequence: str) -> np.ndarray:
    """View a sequence as an array of ASCII codes for vectorized comparison."""
    return np.frombuffer(sequence.encode("ascii"), dtype=np.uint8)


def normalize_sequence(sequence: str) -> str:
    """Uppercase and strip all whitespace."""
    return "".join(sequence.split()).upper()


def parse_root_seq(content: str) -> str:
    """
    Parse a plain-text root sequence.

    FASTA header lines ('>') and comment lines (';') are dropped, the remaining
    lines are joined and normalized. An empty file yields an empty string.
    """
    lines = [
        line for line in content.splitlines()
        if not line.startswith(">") and not line.startswith(";")
    ]
    return normalize_sequence("".join(lines))


def parse_fasta(content: str) -> List[FastaRecord]:
    """
    Parse FASTA (or headerless plain text) into named records.

    Args:
        content: Raw file content

    Returns:
        Records in file order. Sequences without a header are named
        'Untitled <n>'.

    Raises:
        ValueError: If the content holds no sequence at all
    """
    records: List[FastaRecord] = []
    name: str | None = None
    chunks: List[str] = []

    def _flush() -> None:
        if name is None and not chunks:
            return
        seq_name = name if name else f"Untitled {len(records) + 1}"
        records.append(FastaRecord(seq_name=seq_name, seq=normalize_sequence("".join(chunks))))

    for line in content.splitlines():
        if line.startswith(";"):
            continue
        if line.startswith(">"):
            _flush()
            name = line[1:].strip()
            chunks = []
        elif line.strip():
            chunks.append(line)
    _flush()

    if not records:
        raise ValueError("no sequences found in input")
    return records
