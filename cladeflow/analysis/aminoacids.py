from __future__ import annotations

from cladeflow.analysis.sequences import reverse_complement
from cladeflow.schemas.models import AminoacidSubstitution, Gene

_BASES = "TCAG"
_AMINOACIDS = "FFLLSSSSYY**CC*WLLLLPPPPHHQQRRRRIIIMTTTTNNKKSSRRVVVVAAAADDEEGGGG"

CODON_TABLE: dict[str, str] = {
    a + b + c: _AMINOACIDS[16 * i + 4 * j + k]
    for i, a in enumerate(_BASES)
    for j, b in enumerate(_BASES)
    for k, c in enumerate(_BASES)
}

AA_GAP = "-"
AA_UNKNOWN = "X"


def translate_codon(codon: str) -> str:
    if codon == "---":
        return AA_GAP
    return CODON_TABLE.get(codon, AA_UNKNOWN)


def translate(sequence: str) -> str:
    """Translate complete codons; a trailing partial codon is ignored."""
    return "".join(translate_codon(sequence[i:i + 3]) for i in range(0, len(sequence) - 2, 3))


def _gene_region(sequence: str, gene: Gene) -> str:
    region = sequence[gene.start:gene.end]
    if gene.strand == "-":
        region = reverse_complement(region)
    return region


def get_aminoacid_substitutions(
    aligned_query: str, root_seq: str, gene_map: list[Gene]
) -> list[AminoacidSubstitution]:
    """Amino-acid changes per gene. Codons with unknown or deleted query residues are skipped."""
    substitutions: list[AminoacidSubstitution] = []
    for gene in gene_map:
        if gene.end > len(root_seq):
            continue
        ref_peptide = translate(_gene_region(root_seq, gene))
        query_peptide = translate(_gene_region(aligned_query, gene))
        for codon, (ref_aa, query_aa) in enumerate(zip(ref_peptide, query_peptide)):
            if query_aa in (AA_UNKNOWN, AA_GAP) or ref_aa == query_aa:
                continue
            substitutions.append(
                AminoacidSubstitution(gene=gene.name, codon=codon, ref_aa=ref_aa, query_aa=query_aa)
            )
    return substitutions
