from __future__ import annotations

from time import perf_counter

from cladeflow.analysis.aminoacids import get_aminoacid_substitutions
from cladeflow.analysis.clades import (
    ReferenceNode,
    attach_new_nodes,
    build_reference_nodes,
    find_nearest_node,
)
from cladeflow.analysis.nucleotides import analyze_nucleotides, get_pcr_primer_changes
from cladeflow.analysis.qc import run_qc
from cladeflow.analysis.sequences import FastaRecord, parse_fasta
from cladeflow.errors import ExecutionError
from cladeflow.schemas.models import AnalysisResult, AuspiceTree, VirusConfig
from cladeflow.utils.logging import log_event, print_step_timing


def analyze_sequence(
    record: FastaRecord, virus: VirusConfig, nodes: list[ReferenceNode]
) -> tuple[AnalysisResult, int | None]:
    """Analyze one pre-aligned sequence.

    Returns the result and the pre-order index of its nearest tree node, or
    None when the sequence could not be analyzed (the reason is recorded in
    `errors`).
    """
    try:
        nuc = analyze_nucleotides(record.seq, virus.root_seq)
    except ValueError as exc:
        log_event("analysis.sequence_error", {"seq_name": record.seq_name, "error": str(exc)})
        return AnalysisResult(seq_name=record.seq_name, errors=[str(exc)]), None

    pcr_changes = get_pcr_primer_changes(nuc.substitutions, virus.pcr_primers)
    aa_subs = get_aminoacid_substitutions(nuc.aligned_query, virus.root_seq, virus.gene_map)
    placement = find_nearest_node(
        nuc.substitutions, [(r.begin, r.end) for r in nuc.missing], nodes
    )
    qc = run_qc(
        virus.qc_rules_config,
        total_missing=nuc.total_missing,
        total_mixed_sites=nuc.total_non_acgtns,
        private_positions=[m.pos for m in placement.private_mutations],
    )
    result = AnalysisResult(
        seq_name=record.seq_name,
        clade=placement.node.clade,
        substitutions=nuc.substitutions,
        deletions=nuc.deletions,
        missing=nuc.missing,
        non_acgtns=nuc.non_acgtns,
        pcr_primer_changes=pcr_changes,
        aa_substitutions=aa_subs,
        total_mutations=len(nuc.substitutions),
        total_gaps=nuc.total_gaps,
        total_missing=nuc.total_missing,
        total_non_acgtns=nuc.total_non_acgtns,
        total_pcr_primer_changes=sum(len(c.substitutions) for c in pcr_changes),
        total_aminoacid_substitutions=len(aa_subs),
        private_mutations=placement.private_mutations,
        nearest_node=placement.node.name,
        qc=qc,
    )
    return result, placement.node.index


def run(input_text: str, virus: VirusConfig) -> tuple[list[AnalysisResult], AuspiceTree]:
    """Analyze every sequence in `input_text` against `virus`.

    Sequences are expected to be aligned to the root sequence already. Returns
    the per-sequence results in input order and the reference tree with every
    successfully analyzed sequence attached as a new leaf.
    """
    start = perf_counter()
    try:
        records = parse_fasta(input_text)
    except ValueError as exc:
        raise ExecutionError(f"unable to parse input sequences: {exc}") from exc
    if not virus.root_seq:
        raise ExecutionError(f"virus '{virus.name}' has an empty root sequence")
    try:
        nodes = build_reference_nodes(virus.auspice_data, virus.root_seq)
    except ValueError as exc:
        raise ExecutionError(f"invalid reference tree: {exc}") from exc

    results: list[AnalysisResult] = []
    placements: list[tuple[int, AnalysisResult]] = []
    for record in records:
        result, node_index = analyze_sequence(record, virus, nodes)
        results.append(result)
        if node_index is not None:
            placements.append((node_index, result))

    tree = attach_new_nodes(virus.auspice_data, placements)
    log_event(
        "analysis.complete",
        {"sequences": len(results), "placed": len(placements), "virus": virus.name},
    )
    print_step_timing("analysis", perf_counter() - start)
    return results, tree
