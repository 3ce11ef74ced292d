from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from cladeflow.schemas.models import (
    MUTATION_RE,
    AnalysisResult,
    AuspiceNode,
    AuspiceTree,
    NucleotideSubstitution,
)


@dataclass
class ReferenceNode:
    """A tree node with the full set of mutations accumulated from the root."""

    index: int
    name: str
    clade: Optional[str]
    mutations: dict[int, str]


@dataclass
class Placement:
    node: ReferenceNode
    distance: int
    private_mutations: list[NucleotideSubstitution]


def parse_mutation(text: str) -> tuple[int, str]:
    """'A41G' -> (40, 'G'). Positions in the data files are 1-based."""
    match = MUTATION_RE.match(text.strip())
    if match is None:
        raise ValueError(f"malformed mutation '{text}'")
    return int(match.group(2)) - 1, match.group(3)


def _walk(node: AuspiceNode) -> Iterator[AuspiceNode]:
    yield node
    for child in node.children:
        yield from _walk(child)


def build_reference_nodes(tree: AuspiceTree, root_seq: str) -> list[ReferenceNode]:
    """Flatten the tree in pre-order, accumulating branch mutations."""
    nodes: list[ReferenceNode] = []

    def visit(node: AuspiceNode, inherited: dict[int, str], clade: Optional[str]) -> None:
        mutations = dict(inherited)
        for text in node.nuc_mutations:
            pos, nuc = parse_mutation(text)
            if pos < len(root_seq) and root_seq[pos] == nuc:
                mutations.pop(pos, None)
            else:
                mutations[pos] = nuc
        clade = node.clade or clade
        nodes.append(ReferenceNode(index=len(nodes), name=node.name, clade=clade, mutations=mutations))
        for child in node.children:
            visit(child, mutations, clade)

    visit(tree.tree, {}, None)
    return nodes


def _is_missing(pos: int, missing: list[tuple[int, int]]) -> bool:
    return any(begin <= pos < end for begin, end in missing)


def find_nearest_node(
    substitutions: list[NucleotideSubstitution],
    missing: list[tuple[int, int]],
    nodes: list[ReferenceNode],
) -> Placement:
    """Pick the node with the fewest unexplained differences.

    Node mutations at positions where the query has no data are not counted.
    Ties go to the node visited first.
    """
    query = {s.pos: s.query_nuc for s in substitutions}
    best: Optional[Placement] = None
    for node in nodes:
        node_only = sum(
            1
            for pos, nuc in node.mutations.items()
            if query.get(pos) != nuc and not _is_missing(pos, missing)
        )
        private = [s for s in substitutions if node.mutations.get(s.pos) != s.query_nuc]
        distance = node_only + len(private)
        if best is None or distance < best.distance:
            best = Placement(node=node, distance=distance, private_mutations=private)
    if best is None:
        raise ValueError("reference tree has no nodes")
    return best


def attach_new_nodes(
    tree: AuspiceTree, placements: list[tuple[int, AnalysisResult]]
) -> AuspiceTree:
    """Return a copy of the tree with each placed result added as a new leaf."""
    result_tree = tree.model_copy(deep=True)
    by_index = list(_walk(result_tree.tree))
    for index, result in placements:
        parent = by_index[index]
        node_attrs = {
            "clade_membership": {"value": result.clade},
            "new_node": {"value": "Yes"},
        }
        if result.qc is not None:
            node_attrs["QCStatus"] = {"value": result.qc.overall_status}
        parent.children.append(
            AuspiceNode(
                name=f"{result.seq_name}_new",
                node_attrs=node_attrs,
                branch_attrs={"mutations": {"nuc": [str(m) for m in result.private_mutations]}},
            )
        )
    return result_tree
