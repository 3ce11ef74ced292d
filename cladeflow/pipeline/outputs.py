from __future__ import annotations

import csv
import io
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Iterable, Mapping, Optional

from cladeflow.errors import OutputPathError, OutputWriteError, ValidationError
from cladeflow.schemas.models import AnalysisResult, AuspiceTree, OutputKind
from cladeflow.utils.logging import log_event, print_step_timing

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"
TSV_DELIMITER = "\t"
JSON_INDENT = 2

CSV_COLUMNS = [
    "seqName",
    "clade",
    "qc.overallScore",
    "qc.overallStatus",
    "totalGaps",
    "totalMissing",
    "totalMutations",
    "totalNonACGTNs",
    "totalPcrPrimerChanges",
    "substitutions",
    "deletions",
    "missing",
    "nonACGTNs",
    "pcrPrimerChanges",
    "aaSubstitutions",
    "totalAminoacidSubstitutions",
    "qc.missingData.status",
    "qc.mixedSites.status",
    "qc.privateMutations.status",
    "qc.snpClusters.status",
    "errors",
]
CLADES_ONLY_COLUMNS = ["seqName", "clade"]
QC_STATUS_COLUMNS = {
    "missing_data": "qc.missingData.status",
    "mixed_sites": "qc.mixedSites.status",
    "private_mutations": "qc.privateMutations.status",
    "snp_clusters": "qc.snpClusters.status",
}


@dataclass(frozen=True)
class OutputRequest:
    """Requested output kinds and their destination paths."""

    destinations: Mapping[OutputKind, Path] = field(default_factory=dict)

    @classmethod
    def from_flags(cls, paths: Mapping[str, Optional[str | Path]]) -> "OutputRequest":
        """Build from `{kind value: path or None}`; unset kinds are not requested."""
        destinations = {OutputKind(kind): Path(path) for kind, path in paths.items() if path}
        return cls(destinations=destinations)

    @property
    def kinds(self) -> list[OutputKind]:
        return [kind for kind in OutputKind if kind in self.destinations]

    def validate(self) -> None:
        if not self.destinations:
            flags = ", ".join(kind.flag for kind in OutputKind)
            raise ValidationError(f"at least one of output path arguments required: {flags}")


def _is_writable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK)


def assert_can_create(request: OutputRequest) -> None:
    """Check every requested destination's directory at once, before any work."""
    unwritable = [
        str(path)
        for path in request.destinations.values()
        if not _is_writable_dir(path.parent)
    ]
    if unwritable:
        raise OutputPathError(f"the output path {', '.join(unwritable)} is not writable")


# --- serialization ------------------------------------------------------------


def _join(items: Iterable[Any]) -> str:
    return ",".join(str(item) for item in items)


def _format_range(begin: int, end: int) -> str:
    if end - begin == 1:
        return str(begin + 1)
    return f"{begin + 1}-{end}"


def prepare_result_json(result: AnalysisResult) -> dict[str, Any]:
    return result.model_dump(mode="json", by_alias=True)


def prepare_result_csv(result: AnalysisResult) -> dict[str, Any]:
    qc = result.qc
    row: dict[str, Any] = {
        "seqName": result.seq_name,
        "clade": result.clade or "",
        "qc.overallScore": qc.overall_score if qc else "",
        "qc.overallStatus": qc.overall_status if qc else "",
        "totalGaps": result.total_gaps,
        "totalMissing": result.total_missing,
        "totalMutations": result.total_mutations,
        "totalNonACGTNs": result.total_non_acgtns,
        "totalPcrPrimerChanges": result.total_pcr_primer_changes,
        "substitutions": _join(result.substitutions),
        "deletions": _join(result.deletions),
        "missing": _join(_format_range(r.begin, r.end) for r in result.missing),
        "nonACGTNs": _join(result.non_acgtns),
        "pcrPrimerChanges": _join(result.pcr_primer_changes),
        "aaSubstitutions": _join(result.aa_substitutions),
        "totalAminoacidSubstitutions": result.total_aminoacid_substitutions,
        "errors": _join(result.errors),
    }
    for rule, column in QC_STATUS_COLUMNS.items():
        rule_result = getattr(qc, rule, None) if qc else None
        row[column] = rule_result.status if rule_result else ""
    return row


def prepare_result_csv_clades_only(result: AnalysisResult) -> dict[str, Any]:
    return {"seqName": result.seq_name, "clade": result.clade or ""}


def to_csv_string(rows: list[dict[str, Any]], delimiter: str, columns: list[str]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, delimiter=delimiter, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({c: row.get(c, "") for c in columns})
    return buffer.getvalue()


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, indent=JSON_INDENT) + "\n", encoding="utf-8")


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(text)


def _write_json_results(path: Path, results: list[AnalysisResult], tree: AuspiceTree) -> None:
    _write_json(path, [prepare_result_json(r) for r in results])


def _write_csv(path: Path, results: list[AnalysisResult], tree: AuspiceTree) -> None:
    rows = [prepare_result_csv(r) for r in results]
    _write_text(path, to_csv_string(rows, CSV_DELIMITER, CSV_COLUMNS))


def _write_tsv_clades_only(path: Path, results: list[AnalysisResult], tree: AuspiceTree) -> None:
    rows = [prepare_result_csv_clades_only(r) for r in results]
    _write_text(path, to_csv_string(rows, TSV_DELIMITER, CLADES_ONLY_COLUMNS))


def _write_tsv(path: Path, results: list[AnalysisResult], tree: AuspiceTree) -> None:
    rows = [prepare_result_csv(r) for r in results]
    _write_text(path, to_csv_string(rows, TSV_DELIMITER, CSV_COLUMNS))


def _write_tree(path: Path, results: list[AnalysisResult], tree: AuspiceTree) -> None:
    _write_json(path, tree.model_dump(mode="json", exclude_none=True))


Writer = Callable[[Path, list[AnalysisResult], AuspiceTree], None]

WRITERS: dict[OutputKind, Writer] = {
    OutputKind.JSON: _write_json_results,
    OutputKind.CSV: _write_csv,
    OutputKind.TSV_CLADES_ONLY: _write_tsv_clades_only,
    OutputKind.TSV: _write_tsv,
    OutputKind.TREE: _write_tree,
}


def write_results(results: list[AnalysisResult], tree: AuspiceTree, request: OutputRequest) -> list[Path]:
    """Write every requested representation.

    Each write is attempted independently. When any of them fails the others
    are still written and OutputWriteError lists every failure afterwards.
    Returns the paths written.
    """
    start = perf_counter()
    written: list[Path] = []
    failures: dict[str, str] = {}
    for kind in request.kinds:
        path = request.destinations[kind]
        try:
            WRITERS[kind](path, results, tree)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to write %s output to %s: %s", kind.value, path, exc)
            log_event("output.failed", {"kind": kind.value, "path": str(path), "error": str(exc)})
            failures[kind.value] = f"{path}: {exc}"
            continue
        written.append(path)
        log_event("output.written", {"kind": kind.value, "path": str(path)})

    print_step_timing("write_results", perf_counter() - start)
    if failures:
        raise OutputWriteError(failures)
    return written
