from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Optional

from cladeflow.defaults.viruses import get_virus
from cladeflow.errors import sanitize_error
from cladeflow.pipeline.driver import Analyzer, execute
from cladeflow.pipeline.outputs import OutputRequest, assert_can_create, write_results
from cladeflow.pipeline.resolver import ConfigOverrides, resolve
from cladeflow.utils.files import read_text_file
from cladeflow.utils.logging import log_event, print_step_timing, reset_events

logger = logging.getLogger(__name__)


@dataclass
class BatchParams:
    input_fasta: Path
    input_root_seq: Optional[Path] = None
    input_tree: Optional[Path] = None
    input_qc_config: Optional[Path] = None
    input_gene_map: Optional[Path] = None
    input_pcr_primers: Optional[Path] = None
    output_json: Optional[Path] = None
    output_csv: Optional[Path] = None
    output_tsv_clades_only: Optional[Path] = None
    output_tsv: Optional[Path] = None
    output_tree: Optional[Path] = None
    virus: Optional[str] = None

    def output_request(self) -> OutputRequest:
        return OutputRequest.from_flags(
            {
                "json": self.output_json,
                "csv": self.output_csv,
                "tsv-clades-only": self.output_tsv_clades_only,
                "tsv": self.output_tsv,
                "tree": self.output_tree,
            }
        )

    def overrides(self) -> ConfigOverrides:
        return ConfigOverrides.from_paths(
            root_seq=self.input_root_seq,
            tree=self.input_tree,
            qc_config=self.input_qc_config,
            gene_map=self.input_gene_map,
            pcr_primers=self.input_pcr_primers,
        )


@dataclass
class BatchOutcome:
    ok: bool
    written: list[Path] = field(default_factory=list)
    sequences: int = 0
    error: Optional[BaseException] = None
    message: Optional[str] = None
    duration_seconds: float = 0.0


def read_input(path: Path) -> str:
    return read_text_file(path)


def run_batch(params: BatchParams, analyzer: Analyzer | None = None) -> BatchOutcome:
    """Validate, resolve, execute and write, in that order.

    Output destinations are validated before any file is read. The first
    failure stops the run; it is reported in the returned outcome rather than
    raised, so the caller decides how to exit.
    """
    reset_events()
    start = perf_counter()
    try:
        request = params.output_request()
        request.validate()
        assert_can_create(request)

        raw_input = read_input(params.input_fasta)
        config = resolve(get_virus(params.virus), params.overrides())
        output = execute(raw_input, config, analyzer)
        written = write_results(output.results, output.tree, request)
    except Exception as exc:  # noqa: BLE001
        logger.debug("batch run failed", exc_info=True)
        log_event("batch.failed", {"error": str(exc), "type": exc.__class__.__name__})
        return BatchOutcome(
            ok=False,
            error=exc,
            message=sanitize_error(exc),
            duration_seconds=perf_counter() - start,
        )

    duration = perf_counter() - start
    print_step_timing("batch", duration)
    log_event("batch.complete", {"sequences": len(output.results), "written": [str(p) for p in written]})
    return BatchOutcome(
        ok=True,
        written=written,
        sequences=len(output.results),
        duration_seconds=duration,
    )
