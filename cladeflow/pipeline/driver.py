from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from cladeflow.analysis import engine
from cladeflow.schemas.models import AnalysisResult, AuspiceTree, VirusConfig
from cladeflow.utils.logging import log_event

Analyzer = Callable[[str, VirusConfig], tuple[list[AnalysisResult], AuspiceTree]]


@dataclass(frozen=True)
class ExecutionOutput:
    results: list[AnalysisResult]
    tree: AuspiceTree


def execute(raw_input: str, config: VirusConfig, analyzer: Analyzer | None = None) -> ExecutionOutput:
    """Run the analysis collaborator once. Its errors propagate unchanged."""
    analyzer = analyzer or engine.run
    log_event("execute.start", {"virus": config.name, "chars": len(raw_input)})
    results, tree = analyzer(raw_input, config)
    log_event("execute.end", {"results": len(results)})
    return ExecutionOutput(results=list(results), tree=tree)
