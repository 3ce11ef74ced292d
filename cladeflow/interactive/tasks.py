from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from cladeflow.interactive.state import SessionState
from cladeflow.pipeline.batch import read_input
from cladeflow.pipeline.driver import Analyzer, execute
from cladeflow.pipeline.outputs import OutputRequest, assert_can_create, write_results
from cladeflow.pipeline.resolver import ConfigOverrides, resolve
from cladeflow.schemas.models import OutputKind
from cladeflow.utils.logging import log_event

logger = logging.getLogger(__name__)

INPUT_SUFFIXES = {".fasta", ".fa", ".fas", ".txt"}

OUTPUT_SUFFIXES = {
    OutputKind.JSON: ".json",
    OutputKind.CSV: ".csv",
    OutputKind.TSV_CLADES_ONLY: ".clades.tsv",
    OutputKind.TSV: ".tsv",
    OutputKind.TREE: ".tree.json",
}


async def wait_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep up to `seconds`; returns True when the stop event was set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def override_fingerprint(paths: dict[str, Path]) -> tuple[tuple[str, Optional[float]], ...]:
    return tuple(sorted((slot, _mtime(path)) for slot, path in paths.items()))


def refresh_config(state: SessionState) -> bool:
    """Re-resolve the configuration when an override file changed.

    The new fingerprint is recorded before resolving so that a broken file is
    reported once and not retried until it changes again.
    """
    fingerprint = override_fingerprint(state.override_paths)
    if fingerprint == state.override_fingerprint:
        return False
    state.override_fingerprint = fingerprint
    overrides = ConfigOverrides.from_paths(**state.override_paths)
    state.set_config(resolve(state.base, overrides))
    return True


async def settings_task(state: SessionState, poll_seconds: float, stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        if refresh_config(state):
            logger.info("configuration reloaded (generation %d)", state.config_generation)
        if await wait_or_stop(stop_event, poll_seconds):
            return


def pending_inputs(state: SessionState, watch_dir: Path) -> list[Path]:
    if not watch_dir.is_dir():
        raise FileNotFoundError(f"watch directory not found: {watch_dir}")
    pending = []
    for path in sorted(watch_dir.iterdir()):
        if not path.is_file() or path.suffix.lower() not in INPUT_SUFFIXES:
            continue
        mtime = _mtime(path)
        if mtime is not None and state.processed.get(path) != mtime:
            pending.append(path)
    return pending


def output_request_for(input_path: Path, output_dir: Path, kinds: list[OutputKind]) -> OutputRequest:
    return OutputRequest(
        destinations={kind: output_dir / f"{input_path.stem}{OUTPUT_SUFFIXES[kind]}" for kind in kinds}
    )


async def process_input(
    state: SessionState,
    path: Path,
    output_dir: Path,
    kinds: list[OutputKind],
    analyzer: Analyzer | None = None,
) -> list[Path]:
    # Marked first: an input that fails is reported once, not after every restart.
    state.processed[path] = _mtime(path) or 0.0
    request = output_request_for(path, output_dir, kinds)
    request.validate()
    assert_can_create(request)
    raw_input = read_input(path)
    config = state.config
    output = await asyncio.to_thread(execute, raw_input, config, analyzer)
    written = await asyncio.to_thread(write_results, output.results, output.tree, request)
    log_event("watch.processed", {"input": str(path), "sequences": len(output.results)})
    print(f"[watch] processed {path.name} sequences={len(output.results)}", flush=True)
    return written


async def algorithm_task(
    state: SessionState,
    watch_dir: Path,
    output_dir: Path,
    kinds: list[OutputKind],
    poll_seconds: float,
    stop_event: asyncio.Event,
    analyzer: Analyzer | None = None,
) -> None:
    while not stop_event.is_set():
        for path in pending_inputs(state, watch_dir):
            await process_input(state, path, output_dir, kinds, analyzer)
        if await wait_or_stop(stop_event, poll_seconds):
            return
