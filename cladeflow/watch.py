from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from cladeflow.defaults.viruses import get_virus
from cladeflow.errors import CladeflowError, ValidationError, sanitize_error
from cladeflow.interactive.state import SessionState
from cladeflow.interactive.tasks import algorithm_task, override_fingerprint, settings_task
from cladeflow.pipeline.resolver import ConfigOverrides, resolve
from cladeflow.schemas.models import OutputKind
from cladeflow.supervisor import Supervisor, compose
from cladeflow.utils.config import load_settings
from cladeflow.utils.env import load_env_file


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch a directory for sequence files and analyze each new one, restarting on failure"
    )
    parser.add_argument("--watch-dir", type=Path, required=True, help="Directory polled for .fasta/.fa/.txt inputs")
    parser.add_argument("--output-dir", type=Path, required=True, help="Directory where results are written")
    parser.add_argument(
        "--outputs",
        default="json",
        help=f"Comma-separated output kinds: {', '.join(k.value for k in OutputKind)} (default: json)",
    )
    parser.add_argument("--poll-seconds", type=float, default=None, help="Polling interval (default: $CLADEFLOW_POLL_SECONDS or 2)")
    parser.add_argument("--virus", default=None, help="Name of the base virus profile")
    parser.add_argument("--input-root-seq", "-r", type=Path, help="(optional) Custom root sequence file")
    parser.add_argument("--input-tree", "-a", type=Path, help="(optional) Custom Auspice JSON v2 reference tree")
    parser.add_argument("--input-qc-config", "-q", type=Path, help="(optional) Custom QC rules JSON")
    parser.add_argument("--input-gene-map", "-g", type=Path, help="(optional) Custom gene map JSON")
    parser.add_argument("--input-pcr-primers", "-p", type=Path, help="(optional) Custom PCR primers CSV")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    return parser


def parse_output_kinds(raw: str) -> list[OutputKind]:
    kinds = []
    for token in (t.strip() for t in raw.split(",")):
        if not token:
            continue
        try:
            kinds.append(OutputKind(token))
        except ValueError:
            raise ValidationError(
                f"unknown output kind '{token}'. Expected one of: {', '.join(k.value for k in OutputKind)}"
            ) from None
    if not kinds:
        raise ValidationError("at least one output kind is required")
    return kinds


def build_state(args: argparse.Namespace) -> SessionState:
    override_paths = {
        slot: path
        for slot, path in {
            "root_seq": args.input_root_seq,
            "tree": args.input_tree,
            "qc_config": args.input_qc_config,
            "gene_map": args.input_gene_map,
            "pcr_primers": args.input_pcr_primers,
        }.items()
        if path is not None
    }
    base = get_virus(args.virus)
    fingerprint = override_fingerprint(override_paths)
    config = resolve(base, ConfigOverrides.from_paths(**override_paths))
    return SessionState(
        base=base,
        config=config,
        override_paths=override_paths,
        override_fingerprint=fingerprint,
    )


async def _run(args: argparse.Namespace, state: SessionState, kinds: list[OutputKind], poll_seconds: float) -> Supervisor:
    stop_event = asyncio.Event()
    supervisor = Supervisor(
        compose(
            lambda: settings_task(state, poll_seconds, stop_event),
            lambda: algorithm_task(state, args.watch_dir, args.output_dir, kinds, poll_seconds, stop_event),
            name="watch",
        ),
        on_error=state.error_add,
        stop_event=stop_event,
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, supervisor.stop)
        except (NotImplementedError, RuntimeError):
            pass
    print(f"[watch] watching {args.watch_dir} -> {args.output_dir} (poll={poll_seconds}s)", flush=True)
    await supervisor.run()
    return supervisor


def main(argv: list[str] | None = None) -> int:
    load_env_file()
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(name)s] %(levelname)s: %(message)s",
    )
    poll_seconds = args.poll_seconds or load_settings().poll_seconds
    try:
        kinds = parse_output_kinds(args.outputs)
        args.watch_dir.mkdir(parents=True, exist_ok=True)
        args.output_dir.mkdir(parents=True, exist_ok=True)
        state = build_state(args)
    except (CladeflowError, OSError) as exc:
        print(sanitize_error(exc), file=sys.stderr, flush=True)
        return 1

    supervisor = asyncio.run(_run(args, state, kinds, poll_seconds))
    print(
        f"[watch] stopped attempts={supervisor.attempts} restarts={supervisor.restarts} "
        f"errors={len(state.errors)}",
        flush=True,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
