from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from cladeflow.pipeline.batch import BatchParams, run_batch
from cladeflow.utils.config import PROJECT_DESCRIPTION, PROJECT_NAME, VERSION
from cladeflow.utils.env import load_env_file
from cladeflow.utils.logging import events_as_markdown

DATA_FORMATS_URL = "https://docs.nextstrain.org/en/latest/reference/data-formats.html"


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROJECT_NAME,
        description=f"{PROJECT_NAME}: {PROJECT_DESCRIPTION}",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument(
        "--input-fasta",
        "-i",
        type=Path,
        required=True,
        help="Path to a .fasta or a .txt file with input sequences, aligned to the root sequence",
    )
    parser.add_argument(
        "--input-root-seq",
        "-r",
        type=Path,
        help="(optional) Path to plain text file containing custom root sequence",
    )
    parser.add_argument(
        "--input-tree",
        "-a",
        type=Path,
        help=f"(optional) Path to Auspice JSON v2 file containing custom reference tree. See {DATA_FORMATS_URL}",
    )
    parser.add_argument(
        "--input-qc-config",
        "-q",
        type=Path,
        help="(optional) Path to a JSON file containing custom configuration of Quality Control rules",
    )
    parser.add_argument(
        "--input-gene-map",
        "-g",
        type=Path,
        help="(optional) Path to a JSON file containing custom gene map, used to resolve aminoacid changes in genes",
    )
    parser.add_argument(
        "--input-pcr-primers",
        "-p",
        type=Path,
        help="(optional) Path to a CSV file containing a list of custom PCR primer sites",
    )
    parser.add_argument("--output-json", "-o", type=Path, help="Path to output JSON results file")
    parser.add_argument("--output-csv", "-c", type=Path, help="Path to output CSV results file")
    parser.add_argument(
        "--output-tsv-clades-only", type=Path, help="Path to output TSV clades-only file"
    )
    parser.add_argument("--output-tsv", "-t", type=Path, help="Path to output TSV results file")
    parser.add_argument(
        "--output-tree",
        "-T",
        type=Path,
        help=f"Path to output Auspice JSON v2 tree with the analyzed sequences placed. See {DATA_FORMATS_URL}",
    )
    parser.add_argument(
        "--output-log",
        type=Path,
        help="(optional) Path to a Markdown file receiving the pipeline event log of this run",
    )
    parser.add_argument(
        "--virus",
        default=None,
        help="Name of the base virus profile (default: $CLADEFLOW_VIRUS or 'demo')",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    return parser


def params_from_args(args: argparse.Namespace) -> BatchParams:
    return BatchParams(
        input_fasta=args.input_fasta,
        input_root_seq=args.input_root_seq,
        input_tree=args.input_tree,
        input_qc_config=args.input_qc_config,
        input_gene_map=args.input_gene_map,
        input_pcr_primers=args.input_pcr_primers,
        output_json=args.output_json,
        output_csv=args.output_csv,
        output_tsv_clades_only=args.output_tsv_clades_only,
        output_tsv=args.output_tsv,
        output_tree=args.output_tree,
        virus=args.virus,
    )


def _write_log(path: Path) -> None:
    try:
        path.write_text(events_as_markdown() + "\n", encoding="utf-8")
    except OSError as exc:
        print(f"Warning: unable to write log {path}: {exc.strerror or exc}", file=sys.stderr, flush=True)


def main(argv: list[str] | None = None) -> int:
    load_env_file()
    args = _build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(name)s] %(levelname)s: %(message)s",
    )

    outcome = run_batch(params_from_args(args))
    if args.output_log:
        _write_log(args.output_log)
    if not outcome.ok:
        print(outcome.message, file=sys.stderr, flush=True)
        return 1

    print(f"{PROJECT_NAME}: analyzed {outcome.sequences} sequence(s)")
    for path in outcome.written:
        print(f"Written: {path}")
    print(f"Duration (s): {outcome.duration_seconds:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
