from __future__ import annotations

import json
from pathlib import Path

import pytest

from cladeflow.analysis import engine
from cladeflow.defaults.viruses import get_virus
from cladeflow.errors import OutputPathError, OutputWriteError, ValidationError
from cladeflow.pipeline.outputs import (
    CLADES_ONLY_COLUMNS,
    CSV_COLUMNS,
    WRITERS,
    OutputRequest,
    assert_can_create,
    prepare_result_csv,
    prepare_result_json,
    to_csv_string,
    write_results,
)
from cladeflow.schemas.models import OutputKind
from cladeflow.utils.logging import events_of, reset_events


@pytest.fixture
def analysis():
    virus = get_virus("demo")
    seq = virus.root_seq[:40] + "G" + virus.root_seq[41:94] + "A" + virus.root_seq[95:]
    return engine.run(f">s1\n{seq}\n>s2\n{virus.root_seq}\n", virus)


def test_empty_request_names_every_flag() -> None:
    with pytest.raises(ValidationError) as exc_info:
        OutputRequest.from_flags({"json": None, "csv": ""}).validate()
    message = str(exc_info.value)
    for flag in ("--output-json", "--output-csv", "--output-tsv-clades-only", "--output-tsv", "--output-tree"):
        assert flag in message


def test_request_kinds_follow_declared_order(tmp_path: Path) -> None:
    request = OutputRequest.from_flags({"tree": tmp_path / "t.json", "json": tmp_path / "r.json"})
    assert request.kinds == [OutputKind.JSON, OutputKind.TREE]
    assert OutputKind.TSV_CLADES_ONLY.flag == "--output-tsv-clades-only"


def test_missing_directory_is_rejected_up_front(tmp_path: Path) -> None:
    request = OutputRequest.from_flags(
        {"json": tmp_path / "ok.json", "csv": tmp_path / "nope" / "out.csv"}
    )
    with pytest.raises(OutputPathError) as exc_info:
        assert_can_create(request)
    assert "nope" in str(exc_info.value)
    assert not (tmp_path / "ok.json").exists()


def test_json_output(tmp_path: Path, analysis) -> None:
    results, tree = analysis
    path = tmp_path / "results.json"
    written = write_results(results, tree, OutputRequest.from_flags({"json": path}))
    assert written == [path]
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload == [prepare_result_json(r) for r in results]
    assert [r["seqName"] for r in payload] == ["s1", "s2"]
    assert payload[0]["substitutions"][0]["queryNuc"] == "G"
    assert "totalNonACGTNs" in payload[0]


def test_csv_and_clades_only(tmp_path: Path, analysis) -> None:
    results, tree = analysis
    csv_path = tmp_path / "results.csv"
    clades_path = tmp_path / "clades.tsv"
    write_results(
        results, tree, OutputRequest.from_flags({"csv": csv_path, "tsv-clades-only": clades_path})
    )

    header, first, _ = csv_path.read_text(encoding="utf-8").splitlines()
    assert header.split(";") == CSV_COLUMNS
    row = dict(zip(CSV_COLUMNS, first.split(";")))
    assert row["seqName"] == "s1"
    assert row["substitutions"] == "A41G,G95A"
    assert row["aaSubstitutions"] == "G1:K4R"

    lines = clades_path.read_text(encoding="utf-8").splitlines()
    assert lines[0].split("\t") == CLADES_ONLY_COLUMNS
    assert lines[1:] == ["s1\tB", "s2\tA"]


def test_tree_output(tmp_path: Path, analysis) -> None:
    results, tree = analysis
    path = tmp_path / "tree.json"
    write_results(results, tree, OutputRequest.from_flags({"tree": path}))
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == "v2"
    names = json.dumps(payload["tree"])
    assert "s1_new" in names and "s2_new" in names


def test_failed_write_does_not_block_others(tmp_path: Path, analysis) -> None:
    results, tree = analysis
    reset_events()
    good = tmp_path / "results.json"
    bad = tmp_path / "gone" / "results.csv"
    with pytest.raises(OutputWriteError) as exc_info:
        write_results(results, tree, OutputRequest.from_flags({"json": good, "csv": bad}))
    assert list(exc_info.value.failures) == ["csv"]
    assert good.exists()
    assert [e["payload"]["kind"] for e in events_of("output.written")] == ["json"]


def test_csv_row_for_failed_sequence() -> None:
    virus = get_virus("demo")
    results, _ = engine.run(f">long\n{virus.root_seq}A\n", virus)
    row = prepare_result_csv(results[0])
    assert row["clade"] == ""
    assert row["qc.overallStatus"] == ""
    assert row["errors"] == "sequence length 181 exceeds reference length 180"
    text = to_csv_string([row], ";", ["seqName", "errors"])
    assert text == "seqName;errors\nlong;sequence length 181 exceeds reference length 180\n"


def test_every_kind_has_a_named_writer() -> None:
    assert set(WRITERS) == set(OutputKind)
    assert {kind: fn.__name__ for kind, fn in WRITERS.items()} == {
        OutputKind.JSON: "_write_json_results",
        OutputKind.CSV: "_write_csv",
        OutputKind.TSV_CLADES_ONLY: "_write_tsv_clades_only",
        OutputKind.TSV: "_write_tsv",
        OutputKind.TREE: "_write_tree",
    }
