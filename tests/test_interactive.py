import asyncio
import json
import os
from pathlib import Path

import pytest

from cladeflow.analysis import engine
from cladeflow.defaults.viruses import get_virus
from cladeflow.errors import ConfigValidationError, ExecutionError, TaskError, ValidationError
from cladeflow.interactive.state import MAX_REPORTED_ERRORS, SessionState
from cladeflow.interactive.tasks import (
    algorithm_task,
    output_request_for,
    pending_inputs,
    process_input,
    refresh_config,
    settings_task,
)
from cladeflow.schemas.models import OutputKind
from cladeflow.supervisor import Supervisor, compose
from cladeflow import watch
from cladeflow.watch import parse_output_kinds


@pytest.fixture
def state():
    virus = get_virus("demo")
    return SessionState(base=virus, config=virus)


def _write_fasta(path, seq):
    path.write_text(f">{path.stem}\n{seq}\n", encoding="utf-8")
    return path


class TestOutputsAndInputs:
    """Test the naming of outputs and the discovery of inputs."""

    def test_output_request_for(self, tmp_path):
        request = output_request_for(Path("in/sample.fasta"), tmp_path, [OutputKind.TREE, OutputKind.TSV_CLADES_ONLY])
        assert request.destinations[OutputKind.TREE] == tmp_path / "sample.tree.json"
        assert request.destinations[OutputKind.TSV_CLADES_ONLY] == tmp_path / "sample.clades.tsv"

    def test_pending_inputs_skips_processed_and_foreign_files(self, tmp_path, state):
        first = _write_fasta(tmp_path / "a.fasta", "ACGT")
        _write_fasta(tmp_path / "b.txt", "ACGT")
        (tmp_path / "notes.md").write_text("ignore", encoding="utf-8")
        assert [p.name for p in pending_inputs(state, tmp_path)] == ["a.fasta", "b.txt"]

        state.processed[first] = first.stat().st_mtime
        assert [p.name for p in pending_inputs(state, tmp_path)] == ["b.txt"]

    def test_pending_inputs_missing_dir(self, tmp_path, state):
        with pytest.raises(FileNotFoundError):
            pending_inputs(state, tmp_path / "gone")

    def test_parse_output_kinds(self):
        assert parse_output_kinds("json, tsv-clades-only") == [OutputKind.JSON, OutputKind.TSV_CLADES_ONLY]
        with pytest.raises(ValidationError):
            parse_output_kinds("xml")
        with pytest.raises(ValidationError):
            parse_output_kinds(" , ")


class TestConfigRefresh:
    """Test re-resolution of the configuration when override files change."""

    def test_refresh_applies_changed_override(self, tmp_path, state):
        root = tmp_path / "root.fasta"
        root.write_text("ACGTACGT", encoding="utf-8")
        state.override_paths = {"root_seq": root}

        assert refresh_config(state) is True
        assert state.config.root_seq == "ACGTACGT"
        assert state.config_generation == 1
        assert refresh_config(state) is False

    def test_broken_override_is_raised_once(self, tmp_path, state):
        qc = tmp_path / "qc.json"
        qc.write_text("{}", encoding="utf-8")
        state.override_paths = {"qc_config": qc}
        with pytest.raises(ConfigValidationError):
            refresh_config(state)
        assert refresh_config(state) is False
        assert state.config is state.base

    @pytest.mark.asyncio
    async def test_settings_task_returns_on_stop(self, state):
        stop = asyncio.Event()
        stop.set()
        await asyncio.wait_for(settings_task(state, 0.01, stop), timeout=1)


class TestProcessing:
    """Test processing of single inputs and supervised watch sessions."""

    @pytest.mark.asyncio
    async def test_process_input_writes_outputs(self, tmp_path, state):
        source = _write_fasta(tmp_path / "sample.fasta", get_virus("demo").root_seq)
        out = tmp_path / "out"
        out.mkdir()
        written = await process_input(state, source, out, [OutputKind.JSON, OutputKind.CSV])
        assert written == [out / "sample.json", out / "sample.csv"]
        payload = json.loads((out / "sample.json").read_text(encoding="utf-8"))
        assert payload[0]["seqName"] == "sample"
        assert source in state.processed

    @pytest.mark.asyncio
    async def test_failing_input_is_reported_and_watching_continues(self, tmp_path, state):
        watch_dir = tmp_path / "in"
        out = tmp_path / "out"
        watch_dir.mkdir()
        out.mkdir()
        # Sorted order: the empty file fails before the good one is reached.
        (watch_dir / "a_empty.fasta").write_text("\n", encoding="utf-8")
        _write_fasta(watch_dir / "b_good.fasta", get_virus("demo").root_seq)

        stop = asyncio.Event()

        async def stop_when_done():
            while not (out / "b_good.json").exists():
                await asyncio.sleep(0.01)
            stop.set()

        supervisor = Supervisor(
            compose(
                lambda: settings_task(state, 0.01, stop),
                lambda: algorithm_task(state, watch_dir, out, [OutputKind.JSON], 0.01, stop),
            ),
            on_error=state.error_add,
            stop_event=stop,
        )
        await asyncio.wait_for(asyncio.gather(supervisor.run(), stop_when_done()), timeout=10)

        assert [e.error_type for e in state.errors] == ["ExecutionError"]
        assert state.errors[0].attempt == 1
        assert supervisor.restarts == 1
        assert not (out / "a_empty.json").exists()

    @pytest.mark.asyncio
    async def test_modified_input_is_processed_again(self, tmp_path, state):
        calls = []

        def analyzer(raw_input, config):
            calls.append(raw_input)
            if len(calls) == 1:
                raise ExecutionError("first attempt fails")
            return engine.run(raw_input, config)

        source = _write_fasta(tmp_path / "s.fasta", get_virus("demo").root_seq)
        out = tmp_path / "out"
        out.mkdir()
        with pytest.raises(ExecutionError):
            await process_input(state, source, out, [OutputKind.JSON], analyzer)
        assert pending_inputs(state, tmp_path) == []

        stat = source.stat()
        os.utime(source, (stat.st_atime, stat.st_mtime + 5))
        assert pending_inputs(state, tmp_path) == [source]
        await process_input(state, source, out, [OutputKind.JSON], analyzer)
        assert (out / "s.json").exists()

    def test_session_errors_are_bounded(self, state):
        for attempt in range(1, MAX_REPORTED_ERRORS + 6):
            state.error_add(TaskError(RuntimeError("again"), attempt=attempt))
        assert len(state.errors) == MAX_REPORTED_ERRORS
        assert state.errors[0].attempt == 6


class TestWatchStartup:
    """Test that broken override files stop watch startup with one message."""

    @pytest.mark.parametrize(
        "flag,content",
        [
            ("--input-gene-map", json.dumps({"S": 5}).encode()),
            ("--input-gene-map", json.dumps({"S": [1, 2]}).encode()),
            ("--input-tree", json.dumps({"version": "v2", "tree": {"name": "r", "branch_attrs": {"mutations": ["A1G"]}}}).encode()),
            ("--input-qc-config", b'{"a": "\xff\xfe"}'),
        ],
    )
    def test_bad_override_exits_with_message(self, tmp_path, capsys, flag, content):
        override = tmp_path / "override.bin"
        override.write_bytes(content)
        code = watch.main(
            ["--watch-dir", str(tmp_path / "in"), "--output-dir", str(tmp_path / "out"), flag, str(override)]
        )
        assert code == 1
        err = capsys.readouterr().err.strip().splitlines()
        assert len(err) == 1
        assert err[0].startswith("Error: ")
