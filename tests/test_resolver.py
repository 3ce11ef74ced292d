from __future__ import annotations

import json
from pathlib import Path

import pytest

from cladeflow.defaults.viruses import PRIMERS_FILE, get_virus
from cladeflow.errors import ConfigValidationError, InputReadError
from cladeflow.pipeline.resolver import RESOLUTION_STEPS, ConfigOverrides, OverrideSource, resolve
from cladeflow.utils.config import load_settings

DEMO_PRIMERS_CSV = (load_settings().data_dir / "demo" / PRIMERS_FILE).read_text(encoding="utf-8")

QC_OVERRIDE = {
    "missingData": {"enabled": False, "missingDataThreshold": 100, "scoreBias": 10},
    "mixedSites": {"enabled": True, "mixedSitesThreshold": 10},
    "privateMutations": {"enabled": True, "typical": 5, "cutoff": 10},
    "snpClusters": {"enabled": False, "windowSize": 100, "clusterCutOff": 6, "scoreWeight": 50},
}


def _text(slot: str, content: str) -> OverrideSource:
    return OverrideSource.from_text(content, label=f"{slot}.override")


def test_no_overrides_is_identity() -> None:
    base = get_virus("demo")
    assert resolve(base) is base
    assert resolve(base, ConfigOverrides()) is base


def test_root_sequence_is_applied_before_primers() -> None:
    base = get_virus("demo")
    shifted_root = "GGGG" + base.root_seq[:-4]
    # Primers are listed first in the call on purpose; resolution order is fixed.
    overrides = ConfigOverrides(
        pcr_primers=_text("primers", DEMO_PRIMERS_CSV),
        root_seq=_text("root", shifted_root),
    )
    config = resolve(base, overrides)
    begins = {p.name: p.range.begin for p in config.pcr_primers}
    assert config.root_seq == shifted_root
    assert begins == {"Demo_F": 24, "Demo_R": 154, "Demo_P": 64}
    assert {p.name: p.range.begin for p in base.pcr_primers}["Demo_F"] == 20


def test_resolution_order_is_declared() -> None:
    slots = [slot for slot, _ in RESOLUTION_STEPS]
    assert slots.index("root_seq") < slots.index("pcr_primers")
    assert sorted(slots) == sorted(ConfigOverrides().__dataclass_fields__)


def test_qc_override_replaces_field_wholesale() -> None:
    base = get_virus("demo")
    config = resolve(base, ConfigOverrides(qc_config=_text("qc", json.dumps(QC_OVERRIDE))))
    assert config.qc_rules_config.missing_data.enabled is False
    assert config.qc_rules_config.private_mutations.typical == 5
    assert config.root_seq == base.root_seq
    assert config.gene_map == base.gene_map
    assert config.pcr_primers == base.pcr_primers


def test_gene_map_and_tree_overrides(tmp_path: Path) -> None:
    base = get_virus("demo")
    gene_map = tmp_path / "genes.json"
    gene_map.write_text(json.dumps([{"name": "ORF9", "start": 3, "end": 12}]), encoding="utf-8")
    tree = tmp_path / "tree.json"
    tree.write_text(
        json.dumps({"version": "v2", "meta": {"title": "custom"}, "tree": {"name": "only-root"}}),
        encoding="utf-8",
    )
    config = resolve(base, ConfigOverrides.from_paths(gene_map=gene_map, tree=tree))
    assert [g.name for g in config.gene_map] == ["ORF9"]
    assert config.gene_map[0].frame == 0
    assert config.auspice_data.tree.name == "only-root"
    assert config.auspice_data.meta == {"title": "custom"}


def test_invalid_override_aborts_resolution() -> None:
    base = get_virus("demo")
    overrides = ConfigOverrides(
        root_seq=_text("root", "ACGT"),
        qc_config=_text("qc", json.dumps({"missingData": {}})),
    )
    with pytest.raises(ConfigValidationError) as exc_info:
        resolve(base, overrides)
    assert exc_info.value.label == "qc.override"
    assert base.root_seq != "ACGT"


@pytest.mark.parametrize(
    "slot,content",
    [
        ("tree", "{not json"),
        ("tree", json.dumps({"version": "v1", "tree": {"name": "x"}})),
        ("gene_map", json.dumps([{"name": "G", "start": 10, "end": 5}])),
        ("gene_map", json.dumps([{"name": "G", "start": 0, "end": 5}, {"name": "G", "start": 5, "end": 9}])),
        ("pcr_primers", "Target,Sequence\nx,ACGT\n"),
        ("gene_map", json.dumps({"S": [1, 2]})),
        ("gene_map", json.dumps({"S": 5})),
        ("tree", json.dumps({"version": "v2", "tree": {"name": "x", "branch_attrs": {"mutations": ["A1G"]}}})),
        ("tree", json.dumps({"version": "v2", "tree": {"name": "x", "branch_attrs": {"mutations": {"nuc": ["garbage"]}}}})),
        ("tree", json.dumps({"version": "v2", "tree": {"name": "x", "branch_attrs": {"mutations": {"nuc": ["A0G"]}}}})),
    ],
)
def test_malformed_overrides_raise_validation_error(slot: str, content: str) -> None:
    with pytest.raises(ConfigValidationError):
        resolve(get_virus("demo"), ConfigOverrides(**{slot: _text(slot, content)}))


def test_empty_root_sequence_is_passed_through() -> None:
    base = get_virus("demo")
    config = resolve(base, ConfigOverrides(root_seq=_text("root", ">header only\n")))
    assert config.root_seq == ""
    assert config.auspice_data == base.auspice_data


def test_unreadable_override_is_io_error(tmp_path: Path) -> None:
    overrides = ConfigOverrides.from_paths(qc_config=tmp_path / "missing.json")
    with pytest.raises(InputReadError):
        resolve(get_virus("demo"), overrides)


def test_gene_map_object_keyed_by_name() -> None:
    content = json.dumps({"ORF1": {"start": 0, "end": 9}, "ORF2": {"start": 9, "end": 18, "strand": "-"}})
    config = resolve(get_virus("demo"), ConfigOverrides(gene_map=_text("gene_map", content)))
    assert [(g.name, g.strand) for g in config.gene_map] == [("ORF1", "+"), ("ORF2", "-")]


def test_non_utf8_override_is_io_error(tmp_path: Path) -> None:
    qc = tmp_path / "qc.json"
    qc.write_bytes(b'{"a": "\xff\xfe"}')
    with pytest.raises(InputReadError) as exc_info:
        resolve(get_virus("demo"), ConfigOverrides.from_paths(qc_config=qc))
    assert "UTF-8" in str(exc_info.value)
