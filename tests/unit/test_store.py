"""Tests for beet_smart_cutoff.store."""

import json
import os
import stat
from datetime import date
from pathlib import Path

import pytest

from beet_smart_cutoff.models import CutoffDecision, StoreAccessError, StoreCorruptError
from beet_smart_cutoff.store import (
    decisions_to_entry,
    load_document,
    merge_decisions,
    save_decisions,
    write_document,
)


class TestLoadDocument:
    """Tests for load_document()."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_document(tmp_path / "out.json") == {}

    def test_loads_object(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text('{"key0": {"g": "2020-01-01"}}', encoding="utf-8")
        assert load_document(path) == {"key0": {"g": "2020-01-01"}}

    def test_invalid_json_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text('{"key0": ', encoding="utf-8")
        with pytest.raises(StoreCorruptError, match="out.json is not valid JSON"):
            load_document(path)

    def test_empty_file_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text("", encoding="utf-8")
        with pytest.raises(StoreCorruptError):
            load_document(path)

    def test_non_object_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text('["2020-01-01"]', encoding="utf-8")
        with pytest.raises(StoreCorruptError, match="found list"):
            load_document(path)

    def test_unreadable_path_is_access_error(self, tmp_path: Path) -> None:
        directory = tmp_path / "out.json"
        directory.mkdir()

        with pytest.raises(StoreAccessError, match="cannot read"):
            load_document(directory)


class TestMergeDecisions:
    """Tests for merge_decisions() and decisions_to_entry()."""

    def test_entry_keeps_decision_order_and_skips(self) -> None:
        entry = decisions_to_entry(
            [
                CutoffDecision(group="z", cutoff=date(2021, 1, 2)),
                CutoffDecision(group="a"),
            ]
        )
        assert list(entry.items()) == [("z", "2021-01-02"), ("a", None)]

    def test_replaces_only_own_key(self) -> None:
        document = {"key0": {"g": "2020-01-01"}, "key1": {"old": "2019-01-01"}, "raw": "2018-05-05"}
        merged = merge_decisions(
            document, "key1", [CutoffDecision(group="g2", cutoff=date(2022, 6, 1))]
        )

        assert merged == {
            "key0": {"g": "2020-01-01"},
            "key1": {"g2": "2022-06-01"},
            "raw": "2018-05-05",
        }
        assert list(merged) == ["key0", "key1", "raw"]
        assert document["key1"] == {"old": "2019-01-01"}


class TestSaveDecisions:
    """Tests for write_document() and save_decisions()."""

    def test_scenario_merges_with_existing_key(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text(json.dumps({"key0": {"g": "2020-01-01"}}), encoding="utf-8")

        save_decisions(path, "key1", [CutoffDecision(group="g2", cutoff=date(2022, 6, 1))])

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "key0": {"g": "2020-01-01"},
            "key1": {"g2": "2022-06-01"},
        }

    def test_creates_missing_file_and_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "out.json"
        save_decisions(path, "key1", [CutoffDecision(group="ungrouped")])
        assert json.loads(path.read_text(encoding="utf-8")) == {"key1": {"ungrouped": None}}

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        document = {
            "key0": {"g": "2020-01-01", "h": None},
            "key1": {"ungrouped": "2022-06-01"},
        }
        write_document(path, document)
        assert load_document(path) == document

    def test_corrupt_file_not_overwritten(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text("not json", encoding="utf-8")

        with pytest.raises(StoreCorruptError):
            save_decisions(path, "key1", [CutoffDecision(group="g")])

        assert path.read_text(encoding="utf-8") == "not json"

    def test_failed_rename_leaves_original(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "out.json"
        original = b'{\n  "key0": {"g": "2020-01-01"}\n}\n'
        path.write_bytes(original)

        def crash(src: str, dst: str) -> None:
            raise OSError("simulated crash before rename")

        monkeypatch.setattr(os, "replace", crash)

        with pytest.raises(StoreAccessError, match="simulated crash"):
            save_decisions(path, "key1", [CutoffDecision(group="g", cutoff=date(2022, 1, 1))])

        assert path.read_bytes() == original
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    def test_failed_serialization_leaves_original(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        original = b'{"key0": {"g": "2020-01-01"}}'
        path.write_bytes(original)

        with pytest.raises(TypeError):
            write_document(path, {"key0": {"g": object()}})

        assert path.read_bytes() == original
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    def test_output_is_pretty_printed(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        write_document(path, {"key1": {"g": "2022-06-01"}})
        assert path.read_text(encoding="utf-8") == (
            '{\n  "key1": {\n    "g": "2022-06-01"\n  }\n}\n'
        )

    def test_keeps_existing_file_mode(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.write_text('{"key0": {"g": "2020-01-01"}}', encoding="utf-8")
        path.chmod(0o640)

        save_decisions(path, "key1", [CutoffDecision(group="g", cutoff=date(2022, 1, 1))])

        assert stat.S_IMODE(path.stat().st_mode) == 0o640

    def test_new_file_uses_umask_default(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        previous = os.umask(0o022)
        try:
            write_document(path, {"key1": {"g": None}})
        finally:
            os.umask(previous)

        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    def test_unwritable_target_is_access_error(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        path.mkdir()

        with pytest.raises(StoreAccessError, match="cannot write"):
            write_document(path, {"key1": {"g": None}})

        assert path.is_dir()
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]
