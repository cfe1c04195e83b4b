"""Tests for household snapshot and pass result persistence."""

from __future__ import annotations

import pytest

from chore_balance.storage import (
    get_household_manifest,
    list_households,
    list_results,
    load_household,
    load_result,
    save_household,
    save_result,
)


def _household(**extra):
    return {
        "household_id": "hh-1",
        "members": [{"id": "a", "max_weekly_load": 10}],
        "tasks": [{"id": "t1", "category": "kitchen"}],
        **extra,
    }


class TestHouseholds:
    def test_save_and_load_latest(self, tmp_path):
        target = save_household(tmp_path, _household())
        sid = target.name
        assert sid.startswith("hh-")
        loaded = load_household(tmp_path)
        assert loaded["snapshot_id"] == sid
        assert loaded["members"][0]["id"] == "a"

    def test_manifest_counts(self, tmp_path):
        save_household(tmp_path, _household(snapshot_id="snap-1"))
        manifest = get_household_manifest(tmp_path, "snap-1")
        assert manifest["household_id"] == "hh-1"
        assert manifest["counts"] == {"members": 1, "tasks": 1, "assignments": 0, "workload_points": 0}

    def test_list(self, tmp_path):
        save_household(tmp_path, _household(snapshot_id="snap-1"))
        save_household(tmp_path, _household(snapshot_id="snap-2"))
        ids = {m["snapshot_id"] for m in list_households(tmp_path)}
        assert ids == {"snap-1", "snap-2"}
        assert len(list_households(tmp_path, limit=1)) == 1

    def test_unreadable_manifest_skipped(self, tmp_path):
        save_household(tmp_path, _household(snapshot_id="snap-1"))
        broken = tmp_path / "households" / "snap-2"
        broken.mkdir()
        (broken / "manifest.json").write_text("{not json", encoding="utf-8")
        assert [m["snapshot_id"] for m in list_households(tmp_path)] == ["snap-1"]

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="household manifest not found: latest"):
            load_household(tmp_path)
        with pytest.raises(FileNotFoundError, match="nope"):
            load_household(tmp_path, "nope")


class TestResults:
    def test_save_and_load(self, tmp_path):
        result = {"pass": "full", "household_id": "hh-1", "generated_at": "2026-02-02T00:00:00+00:00"}
        target = save_result(tmp_path, {**result, "snapshot_id": "snap-1"})
        assert target.name.startswith("run-")
        assert load_result(tmp_path, target.name)["pass"] == "full"
        assert load_result(tmp_path)["result_id"] == target.name
        (manifest,) = list_results(tmp_path)
        assert manifest["snapshot_id"] == "snap-1"

    def test_newest_first(self, tmp_path):
        save_result(tmp_path, {"result_id": "old", "generated_at": "2026-01-01T00:00:00+00:00"})
        save_result(tmp_path, {"result_id": "new", "generated_at": "2026-02-01T00:00:00+00:00"})
        assert [m["result_id"] for m in list_results(tmp_path)] == ["new", "old"]

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="result manifest not found"):
            load_result(tmp_path)
