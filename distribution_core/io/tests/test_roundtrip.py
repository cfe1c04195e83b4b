"""Roundtrip test: load_input -> run_pass -> write_output -> verify."""

from __future__ import annotations

import json
import shutil
from datetime import date
from pathlib import Path

import pytest

from distribution_core.io.reader import load_input
from distribution_core.io.writer import build_summary, write_output
from distribution_core.passes import run_pass

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "minimal"
TODAY = date(2026, 2, 2)


@pytest.fixture
def snapshot():
    return load_input(FIXTURES_DIR)


@pytest.fixture
def full_result(snapshot):
    return run_pass("full", snapshot, today=TODAY)


class TestLoadInput:
    def test_household_from_meta(self, snapshot):
        assert snapshot.household_id == "hh-test"
        assert {m.household_id for m in snapshot.members} == {"hh-test"}

    def test_members(self, snapshot):
        by_id = {m.id: m for m in snapshot.members}
        assert set(by_id) == {"alice", "bob", "carol"}
        assert by_id["alice"].skills == frozenset({"cooking", "cleaning"})
        assert by_id["alice"].current_load == 2
        assert by_id["bob"].preferences.blocked == frozenset({"laundry"})
        assert by_id["bob"].preferences.disliked == frozenset({"kitchen"})
        assert by_id["carol"].max_weekly_load == 5

    def test_malformed_task_row_skipped(self, snapshot):
        assert [t.id for t in snapshot.tasks] == ["t1", "t2", "t3"]

    def test_task_fields(self, snapshot):
        t1 = snapshot.tasks[0]
        assert t1.category == "kitchen"
        assert t1.priority == 8
        assert t1.required_skills == frozenset({"cleaning"})
        assert t1.estimated_minutes == 45

    def test_existing_assignments(self, snapshot):
        assert [(a.task.id, a.assigned_to) for a in snapshot.assignments] == [("t3", "bob")]

    def test_history_aggregated(self, snapshot):
        alice = snapshot.histories["alice"]
        assert alice.total_tasks == 9
        assert alice.total_minutes == 270
        assert alice.task_counts == {"kitchen": 8, "cleaning": 1}
        assert alice.completion_rate == 0.9
        assert [w.week_start for w in alice.weekly_history] == [date(2026, 1, 19), date(2026, 1, 26)]
        assert "carol" not in snapshot.histories

    def test_workload_series(self, snapshot):
        series = snapshot.workload_series
        assert len(series) == 28
        assert series[0].day == date(2026, 1, 5)
        assert series[0].day_of_week == 0
        assert series[0].categories == {"kitchen": 4, "cleaning": 2}
        assert series[5].task_count == 3

    def test_daily_and_rest_dates(self, snapshot):
        days = snapshot.daily_workloads["alice"]
        assert [d.day for d in days] == [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]
        assert days[-1].task_count == 0
        assert not any(d.was_overloaded for d in days)
        assert snapshot.last_rest_dates == {"bob": date(2026, 1, 30)}

    def test_missing_required_file(self, tmp_path):
        shutil.copytree(FIXTURES_DIR, tmp_path / "input")
        (tmp_path / "input" / "members.csv").unlink()
        with pytest.raises(FileNotFoundError, match="members.csv"):
            load_input(tmp_path / "input")

    def test_optional_files_may_be_absent(self, tmp_path):
        d = tmp_path / "household-42"
        d.mkdir()
        for name in ("members.csv", "tasks.csv", "workload.csv"):
            shutil.copy(FIXTURES_DIR / name, d / name)
        snap = load_input(d)
        assert snap.household_id == "household-42"
        assert snap.histories == {}
        assert snap.daily_workloads == {}
        assert snap.last_rest_dates == {}


class TestFullPass:
    def test_only_open_tasks_assigned(self, full_result):
        assert full_result["open_task_count"] == 2
        assert {a["task_id"] for a in full_result["assignments"]} == {"t1", "t2"}

    def test_blocked_member_never_gets_laundry(self, full_result):
        laundry = next(a for a in full_result["assignments"] if a["task_id"] == "t2")
        assert laundry["assigned_to"] != "bob"

    def test_result_is_json_ready(self, full_result):
        json.dumps(full_result)
        assert full_result["generated_at"].startswith("2026-02-02")
        assert len(full_result["member_states"]) == 3
        assert len(full_result["forecast"]["predictions"]) == 7


class TestWriteOutput:
    def test_writes_results_and_summary(self, full_result, tmp_path):
        written = write_output(full_result, tmp_path / "out")
        assert set(written) == {"results.json", "summary.json"}

        results = json.loads(written["results.json"].read_text(encoding="utf-8"))
        assert results["household_id"] == "hh-test"

        summary = json.loads(written["summary.json"].read_text(encoding="utf-8"))
        assert summary["assigned"] == 2
        assert sum(summary["assigned_per_member"].values()) == 2
        assert sum(summary["health"].values()) == 3
        assert 0.0 <= summary["gini"] <= 1.0
        assert summary["assessment"]

    def test_summary_for_forecast_pass(self, snapshot):
        summary = build_summary(run_pass("forecast", snapshot, today=TODAY))
        assert summary["pass"] == "forecast"
        assert summary["weekly_demand"] > 0
        assert "assigned" not in summary
