"""Tests for the household pass dispatcher."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from distribution_core.passes import PASSES, run_pass
from distribution_core.validation import snapshot_from_dict

TODAY = date(2026, 2, 2)


def _payload():
    start = date(2026, 1, 5)
    return {
        "household_id": "hh-1",
        "members": [
            {
                "id": "alice",
                "name": "Alice",
                "max_weekly_load": 10,
                "current_load": 3,
                "skills": ["cleaning"],
                "preferences": {"preferred": ["cleaning"]},
            },
            {"id": "bob", "name": "Bob", "max_weekly_load": 10, "current_load": 11},
            {"id": "carol", "name": "Carol", "max_weekly_load": 10, "current_load": 2},
        ],
        "tasks": [
            {"id": "t1", "name": "Clean kitchen", "category": "cleaning", "required_skills": ["cleaning"], "priority": 8},
            {"id": "t2", "name": "Laundry", "category": "laundry", "priority": 3},
            {"id": "t3", "name": "Vacuum", "category": "cleaning", "priority": 2},
        ],
        "assignments": [{"task_id": "t3", "assigned_to": "bob"}],
        "workload_series": [
            {"timestamp": (start + timedelta(days=i)).isoformat(), "task_count": 4, "total_minutes": 120}
            for i in range(28)
        ],
        "daily_workloads": {
            "bob": [
                {"day": (TODAY - timedelta(days=i)).isoformat(), "task_count": 3, "load_percentage": 150}
                for i in range(5)
            ]
        },
    }


@pytest.fixture
def snapshot():
    return snapshot_from_dict(_payload())


class TestRunPass:
    def test_unknown_pass(self, snapshot):
        with pytest.raises(ValueError, match="Unknown pass"):
            run_pass("nope", snapshot)

    @pytest.mark.parametrize("name", PASSES)
    def test_common_keys_and_json_ready(self, snapshot, name):
        result = run_pass(name, snapshot, today=TODAY)
        assert result["pass"] == name
        assert result["household_id"] == "hh-1"
        assert result["generated_at"] == "2026-02-02T00:00:00+00:00"
        assert result["member_count"] == 3
        assert result["task_count"] == 3
        assert result["open_task_count"] == 2
        json.dumps(result)

    def test_assign_only_open_tasks(self, snapshot):
        result = run_pass("assign", snapshot, today=TODAY)
        assignments = result["assignments"]
        assert [a["task_id"] for a in assignments] == ["t1", "t2"]
        assert assignments[0]["assigned_to"] == "alice"
        assert assignments[0]["score"]["recommendation"] == "assign"

    def test_forecast(self, snapshot):
        forecast = run_pass("forecast", snapshot, today=TODAY, horizon_days=3)["forecast"]
        assert forecast["weekly_demand"] == 28.0
        assert [p["date"] for p in forecast["predictions"]] == ["2026-02-02", "2026-02-03", "2026-02-04"]
        assert forecast["anomalies"] == []
        assert forecast["trend"]["direction"] == "stable"

    def test_health(self, snapshot):
        health = run_pass("health", snapshot, today=TODAY)["health"]
        assert health["overall_health"] == "critical"
        assert [a["member_id"] for a in health["alerts"]] == ["bob"]
        bob = next(s for s in health["member_states"] if s["member_id"] == "bob")
        assert "consecutive_overload" in {i["type"] for i in bob["stress_indicators"]}
        assert health["period_start"] == "2026-01-27"

    def test_rebalance(self, snapshot):
        result = run_pass("rebalance", snapshot, today=TODAY)
        assert {s["member_id"] for s in result["fairness"]["member_stats"]} == {"alice", "bob", "carol"}
        moves = result["rebalancing"]
        assert moves and moves[0]["task_id"] == "t3"
        assert moves[0]["from_user"] == "bob"

    def test_full(self, snapshot):
        result = run_pass("full", snapshot, today=TODAY)
        assert result["expected_loads"] == {"alice": 9.33, "bob": 9.33, "carol": 9.33}
        assert {a["task_id"] for a in result["assignments"]} == {"t1", "t2"}
        loads = {s["member_id"]: s["current_load"] for s in result["member_states"]}
        assert sum(loads.values()) == 3 + 11 + 2 + 2
        assert any(a["member_id"] == "bob" for a in result["alerts"])
        assert set(result["balance"]) >= {"success", "resolved", "redistributed"}
        assert set(result["workload_scores"]) == {"alice", "bob", "carol"}
        assert all(0 <= v <= 100 for v in result["workload_scores"].values())

    def test_inputs_untouched(self, snapshot):
        run_pass("full", snapshot, today=TODAY)
        assert {m.id: m.current_load for m in snapshot.members} == {"alice": 3, "bob": 11, "carol": 2}
