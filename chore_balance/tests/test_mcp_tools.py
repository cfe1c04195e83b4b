"""Smoke tests calling the MCP tool functions directly against a temp artifact dir."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from chore_balance import mcp_server


@pytest.fixture(autouse=True)
def artifacts(tmp_path, monkeypatch):
    monkeypatch.setenv("CHORE_BALANCE_ARTIFACT_DIR", str(tmp_path / "artifacts"))
    monkeypatch.setenv("CHORE_BALANCE_DEFAULT_PROFILE", "default")
    return tmp_path / "artifacts"


@pytest.fixture
def household():
    start = date(2026, 1, 5)
    payload = {
        "household_id": "hh-1",
        "members": [
            {"id": "alice", "max_weekly_load": 10, "current_load": 3, "skills": ["cleaning"]},
            {"id": "bob", "max_weekly_load": 10, "current_load": 5},
        ],
        "tasks": [{"id": "t1", "category": "cleaning", "required_skills": ["cleaning"]}],
        "workload_series": [
            {"timestamp": (start + timedelta(days=i)).isoformat(), "task_count": 4} for i in range(21)
        ],
    }
    return mcp_server.save_household(json.dumps(payload))


class TestTools:
    def test_save_and_list(self, household):
        assert household["counts"]["members"] == 2
        assert [m["snapshot_id"] for m in mcp_server.list_households()] == [household["snapshot_id"]]

    def test_run_pass_persists_result(self, household):
        response = mcp_server.run_pass("assign", today="2026-02-02")
        assert response["summary"]["assigned"] == 1
        stored = mcp_server.load_result(response["result_id"])
        assert stored["snapshot_id"] == household["snapshot_id"]
        assert stored["profile"] == "default"

    def test_run_pass_unknown(self, household):
        with pytest.raises(ValueError, match="Unknown pass"):
            mcp_server.run_pass("nope")

    def test_assign_task(self, household):
        out = mcp_server.assign_task(json.dumps({"id": "t9", "category": "cleaning", "required_skills": ["cleaning"]}))
        assert out["assignment"]["assigned_to"] == "alice"
        assert out["fair_shares"] == {"alice": 50.0, "bob": 50.0}

    def test_forecast(self, household):
        out = mcp_server.forecast_workload(start="2026-01-26", days=2)
        assert [p["predicted_task_count"] for p in out["predictions"]] == [4.0, 4.0]

    def test_check_health(self, household):
        report = mcp_server.check_health(today="2026-02-02")
        assert report["overall_health"] == "healthy"
        assert report["alerts"] == []
        assert report["workload_scores"] == {"alice": 30, "bob": 50}

    def test_expired_delegations(self):
        def req(rid, expires_at, status="pending"):
            return {
                "id": rid,
                "task_id": "t1",
                "from_member": "alice",
                "to_member": "bob",
                "status": status,
                "requested_at": "2026-02-02T09:00:00Z",
                "expires_at": expires_at,
            }

        requests = [
            req("r1", "2026-02-03T09:00:00Z"),
            req("r2", "2026-02-04T09:00:00Z"),
            req("r3", "2026-02-03T09:00:00Z", status="accepted"),
        ]
        out = mcp_server.expired_delegations(json.dumps(requests), now="2026-02-03T15:00:00Z")
        assert [r["id"] for r in out] == ["r1"]

    def test_suggest_delegation(self):
        task = {"id": "t1", "category": "cleaning", "deadline": "2026-02-02T18:00:00Z"}
        candidates = [
            {"member_id": "alice", "max_load": 10, "current_load": 8},
            {
                "member_id": "bob",
                "name": "Bob",
                "max_load": 10,
                "current_load": 2,
                "availability": [{"day": "2026-02-02", "start": "09:00", "end": "12:00", "capacity": 3}],
            },
        ]
        out = mcp_server.suggest_delegation(json.dumps(task), "alice", json.dumps(candidates))
        assert [s["to_member"] for s in out] == ["bob"]
        assert out[0]["summary"].startswith("Bob")

    def test_profiles(self):
        profiles = mcp_server.list_profiles()
        assert "gentle" in profiles
        assert mcp_server.load_profile("gentle")["burnout"]["healthy_below"] == 60
