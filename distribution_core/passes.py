"""Household pass dispatcher.

Routes a household snapshot through one of the engine passes:
  - assign:    sequential batch assignment of the open tasks
  - forecast:  patterns, trend, anomalies and daily predictions
  - health:    workload states, overload alerts and a health report
  - rebalance: fairness report plus task-move suggestions
  - full:      forecast -> forecast-aware assignment -> health -> auto-balance

Every pass returns a JSON-ready dict with the same top-level keys.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta
from typing import Any

from .burnout import (
    DEFAULT_BURNOUT_CONFIG,
    BurnoutConfig,
    ReassignableTask,
    auto_balance_workload,
    build_member_workload_state,
    calculate_workload_score,
    check_household_overload,
    generate_health_report,
)
from .fairness import (
    DEFAULT_WEIGHTS,
    AssignmentResult,
    ScoringWeights,
    assign_tasks_batch,
    calculate_fair_share,
    generate_fairness_report,
    suggest_rebalancing,
)
from .models import HouseholdSnapshot, MemberWorkloadState, TaskAssignment, TaskDefinition
from .predictor import (
    DEFAULT_CONFIG,
    PredictorConfig,
    analyze_workload_trend,
    detect_anomalies,
    detect_patterns,
    predict_weekly_demand,
    predict_workload_range,
)
from .time_utils import UTC, now_utc
from .validation import to_jsonable

logger = logging.getLogger(__name__)

PASSES = ("assign", "forecast", "health", "rebalance", "full")


def _forecast(
    snapshot: HouseholdSnapshot,
    today: date,
    horizon_days: int,
    config: PredictorConfig,
) -> dict[str, Any]:
    series = snapshot.workload_series
    return {
        "patterns": detect_patterns(series, config),
        "trend": analyze_workload_trend(series, config=config),
        "anomalies": detect_anomalies(series, config=config),
        "predictions": predict_workload_range(
            series, today, today + timedelta(days=max(1, horizon_days) - 1), True, config
        ),
        "weekly_demand": predict_weekly_demand(series, today, config),
    }


def _committed_loads(snapshot: HouseholdSnapshot, results: Sequence[AssignmentResult]) -> dict[str, float]:
    loads = {m.id: m.current_load for m in snapshot.members}
    for r in results:
        loads[r.assigned_to] = loads.get(r.assigned_to, 0.0) + 1.0
    return loads


def _states(
    snapshot: HouseholdSnapshot,
    loads: Mapping[str, float],
    config: BurnoutConfig,
    today: date,
) -> list[MemberWorkloadState]:
    return [
        build_member_workload_state(
            m.id,
            m.name,
            loads.get(m.id, m.current_load),
            m.max_weekly_load,
            snapshot.daily_workloads.get(m.id, ()),
            snapshot.last_rest_dates.get(m.id),
            config,
            today,
        )
        for m in snapshot.members
    ]


def _open_tasks(snapshot: HouseholdSnapshot) -> list[TaskDefinition]:
    taken = {a.task.id for a in snapshot.assignments}
    return [t for t in snapshot.tasks if t.id not in taken]


def _new_assignments(snapshot: HouseholdSnapshot, results: Sequence[AssignmentResult]) -> list[TaskAssignment]:
    by_id = {t.id: t for t in snapshot.tasks}
    return [TaskAssignment(task=by_id[r.task_id], assigned_to=r.assigned_to) for r in results]


def run_pass(
    name: str,
    snapshot: HouseholdSnapshot,
    *,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    burnout_config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    predictor_config: PredictorConfig = DEFAULT_CONFIG,
    today: date | None = None,
    horizon_days: int = 7,
) -> dict[str, Any]:
    """Run the named pass over ``snapshot`` and return a result dict.

    ``today`` pins the clock for forecasts, rest-day checks and alert
    timestamps; it defaults to the current UTC date.
    """
    if name not in PASSES:
        raise ValueError(f"Unknown pass: {name!r}. Choose from {PASSES}")

    now = now_utc() if today is None else datetime.combine(today, time.min, tzinfo=UTC)
    today = now.date()
    period_start = today - timedelta(days=burnout_config.rest_window_days - 1)
    members = list(snapshot.members)
    result: dict[str, Any] = {
        "pass": name,
        "household_id": snapshot.household_id,
        "generated_at": now,
        "member_count": len(members),
        "task_count": len(snapshot.tasks),
        "open_task_count": len(_open_tasks(snapshot)),
    }

    if name == "assign":
        result["assignments"] = assign_tasks_batch(
            _open_tasks(snapshot), members, snapshot.histories, weights=weights
        )

    elif name == "forecast":
        result["forecast"] = _forecast(snapshot, today, horizon_days, predictor_config)

    elif name == "health":
        states = _states(snapshot, {m.id: m.current_load for m in members}, burnout_config, today)
        result["health"] = generate_health_report(
            snapshot.household_id, states, period_start, today, burnout_config, now
        )

    elif name == "rebalance":
        result["fairness"] = generate_fairness_report(
            snapshot.household_id,
            members,
            snapshot.histories,
            period_start,
            today,
            snapshot.assignments,
            weights=weights,
        )
        result["rebalancing"] = suggest_rebalancing(members, snapshot.assignments, weights=weights)

    else:
        forecast = _forecast(snapshot, today, horizon_days, predictor_config)
        demand = forecast["weekly_demand"]
        expected = {mid: demand * share / 100.0 for mid, share in calculate_fair_share(members).items()}
        assignments = assign_tasks_batch(
            _open_tasks(snapshot),
            members,
            snapshot.histories,
            expected_loads=expected,
            weights=weights,
        )
        states = _states(snapshot, _committed_loads(snapshot, assignments), burnout_config, today)
        alerts = check_household_overload(states, burnout_config, now)
        movable = list(snapshot.assignments) + _new_assignments(snapshot, assignments)
        balance = auto_balance_workload(
            states,
            [ReassignableTask(task=a.task, assigned_to=a.assigned_to) for a in movable],
            {m.id: m.skills for m in members},
            burnout_config,
        )
        result.update(
            forecast=forecast,
            expected_loads={k: round(v, 2) for k, v in expected.items()},
            assignments=assignments,
            member_states=states,
            workload_scores={s.member_id: calculate_workload_score(s) for s in states},
            alerts=alerts,
            balance=balance,
        )

    logger.info("pass %s finished for household %s", name, snapshot.household_id)
    return to_jsonable(result)
