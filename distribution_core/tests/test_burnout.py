"""Tests for health tiers, stress indicators, alerts, recovery and auto-balancing."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from distribution_core.burnout import (
    BurnoutConfig,
    ReassignableTask,
    auto_balance_workload,
    build_member_workload_state,
    calculate_workload_score,
    calculate_health_status,
    check_household_overload,
    check_overload,
    create_recovery_plan,
    daily_workload,
    detect_stress_indicators,
    determine_recovery_type,
    generate_health_report,
    needs_immediate_intervention,
    recommended_daily_limit,
)
from distribution_core.models import (
    AlertType,
    DailyWorkload,
    HealthStatus,
    InvalidInputError,
    RecoveryType,
    StressIndicatorType,
    SuggestedActionType,
    TaskDefinition,
)

TODAY = date(2026, 2, 2)
NOW = datetime(2026, 2, 2, tzinfo=timezone.utc)


def days(loads, end=TODAY, tasks=3, minutes=90):
    """Consecutive daily rows ending on ``end``, one per load percentage."""
    start = end - timedelta(days=len(loads) - 1)
    return [
        DailyWorkload(
            day=start + timedelta(days=i),
            task_count=tasks,
            minutes_worked=minutes,
            load_percentage=pct,
            was_overloaded=pct > 100,
        )
        for i, pct in enumerate(loads)
    ]


def state(mid, current, max_load=10, recent=(), last_rest=None):
    return build_member_workload_state(mid, mid.capitalize(), current, max_load, recent, last_rest, today=TODAY)


def task(tid, priority=5, skills=()):
    return TaskDefinition(id=tid, name=tid, category="cleaning", priority=priority, required_skills=frozenset(skills))


def kinds(indicators):
    return {i.type for i in indicators}


class TestHealthStatus:
    @pytest.mark.parametrize(
        "pct, expected",
        [
            (0, HealthStatus.HEALTHY),
            (50, HealthStatus.HEALTHY),
            (75, HealthStatus.ELEVATED),
            (95, HealthStatus.HIGH),
            (110, HealthStatus.CRITICAL),
            (120, HealthStatus.CRITICAL),
            (130, HealthStatus.BURNOUT_RISK),
        ],
    )
    def test_tiers(self, pct, expected):
        assert calculate_health_status(pct) is expected

    def test_rejects_non_finite(self):
        with pytest.raises(InvalidInputError):
            calculate_health_status(math.nan)

    def test_daily_workload_percentage(self):
        d = daily_workload(TODAY, 3, 60, 2)
        assert d.load_percentage == 150.0
        assert d.was_overloaded
        assert daily_workload(TODAY, 3, 60, 0).load_percentage == 0.0

    def test_bounds_must_be_ordered(self):
        with pytest.raises(ValueError, match="health bounds"):
            BurnoutConfig(healthy_below=95)
        with pytest.raises(ValueError, match="health bounds"):
            BurnoutConfig(high_below=130)
        assert BurnoutConfig(high_below=120).critical_max == 120


class TestStressIndicators:
    def test_four_overloaded_days(self):
        found = detect_stress_indicators(days([150, 150, 150, 150]))
        assert StressIndicatorType.CONSECUTIVE_OVERLOAD in kinds(found)

    def test_broken_run_is_not_consecutive(self):
        found = detect_stress_indicators(days([150, 150, 50, 150, 150]))
        assert StressIndicatorType.CONSECUTIVE_OVERLOAD not in kinds(found)

    def test_run_must_reach_latest_day(self):
        found = detect_stress_indicators(days([50, 50, 150, 150, 150]))
        run = next(i for i in found if i.type is StressIndicatorType.CONSECUTIVE_OVERLOAD)
        assert run.description.startswith("3 consecutive")

    def test_old_overload_spell_is_forgotten(self):
        rows = days([110] * 4 + [80] * 16 + [0])
        rows[-1] = DailyWorkload(rows[-1].day, 0, 0, 0.0)
        s = state("a", 2, recent=rows)
        assert s.health_status is HealthStatus.HEALTHY
        assert s.stress_indicators == ()
        assert determine_recovery_type(s) is RecoveryType.NONE

    def test_no_rest_over_full_window(self):
        found = detect_stress_indicators(days([50] * 7))
        assert kinds(found) == {StressIndicatorType.NO_REST}

    def test_rest_day_in_window_prevents_no_rest(self):
        rows = days([50] * 7)
        rows[3] = DailyWorkload(rows[3].day, 0, 0, 0.0)
        found = detect_stress_indicators(rows)
        assert StressIndicatorType.NO_REST not in kinds(found)

    def test_last_rest_date_in_window_prevents_no_rest(self):
        found = detect_stress_indicators(days([50] * 7), last_rest_date=TODAY - timedelta(days=2))
        assert StressIndicatorType.NO_REST not in kinds(found)

    def test_old_rest_date_flags_no_rest(self):
        found = detect_stress_indicators(days([50] * 3), last_rest_date=TODAY - timedelta(days=20))
        no_rest = next(i for i in found if i.type is StressIndicatorType.NO_REST)
        assert "20 days" in no_rest.description
        assert 0 <= no_rest.severity <= 10

    def test_high_variance(self):
        found = detect_stress_indicators(days([10, 150, 10, 150]))
        assert StressIndicatorType.HIGH_VARIANCE in kinds(found)

    def test_long_days(self):
        found = detect_stress_indicators(days([50, 50, 50], minutes=500))
        assert StressIndicatorType.LONG_TASKS in kinds(found)

    def test_empty(self):
        assert detect_stress_indicators([]) == []

    def test_severity_in_range(self):
        for indicator in detect_stress_indicators(days([200] * 14, minutes=600)):
            assert 0 <= indicator.severity <= 10


class TestWorkloadState:
    def test_state_from_loads(self):
        s = state("a", 11, recent=days([95, 100, 110]))
        assert s.load_percentage == 110.0
        assert s.health_status is HealthStatus.CRITICAL
        assert s.consecutive_high_load_days == 3

    def test_zero_capacity(self):
        s = state("a", 3, max_load=0)
        assert s.load_percentage == 0.0
        assert s.health_status is HealthStatus.HEALTHY


class TestAlerts:
    def test_healthy_member_has_no_alert(self):
        assert check_overload(state("a", 3), now=NOW) is None

    def test_elevated_member_warning(self):
        alert = check_overload(state("a", 7.5), now=NOW)
        assert alert.alert_type is AlertType.WARNING
        assert alert.created_at == NOW

    def test_sustained_high_load_is_critical(self):
        alert = check_overload(state("a", 9.5, recent=days([95, 95, 95])), now=NOW)
        assert alert.alert_type is AlertType.CRITICAL

    def test_burnout_is_emergency(self):
        alert = check_overload(state("a", 13), now=NOW)
        assert alert.alert_type is AlertType.EMERGENCY
        assert alert.suggested_actions[0].type is SuggestedActionType.SUPPORT
        assert SuggestedActionType.POSTPONE in {a.type for a in alert.suggested_actions}

    def test_household_alerts_emergency_first(self):
        states = [state("a", 7.5), state("b", 3), state("c", 13), state("d", 11)]
        alerts = check_household_overload(states, now=NOW)
        assert [a.member_id for a in alerts] == ["c", "d", "a"]

    def test_needs_immediate_intervention(self):
        assert needs_immediate_intervention(state("a", 13))
        assert not needs_immediate_intervention(state("a", 11))


class TestRecovery:
    @pytest.mark.parametrize(
        "current, expected",
        [
            (3, RecoveryType.NONE),
            (7.5, RecoveryType.LIGHT_DAY),
            (11, RecoveryType.DAY_OFF),
            (13, RecoveryType.EXTENDED_REST),
        ],
    )
    def test_recovery_type(self, current, expected):
        assert determine_recovery_type(state("a", current)) is expected

    def test_severe_stress_means_extended_rest(self):
        s = state("a", 3, recent=days([200] * 6))
        assert determine_recovery_type(s) is RecoveryType.EXTENDED_REST

    def test_day_off_reassigns_to_least_loaded(self):
        tired = state("a", 11)
        helpers = [state("b", 5), state("c", 2)]
        pending = [
            ReassignableTask(task("t1"), "a"),
            ReassignableTask(task("t2"), "a", can_reassign=False),
            ReassignableTask(task("t3"), "b"),
        ]
        plan = create_recovery_plan(tired, helpers, pending, TODAY)
        assert plan.type is RecoveryType.DAY_OFF
        assert plan.end == TODAY + timedelta(days=1)
        assert plan.reduced_load == 0.0
        actions = {a.task_id: a for a in plan.actions}
        assert set(actions) == {"t1", "t2"}
        assert actions["t1"].action == "reassign"
        assert actions["t1"].new_assignee == "c"
        assert actions["t2"].action == "postpone"
        assert actions["t2"].new_date == plan.end

    def test_light_day_keeps_urgent_tasks(self):
        plan = create_recovery_plan(
            state("a", 7.5),
            [],
            [ReassignableTask(task("t1", priority=9), "a"), ReassignableTask(task("t2", priority=3), "a")],
            TODAY,
        )
        assert plan.type is RecoveryType.LIGHT_DAY
        assert [a.task_id for a in plan.actions] == ["t2"]


class TestAutoBalance:
    def test_moves_until_resolved(self):
        states = [state("a", 12), state("b", 2)]
        tasks = [ReassignableTask(task(f"t{i}", priority=i), "a") for i in range(1, 4)]
        result = auto_balance_workload(states, tasks)
        assert result.success and result.resolved
        assert [t.task_id for t in result.redistributed] == ["t1", "t2"]
        assert {t.to_member for t in result.redistributed} == {"b"}
        assert result.members_affected == ["a", "b"]
        assert result.load_reduction == {"a": 20.0}

    def test_inputs_untouched(self):
        states = [state("a", 12), state("b", 2)]
        auto_balance_workload(states, [ReassignableTask(task("t1"), "a")])
        assert states[0].current_load == 12

    def test_nothing_to_do(self):
        result = auto_balance_workload([state("a", 3), state("b", 2)], [])
        assert result.success and result.resolved
        assert result.message == "No rebalancing needed"

    def test_recipient_needs_skills(self):
        states = [state("a", 12), state("b", 2)]
        tasks = [ReassignableTask(task("t1", skills=("cooking",)), "a")]
        result = auto_balance_workload(states, tasks, {"a": ["cooking"], "b": []})
        assert not result.success
        assert not result.resolved
        assert result.redistributed == []

    def test_pinned_tasks_stay(self):
        states = [state("a", 12), state("b", 2)]
        tasks = [ReassignableTask(task("t1"), "a", can_reassign=False)]
        assert auto_balance_workload(states, tasks).redistributed == []


class TestHealthReport:
    def test_report(self):
        states = [state("a", 13), state("b", 3)]
        report = generate_health_report("hh", states, TODAY - timedelta(days=6), TODAY, now=NOW)
        assert report.overall_health is HealthStatus.BURNOUT_RISK
        assert report.risk_members == ["A"]
        assert report.healthy_members == ["B"]
        assert report.alerts[0].alert_type is AlertType.EMERGENCY
        assert "Immediate intervention required: emergency alerts detected" in report.recommendations
        assert report.workload_scores == {"a": 100, "b": 30}

    def test_all_healthy(self):
        report = generate_health_report("hh", [state("a", 1)], TODAY, TODAY, now=NOW)
        assert report.overall_health is HealthStatus.HEALTHY
        assert report.recommendations == ["Workload distribution is healthy; maintain current balance"]

    def test_worsening_trend(self):
        s = state("a", 3, recent=days([20] * 7 + [90] * 7))
        report = generate_health_report("hh", [s], TODAY - timedelta(days=13), TODAY, now=NOW)
        assert report.trend == "worsening"


class TestDailyLimit:
    def test_limits_by_tier(self):
        assert recommended_daily_limit(state("a", 3, max_load=14)) == 2
        assert recommended_daily_limit(state("a", 20, max_load=14)) == 0


class TestWorkloadScore:
    def test_load_only(self):
        assert calculate_workload_score(state("a", 5)) == 50

    def test_stress_and_streak_add_up(self):
        s = state("a", 5, recent=days([150] * 4))
        assert [i.severity for i in s.stress_indicators] == [9]
        assert s.consecutive_high_load_days == 4
        assert calculate_workload_score(s) == 50 + 27 + 20

    def test_capped_at_100(self):
        assert calculate_workload_score(state("a", 9, recent=days([150] * 4))) == 100
        assert calculate_workload_score(state("a", 13)) == 100
