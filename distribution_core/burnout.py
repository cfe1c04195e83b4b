"""Caregiver overload detection, recovery planning and automatic rebalancing.

Health tiers are a pure threshold lookup on ``load_percentage``. Stress
indicators come from the recent daily workload log. Auto-balancing is a
sequential reassignment pass that never mutates the states it is given.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .models import (
    AlertType,
    DailyWorkload,
    HealthStatus,
    InvalidInputError,
    MemberWorkloadState,
    RecoveryType,
    StressIndicator,
    StressIndicatorType,
    StressLevel,
    SuggestedActionType,
    TaskDefinition,
)
from .skills import is_capable
from .stats import mean, stdev
from .time_utils import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BurnoutConfig:
    # Upper bounds (exclusive for the first three, inclusive for critical).
    healthy_below: float = 70.0
    elevated_below: float = 90.0
    high_below: float = 105.0
    critical_max: float = 120.0
    overload_day_pct: float = 100.0
    consecutive_overload_days: int = 3
    max_consecutive_high_days: int = 3
    rest_window_days: int = 7
    high_variance_std: float = 30.0
    long_day_minutes: int = 480
    long_day_count: int = 3

    def __post_init__(self) -> None:
        bounds = (self.healthy_below, self.elevated_below, self.high_below, self.critical_max)
        if not (bounds[0] < bounds[1] < bounds[2] <= bounds[3]):
            raise ValueError(
                "health bounds must satisfy healthy_below < elevated_below < high_below <= critical_max, "
                f"got {bounds}"
            )
        if self.consecutive_overload_days < 1 or self.rest_window_days < 1:
            raise ValueError("consecutive_overload_days and rest_window_days must be at least 1")


DEFAULT_BURNOUT_CONFIG = BurnoutConfig()

_OVERLOADED = (HealthStatus.CRITICAL, HealthStatus.BURNOUT_RISK)


@dataclass(frozen=True)
class SuggestedAction:
    type: SuggestedActionType
    description: str
    priority: int
    estimated_relief: int


@dataclass(frozen=True)
class OverloadAlert:
    member_id: str
    member_name: str
    alert_type: AlertType
    reason: str
    load_percentage: float
    consecutive_days: int
    task_count: float
    suggested_actions: list[SuggestedAction]
    created_at: datetime


@dataclass(frozen=True)
class ReassignableTask:
    task: TaskDefinition
    assigned_to: str
    can_reassign: bool = True
    can_delay: bool = True


@dataclass(frozen=True)
class RecoveryAction:
    action: str  # "reassign" | "postpone"
    task_id: str
    task_name: str
    new_assignee: str | None = None
    new_date: date | None = None


@dataclass(frozen=True)
class RecoveryPlan:
    member_id: str
    type: RecoveryType
    start: date
    end: date
    reduced_load: float
    reason: str
    actions: list[RecoveryAction]


@dataclass(frozen=True)
class RedistributedTask:
    task_id: str
    task_name: str
    from_member: str
    to_member: str
    reason: str


@dataclass(frozen=True)
class BalanceResult:
    success: bool
    resolved: bool
    redistributed: list[RedistributedTask]
    members_affected: list[str]
    load_reduction: dict[str, float]
    message: str


@dataclass(frozen=True)
class HealthReport:
    household_id: str
    period_start: date
    period_end: date
    overall_health: HealthStatus
    member_states: list[MemberWorkloadState]
    alerts: list[OverloadAlert]
    recommendations: list[str]
    trend: str
    risk_members: list[str] = field(default_factory=list)
    healthy_members: list[str] = field(default_factory=list)
    workload_scores: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------


def calculate_health_status(load_percentage: float, config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG) -> HealthStatus:
    if not math.isfinite(load_percentage):
        raise InvalidInputError(f"load_percentage must be finite, got {load_percentage!r}")
    if load_percentage < config.healthy_below:
        return HealthStatus.HEALTHY
    if load_percentage < config.elevated_below:
        return HealthStatus.ELEVATED
    if load_percentage < config.high_below:
        return HealthStatus.HIGH
    if load_percentage <= config.critical_max:
        return HealthStatus.CRITICAL
    return HealthStatus.BURNOUT_RISK


def assess_stress_level(indicators: Iterable[StressIndicator]) -> StressLevel:
    severities = [i.severity for i in indicators]
    if not severities:
        return StressLevel.LOW
    worst = max(severities)
    if worst >= 9:
        return StressLevel.SEVERE
    if worst >= 7:
        return StressLevel.HIGH
    if worst >= 4:
        return StressLevel.MODERATE
    return StressLevel.LOW


def daily_workload(
    day: date,
    task_count: int,
    minutes_worked: int,
    max_daily_load: float,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> DailyWorkload:
    pct = task_count / max_daily_load * 100.0 if max_daily_load > 0 else 0.0
    return DailyWorkload(
        day=day,
        task_count=task_count,
        minutes_worked=minutes_worked,
        load_percentage=round(pct, 2),
        was_overloaded=pct > config.overload_day_pct,
    )


def _is_over_capacity(d: DailyWorkload, config: BurnoutConfig) -> bool:
    return d.was_overloaded or d.load_percentage > config.overload_day_pct


def _trailing_run(days: Sequence[DailyWorkload], today: date, config: BurnoutConfig) -> int:
    """Calendar-consecutive over-capacity days ending at the latest row on or before ``today``."""
    run = 0
    prev: date | None = None
    for d in reversed(days):
        if d.day > today:
            continue
        if not _is_over_capacity(d, config):
            break
        if prev is not None and (prev - d.day).days != 1:
            break
        run += 1
        prev = d.day
    return run


def _no_rest_indicator(
    days: Sequence[DailyWorkload],
    last_rest_date: date | None,
    today: date,
    config: BurnoutConfig,
) -> StressIndicator | None:
    window_start = today - timedelta(days=config.rest_window_days - 1)
    rest_days = [d.day for d in days if d.task_count == 0]
    if last_rest_date is not None:
        rest_days.append(last_rest_date)
    latest_rest = max((d for d in rest_days if d <= today), default=None)
    if latest_rest is not None and latest_rest >= window_start:
        return None

    covered = {d.day for d in days if window_start <= d.day <= today}
    if last_rest_date is None and len(covered) < config.rest_window_days:
        # Gaps in the log may be rest days; only flag a fully observed window.
        return None

    since = (today - latest_rest).days if latest_rest else (today - days[0].day).days + 1
    return StressIndicator(
        type=StressIndicatorType.NO_REST,
        severity=min(10, max(4, since // config.rest_window_days + 3)),
        description=f"No rest day in the last {since} days",
        detected_at=today,
    )


def detect_stress_indicators(
    daily_workloads: Iterable[DailyWorkload],
    last_rest_date: date | None = None,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    today: date | None = None,
) -> list[StressIndicator]:
    days = sorted(daily_workloads, key=lambda d: d.day)
    if not days:
        return []
    today = today or days[-1].day
    out: list[StressIndicator] = []

    run = _trailing_run(days, today, config)
    if run >= config.consecutive_overload_days:
        out.append(
            StressIndicator(
                type=StressIndicatorType.CONSECUTIVE_OVERLOAD,
                severity=min(10, 5 + run),
                description=f"{run} consecutive days over capacity",
                detected_at=today,
            )
        )

    no_rest = _no_rest_indicator(days, last_rest_date, today, config)
    if no_rest is not None:
        out.append(no_rest)

    spread = stdev(d.load_percentage for d in days)
    if spread > config.high_variance_std:
        out.append(
            StressIndicator(
                type=StressIndicatorType.HIGH_VARIANCE,
                severity=min(10, int(spread // 10) + 2),
                description=f"Erratic day-to-day load (std {spread:.0f} points)",
                detected_at=today,
            )
        )

    long_days = [d for d in days if d.minutes_worked > config.long_day_minutes]
    if len(long_days) >= config.long_day_count:
        out.append(
            StressIndicator(
                type=StressIndicatorType.LONG_TASKS,
                severity=min(10, len(long_days) + 3),
                description=f"{len(long_days)} days with more than {config.long_day_minutes // 60} hours of work",
                detected_at=today,
            )
        )
    return out


def build_member_workload_state(
    member_id: str,
    member_name: str,
    current_load: float,
    max_load: float,
    recent_workload: Iterable[DailyWorkload] = (),
    last_rest_date: date | None = None,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    today: date | None = None,
) -> MemberWorkloadState:
    days = tuple(sorted(recent_workload, key=lambda d: d.day))
    pct = round(current_load / max_load * 100.0, 2) if max_load > 0 else 0.0

    high_days = 0
    for d in reversed(days):
        if d.load_percentage < config.elevated_below:
            break
        high_days += 1

    return MemberWorkloadState(
        member_id=member_id,
        member_name=member_name,
        current_load=current_load,
        max_load=max_load,
        load_percentage=pct,
        consecutive_high_load_days=high_days,
        recent_workload=days,
        health_status=calculate_health_status(pct, config),
        stress_indicators=tuple(detect_stress_indicators(days, last_rest_date, config, today)),
        last_rest_date=last_rest_date,
    )


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


def check_overload(
    state: MemberWorkloadState,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    now: datetime | None = None,
) -> OverloadAlert | None:
    """Alert for any member above the healthy tier; None for healthy members."""
    status = state.health_status
    if status is HealthStatus.HEALTHY:
        return None

    pct = state.load_percentage
    if status is HealthStatus.BURNOUT_RISK:
        alert_type, reason = AlertType.EMERGENCY, f"Severe burnout risk at {pct:.0f}% of capacity"
    elif status is HealthStatus.CRITICAL:
        alert_type, reason = AlertType.CRITICAL, f"Workload at {pct:.0f}% of capacity"
    elif state.consecutive_high_load_days >= config.max_consecutive_high_days:
        alert_type, reason = AlertType.CRITICAL, f"{state.consecutive_high_load_days} consecutive high-load days"
    else:
        alert_type, reason = AlertType.WARNING, f"{status.value.capitalize()} workload at {pct:.0f}%"

    actions: list[SuggestedAction] = []
    if alert_type is AlertType.EMERGENCY:
        actions.append(SuggestedAction(SuggestedActionType.SUPPORT, "Check in and take over urgent tasks today", 10, 40))
    if alert_type in (AlertType.EMERGENCY, AlertType.CRITICAL):
        actions.append(SuggestedAction(SuggestedActionType.REST_DAY, "Schedule an immediate rest day", 10, 30))
        actions.append(
            SuggestedAction(SuggestedActionType.REDISTRIBUTE, "Redistribute pending tasks to other members", 9, 25)
        )
    if pct > 100:
        actions.append(SuggestedAction(SuggestedActionType.POSTPONE, "Postpone non-urgent tasks", 7, 15))
    actions.append(SuggestedAction(SuggestedActionType.DELEGATE, "Delegate upcoming tasks", 6, 20))

    return OverloadAlert(
        member_id=state.member_id,
        member_name=state.member_name,
        alert_type=alert_type,
        reason=reason,
        load_percentage=pct,
        consecutive_days=state.consecutive_high_load_days,
        task_count=state.current_load,
        suggested_actions=actions,
        created_at=now or now_utc(),
    )


def check_household_overload(
    states: Iterable[MemberWorkloadState],
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    now: datetime | None = None,
) -> list[OverloadAlert]:
    """All member alerts, emergencies first."""
    alerts = [a for a in (check_overload(s, config, now) for s in states) if a is not None]
    alerts.sort(key=lambda a: -a.alert_type.priority)
    return alerts


def needs_immediate_intervention(state: MemberWorkloadState) -> bool:
    return state.health_status is HealthStatus.BURNOUT_RISK


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


def determine_recovery_type(state: MemberWorkloadState) -> RecoveryType:
    stress = assess_stress_level(state.stress_indicators)
    status = state.health_status
    if status is HealthStatus.BURNOUT_RISK or stress is StressLevel.SEVERE:
        return RecoveryType.EXTENDED_REST
    if status is HealthStatus.CRITICAL or stress is StressLevel.HIGH:
        return RecoveryType.DAY_OFF
    if status in (HealthStatus.ELEVATED, HealthStatus.HIGH) or stress is StressLevel.MODERATE:
        return RecoveryType.LIGHT_DAY
    return RecoveryType.NONE


def calculate_recovery_duration(recovery: RecoveryType) -> int:
    """Recovery length in days."""
    return {
        RecoveryType.NONE: 0,
        RecoveryType.LIGHT_DAY: 1,
        RecoveryType.DAY_OFF: 1,
        RecoveryType.EXTENDED_REST: 3,
    }[recovery]


def calculate_recovery_load(recovery: RecoveryType, normal_max: float) -> float:
    factor = {
        RecoveryType.NONE: 1.0,
        RecoveryType.LIGHT_DAY: 0.3,
        RecoveryType.DAY_OFF: 0.0,
        RecoveryType.EXTENDED_REST: 0.0,
    }[recovery]
    return round(normal_max * factor, 2)


def create_recovery_plan(
    state: MemberWorkloadState,
    available_members: Iterable[MemberWorkloadState],
    pending_tasks: Iterable[ReassignableTask],
    start: date,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> RecoveryPlan:
    """Recovery window for one member plus what to do with their pending tasks.

    Day off and extended rest clear the member's plate (reassign where
    possible, else postpone); a light day postpones what can wait.
    """
    recovery = determine_recovery_type(state)
    end = start + timedelta(days=calculate_recovery_duration(recovery))

    running = {
        m.member_id: m.load_percentage
        for m in available_members
        if m.member_id != state.member_id and m.load_percentage < config.healthy_below
    }
    unit = {m.member_id: (100.0 / m.max_load if m.max_load > 0 else 100.0) for m in available_members}

    actions: list[RecoveryAction] = []
    for pt in sorted(pending_tasks, key=lambda p: (p.task.priority, p.task.id)):
        if pt.assigned_to != state.member_id:
            continue
        if recovery in (RecoveryType.DAY_OFF, RecoveryType.EXTENDED_REST):
            if pt.can_reassign and running:
                target = min(running, key=lambda mid: (running[mid], mid))
                running[target] += unit[target]
                actions.append(RecoveryAction("reassign", pt.task.id, pt.task.name, new_assignee=target))
            elif pt.can_delay:
                actions.append(RecoveryAction("postpone", pt.task.id, pt.task.name, new_date=end))
        elif recovery is RecoveryType.LIGHT_DAY and pt.can_delay and pt.task.priority < 8:
            actions.append(RecoveryAction("postpone", pt.task.id, pt.task.name, new_date=end))

    return RecoveryPlan(
        member_id=state.member_id,
        type=recovery,
        start=start,
        end=end,
        reduced_load=calculate_recovery_load(recovery, state.max_load),
        reason=f"Recovery from {state.health_status.value} workload status",
        actions=actions,
    )


# ---------------------------------------------------------------------------
# Auto-balancing
# ---------------------------------------------------------------------------


def _pct(load: float, max_load: float) -> float:
    return load / max_load * 100.0 if max_load > 0 else 0.0


def auto_balance_workload(
    states: Sequence[MemberWorkloadState],
    reassignable_tasks: Iterable[ReassignableTask],
    member_skills: Mapping[str, Iterable[str]] | None = None,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> BalanceResult:
    """Move tasks off critical / burnout-risk members onto healthy ones below fair share.

    Tasks leave an overloaded member lowest priority first, and only until the
    member drops out of the overloaded tiers. A recipient must be capable of the
    task (when ``member_skills`` is given), stay healthy after taking it, and
    still be below their capacity-proportional share of the household load.
    """
    loads = {s.member_id: s.current_load for s in states}
    original = dict(loads)
    maxes = {s.member_id: s.max_load for s in states}
    names = {s.member_id: s.member_name for s in states}

    total_cap = sum(max(0.0, m) for m in maxes.values())
    total_load = sum(loads.values())
    targets = {
        mid: (maxes[mid] / total_cap if total_cap > 0 else 1 / len(states)) * total_load for mid in loads
    }

    def status(mid: str) -> HealthStatus:
        return calculate_health_status(_pct(loads[mid], maxes[mid]), config)

    overloaded = sorted(
        (s.member_id for s in states if status(s.member_id) in _OVERLOADED),
        key=lambda mid: -_pct(loads[mid], maxes[mid]),
    )
    if not overloaded:
        return BalanceResult(True, True, [], [], {}, "No rebalancing needed")

    recipients = [s.member_id for s in states if status(s.member_id) is HealthStatus.HEALTHY]
    skills = {mid: list(v) for mid, v in (member_skills or {}).items()}
    tasks = [t for t in reassignable_tasks if t.can_reassign]
    moved: list[RedistributedTask] = []
    reduction: dict[str, float] = defaultdict(float)

    for mid in overloaded:
        before = _pct(loads[mid], maxes[mid])
        own = sorted((t for t in tasks if t.assigned_to == mid), key=lambda t: (t.task.priority, t.task.id))
        for item in own:
            if status(mid) not in _OVERLOADED:
                break
            candidates = [
                r
                for r in recipients
                if r != mid
                and loads[r] < targets[r]
                and calculate_health_status(_pct(loads[r] + 1, maxes[r]), config) is HealthStatus.HEALTHY
                and (member_skills is None or is_capable(item.task.required_skills, skills.get(r, ())))
            ]
            if not candidates:
                continue
            to = min(candidates, key=lambda r: (_pct(loads[r], maxes[r]), r))
            loads[mid] -= 1
            loads[to] += 1
            moved.append(
                RedistributedTask(
                    task_id=item.task.id,
                    task_name=item.task.name,
                    from_member=mid,
                    to_member=to,
                    reason=f"Balancing workload from {names[mid]} to {names[to]}",
                )
            )
            logger.debug("auto-balance: %s %s -> %s", item.task.id, mid, to)
        if loads[mid] != original[mid]:
            reduction[mid] = round(before - _pct(loads[mid], maxes[mid]), 2)

    resolved = all(status(mid) not in _OVERLOADED for mid in overloaded)
    affected = sorted({t.from_member for t in moved} | {t.to_member for t in moved})
    if moved:
        message = f"Redistributed {len(moved)} tasks across {len(affected)} members"
    else:
        message = "No tasks could be redistributed"
    if moved and not resolved:
        message += "; overload remains"
    logger.info("auto-balance moved %d tasks, resolved=%s", len(moved), resolved)
    return BalanceResult(
        success=bool(moved),
        resolved=resolved,
        redistributed=moved,
        members_affected=affected,
        load_reduction=dict(reduction),
        message=message,
    )


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def generate_health_report(
    household_id: str,
    states: Sequence[MemberWorkloadState],
    period_start: date,
    period_end: date,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
    now: datetime | None = None,
) -> HealthReport:
    alerts = check_household_overload(states, config, now)
    overall = max((s.health_status for s in states), key=lambda h: h.rank, default=HealthStatus.HEALTHY)

    risk = [s.member_name for s in states if s.health_status.rank >= HealthStatus.HIGH.rank]
    healthy = [s.member_name for s in states if s.health_status is HealthStatus.HEALTHY]

    by_day: dict[date, list[float]] = defaultdict(list)
    for s in states:
        for d in s.recent_workload:
            by_day[d.day].append(d.load_percentage)
    daily = [mean(by_day[d]) for d in sorted(by_day)]
    trend = "stable"
    if len(daily) >= 7:
        recent = mean(daily[-7:])
        older = mean(daily[-14:-7]) if len(daily) > 7 else recent
        if recent < older - 10:
            trend = "improving"
        elif recent > older + 10:
            trend = "worsening"

    recommendations: list[str] = []
    if risk:
        recommendations.append(f"Prioritize reducing load for: {', '.join(risk)}")
    if any(a.alert_type is AlertType.EMERGENCY for a in alerts):
        recommendations.append("Immediate intervention required: emergency alerts detected")
    no_rest = [s.member_name for s in states if any(i.type is StressIndicatorType.NO_REST for i in s.stress_indicators)]
    if no_rest:
        recommendations.append(f"Schedule rest days for: {', '.join(no_rest)}")
    if states and len(healthy) == len(states):
        recommendations.append("Workload distribution is healthy; maintain current balance")

    return HealthReport(
        household_id=household_id,
        period_start=period_start,
        period_end=period_end,
        overall_health=overall,
        member_states=list(states),
        alerts=alerts,
        recommendations=recommendations,
        trend=trend,
        risk_members=risk,
        healthy_members=healthy,
        workload_scores={s.member_id: calculate_workload_score(s) for s in states},
    )


def recommended_daily_limit(state: MemberWorkloadState) -> int:
    """Daily task cap for the member's current tier."""
    normal = state.max_load / 7.0
    factor = {
        HealthStatus.HEALTHY: 1.0,
        HealthStatus.ELEVATED: 0.8,
        HealthStatus.HIGH: 0.6,
        HealthStatus.CRITICAL: 0.3,
        HealthStatus.BURNOUT_RISK: 0.0,
    }[state.health_status]
    return math.floor(normal * factor)


def calculate_workload_score(state: MemberWorkloadState) -> int:
    """Overload score from 0 to 100 combining load, stress severity and high-load streak."""
    severity = mean(i.severity for i in state.stress_indicators)
    score = state.load_percentage + severity * 3 + state.consecutive_high_load_days * 5
    return min(100, math.floor(score + 0.5))
