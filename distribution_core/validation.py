"""Boundary parsing: plain JSON-style dicts in, engine dataclasses out.

Every parser fails fast with ``InvalidInputError`` naming the offending
field, so the scoring core only ever sees well-typed records.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from .models import (
    AvailabilityWindow,
    CategoryPreferences,
    DailyWorkload,
    DelegationCandidate,
    DelegationFeedback,
    DelegationHistory,
    DelegationReason,
    DelegationRecord,
    DelegationRequest,
    DelegationStatus,
    HistoricalData,
    HouseholdSnapshot,
    InvalidInputError,
    MemberProfile,
    SkillLevel,
    SkillProfile,
    TaskAssignment,
    TaskDefinition,
    WeeklySnapshot,
    WorkloadDataPoint,
)
from .time_utils import UTC, parse_hhmm_to_minutes

# ---------------------------------------------------------------------------
# Primitive coercion
# ---------------------------------------------------------------------------


def _require(raw: Mapping[str, Any], key: str, what: str) -> Any:
    if not isinstance(raw, Mapping):
        raise InvalidInputError(f"{what} must be an object, got {type(raw).__name__}")
    if key not in raw or raw[key] is None or raw[key] == "":
        raise InvalidInputError(f"{what} is missing required field '{key}'")
    return raw[key]


def _number(value: Any, field: str, *, minimum: float | None = None) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number, got bool")
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{field} must be a number, got {value!r}") from None
    if not math.isfinite(num):
        raise InvalidInputError(f"{field} must be finite, got {value!r}")
    if minimum is not None and num < minimum:
        raise InvalidInputError(f"{field} must be >= {minimum}, got {num}")
    return num


def _int_in_range(value: Any, field: str, lo: int, hi: int) -> int:
    num = _number(value, field)
    if num != int(num) or not lo <= num <= hi:
        raise InvalidInputError(f"{field} must be an integer in [{lo}, {hi}], got {value!r}")
    return int(num)


def _str_set(value: Any, field: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        raise InvalidInputError(f"{field} must be a list of strings, got a string")
    try:
        return frozenset(str(v) for v in value if str(v).strip())
    except TypeError:
        raise InvalidInputError(f"{field} must be a list of strings, got {value!r}") from None


def _count_map(value: Any, field: str) -> dict[str, int]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidInputError(f"{field} must be an object of counts")
    return {str(k): int(_number(v, f"{field}.{k}", minimum=0)) for k, v in value.items()}


def parse_date(value: Any, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidInputError(f"{field} must be an ISO date, got {value!r}") from None


def parse_datetime(value: Any, field: str = "timestamp") -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInputError(f"{field} must be an ISO datetime, got {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _opt_datetime(value: Any, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    return parse_datetime(value, field)


def _enum(enum_cls: type[Enum], value: Any, field: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [e.value for e in enum_cls]
        raise InvalidInputError(f"{field} must be one of {allowed}, got {value!r}") from None


# ---------------------------------------------------------------------------
# Record parsers
# ---------------------------------------------------------------------------


def member_from_dict(raw: Mapping[str, Any]) -> MemberProfile:
    mid = str(_require(raw, "id", "member"))
    what = f"member '{mid}'"
    prefs_raw = raw.get("preferences") or {}
    if not isinstance(prefs_raw, Mapping):
        raise InvalidInputError(f"{what}.preferences must be an object")
    return MemberProfile(
        id=mid,
        name=str(raw.get("name") or mid),
        household_id=str(raw.get("household_id") or ""),
        max_weekly_load=_number(_require(raw, "max_weekly_load", what), f"{what}.max_weekly_load", minimum=0),
        current_load=_number(raw.get("current_load", 0), f"{what}.current_load", minimum=0),
        skills=_str_set(raw.get("skills"), f"{what}.skills"),
        preferences=CategoryPreferences(
            preferred=_str_set(prefs_raw.get("preferred"), f"{what}.preferences.preferred"),
            disliked=_str_set(prefs_raw.get("disliked"), f"{what}.preferences.disliked"),
            blocked=_str_set(prefs_raw.get("blocked"), f"{what}.preferences.blocked"),
        ),
    )


def task_from_dict(raw: Mapping[str, Any]) -> TaskDefinition:
    tid = str(_require(raw, "id", "task"))
    what = f"task '{tid}'"
    return TaskDefinition(
        id=tid,
        name=str(raw.get("name") or tid),
        category=str(_require(raw, "category", what)),
        estimated_minutes=int(_number(raw.get("estimated_minutes", 30), f"{what}.estimated_minutes", minimum=0)),
        difficulty=_int_in_range(raw.get("difficulty", 5), f"{what}.difficulty", 1, 10),
        required_skills=_str_set(raw.get("required_skills"), f"{what}.required_skills"),
        priority=_int_in_range(raw.get("priority", 5), f"{what}.priority", 1, 10),
        deadline=_opt_datetime(raw.get("deadline"), f"{what}.deadline"),
    )


def history_from_dict(raw: Mapping[str, Any]) -> HistoricalData:
    mid = str(_require(raw, "member_id", "history"))
    what = f"history '{mid}'"
    weeks = []
    for i, w in enumerate(raw.get("weekly_history") or []):
        wf = f"{what}.weekly_history[{i}]"
        weeks.append(
            WeeklySnapshot(
                week_start=parse_date(_require(w, "week_start", wf), f"{wf}.week_start"),
                task_count=int(_number(w.get("task_count", 0), f"{wf}.task_count", minimum=0)),
                minutes_worked=int(_number(w.get("minutes_worked", 0), f"{wf}.minutes_worked", minimum=0)),
                categories=_count_map(w.get("categories"), f"{wf}.categories"),
            )
        )
    weeks.sort(key=lambda w: w.week_start)
    return HistoricalData(
        member_id=mid,
        total_tasks=int(_number(raw.get("total_tasks", 0), f"{what}.total_tasks", minimum=0)),
        total_minutes=int(_number(raw.get("total_minutes", 0), f"{what}.total_minutes", minimum=0)),
        weekly_history=tuple(weeks),
        task_counts=_count_map(raw.get("task_counts"), f"{what}.task_counts"),
        completion_rate=_number(raw.get("completion_rate", 1.0), f"{what}.completion_rate", minimum=0),
    )


def data_point_from_dict(raw: Mapping[str, Any]) -> WorkloadDataPoint:
    ts = parse_datetime(_require(raw, "timestamp", "workload point"), "workload point.timestamp")
    what = f"workload point {ts.isoformat()}"
    dow = raw.get("day_of_week")
    return WorkloadDataPoint(
        timestamp=ts,
        task_count=int(_number(raw.get("task_count", 0), f"{what}.task_count", minimum=0)),
        total_minutes=int(_number(raw.get("total_minutes", 0), f"{what}.total_minutes", minimum=0)),
        categories=_count_map(raw.get("categories"), f"{what}.categories"),
        day_of_week=None if dow is None else _int_in_range(dow, f"{what}.day_of_week", 0, 6),
        is_holiday=bool(raw.get("is_holiday", False)),
    )


def daily_workload_from_dict(raw: Mapping[str, Any]) -> DailyWorkload:
    day = parse_date(_require(raw, "day", "daily workload"), "daily workload.day")
    what = f"daily workload {day.isoformat()}"
    pct = _number(raw.get("load_percentage", 0), f"{what}.load_percentage", minimum=0)
    return DailyWorkload(
        day=day,
        task_count=int(_number(raw.get("task_count", 0), f"{what}.task_count", minimum=0)),
        minutes_worked=int(_number(raw.get("minutes_worked", 0), f"{what}.minutes_worked", minimum=0)),
        load_percentage=pct,
        was_overloaded=bool(raw.get("was_overloaded", pct > 100)),
    )


def skill_profile_from_dict(raw: Mapping[str, Any]) -> SkillProfile:
    mid = str(_require(raw, "member_id", "skill profile"))
    what = f"skill profile '{mid}'"
    skills_raw = raw.get("skills") or {}
    if not isinstance(skills_raw, Mapping):
        raise InvalidInputError(f"{what}.skills must be an object")
    skills: dict[str, SkillLevel] = {}
    for name, s in skills_raw.items():
        sf = f"{what}.skills.{name}"
        if isinstance(s, Mapping):
            level = _number(s.get("level", 0), f"{sf}.level", minimum=0)
            skills[str(name)] = SkillLevel(
                level=min(10.0, level),
                experience=_number(s.get("experience", 0), f"{sf}.experience", minimum=0),
                last_used=_opt_datetime(s.get("last_used"), f"{sf}.last_used"),
                growth_rate=_number(s.get("growth_rate", 0), f"{sf}.growth_rate"),
            )
        else:
            skills[str(name)] = SkillLevel(level=min(10.0, _number(s, f"{sf}", minimum=0)))
    return SkillProfile(
        member_id=mid,
        skills=skills,
        preferred_categories=_str_set(raw.get("preferred_categories"), f"{what}.preferred_categories"),
        learning_interests=_str_set(raw.get("learning_interests"), f"{what}.learning_interests"),
    )


def availability_from_dict(raw: Mapping[str, Any]) -> AvailabilityWindow:
    mid = str(_require(raw, "member_id", "availability window"))
    what = f"availability window for '{mid}'"
    start = str(_require(raw, "start", what))
    end = str(_require(raw, "end", what))
    for label, value in (("start", start), ("end", end)):
        if parse_hhmm_to_minutes(value) is None:
            raise InvalidInputError(f"{what}.{label} must be HH:MM, got {value!r}")
    return AvailabilityWindow(
        member_id=mid,
        day=parse_date(_require(raw, "day", what), f"{what}.day"),
        start=start,
        end=end,
        capacity=_number(raw.get("capacity", 1.0), f"{what}.capacity", minimum=0),
    )


def feedback_from_dict(raw: Mapping[str, Any]) -> DelegationFeedback:
    rating = raw.get("rating")
    ttc = raw.get("time_to_complete")
    wag = raw.get("would_accept_again")
    return DelegationFeedback(
        accepted=bool(raw.get("accepted", True)),
        rating=None if rating is None else _int_in_range(rating, "feedback.rating", 1, 5),
        time_to_complete=None if ttc is None else int(_number(ttc, "feedback.time_to_complete", minimum=0)),
        comment=str(raw.get("comment") or ""),
        would_accept_again=None if wag is None else bool(wag),
    )


def delegation_request_from_dict(raw: Mapping[str, Any]) -> DelegationRequest:
    rid = str(_require(raw, "id", "delegation request"))
    what = f"delegation request '{rid}'"
    fb = raw.get("feedback")
    return DelegationRequest(
        id=rid,
        task_id=str(_require(raw, "task_id", what)),
        from_member=str(_require(raw, "from_member", what)),
        to_member=str(_require(raw, "to_member", what)),
        reason=_enum(DelegationReason, raw.get("reason", "efficiency"), f"{what}.reason"),
        status=_enum(DelegationStatus, raw.get("status", "pending"), f"{what}.status"),
        requested_at=parse_datetime(_require(raw, "requested_at", what), f"{what}.requested_at"),
        expires_at=parse_datetime(_require(raw, "expires_at", what), f"{what}.expires_at"),
        category=str(raw.get("category") or ""),
        responded_at=_opt_datetime(raw.get("responded_at"), f"{what}.responded_at"),
        completed_at=_opt_datetime(raw.get("completed_at"), f"{what}.completed_at"),
        feedback=feedback_from_dict(fb) if fb else None,
    )


def delegation_history_from_dict(raw: Mapping[str, Any]) -> DelegationHistory:
    mid = str(_require(raw, "member_id", "delegation history"))
    records = []
    for i, r in enumerate(raw.get("records") or []):
        rf = f"delegation history '{mid}'.records[{i}]"
        records.append(
            DelegationRecord(
                request_id=str(r.get("request_id") or ""),
                task_id=str(r.get("task_id") or ""),
                counterpart=str(_require(r, "counterpart", rf)),
                category=str(r.get("category") or ""),
                status=_enum(DelegationStatus, _require(r, "status", rf), f"{rf}.status"),
                occurred_at=parse_datetime(_require(r, "occurred_at", rf), f"{rf}.occurred_at"),
                rating=r.get("rating"),
                time_to_complete=r.get("time_to_complete"),
            )
        )
    return DelegationHistory(
        member_id=mid,
        records=tuple(records),
        total_received=int(raw.get("total_received", 0)),
        total_accepted=int(raw.get("total_accepted", 0)),
        total_declined=int(raw.get("total_declined", 0)),
        acceptance_rate=float(raw.get("acceptance_rate", 1.0)),
        average_completion_minutes=raw.get("average_completion_minutes"),
        category_acceptance={str(k): float(v) for k, v in (raw.get("category_acceptance") or {}).items()},
    )


def candidate_from_dict(raw: Mapping[str, Any]) -> DelegationCandidate:
    mid = str(_require(raw, "member_id", "delegation candidate"))
    what = f"delegation candidate '{mid}'"
    profile_raw = raw.get("profile")
    if isinstance(profile_raw, Mapping):
        profile_raw = {"member_id": mid, **profile_raw}
    return DelegationCandidate(
        member_id=mid,
        name=str(raw.get("name") or mid),
        current_load=_number(raw.get("current_load", 0), f"{what}.current_load", minimum=0),
        max_load=_number(_require(raw, "max_load", what), f"{what}.max_load", minimum=0),
        profile=skill_profile_from_dict(profile_raw) if profile_raw else None,
        availability=tuple(
            availability_from_dict({"member_id": mid, **w}) for w in (raw.get("availability") or [])
        ),
    )


# ---------------------------------------------------------------------------
# Collection checks
# ---------------------------------------------------------------------------


def ensure_unique_ids(items: Iterable[Any], what: str) -> None:
    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            raise InvalidInputError(f"duplicate {what} id '{item.id}'")
        seen.add(item.id)


def validate_members(members: Iterable[MemberProfile]) -> list[MemberProfile]:
    out = list(members)
    for m in out:
        if not isinstance(m, MemberProfile):
            raise InvalidInputError(f"expected MemberProfile, got {type(m).__name__}")
        if m.max_weekly_load < 0 or m.current_load < 0:
            raise InvalidInputError(f"member '{m.id}' has negative capacity or load")
    ensure_unique_ids(out, "member")
    return out


def validate_tasks(tasks: Iterable[TaskDefinition]) -> list[TaskDefinition]:
    out = list(tasks)
    for t in out:
        if not isinstance(t, TaskDefinition):
            raise InvalidInputError(f"expected TaskDefinition, got {type(t).__name__}")
        if not 1 <= t.priority <= 10:
            raise InvalidInputError(f"task '{t.id}' priority must be in [1, 10], got {t.priority}")
        if not 1 <= t.difficulty <= 10:
            raise InvalidInputError(f"task '{t.id}' difficulty must be in [1, 10], got {t.difficulty}")
    ensure_unique_ids(out, "task")
    return out


def snapshot_from_dict(raw: Mapping[str, Any]) -> HouseholdSnapshot:
    """Parse a whole household payload (members, tasks, histories, series)."""
    members = validate_members(member_from_dict(m) for m in raw.get("members") or [])
    tasks = validate_tasks(task_from_dict(t) for t in raw.get("tasks") or [])
    by_task = {t.id: t for t in tasks}

    histories = {}
    for h in raw.get("histories") or []:
        hist = history_from_dict(h)
        histories[hist.member_id] = hist

    series = sorted(
        (data_point_from_dict(p) for p in raw.get("workload_series") or []),
        key=lambda p: p.timestamp,
    )

    daily: dict[str, tuple[DailyWorkload, ...]] = {}
    for mid, rows in (raw.get("daily_workloads") or {}).items():
        daily[str(mid)] = tuple(sorted((daily_workload_from_dict(r) for r in rows), key=lambda d: d.day))

    assignments = []
    for a in raw.get("assignments") or []:
        tid = str(_require(a, "task_id", "assignment"))
        if tid not in by_task:
            raise InvalidInputError(f"assignment references unknown task '{tid}'")
        assignments.append(TaskAssignment(task=by_task[tid], assigned_to=str(_require(a, "assigned_to", "assignment"))))

    return HouseholdSnapshot(
        household_id=str(raw.get("household_id") or ""),
        members=tuple(members),
        tasks=tuple(tasks),
        histories=histories,
        workload_series=tuple(series),
        daily_workloads=daily,
        last_rest_dates={
            str(k): parse_date(v, f"last_rest_dates.{k}") for k, v in (raw.get("last_rest_dates") or {}).items()
        },
        assignments=tuple(assignments),
    )


# ---------------------------------------------------------------------------
# Output conversion
# ---------------------------------------------------------------------------


def to_jsonable(value: Any) -> Any:
    """Convert engine results into plain JSON-serialisable structures."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value
