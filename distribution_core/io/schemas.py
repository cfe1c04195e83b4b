"""Column constants, pipe helpers, and type coercion for CSV I/O."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Input CSV column names
# ---------------------------------------------------------------------------

MEMBERS_COLS = [
    "member_id",
    "name",
    "max_weekly_load",
    "current_load",
    "skills",
    "preferred",
    "disliked",
    "blocked",
]

TASKS_COLS = [
    "task_id",
    "name",
    "category",
    "estimated_minutes",
    "difficulty",
    "priority",
    "required_skills",
    "deadline",
    "assigned_to",
]

HISTORY_COLS = [
    "member_id",
    "week_start",
    "task_count",
    "minutes_worked",
    "categories",
    "completion_rate",
]

WORKLOAD_COLS = [
    "date",
    "task_count",
    "total_minutes",
    "categories",
    "is_holiday",
]

DAILY_COLS = [
    "member_id",
    "date",
    "task_count",
    "minutes_worked",
    "load_percentage",
    "was_overloaded",
]

# ---------------------------------------------------------------------------
# Output sheet column names
# ---------------------------------------------------------------------------

SCORE_COMPONENTS = [
    "load_balance",
    "recent_activity",
    "preference",
    "skill",
    "availability",
]

ASSIGNMENTS_COLS = [
    "task_id",
    "assigned_to",
    "overall",
    "recommendation",
    *[f"score_{c}" for c in SCORE_COMPONENTS],
    "alternatives",
    "reasons",
]

FAIRNESS_COLS = [
    "member_id",
    "member_name",
    "tasks_assigned",
    "tasks_completed",
    "current_load",
    "target_share",
    "actual_share",
    "fair_share_ratio",
    "preference_alignment",
]

HEALTH_COLS = [
    "member_id",
    "member_name",
    "current_load",
    "max_load",
    "load_percentage",
    "health_status",
    "consecutive_high_load_days",
    "workload_score",
    "stress_indicators",
    "last_rest_date",
]

ALERTS_COLS = [
    "member_id",
    "member_name",
    "alert_type",
    "load_percentage",
    "reason",
    "suggested_actions",
]

FORECAST_COLS = [
    "date",
    "predicted_task_count",
    "predicted_minutes",
    "confidence",
    "factors",
]

ANOMALY_COLS = [
    "timestamp",
    "type",
    "severity",
    "expected_value",
    "actual_value",
    "z_score",
]

# ---------------------------------------------------------------------------
# Pipe-separated field helpers
# ---------------------------------------------------------------------------

PIPE = "|"
PAIR = ":"


def pipe_join(values: list | None) -> str:
    """Join a list into a pipe-separated string. Empty/None -> empty string."""
    if not values:
        return ""
    return PIPE.join(str(v) for v in values if v is not None and str(v).strip())


def pipe_split(value: str | None) -> list[str]:
    """Split a pipe-separated string into a list. Empty/None -> empty list."""
    if not value or not str(value).strip():
        return []
    return [v.strip() for v in str(value).split(PIPE) if v.strip()]


def counts_split(value: str | None) -> dict[str, int]:
    """Parse ``kitchen:3|laundry:2`` into a count map. Bare names count as 1."""
    out: dict[str, int] = {}
    for item in pipe_split(value):
        name, _, num = item.partition(PAIR)
        name = name.strip()
        if name:
            out[name] = out.get(name, 0) + to_int(num, default=1)
    return out


# ---------------------------------------------------------------------------
# Type coercion helpers for reading CSV values
# ---------------------------------------------------------------------------


def to_int(value: str | None, default: int = 0) -> int:
    """Coerce a CSV string to int. Empty/None -> default."""
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return default


def to_bool(value: str | None) -> bool:
    """TRUE/true/1/yes -> True, everything else False."""
    if value is None:
        return False
    return str(value).strip().upper() in ("TRUE", "1", "YES")
