"""Data model shared by the distribution engine.

Input records are frozen dataclasses; the engine never mutates what a caller
hands in and builds copies with ``dataclasses.replace`` when a batch pass
needs running state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class InvalidInputError(ValueError):
    """Caller contract violation detected at the engine boundary."""


class DelegationStateError(ValueError):
    """Illegal delegation lifecycle transition."""


# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    ELEVATED = "elevated"
    HIGH = "high"
    CRITICAL = "critical"
    BURNOUT_RISK = "burnout_risk"

    @property
    def rank(self) -> int:
        return _HEALTH_ORDER.index(self)


_HEALTH_ORDER = [
    HealthStatus.HEALTHY,
    HealthStatus.ELEVATED,
    HealthStatus.HIGH,
    HealthStatus.CRITICAL,
    HealthStatus.BURNOUT_RISK,
]


class StressLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


class StressIndicatorType(str, Enum):
    CONSECUTIVE_OVERLOAD = "consecutive_overload"
    NO_REST = "no_rest"
    HIGH_VARIANCE = "high_variance"
    LONG_TASKS = "long_tasks"


class AlertType(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"

    @property
    def priority(self) -> int:
        return {"warning": 1, "critical": 2, "emergency": 3}[self.value]


class SuggestedActionType(str, Enum):
    REDISTRIBUTE = "redistribute"
    POSTPONE = "postpone"
    DELEGATE = "delegate"
    REST_DAY = "rest_day"
    SUPPORT = "support"


class RecoveryType(str, Enum):
    NONE = "none"
    LIGHT_DAY = "light_day"
    DAY_OFF = "day_off"
    EXTENDED_REST = "extended_rest"


class AnomalyType(str, Enum):
    SPIKE = "spike"
    DROP = "drop"


class PatternType(str, Enum):
    DAILY = "daily"
    WEEKEND_REDUCTION = "weekend_reduction"
    WEEKEND_PEAK = "weekend_peak"
    SEASONAL = "seasonal"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class Recommendation(str, Enum):
    ASSIGN = "assign"
    MAYBE = "maybe"
    SKIP = "skip"


class DelegationReason(str, Enum):
    OVERLOAD = "overload"
    SKILL_MATCH = "skill_match"
    PREFERENCE_MATCH = "preference_match"
    AVAILABILITY = "availability"
    FAIRNESS = "fairness"
    EFFICIENCY = "efficiency"
    LEARNING_OPPORTUNITY = "learning_opportunity"


class DelegationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return not DELEGATION_TRANSITIONS[self]

    def can_transition(self, target: DelegationStatus) -> bool:
        return target in DELEGATION_TRANSITIONS[self]


DELEGATION_TRANSITIONS: dict[DelegationStatus, frozenset[DelegationStatus]] = {
    DelegationStatus.PENDING: frozenset(
        {DelegationStatus.ACCEPTED, DelegationStatus.DECLINED, DelegationStatus.EXPIRED}
    ),
    DelegationStatus.ACCEPTED: frozenset({DelegationStatus.COMPLETED}),
    DelegationStatus.DECLINED: frozenset(),
    DelegationStatus.EXPIRED: frozenset(),
    DelegationStatus.COMPLETED: frozenset(),
}


# ---------------------------------------------------------------------------
# Members, tasks, history
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryPreferences:
    preferred: frozenset[str] = frozenset()
    disliked: frozenset[str] = frozenset()
    blocked: frozenset[str] = frozenset()


@dataclass(frozen=True)
class MemberProfile:
    id: str
    name: str
    household_id: str
    max_weekly_load: float
    current_load: float = 0.0
    skills: frozenset[str] = frozenset()
    preferences: CategoryPreferences = field(default_factory=CategoryPreferences)


@dataclass(frozen=True)
class TaskDefinition:
    id: str
    name: str
    category: str
    estimated_minutes: int = 30
    difficulty: int = 5
    required_skills: frozenset[str] = frozenset()
    priority: int = 5
    deadline: datetime | None = None


@dataclass(frozen=True)
class WeeklySnapshot:
    week_start: date
    task_count: int
    minutes_worked: int
    categories: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoricalData:
    member_id: str
    total_tasks: int = 0
    total_minutes: int = 0
    weekly_history: tuple[WeeklySnapshot, ...] = ()
    task_counts: dict[str, int] = field(default_factory=dict)
    completion_rate: float = 1.0


@dataclass(frozen=True)
class TaskAssignment:
    """An existing assignment of a task to a member, used by rebalancing."""

    task: TaskDefinition
    assigned_to: str


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkloadDataPoint:
    timestamp: datetime
    task_count: int
    total_minutes: int = 0
    categories: dict[str, int] = field(default_factory=dict)
    day_of_week: int | None = None
    is_holiday: bool = False

    def __post_init__(self) -> None:
        if self.day_of_week is None:
            object.__setattr__(self, "day_of_week", self.timestamp.weekday())

    @property
    def day(self) -> date:
        return self.timestamp.date()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailyWorkload:
    day: date
    task_count: int
    minutes_worked: int
    load_percentage: float
    was_overloaded: bool = False


@dataclass(frozen=True)
class StressIndicator:
    type: StressIndicatorType
    severity: int
    description: str
    detected_at: date | None = None


@dataclass(frozen=True)
class MemberWorkloadState:
    member_id: str
    member_name: str
    current_load: float
    max_load: float
    load_percentage: float
    consecutive_high_load_days: int
    recent_workload: tuple[DailyWorkload, ...]
    health_status: HealthStatus
    stress_indicators: tuple[StressIndicator, ...] = ()
    last_rest_date: date | None = None


# ---------------------------------------------------------------------------
# Skills and delegation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SkillLevel:
    level: float = 0.0
    experience: float = 0.0
    last_used: datetime | None = None
    growth_rate: float = 0.0


@dataclass(frozen=True)
class SkillProfile:
    member_id: str
    skills: dict[str, SkillLevel] = field(default_factory=dict)
    preferred_categories: frozenset[str] = frozenset()
    learning_interests: frozenset[str] = frozenset()


@dataclass(frozen=True)
class AvailabilityWindow:
    member_id: str
    day: date
    start: str
    end: str
    capacity: float = 1.0


@dataclass(frozen=True)
class DelegationCandidate:
    """A member as seen by the delegation engine."""

    member_id: str
    name: str
    current_load: float
    max_load: float
    profile: SkillProfile | None = None
    availability: tuple[AvailabilityWindow, ...] = ()


@dataclass(frozen=True)
class DelegationFeedback:
    accepted: bool
    rating: int | None = None
    time_to_complete: int | None = None
    comment: str = ""
    would_accept_again: bool | None = None


@dataclass(frozen=True)
class DelegationRequest:
    id: str
    task_id: str
    from_member: str
    to_member: str
    reason: DelegationReason
    status: DelegationStatus
    requested_at: datetime
    expires_at: datetime
    category: str = ""
    responded_at: datetime | None = None
    completed_at: datetime | None = None
    feedback: DelegationFeedback | None = None


@dataclass(frozen=True)
class DelegationRecord:
    request_id: str
    task_id: str
    counterpart: str
    category: str
    status: DelegationStatus
    occurred_at: datetime
    rating: int | None = None
    time_to_complete: int | None = None


@dataclass(frozen=True)
class DelegationHistory:
    member_id: str
    records: tuple[DelegationRecord, ...] = ()
    total_received: int = 0
    total_accepted: int = 0
    total_declined: int = 0
    acceptance_rate: float = 1.0
    average_completion_minutes: float | None = None
    category_acceptance: dict[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Household snapshot (pass dispatcher input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HouseholdSnapshot:
    household_id: str
    members: tuple[MemberProfile, ...]
    tasks: tuple[TaskDefinition, ...] = ()
    histories: dict[str, HistoricalData] = field(default_factory=dict)
    workload_series: tuple[WorkloadDataPoint, ...] = ()
    daily_workloads: dict[str, tuple[DailyWorkload, ...]] = field(default_factory=dict)
    last_rest_dates: dict[str, date] = field(default_factory=dict)
    assignments: tuple[TaskAssignment, ...] = ()
