"""Fair chore distribution: per-member suitability scoring and greedy assignment.

Every member/task pair is scored on five 0-100 components (load balance,
recent activity, preference, skill, availability) blended by
``ScoringWeights``. Single assignments pick the best-scoring member; batch
assignment walks tasks by descending priority and commits each decision to a
private running copy of member loads and histories before scoring the next
task.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .models import (
    HistoricalData,
    MemberProfile,
    Recommendation,
    TaskAssignment,
    TaskDefinition,
)
from .preferences import evaluate_category_preference, is_blocked, normalize_label
from .skills import compute_skill_coverage
from .stats import clamp, gini
from .validation import validate_members, validate_tasks

logger = logging.getLogger(__name__)

RECENCY_DECAY = 0.9
RECENT_WEEKS = 4
ASSIGN_THRESHOLD = 70.0
MIN_SKILL_SCORE = 50.0
MIN_AVAILABILITY_SCORE = 30.0
ALTERNATIVES = 3


@dataclass(frozen=True)
class ScoringWeights:
    load_balance: float = 0.35
    recent_activity: float = 0.25
    preference: float = 0.20
    skill: float = 0.10
    availability: float = 0.10

    def __post_init__(self) -> None:
        values = dataclasses.astuple(self)
        if any(w < 0 for w in values):
            raise ValueError(f"scoring weights must be non-negative: {self}")
        if abs(sum(values) - 1.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 1, got {sum(values):.4f}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> ScoringWeights:
        if not raw:
            return DEFAULT_WEIGHTS
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise ValueError(f"unknown scoring weights: {sorted(unknown)}")
        return dataclasses.replace(DEFAULT_WEIGHTS, **{k: float(v) for k, v in raw.items()})


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class ScoreComponents:
    load_balance: float
    recent_activity: float
    preference: float
    skill: float
    availability: float


@dataclass(frozen=True)
class FairnessScore:
    member_id: str
    overall: float
    components: ScoreComponents
    recommendation: Recommendation
    reasons: list[str]


@dataclass(frozen=True)
class Alternative:
    member_id: str
    score: float


@dataclass(frozen=True)
class AssignmentResult:
    task_id: str
    assigned_to: str
    score: FairnessScore
    alternatives: list[Alternative]


@dataclass(frozen=True)
class RebalanceSuggestion:
    task_id: str
    from_user: str
    to_user: str
    reason: str
    fit_score: float


@dataclass(frozen=True)
class MemberFairnessStats:
    member_id: str
    member_name: str
    tasks_assigned: int
    tasks_completed: int
    minutes_worked: int
    current_load: float
    target_share: float
    actual_share: float
    fair_share_ratio: float
    category_distribution: dict[str, int]
    preference_alignment: float


@dataclass(frozen=True)
class FairnessReport:
    household_id: str
    period_start: date
    period_end: date
    member_stats: list[MemberFairnessStats]
    gini_coefficient: float
    overall_fairness_index: float
    recommendations: list[str]
    rebalancing: list[RebalanceSuggestion] = field(default_factory=list)


@dataclass
class BatchState:
    members: list[MemberProfile]
    histories: dict[str, HistoricalData]
    total_assigned: int
    results: list[AssignmentResult]


def create_empty_history(member_id: str) -> HistoricalData:
    return HistoricalData(member_id=member_id)


# ---------------------------------------------------------------------------
# Fair share and component scores
# ---------------------------------------------------------------------------


def calculate_fair_share(members: Sequence[MemberProfile]) -> dict[str, float]:
    """Capacity-proportional target share (percent) per member id."""
    if not members:
        return {}
    total = sum(max(0.0, m.max_weekly_load) for m in members)
    if total <= 0:
        logger.warning("all %d members have zero capacity, splitting equally", len(members))
        equal = 100.0 / len(members)
        return {m.id: equal for m in members}
    return {m.id: max(0.0, m.max_weekly_load) / total * 100.0 for m in members}


def calculate_load_balance_score(
    member: MemberProfile,
    history: HistoricalData | None,
    fair_share_pct: float,
    total_assigned: int,
) -> float:
    """50 at fair share, towards 100 when under it, towards 0 when over it."""
    if total_assigned <= 0:
        return 50.0
    done = history.total_tasks if history else 0
    actual = clamp(done / total_assigned * 100.0, 0.0, 100.0)
    deviation = fair_share_pct - actual
    if deviation >= 0:
        if fair_share_pct <= 0:
            return 50.0
        score = 50.0 + 50.0 * deviation / fair_share_pct
    else:
        headroom = 100.0 - fair_share_pct
        if headroom <= 0:
            return 50.0
        score = 50.0 - 50.0 * (-deviation) / headroom
    return round(clamp(score, 0.0, 100.0), 2)


def calculate_recent_activity_score(history: HistoricalData | None, weeks: int = RECENT_WEEKS) -> float:
    """Higher when the member has been less active recently than usual."""
    if history is None or not history.weekly_history:
        return 100.0

    recent = history.weekly_history[-weeks:]
    weighted = 0.0
    weight_sum = 0.0
    for index, week in enumerate(recent):
        w = RECENCY_DECAY ** (len(recent) - index - 1)
        weighted += week.task_count * w
        weight_sum += w
    recent_avg = weighted / weight_sum

    total = history.total_tasks or sum(w.task_count for w in history.weekly_history)
    expected = total / len(history.weekly_history)
    if expected <= 0:
        return 100.0 if recent_avg <= 0 else 0.0
    return round(clamp(100.0 - (recent_avg / expected) * 50.0, 0.0, 100.0), 2)


def calculate_preference_score(member: MemberProfile, task: TaskDefinition) -> float:
    score, _ = evaluate_category_preference(member.preferences, task.category)
    return score


def calculate_skill_score(member: MemberProfile, task: TaskDefinition) -> float:
    return compute_skill_coverage(task.required_skills, member.skills)


def calculate_availability_score(
    member: MemberProfile,
    task: TaskDefinition | None = None,
    expected_load: float = 0.0,
) -> float:
    """Remaining weekly slack as a percentage of capacity.

    ``expected_load`` is forecast demand the member is already expected to
    absorb this week; it eats into the slack the same way committed load does.
    """
    if member.max_weekly_load <= 0:
        return 0.0
    slack = member.max_weekly_load - member.current_load - max(0.0, expected_load)
    return round(clamp(slack / member.max_weekly_load * 100.0, 0.0, 100.0), 2)


def calculate_fairness_score(
    member: MemberProfile,
    task: TaskDefinition,
    history: HistoricalData | None,
    fair_share_pct: float,
    total_assigned: int,
    *,
    expected_load: float = 0.0,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> FairnessScore:
    preference, pref_flags = evaluate_category_preference(member.preferences, task.category)
    components = ScoreComponents(
        load_balance=calculate_load_balance_score(member, history, fair_share_pct, total_assigned),
        recent_activity=calculate_recent_activity_score(history),
        preference=preference,
        skill=calculate_skill_score(member, task),
        availability=calculate_availability_score(member, task, expected_load),
    )

    reasons: list[str] = []
    if "blocked_category" in pref_flags:
        reasons.append(f"Category '{task.category}' is blocked by member preferences")
        return FairnessScore(member.id, 0.0, components, Recommendation.SKIP, reasons)

    overall = round(
        components.load_balance * weights.load_balance
        + components.recent_activity * weights.recent_activity
        + components.preference * weights.preference
        + components.skill * weights.skill
        + components.availability * weights.availability,
        2,
    )

    if task.required_skills and components.skill < MIN_SKILL_SCORE:
        recommendation = Recommendation.SKIP
        reasons.append("Member lacks required skills")
    elif components.availability < MIN_AVAILABILITY_SCORE:
        recommendation = Recommendation.SKIP
        reasons.append("Member has little remaining capacity this week")
    elif overall >= ASSIGN_THRESHOLD:
        recommendation = Recommendation.ASSIGN
        reasons.append("Good overall fit based on fairness metrics")
    else:
        recommendation = Recommendation.MAYBE

    if components.load_balance > 70:
        reasons.append("Member is below their fair share")
    elif components.load_balance < 30:
        reasons.append("Member is above their fair share")
    if components.recent_activity > 70:
        reasons.append("Member has had low recent activity")
    if "preferred_category" in pref_flags:
        reasons.append("Task matches member preferences")
    if "disliked_category" in pref_flags:
        reasons.append("Member dislikes this category")

    return FairnessScore(member.id, overall, components, recommendation, reasons)


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


def _total_assigned(histories: Mapping[str, HistoricalData]) -> int:
    return sum(h.total_tasks for h in histories.values())


def find_best_assignment(
    task: TaskDefinition,
    members: Sequence[MemberProfile],
    histories: Mapping[str, HistoricalData],
    total_assigned: int | None = None,
    *,
    expected_loads: Mapping[str, float] | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> AssignmentResult | None:
    """Pick the highest-scoring member for one task.

    Ties go to the member with the lower current load, then to input order.
    Returns None only when there are no members.
    """
    if not members:
        return None
    if total_assigned is None:
        total_assigned = _total_assigned(histories)
    shares = calculate_fair_share(members)
    expected_loads = expected_loads or {}

    scored = []
    for index, member in enumerate(members):
        score = calculate_fairness_score(
            member,
            task,
            histories.get(member.id),
            shares[member.id],
            total_assigned,
            expected_load=expected_loads.get(member.id, 0.0),
            weights=weights,
        )
        scored.append((score, member, index))

    scored.sort(key=lambda row: (-row[0].overall, row[1].current_load, row[2]))
    best, winner, _ = scored[0]
    logger.debug("task %s -> %s (score %.2f)", task.id, winner.id, best.overall)
    return AssignmentResult(
        task_id=task.id,
        assigned_to=winner.id,
        score=best,
        alternatives=[Alternative(s.member_id, s.overall) for s, _, _ in scored[1 : 1 + ALTERNATIVES]],
    )


def _commit(state: BatchState, task: TaskDefinition, member_id: str) -> None:
    for i, m in enumerate(state.members):
        if m.id == member_id:
            state.members[i] = dataclasses.replace(m, current_load=m.current_load + 1)
            break
    hist = state.histories.get(member_id) or create_empty_history(member_id)
    counts = dict(hist.task_counts)
    counts[task.category] = counts.get(task.category, 0) + 1
    state.histories[member_id] = dataclasses.replace(
        hist,
        total_tasks=hist.total_tasks + 1,
        total_minutes=hist.total_minutes + task.estimated_minutes,
        task_counts=counts,
    )
    state.total_assigned += 1


def assign_tasks_batch(
    tasks: Iterable[TaskDefinition],
    members: Iterable[MemberProfile],
    histories: Mapping[str, HistoricalData],
    *,
    expected_loads: Mapping[str, float] | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[AssignmentResult]:
    """Assign tasks in descending priority, committing each decision before the next.

    Each assignment adds one load unit and one completed task to the chosen
    member's running copy, so later tasks see the updated distribution.
    Inputs are left untouched.
    """
    tasks = validate_tasks(tasks)
    members = validate_members(members)
    if not members:
        return []

    state = BatchState(
        members=list(members),
        histories=dict(histories),
        total_assigned=_total_assigned(histories),
        results=[],
    )
    for task in sorted(tasks, key=lambda t: -t.priority):
        result = find_best_assignment(
            task,
            state.members,
            state.histories,
            state.total_assigned,
            expected_loads=expected_loads,
            weights=weights,
        )
        if result is None:
            continue
        state.results.append(result)
        _commit(state, task, result.assigned_to)

    logger.info("batch assigned %d tasks across %d members", len(state.results), len(members))
    return state.results


# ---------------------------------------------------------------------------
# Reporting and rebalancing
# ---------------------------------------------------------------------------


def calculate_gini_coefficient(loads: Iterable[float]) -> float:
    return gini(loads)


def _target_loads(members: Sequence[MemberProfile]) -> dict[str, float]:
    shares = calculate_fair_share(members)
    total = sum(m.current_load for m in members)
    return {m.id: shares[m.id] / 100.0 * total for m in members}


def suggest_rebalancing(
    members: Sequence[MemberProfile],
    assignments: Iterable[TaskAssignment],
    max_suggestions: int = 5,
    *,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[RebalanceSuggestion]:
    """Propose task moves from above-share members to better-fit below-share members.

    Lowest-priority tasks move first. A move is only proposed to a member who
    does not block the category and has the required skills. Loads are updated
    after each proposal so a member is not drained (or flooded) past target.
    """
    if not members:
        return []
    targets = _target_loads(members)
    loads = {m.id: m.current_load for m in members}
    by_id = {m.id: m for m in members}

    by_owner: dict[str, list[TaskDefinition]] = {}
    for a in assignments:
        if a.assigned_to in by_id:
            by_owner.setdefault(a.assigned_to, []).append(a.task)

    suggestions: list[RebalanceSuggestion] = []
    donors = sorted(members, key=lambda m: targets[m.id] - loads[m.id])
    for donor in donors:
        if len(suggestions) >= max_suggestions:
            break
        for task in sorted(by_owner.get(donor.id, []), key=lambda t: (t.priority, t.id)):
            if len(suggestions) >= max_suggestions:
                break
            excess = loads[donor.id] - targets[donor.id]
            if excess <= 0.5:
                break

            best: tuple[float, MemberProfile] | None = None
            for cand in members:
                if cand.id == donor.id or is_blocked(cand.preferences, task.category):
                    continue
                if targets[cand.id] - loads[cand.id] <= 0.5:
                    continue
                view = dataclasses.replace(cand, current_load=loads[cand.id])
                score = calculate_fairness_score(view, task, None, 0.0, 0, weights=weights)
                if score.recommendation is Recommendation.SKIP:
                    continue
                if best is None or score.overall > best[0]:
                    best = (score.overall, cand)
            if best is None:
                continue

            fit, receiver = best
            suggestions.append(
                RebalanceSuggestion(
                    task_id=task.id,
                    from_user=donor.id,
                    to_user=receiver.id,
                    reason=(
                        f"{donor.name} is {excess:.1f} units above fair share; "
                        f"{receiver.name} is below it and fits '{task.category}'"
                    ),
                    fit_score=fit,
                )
            )
            loads[donor.id] -= 1
            loads[receiver.id] += 1

    suggestions.sort(key=lambda s: -s.fit_score)
    return suggestions[:max_suggestions]


def generate_fairness_report(
    household_id: str,
    members: Sequence[MemberProfile],
    histories: Mapping[str, HistoricalData],
    period_start: date,
    period_end: date,
    assignments: Iterable[TaskAssignment] = (),
    *,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> FairnessReport:
    shares = calculate_fair_share(members)
    total_tasks = _total_assigned({m.id: histories[m.id] for m in members if m.id in histories})

    stats: list[MemberFairnessStats] = []
    for member in members:
        hist = histories.get(member.id) or create_empty_history(member.id)
        target = shares.get(member.id, 0.0)
        actual = hist.total_tasks / total_tasks * 100.0 if total_tasks else 0.0
        ratio = actual / target * 100.0 if target > 0 and total_tasks else 100.0

        preferred = {normalize_label(c) for c in member.preferences.preferred}
        preferred_done = sum(n for cat, n in hist.task_counts.items() if normalize_label(cat) in preferred)
        alignment = round(preferred_done / hist.total_tasks * 100.0) if hist.total_tasks else 50.0

        stats.append(
            MemberFairnessStats(
                member_id=member.id,
                member_name=member.name,
                tasks_assigned=hist.total_tasks,
                tasks_completed=round(hist.total_tasks * hist.completion_rate),
                minutes_worked=hist.total_minutes,
                current_load=member.current_load,
                target_share=round(target, 2),
                actual_share=round(actual, 2),
                fair_share_ratio=round(ratio, 2),
                category_distribution=dict(hist.task_counts),
                preference_alignment=float(alignment),
            )
        )

    if stats:
        avg_dev = sum(abs(100.0 - s.fair_share_ratio) for s in stats) / len(stats)
        index = max(0.0, round(100.0 - avg_dev, 2))
    else:
        index = 100.0

    recommendations: list[str] = []
    over = [s.member_name for s in stats if s.fair_share_ratio > 120]
    under = [s.member_name for s in stats if s.fair_share_ratio < 80]
    if over:
        recommendations.append(f"Consider reducing load for: {', '.join(over)}")
    if under:
        recommendations.append(f"Consider assigning more tasks to: {', '.join(under)}")
    if index < 70:
        recommendations.append("Overall distribution could be improved")
    low_pref = [s.member_name for s in stats if s.preference_alignment < 30]
    if low_pref:
        recommendations.append(f"Task preferences not well-matched for: {', '.join(low_pref)}")

    return FairnessReport(
        household_id=household_id,
        period_start=period_start,
        period_end=period_end,
        member_stats=stats,
        gini_coefficient=calculate_gini_coefficient(m.current_load for m in members),
        overall_fairness_index=index,
        recommendations=recommendations,
        rebalancing=suggest_rebalancing(members, assignments, weights=weights),
    )
