"""Skill-aware delegation: who should take a task off someone's plate.

Suggestions blend skill match, availability on the target day and capacity
headroom. Requests move through a forward-only lifecycle; every transition
returns a new request and illegal moves raise ``DelegationStateError``.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from uuid import uuid4

from .models import (
    AvailabilityWindow,
    DelegationCandidate,
    DelegationFeedback,
    DelegationHistory,
    DelegationReason,
    DelegationRecord,
    DelegationRequest,
    DelegationStateError,
    DelegationStatus,
    SkillLevel,
    SkillProfile,
    TaskDefinition,
)
from .preferences import label_set, normalize_label
from .skills import compute_level_coverage
from .stats import clamp, mean
from .time_utils import as_date, now_utc, window_minutes

logger = logging.getLogger(__name__)

MAX_SKILL_LEVEL = 10.0
SKILL_CURVE_SCALE = 20.0


@dataclass(frozen=True)
class DelegationPolicy:
    skill_weight: float = 0.4
    availability_weight: float = 0.3
    capacity_weight: float = 0.3
    min_suggestion_score: float = 40.0
    auto_assign_threshold: float = 85.0
    decline_penalty: float = 10.0
    max_decline_penalty: float = 40.0
    learning_bonus: float = 10.0
    expiration_hours: int = 24
    max_alternatives: int = 3


DEFAULT_POLICY = DelegationPolicy()


@dataclass(frozen=True)
class DelegationFactor:
    name: str
    impact: float  # -1 .. 1
    description: str
    weight: float = 1.0


@dataclass(frozen=True)
class SkillMatch:
    score: float
    factors: list[DelegationFactor] = field(default_factory=list)


@dataclass(frozen=True)
class WindowMatch:
    window: AvailabilityWindow
    score: float


@dataclass(frozen=True)
class DelegationSuggestion:
    id: str
    task_id: str
    task_name: str
    category: str
    from_member: str | None
    to_member: str
    to_member_name: str
    reason: DelegationReason
    score: float
    confidence: float
    factors: list[DelegationFactor]
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class SmartAlternative:
    member_id: str
    member_name: str
    score: float
    available_capacity: float
    reason: str


@dataclass(frozen=True)
class SmartAssignment:
    task_id: str
    recommended_member: str
    recommended_name: str
    score: float
    confidence: float
    reasoning: list[str]
    alternatives: list[SmartAlternative]
    auto_assignable: bool


# ---------------------------------------------------------------------------
# Skill profiles
# ---------------------------------------------------------------------------


def create_skill_profile(
    member_id: str,
    skills: Mapping[str, float] | None = None,
    preferred_categories: Iterable[str] = (),
    learning_interests: Iterable[str] = (),
) -> SkillProfile:
    return SkillProfile(
        member_id=member_id,
        skills={k: SkillLevel(level=clamp(float(v), 0.0, MAX_SKILL_LEVEL)) for k, v in (skills or {}).items()},
        preferred_categories=frozenset(preferred_categories),
        learning_interests=frozenset(learning_interests),
    )


def _skill_key(skills: Mapping[str, SkillLevel], skill: str) -> str | None:
    wanted = normalize_label(skill)
    for key in skills:
        if normalize_label(key) == wanted:
            return key
    return None


def get_skill_level(profile: SkillProfile | None, skill: str) -> float:
    if profile is None:
        return 0.0
    key = _skill_key(profile.skills, skill)
    return profile.skills[key].level if key is not None else 0.0


def calculate_skill_match_score(
    profile: SkillProfile | None,
    required_skills: Iterable[str],
    category: str,
    policy: DelegationPolicy = DEFAULT_POLICY,
) -> SkillMatch:
    """Score 0-100 for how well a profile fits a task.

    70% average level over the required skills (neutral 60 when the task
    needs none), 30% category alignment, plus a flat bonus when the task is
    something the member wants to learn.
    """
    required = label_set(required_skills)
    levels = {k: s.level for k, s in profile.skills.items()} if profile else {}
    preferred = label_set(profile.preferred_categories) if profile else frozenset()
    interests = label_set(profile.learning_interests) if profile else frozenset()
    cat = normalize_label(category)

    coverage = compute_level_coverage(required, levels)
    alignment = 100.0 if cat in preferred else 50.0
    factors = [
        DelegationFactor(
            "skill_level",
            round((coverage - 50.0) / 50.0, 3),
            f"Required skill coverage {coverage:.0f}%" if required else "No specific skills required",
            0.7,
        ),
        DelegationFactor(
            "skill_category",
            round((alignment - 50.0) / 50.0, 3),
            f"Prefers {category}" if cat in preferred else f"Neutral about {category}",
            0.3,
        ),
    ]
    score = 0.7 * coverage + 0.3 * alignment

    by_name = {normalize_label(k): v for k, v in levels.items()}
    missing = [s for s in required if by_name.get(s, 0.0) <= 0]
    if cat not in preferred and (cat in interests or any(s in interests for s in missing)):
        score += policy.learning_bonus
        factors.append(
            DelegationFactor("learning", 0.3, f"Member is interested in learning {category}", 0.1)
        )
    return SkillMatch(score=round(clamp(score, 0.0, 100.0), 2), factors=factors)


def update_skill_profile(
    profile: SkillProfile,
    skill: str,
    related_skills: Iterable[str] = (),
    difficulty: int = 5,
    now: datetime | None = None,
) -> SkillProfile:
    """Record practice of ``skill``; related skills gain half the experience.

    Levels follow 10 * (1 - e^(-experience / 20)) but never drop below what
    the member already had.
    """
    now = now or now_utc()
    gain = 0.5 + max(0, difficulty) / 10.0
    skills = dict(profile.skills)

    def bump(name: str, amount: float) -> None:
        key = _skill_key(skills, name) or name
        old = skills.get(key, SkillLevel())
        experience = old.experience + amount
        curve = MAX_SKILL_LEVEL * (1.0 - math.exp(-experience / SKILL_CURVE_SCALE))
        level = clamp(max(old.level, curve), 0.0, MAX_SKILL_LEVEL)
        skills[key] = SkillLevel(
            level=level,
            experience=experience,
            last_used=now,
            growth_rate=level - old.level,
        )

    bump(skill, gain)
    primary = normalize_label(skill)
    for rel in dict.fromkeys(related_skills):
        if normalize_label(rel) != primary:
            bump(rel, gain / 2.0)
    return replace(profile, skills=skills)


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


def availability_score(
    windows: Iterable[AvailabilityWindow],
    day: date,
    duration_minutes: int,
) -> tuple[float, list[DelegationFactor]]:
    todays = [w for w in windows if w.day == day]
    if not todays:
        return 20.0, [DelegationFactor("no_availability", -0.8, f"No availability windows on {day.isoformat()}")]

    factors: list[DelegationFactor] = []
    total_minutes = sum(window_minutes(w.start, w.end) for w in todays)
    total_capacity = sum(w.capacity for w in todays)

    score = 50.0
    if total_minutes >= duration_minutes:
        score += 25.0
    else:
        factors.append(
            DelegationFactor(
                "insufficient_time",
                -0.5,
                f"Only {total_minutes} minutes available, need {duration_minutes}",
                0.5,
            )
        )
        if total_minutes >= duration_minutes * 0.7:
            score += 10.0

    if total_capacity > 0:
        score += min(25.0, total_capacity * 5.0)
        factors.append(
            DelegationFactor(
                "available_capacity",
                round(min(0.5, total_capacity / 5.0 * 0.5), 3),
                f"{total_capacity:g} task(s) remaining capacity",
                0.3,
            )
        )
    else:
        factors.append(DelegationFactor("no_capacity", -0.7, "No remaining task capacity", 0.3))
    return clamp(score, 0.0, 100.0), factors


def find_best_windows(
    windows: Iterable[AvailabilityWindow],
    duration_minutes: int,
    today: date,
    days_ahead: int = 7,
) -> list[WindowMatch]:
    """Windows in the next ``days_ahead`` days that fit the task, best first.

    Score: 40 for soonness, 30 for spare time beyond the task, 30 for
    capacity (5 or more open slots counts as full).
    """
    out: list[WindowMatch] = []
    horizon = max(1, days_ahead)
    for w in windows:
        offset = (w.day - today).days
        if w.capacity <= 0 or not 0 <= offset < horizon:
            continue
        minutes = window_minutes(w.start, w.end)
        if minutes < duration_minutes:
            continue
        soon = 1.0 - offset / horizon
        headroom = 1.0 if duration_minutes <= 0 else min(1.0, minutes / duration_minutes - 1.0)
        cap = min(1.0, w.capacity / 5.0)
        out.append(WindowMatch(window=w, score=round(40 * soon + 30 * headroom + 30 * cap, 2)))
    out.sort(key=lambda m: (-m.score, m.window.day, m.window.start))
    return out


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def create_delegation_history(member_id: str) -> DelegationHistory:
    return DelegationHistory(member_id=member_id)


def _pair_penalty(
    history: DelegationHistory | None,
    from_member: str | None,
    policy: DelegationPolicy,
) -> tuple[float, int]:
    if history is None or from_member is None:
        return 0.0, 0
    refusals = sum(
        1
        for r in history.records
        if r.counterpart == from_member and r.status in (DelegationStatus.DECLINED, DelegationStatus.EXPIRED)
    )
    return min(policy.max_decline_penalty, refusals * policy.decline_penalty), refusals


def _confidence(factors: Sequence[DelegationFactor], history: DelegationHistory | None) -> float:
    impacts = [f.impact for f in factors]
    if not impacts:
        return 0.5
    avg = mean(impacts)
    var = mean([(i - avg) ** 2 for i in impacts])
    conf = 0.5 + avg * 0.3 - var * 0.2
    if history is not None and len(history.records) >= 5:
        conf += 0.15
    return round(clamp(conf, 0.1, 0.95), 3)


def _primary_reason(factors: Sequence[DelegationFactor], candidate: DelegationCandidate) -> DelegationReason:
    top = max(factors, key=lambda f: f.impact, default=None)
    if top is not None and top.impact > 0.3:
        if top.name == "skill_level":
            return DelegationReason.SKILL_MATCH
        if top.name == "skill_category":
            return DelegationReason.PREFERENCE_MATCH
        if top.name == "capacity":
            return DelegationReason.FAIRNESS
    if candidate.max_load > 0 and candidate.current_load < candidate.max_load * 0.5:
        return DelegationReason.AVAILABILITY
    if any(f.name == "learning" for f in factors):
        return DelegationReason.LEARNING_OPPORTUNITY
    return DelegationReason.EFFICIENCY


@dataclass(frozen=True)
class _Scored:
    candidate: DelegationCandidate
    score: float
    skill: float
    availability: float
    capacity: float
    factors: list[DelegationFactor]


def _score_candidate(
    task: TaskDefinition,
    candidate: DelegationCandidate,
    from_member: str | None,
    history: DelegationHistory | None,
    target_day: date,
    policy: DelegationPolicy,
) -> _Scored:
    skill = calculate_skill_match_score(candidate.profile, task.required_skills, task.category, policy)
    avail, avail_factors = availability_score(candidate.availability, target_day, task.estimated_minutes)
    load_pct = candidate.current_load / candidate.max_load * 100.0 if candidate.max_load > 0 else 100.0
    capacity = clamp(100.0 - load_pct, 0.0, 100.0)

    factors = list(skill.factors) + avail_factors
    factors.append(
        DelegationFactor(
            "capacity",
            round((capacity - 50.0) / 50.0, 3),
            f"Current load: {load_pct:.0f}%",
            policy.capacity_weight,
        )
    )
    total = (
        skill.score * policy.skill_weight
        + avail * policy.availability_weight
        + capacity * policy.capacity_weight
    )
    penalty, refusals = _pair_penalty(history, from_member, policy)
    if penalty:
        total -= penalty
        factors.append(
            DelegationFactor(
                "prior_refusals",
                -min(1.0, penalty / policy.max_decline_penalty) if policy.max_decline_penalty else -1.0,
                f"Declined or let {refusals} earlier request(s) from {from_member} expire",
            )
        )
    return _Scored(candidate, round(clamp(total, 0.0, 100.0), 2), skill.score, avail, capacity, factors)


def _target_day(task: TaskDefinition, now: datetime) -> date:
    return as_date(task.deadline) if task.deadline is not None else now.date()


def generate_delegation_suggestions(
    task: TaskDefinition,
    from_member: str | None,
    candidates: Iterable[DelegationCandidate],
    history: Mapping[str, DelegationHistory] | None = None,
    policy: DelegationPolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> list[DelegationSuggestion]:
    """Ranked hand-off targets for ``task``, excluding ``from_member``.

    Members with earlier refusals from the same requester are penalised;
    anything under ``policy.min_suggestion_score`` is dropped.
    """
    now = now or now_utc()
    history = history or {}
    day = _target_day(task, now)
    out: list[DelegationSuggestion] = []
    for cand in candidates:
        if cand.member_id == from_member:
            continue
        hist = history.get(cand.member_id)
        scored = _score_candidate(task, cand, from_member, hist, day, policy)
        if scored.score < policy.min_suggestion_score:
            logger.debug("delegation: %s -> %s below threshold (%.2f)", task.id, cand.member_id, scored.score)
            continue
        out.append(
            DelegationSuggestion(
                id=f"del-{uuid4().hex[:12]}",
                task_id=task.id,
                task_name=task.name,
                category=task.category,
                from_member=from_member,
                to_member=cand.member_id,
                to_member_name=cand.name,
                reason=_primary_reason(scored.factors, cand),
                score=scored.score,
                confidence=_confidence(scored.factors, hist),
                factors=scored.factors,
                created_at=now,
                expires_at=now + timedelta(hours=policy.expiration_hours),
            )
        )
    out.sort(key=lambda s: -s.score)
    return out


def _reasoning(scored: _Scored) -> list[str]:
    notes: list[str] = []
    if scored.skill > 70:
        notes.append("Strong skill match")
    elif scored.skill < 40:
        notes.append("Limited skill match")
    if scored.availability > 70:
        notes.append("Good availability")
    elif scored.availability < 40:
        notes.append("Limited availability")
    if scored.capacity > 70:
        notes.append("Has capacity available")
    elif scored.capacity < 30:
        notes.append("Already heavily loaded")
    if any(f.name == "skill_category" and f.impact > 0 for f in scored.factors):
        notes.append("Prefers this category")
    return notes


def generate_smart_assignment(
    task: TaskDefinition,
    members: Sequence[DelegationCandidate],
    history: Mapping[str, DelegationHistory] | None = None,
    policy: DelegationPolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> SmartAssignment | None:
    """Recommend an owner for a fresh task; ``None`` only when nobody is available."""
    if not members:
        return None
    now = now or now_utc()
    history = history or {}
    day = _target_day(task, now)
    scored = [_score_candidate(task, m, None, history.get(m.member_id), day, policy) for m in members]
    scored.sort(key=lambda s: -s.score)

    best = scored[0]
    alternatives = [
        SmartAlternative(
            member_id=s.candidate.member_id,
            member_name=s.candidate.name,
            score=s.score,
            available_capacity=round(max(0.0, s.candidate.max_load - s.candidate.current_load), 2),
            reason=(_reasoning(s) or ["Available"])[0],
        )
        for s in scored[1 : 1 + policy.max_alternatives]
    ]
    confidence = _confidence(best.factors, history.get(best.candidate.member_id))
    return SmartAssignment(
        task_id=task.id,
        recommended_member=best.candidate.member_id,
        recommended_name=best.candidate.name,
        score=best.score,
        confidence=confidence,
        reasoning=_reasoning(best),
        alternatives=alternatives,
        auto_assignable=best.score >= policy.auto_assign_threshold,
    )


def suggestion_summary(suggestion: DelegationSuggestion) -> str:
    positives = [f.description for f in sorted(suggestion.factors, key=lambda f: -f.impact) if f.impact > 0]
    head = f"{suggestion.to_member_name} ({suggestion.score:.0f}/100, {suggestion.reason.value.replace('_', ' ')})"
    return f"{head}: {'; '.join(positives[:2])}" if positives else head


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _transition(request: DelegationRequest, target: DelegationStatus, **changes) -> DelegationRequest:
    if not request.status.can_transition(target):
        raise DelegationStateError(
            f"Delegation {request.id}: cannot move from {request.status.value} to {target.value}"
        )
    logger.debug("delegation %s: %s -> %s", request.id, request.status.value, target.value)
    return replace(request, status=target, **changes)


def create_delegation_request(
    suggestion: DelegationSuggestion,
    from_member: str | None = None,
    policy: DelegationPolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> DelegationRequest:
    now = now or now_utc()
    sender = from_member or suggestion.from_member
    if not sender:
        raise DelegationStateError(f"Suggestion {suggestion.id} has no requesting member")
    return DelegationRequest(
        id=f"req-{uuid4().hex[:12]}",
        task_id=suggestion.task_id,
        from_member=sender,
        to_member=suggestion.to_member,
        reason=suggestion.reason,
        status=DelegationStatus.PENDING,
        requested_at=now,
        expires_at=now + timedelta(hours=policy.expiration_hours),
        category=suggestion.category,
    )


def is_expired(request: DelegationRequest, now: datetime | None = None) -> bool:
    """A pending request expires once ``expires_at`` has passed; other states never do."""
    if request.status is not DelegationStatus.PENDING:
        return False
    return (now or now_utc()) >= request.expires_at


def respond_to_delegation(
    request: DelegationRequest,
    accepted: bool,
    feedback: DelegationFeedback | None = None,
    now: datetime | None = None,
) -> DelegationRequest:
    now = now or now_utc()
    if is_expired(request, now=now):
        raise DelegationStateError(f"Delegation {request.id} expired at {request.expires_at.isoformat()}")
    target = DelegationStatus.ACCEPTED if accepted else DelegationStatus.DECLINED
    return _transition(request, target, responded_at=now, feedback=feedback or request.feedback)


def expire_delegation(request: DelegationRequest, now: datetime | None = None) -> DelegationRequest:
    return _transition(request, DelegationStatus.EXPIRED, responded_at=now or now_utc())


def complete_delegation(
    request: DelegationRequest,
    feedback: DelegationFeedback | None = None,
    now: datetime | None = None,
) -> DelegationRequest:
    return _transition(
        request,
        DelegationStatus.COMPLETED,
        completed_at=now or now_utc(),
        feedback=feedback or request.feedback,
    )


def get_expired_delegations(
    requests: Iterable[DelegationRequest],
    now: datetime | None = None,
) -> list[DelegationRequest]:
    """Pending requests whose ``expires_at`` has passed."""
    now = now or now_utc()
    return [r for r in requests if is_expired(r, now)]


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def _summarise(member_id: str, records: Sequence[DelegationRecord]) -> DelegationHistory:
    said_yes = (DelegationStatus.ACCEPTED, DelegationStatus.COMPLETED)
    said_no = (DelegationStatus.DECLINED, DelegationStatus.EXPIRED)
    accepted = sum(1 for r in records if r.status in said_yes)
    declined = sum(1 for r in records if r.status in said_no)
    decided = accepted + declined

    per_cat_total: Counter[str] = Counter()
    per_cat_yes: Counter[str] = Counter()
    for r in records:
        if r.category and r.status in said_yes + said_no:
            per_cat_total[r.category] += 1
            if r.status in said_yes:
                per_cat_yes[r.category] += 1

    durations = [r.time_to_complete for r in records if r.time_to_complete is not None]
    return DelegationHistory(
        member_id=member_id,
        records=tuple(records),
        total_received=len(records),
        total_accepted=accepted,
        total_declined=declined,
        acceptance_rate=round(accepted / decided, 4) if decided else 1.0,
        average_completion_minutes=round(mean(durations), 2) if durations else None,
        category_acceptance={c: round(per_cat_yes[c] / n, 4) for c, n in sorted(per_cat_total.items())},
    )


def update_delegation_history(
    history: DelegationHistory,
    request: DelegationRequest,
    now: datetime | None = None,
) -> DelegationHistory:
    """Fold the current state of ``request`` into the receiving member's log.

    A request already in the log is replaced, so calling this after each
    transition keeps a single record per request.
    """
    if request.to_member != history.member_id:
        raise ValueError(
            f"Delegation {request.id} was sent to {request.to_member}, not {history.member_id}"
        )
    occurred = request.completed_at or request.responded_at or now or now_utc()
    fb = request.feedback
    record = DelegationRecord(
        request_id=request.id,
        task_id=request.task_id,
        counterpart=request.from_member,
        category=request.category,
        status=request.status,
        occurred_at=occurred,
        rating=fb.rating if fb else None,
        time_to_complete=fb.time_to_complete if fb else None,
    )
    records = [r for r in history.records if r.request_id != request.id] + [record]
    return _summarise(history.member_id, records)


def apply_delegation_outcome(
    request: DelegationRequest,
    task: TaskDefinition,
    profile: SkillProfile,
    history: DelegationHistory,
    related_skills: Iterable[str] = (),
    now: datetime | None = None,
) -> tuple[SkillProfile, DelegationHistory]:
    """Update the receiver's history and, for completed work, their skills."""
    now = now or now_utc()
    new_history = update_delegation_history(history, request, now)
    if request.status is not DelegationStatus.COMPLETED:
        return profile, new_history
    practised = sorted(task.required_skills) or [task.category]
    new_profile = profile
    for skill in practised:
        new_profile = update_skill_profile(new_profile, skill, related_skills, task.difficulty, now)
    return new_profile, new_history
