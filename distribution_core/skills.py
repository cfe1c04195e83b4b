"""Shared required-skill coverage helpers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .preferences import label_set, normalize_label


def matched_skills(required: Iterable[str], available: Iterable[str]) -> list[str]:
    have = label_set(available)
    return sorted(s for s in label_set(required) if s in have)


def missing_skills(required: Iterable[str], available: Iterable[str]) -> list[str]:
    have = label_set(available)
    return sorted(s for s in label_set(required) if s not in have)


def compute_skill_coverage(
    required: Iterable[str],
    available: Iterable[str],
    *,
    empty_score: float = 100.0,
) -> float:
    """Matched / required as a 0-100 score; ``empty_score`` when nothing is required."""
    req = label_set(required)
    if not req:
        return float(empty_score)
    return round(len(matched_skills(req, available)) / len(req) * 100, 2)


def compute_level_coverage(
    required: Iterable[str],
    levels: Mapping[str, float],
    *,
    max_level: float = 10.0,
    empty_score: float = 60.0,
) -> float:
    """Average skill level over the required skills, scaled to 0-100.

    Missing skills count as level 0. ``empty_score`` is returned when the task
    requires nothing.
    """
    req = label_set(required)
    if not req:
        return float(empty_score)
    by_name = {normalize_label(k): float(v) for k, v in levels.items()}
    total = sum(min(max_level, max(0.0, by_name.get(s, 0.0))) / max_level for s in req)
    return round(total / len(req) * 100, 2)


def is_capable(required: Iterable[str], available: Iterable[str]) -> bool:
    return not missing_skills(required, available)
