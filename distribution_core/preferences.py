"""Shared category preference scoring helpers."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

from .models import CategoryPreferences


def normalize_label(text: str | None) -> str:
    """Lower-case, accent-free, single-spaced form of a category or skill name."""
    raw = unicodedata.normalize("NFKD", str(text or ""))
    raw = "".join(ch for ch in raw if not unicodedata.combining(ch))
    raw = raw.lower().replace("ß", "ss")
    raw = re.sub(r"[\s_\-]+", " ", raw).strip()
    return raw


def label_set(values: Iterable[str] | None) -> frozenset[str]:
    return frozenset(normalize_label(v) for v in (values or ()) if str(v or "").strip())


def is_blocked(prefs: CategoryPreferences, category: str) -> bool:
    return normalize_label(category) in label_set(prefs.blocked)


def evaluate_category_preference(
    prefs: CategoryPreferences,
    category: str,
    *,
    baseline: float = 50.0,
    preferred_bonus: float = 30.0,
    disliked_penalty: float = -25.0,
    blocked_score: float = 0.0,
) -> tuple[float, list[str]]:
    """Score how much a member wants a task category.

    Returns ``(score, flags)``; flags name the matched preference lists so
    callers can surface them as reasons. Blocked wins over everything else.
    """
    cat = normalize_label(category)
    if is_blocked(prefs, category):
        return float(blocked_score), ["blocked_category"]

    score = float(baseline)
    flags: list[str] = []
    if cat in label_set(prefs.preferred):
        score += preferred_bonus
        flags.append("preferred_category")
    if cat in label_set(prefs.disliked):
        score += disliked_penalty
        flags.append("disliked_category")
    return max(0.0, min(100.0, score)), flags
