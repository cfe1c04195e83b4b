"""Tests for fair-share scoring, single and batch assignment, and reporting."""

from __future__ import annotations

from datetime import date

import pytest

from distribution_core.fairness import (
    ScoringWeights,
    assign_tasks_batch,
    calculate_availability_score,
    calculate_fair_share,
    calculate_fairness_score,
    calculate_gini_coefficient,
    calculate_load_balance_score,
    calculate_preference_score,
    calculate_recent_activity_score,
    find_best_assignment,
    generate_fairness_report,
    suggest_rebalancing,
)
from distribution_core.models import (
    CategoryPreferences,
    HistoricalData,
    InvalidInputError,
    MemberProfile,
    Recommendation,
    TaskAssignment,
    TaskDefinition,
    WeeklySnapshot,
)


def member(mid, max_load=10, current=0, skills=(), preferred=(), disliked=(), blocked=()):
    return MemberProfile(
        id=mid,
        name=mid.capitalize(),
        household_id="hh",
        max_weekly_load=max_load,
        current_load=current,
        skills=frozenset(skills),
        preferences=CategoryPreferences(
            preferred=frozenset(preferred),
            disliked=frozenset(disliked),
            blocked=frozenset(blocked),
        ),
    )


def task(tid, category="cleaning", priority=5, skills=()):
    return TaskDefinition(id=tid, name=tid, category=category, priority=priority, required_skills=frozenset(skills))


@pytest.fixture
def household():
    return [
        member("alice", current=3, skills=("cleaning",), preferred=("cleaning",)),
        member("bob", current=5),
        member("carol", current=2),
    ]


class TestFairShare:
    def test_equal_capacity(self, household):
        shares = calculate_fair_share(household)
        assert set(shares) == {"alice", "bob", "carol"}
        for share in shares.values():
            assert share == pytest.approx(33.33, abs=0.01)

    def test_shares_sum_to_100(self):
        shares = calculate_fair_share([member("a", max_load=7), member("b", max_load=3), member("c", max_load=11)])
        assert sum(shares.values()) == pytest.approx(100.0)

    def test_proportional_to_capacity(self):
        shares = calculate_fair_share([member("a", max_load=30), member("b", max_load=10)])
        assert shares == {"a": pytest.approx(75.0), "b": pytest.approx(25.0)}

    def test_zero_capacity_splits_equally(self):
        shares = calculate_fair_share([member("a", max_load=0), member("b", max_load=0)])
        assert shares == {"a": 50.0, "b": 50.0}

    def test_no_members(self):
        assert calculate_fair_share([]) == {}


class TestComponentScores:
    def test_load_balance_neutral_without_history(self):
        assert calculate_load_balance_score(member("a"), None, 50.0, 0) == 50.0

    def test_load_balance_under_and_over_share(self):
        under = HistoricalData("a", total_tasks=0)
        over = HistoricalData("a", total_tasks=10)
        assert calculate_load_balance_score(member("a"), under, 50.0, 10) == 100.0
        assert calculate_load_balance_score(member("a"), over, 50.0, 10) == 0.0

    def test_recent_activity_without_history(self):
        assert calculate_recent_activity_score(None) == 100.0
        assert calculate_recent_activity_score(HistoricalData("a")) == 100.0

    def test_recent_activity_at_usual_pace(self):
        weeks = tuple(WeeklySnapshot(date(2026, 1, 5 + 7 * i), 4, 120) for i in range(3))
        hist = HistoricalData("a", total_tasks=12, weekly_history=weeks)
        assert calculate_recent_activity_score(hist) == 50.0

    def test_availability(self):
        assert calculate_availability_score(member("a", max_load=10, current=3)) == 70.0
        assert calculate_availability_score(member("a", max_load=10, current=3), expected_load=2) == 50.0
        assert calculate_availability_score(member("a", max_load=0)) == 0.0
        assert calculate_availability_score(member("a", max_load=10, current=15)) == 0.0

    def test_preference(self):
        m = member("a", preferred=("Cleaning",), disliked=("laundry",), blocked=("garden",))
        assert calculate_preference_score(m, task("t1", category="cleaning")) == 80.0
        assert calculate_preference_score(m, task("t1", category="laundry")) == 25.0
        assert calculate_preference_score(m, task("t1", category="garden")) == 0.0
        assert calculate_preference_score(m, task("t1", category="kitchen")) == 50.0


class TestFairnessScore:
    def test_preferred_skilled_member(self, household):
        alice = household[0]
        score = calculate_fairness_score(alice, task("t1", skills=("cleaning",)), None, 33.33, 0)
        assert score.overall == 75.5
        assert score.recommendation is Recommendation.ASSIGN
        assert "Task matches member preferences" in score.reasons

    def test_missing_required_skill_is_skip(self, household):
        carol = household[2]
        score = calculate_fairness_score(carol, task("t1", skills=("cleaning",)), None, 33.33, 0)
        assert score.components.skill == 0.0
        assert score.recommendation is Recommendation.SKIP

    def test_blocked_category_scores_zero(self):
        m = member("a", blocked=("laundry",))
        score = calculate_fairness_score(m, task("t1", category="Laundry"), None, 50.0, 0)
        assert score.overall == 0.0
        assert score.recommendation is Recommendation.SKIP
        assert "blocked" in score.reasons[0]

    def test_full_member_is_skip(self):
        m = member("a", max_load=10, current=9)
        score = calculate_fairness_score(m, task("t1"), None, 50.0, 0)
        assert score.recommendation is Recommendation.SKIP

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError, match="sum to 1"):
            ScoringWeights(load_balance=0.5)

    def test_unknown_weight_name(self):
        with pytest.raises(ValueError, match="unknown scoring weights"):
            ScoringWeights.from_mapping({"speed": 1.0})


class TestFindBestAssignment:
    def test_clean_kitchen_goes_to_alice(self, household):
        result = find_best_assignment(task("t1", skills=("cleaning",)), household, {})
        assert result.assigned_to == "alice"
        assert result.score.overall == 75.5
        assert all(result.score.overall >= alt.score for alt in result.alternatives)
        assert [a.member_id for a in result.alternatives] == ["carol", "bob"]

    def test_no_members(self):
        assert find_best_assignment(task("t1"), [], {}) is None

    def test_tie_prefers_lower_load(self):
        members = [member("a", current=4), member("b", current=4)]
        result = find_best_assignment(task("t1"), members, {})
        assert result.assigned_to == "a"


class TestBatchAssignment:
    def test_batch_commits_load_between_tasks(self):
        members = [member("a"), member("b")]
        tasks = [task("t1"), task("t2")]

        independent = [find_best_assignment(t, members, {}).assigned_to for t in tasks]
        batch = [r.assigned_to for r in assign_tasks_batch(tasks, members, {})]

        assert independent == ["a", "a"]
        assert batch == ["a", "b"]

    def test_descending_priority_order(self):
        members = [member("a"), member("b")]
        tasks = [task("low", priority=2), task("high", priority=9), task("mid", priority=5)]
        results = assign_tasks_batch(tasks, members, {})
        assert [r.task_id for r in results] == ["high", "mid", "low"]

    def test_inputs_untouched(self):
        members = [member("a", current=1)]
        histories = {"a": HistoricalData("a", total_tasks=2)}
        assign_tasks_batch([task("t1")], members, histories)
        assert members[0].current_load == 1
        assert histories["a"].total_tasks == 2

    def test_no_members(self):
        assert assign_tasks_batch([task("t1")], [], {}) == []

    def test_duplicate_task_ids_rejected(self):
        with pytest.raises(InvalidInputError, match="duplicate task"):
            assign_tasks_batch([task("t1"), task("t1")], [member("a")], {})


class TestGini:
    def test_equal_loads(self):
        assert calculate_gini_coefficient([4, 4, 4, 4]) == 0.0

    def test_concentrated_loads(self):
        assert calculate_gini_coefficient([0, 0, 0, 100]) > 0.5

    def test_empty(self):
        assert calculate_gini_coefficient([]) == 0.0


class TestRebalancing:
    def test_moves_from_overloaded_member(self):
        members = [member("a", current=8), member("b", current=0)]
        assignments = [
            TaskAssignment(task("t1", priority=3), "a"),
            TaskAssignment(task("t2", priority=7), "a"),
        ]
        suggestions = suggest_rebalancing(members, assignments)
        assert suggestions
        first = suggestions[0]
        assert (first.from_user, first.to_user) == ("a", "b")
        assert first.task_id == "t1"

    def test_respects_blocked_category(self):
        members = [member("a", current=8), member("b", current=0, blocked=("cleaning",))]
        assignments = [TaskAssignment(task("t1"), "a")]
        assert suggest_rebalancing(members, assignments) == []

    def test_balanced_household(self):
        members = [member("a", current=3), member("b", current=3)]
        assignments = [TaskAssignment(task("t1"), "a")]
        assert suggest_rebalancing(members, assignments) == []


class TestFairnessReport:
    def test_report_flags_imbalance(self):
        members = [member("a", preferred=("cleaning",)), member("b")]
        histories = {
            "a": HistoricalData("a", total_tasks=9, task_counts={"cleaning": 9}),
            "b": HistoricalData("b", total_tasks=1, task_counts={"kitchen": 1}),
        }
        report = generate_fairness_report("hh", members, histories, date(2026, 1, 1), date(2026, 1, 31))
        by_id = {s.member_id: s for s in report.member_stats}
        assert by_id["a"].fair_share_ratio == 180.0
        assert by_id["b"].fair_share_ratio == 20.0
        assert by_id["a"].preference_alignment == 100.0
        assert report.overall_fairness_index == 20.0
        assert any(r.startswith("Consider reducing load for: A") for r in report.recommendations)
        assert "Overall distribution could be improved" in report.recommendations

    def test_report_without_history(self):
        report = generate_fairness_report("hh", [member("a")], {}, date(2026, 1, 1), date(2026, 1, 7))
        assert report.member_stats[0].fair_share_ratio == 100.0
        assert report.overall_fairness_index == 100.0
