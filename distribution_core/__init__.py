"""Household chore distribution engine: fairness, forecasting, burnout and delegation."""

from .burnout import (
    BurnoutConfig,
    auto_balance_workload,
    build_member_workload_state,
    calculate_health_status,
    calculate_workload_score,
    check_household_overload,
    check_overload,
    detect_stress_indicators,
    determine_recovery_type,
    needs_immediate_intervention,
)
from .delegation import (
    DelegationPolicy,
    calculate_skill_match_score,
    generate_delegation_suggestions,
    generate_smart_assignment,
    update_skill_profile,
)
from .fairness import (
    ScoringWeights,
    assign_tasks_batch,
    calculate_fair_share,
    calculate_fairness_score,
    calculate_gini_coefficient,
    find_best_assignment,
    generate_fairness_report,
    suggest_rebalancing,
)
from .models import DelegationStateError, HouseholdSnapshot, InvalidInputError
from .passes import PASSES, run_pass
from .predictor import (
    PredictorConfig,
    analyze_workload_trend,
    detect_anomalies,
    detect_patterns,
    predict_workload,
    predict_workload_range,
)
from .validation import snapshot_from_dict, to_jsonable

# io module -- render_xlsx stays lazy (avoids importing openpyxl at import time)
from .io import load_input, render_xlsx, write_output

__all__ = [
    "PASSES",
    "BurnoutConfig",
    "DelegationPolicy",
    "DelegationStateError",
    "HouseholdSnapshot",
    "InvalidInputError",
    "PredictorConfig",
    "ScoringWeights",
    "analyze_workload_trend",
    "assign_tasks_batch",
    "auto_balance_workload",
    "build_member_workload_state",
    "calculate_fair_share",
    "calculate_fairness_score",
    "calculate_gini_coefficient",
    "calculate_health_status",
    "calculate_skill_match_score",
    "calculate_workload_score",
    "check_household_overload",
    "check_overload",
    "detect_anomalies",
    "detect_patterns",
    "detect_stress_indicators",
    "determine_recovery_type",
    "find_best_assignment",
    "generate_delegation_suggestions",
    "generate_fairness_report",
    "generate_smart_assignment",
    "load_input",
    "needs_immediate_intervention",
    "predict_workload",
    "predict_workload_range",
    "render_xlsx",
    "run_pass",
    "snapshot_from_dict",
    "suggest_rebalancing",
    "to_jsonable",
    "update_skill_profile",
    "write_output",
]
