"""Aggregation pipelines over the filtered deal set.

Every pipeline is a pure function of its inputs returning a frozen Pydantic
result; pipelines never share mutable state and may run in any order.
"""

from src.revintel.analytics.accounts import compute_top_accounts
from src.revintel.analytics.breakdowns import (
    loss_reason_breakdown,
    source_performance,
    territory_analysis,
    territory_trend,
    vertical_analysis,
)
from src.revintel.analytics.core import compare_periods, compute_core_metrics
from src.revintel.analytics.goals import resolve_goal, resolve_goals
from src.revintel.analytics.quota import (
    compute_rep_performance,
    compute_territory_attainment,
    resolve_rep_quota,
)
from src.revintel.analytics.retention import compute_retention, fold_ledger
from src.revintel.analytics.risk import detect_risks
from src.revintel.analytics.schemas import (
    CoreMetrics,
    GoalOverrides,
    GoalTargets,
    PeriodComparison,
    RepPerformance,
    RetentionMetrics,
    RiskReport,
    SegmentPerformance,
    TerritoryAttainment,
    TopAccountsAnalysis,
)

__all__ = [
    "CoreMetrics",
    "GoalOverrides",
    "GoalTargets",
    "PeriodComparison",
    "RepPerformance",
    "RetentionMetrics",
    "RiskReport",
    "SegmentPerformance",
    "TerritoryAttainment",
    "TopAccountsAnalysis",
    "compare_periods",
    "compute_core_metrics",
    "compute_rep_performance",
    "compute_retention",
    "compute_territory_attainment",
    "compute_top_accounts",
    "detect_risks",
    "fold_ledger",
    "loss_reason_breakdown",
    "resolve_goal",
    "resolve_goals",
    "resolve_rep_quota",
    "source_performance",
    "territory_analysis",
    "territory_trend",
    "vertical_analysis",
]
