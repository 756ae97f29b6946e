"""Pydantic result schemas for the aggregation pipelines.

Every pipeline returns one of these frozen models. They are plain data: safe
to hand to a renderer, compare in tests, or serialize with
``model_dump_json``. Ratios that can be undefined (YoY change with no prior
revenue, retention with an empty base cohort) are ``None`` rather than 0 or
NaN.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.revintel.deals.schemas import Deal


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# -- Core ---------------------------------------------------------------------


class CoreMetrics(_Frozen):
    """Headline figures for one deal set."""

    total_revenue: float = 0.0
    won_count: int = 0
    lost_count: int = 0
    pipeline_count: int = 0
    win_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    avg_deal_size: float = 0.0
    avg_cycle: float = 0.0
    pipeline_value: float = 0.0
    forecast: float = 0.0
    goal: float = 0.0
    attainment: float = 0.0


class PeriodComparison(_Frozen):
    """Current-period metrics alongside the prior-year equivalent."""

    current: CoreMetrics
    prior: CoreMetrics
    revenue_change: float | None = None
    win_rate_change: float | None = None
    deal_size_change: float | None = None
    cycle_change: float | None = None
    pipeline_change: float | None = None


# -- Breakdowns ---------------------------------------------------------------


class SegmentPerformance(_Frozen):
    """Win/loss and revenue figures for one value of a dimension.

    ``top_loss_reason`` is only filled for verticals; ``change`` is the YoY
    revenue change, None when the segment had no prior-year revenue.
    """

    name: str
    won: int = 0
    lost: int = 0
    revenue: float = 0.0
    pipeline: float = 0.0
    win_rate: float = 0.0
    change: float | None = None
    top_loss_reason: str | None = None

    @property
    def decided(self) -> int:
        return self.won + self.lost


class LossReasonSummary(_Frozen):
    name: str
    value: float
    count: int
    pct_of_loss: float


class TerritoryTrendPoint(_Frozen):
    """Closed-won revenue per territory for one ``YYYY-Qn`` period."""

    period: str
    revenue_by_territory: dict[str, float] = Field(default_factory=dict)


# -- Accounts -----------------------------------------------------------------


class AccountConcentration(_Frozen):
    name: str
    revenue: float
    pipeline: float
    vertical: str
    change: float | None = None
    pct_of_business: float = 0.0


class ConcentrationPoint(_Frozen):
    year: int
    pct_of_business: float


class TopAccountsAnalysis(_Frozen):
    """Top-N account cohort and its share of revenue over time."""

    accounts: tuple[AccountConcentration, ...] = ()
    trend: tuple[ConcentrationPoint, ...] = ()
    top_share: float = 0.0
    latest_share: float = 0.0
    high_concentration: bool = False
    insight: str = ""


# -- Retention ----------------------------------------------------------------


class RetentionMetrics(_Frozen):
    """Dollar and logo retention of the prior-year cohort.

    When ``has_data`` is False every ratio is None: the base cohort was
    empty (or no year was active) and retention is undefined.
    """

    has_data: bool = False
    prior_year: int | None = None
    current_year: int | None = None
    ndr: float | None = None
    gdr: float | None = None
    net_logo_retention: float | None = None
    gross_logo_retention: float | None = None
    base_revenue: float = 0.0
    retained_revenue: float = 0.0
    expansion_revenue: float = 0.0
    contraction_revenue: float = 0.0
    churned_revenue: float = 0.0
    new_revenue: float = 0.0
    base_logos: int = 0
    retained_logos: int = 0
    churned_logos: int = 0
    new_logos: int = 0
    total_current_logos: int = 0


# -- Quota --------------------------------------------------------------------


class RepPerformance(_Frozen):
    name: str
    territory: str
    won: int = 0
    lost: int = 0
    pipeline_count: int = 0
    revenue: float = 0.0
    pipeline: float = 0.0
    quota: float = 0.0
    win_rate: float = 0.0
    attainment: float = 0.0

    @property
    def decided(self) -> int:
        return self.won + self.lost


class TerritoryAttainment(_Frozen):
    territory: str
    total_revenue: float = 0.0
    total_quota: float = 0.0
    attainment: float = 0.0
    reps: tuple[str, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def rep_count(self) -> int:
        return len(self.reps)


# -- Risk ---------------------------------------------------------------------


class RiskReport(_Frozen):
    """Independent risk lists; a deal may appear in more than one."""

    stale_deals: tuple[Deal, ...] = ()
    reps_at_risk: tuple[RepPerformance, ...] = ()
    no_activity_deals: tuple[Deal, ...] = ()
    large_deals_at_risk: tuple[Deal, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return (
            len(self.stale_deals)
            + len(self.reps_at_risk)
            + len(self.no_activity_deals)
            + len(self.large_deals_at_risk)
        )


# -- Goals --------------------------------------------------------------------


class GoalOverrides(_Frozen):
    """Manual goal edits; None means "use the computed default"."""

    revenue: float | None = None
    pipeline: float | None = None
    deal_size: float | None = None
    win_rate: float | None = None
    cycle_days: float | None = None
    ndr: float | None = None
    gdr: float | None = None


class GoalTargets(_Frozen):
    """Effective goals after overrides are resolved against defaults."""

    revenue: float
    pipeline: float
    deal_size: float
    win_rate: float
    cycle_days: float
    ndr: float
    gdr: float
