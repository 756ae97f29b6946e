"""Rule-based risk detection over open pipeline and rep attainment."""

from __future__ import annotations

from collections.abc import Sequence

from src.revintel.analytics.schemas import RepPerformance, RiskReport
from src.revintel.deals.schemas import Deal

STALE_AGE_DAYS = 60
STALE_MIN_AMOUNT = 30_000
REP_RISK_ATTAINMENT = 0.5
REP_RISK_MIN_DECIDED = 2
INACTIVITY_DAYS = 14
INACTIVITY_MIN_AMOUNT = 50_000
LARGE_DEAL_AMOUNT = 100_000
LARGE_DEAL_AGE_DAYS = 45
LARGE_DEAL_MAX_PROBABILITY = 0.5


def is_stale(deal: Deal) -> bool:
    return deal.days_in_pipeline > STALE_AGE_DAYS and deal.amount > STALE_MIN_AMOUNT


def is_rep_at_risk(rep: RepPerformance) -> bool:
    return rep.attainment < REP_RISK_ATTAINMENT and rep.decided >= REP_RISK_MIN_DECIDED


def lacks_activity(deal: Deal) -> bool:
    return (
        deal.last_activity_days > INACTIVITY_DAYS
        and deal.amount > INACTIVITY_MIN_AMOUNT
    )


def is_large_at_risk(deal: Deal) -> bool:
    # Unknown probability never flags a deal.
    return (
        deal.amount > LARGE_DEAL_AMOUNT
        and deal.days_in_pipeline > LARGE_DEAL_AGE_DAYS
        and deal.probability is not None
        and deal.probability < LARGE_DEAL_MAX_PROBABILITY
    )


def detect_risks(deals: Sequence[Deal], reps: Sequence[RepPerformance]) -> RiskReport:
    """Evaluate each risk predicate independently; lists may overlap."""
    pipeline = [d for d in deals if d.is_open]
    return RiskReport(
        stale_deals=tuple(
            sorted((d for d in pipeline if is_stale(d)), key=lambda d: d.amount, reverse=True)
        ),
        reps_at_risk=tuple(r for r in reps if is_rep_at_risk(r)),
        no_activity_deals=tuple(d for d in pipeline if lacks_activity(d)),
        large_deals_at_risk=tuple(d for d in pipeline if is_large_at_risk(d)),
    )
