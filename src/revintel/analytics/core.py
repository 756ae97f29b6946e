"""Core revenue metrics and the shared ratio helpers.

All helpers return 0 (or None where "undefined" must stay distinguishable)
instead of dividing by zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from src.revintel.analytics.schemas import CoreMetrics, PeriodComparison
from src.revintel.deals.schemas import Deal


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def win_rate(won: int, lost: int) -> float:
    """won / (won + lost); 0 when nothing was decided."""
    return safe_ratio(won, won + lost)


def pct_change(current: float, prior: float) -> float | None:
    """Relative change, or None when there is no prior value."""
    if not prior:
        return None
    return (current - prior) / prior


def split_by_stage(deals: Iterable[Deal]) -> tuple[list[Deal], list[Deal], list[Deal]]:
    """Partition into (won, lost, pipeline), preserving order."""
    won: list[Deal] = []
    lost: list[Deal] = []
    pipeline: list[Deal] = []
    for deal in deals:
        if deal.is_won:
            won.append(deal)
        elif deal.is_lost:
            lost.append(deal)
        else:
            pipeline.append(deal)
    return won, lost, pipeline


def compute_core_metrics(deals: Sequence[Deal], goal: float = 0.0) -> CoreMetrics:
    """Revenue, win rate, deal size, cycle, pipeline and forecast attainment."""
    won, lost, pipeline = split_by_stage(deals)
    total_revenue = sum(d.amount for d in won)
    pipeline_value = sum(d.amount for d in pipeline)
    forecast = total_revenue + pipeline_value

    return CoreMetrics(
        total_revenue=total_revenue,
        won_count=len(won),
        lost_count=len(lost),
        pipeline_count=len(pipeline),
        win_rate=win_rate(len(won), len(lost)),
        avg_deal_size=safe_ratio(total_revenue, len(won)),
        avg_cycle=safe_ratio(sum(d.days_in_pipeline for d in won), len(won)),
        pipeline_value=pipeline_value,
        forecast=forecast,
        goal=goal,
        attainment=safe_ratio(forecast, goal),
    )


def compare_periods(
    current_deals: Sequence[Deal],
    prior_deals: Sequence[Deal],
    goal: float = 0.0,
) -> PeriodComparison:
    """Core metrics for the filtered set and its prior-year counterpart."""
    current = compute_core_metrics(current_deals, goal)
    prior = compute_core_metrics(prior_deals)
    return PeriodComparison(
        current=current,
        prior=prior,
        revenue_change=pct_change(current.total_revenue, prior.total_revenue),
        win_rate_change=pct_change(current.win_rate, prior.win_rate),
        deal_size_change=pct_change(current.avg_deal_size, prior.avg_deal_size),
        cycle_change=pct_change(current.avg_cycle, prior.avg_cycle),
        pipeline_change=pct_change(current.pipeline_value, prior.pipeline_value),
    )
