"""Per-dimension breakdowns: vertical, territory, lead source, loss reason.

Each breakdown groups the filtered deals by one dimension and compares
closed-won revenue against the same group in the prior-year set.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Callable, Sequence

from src.revintel.analytics.core import pct_change, safe_ratio, split_by_stage, win_rate
from src.revintel.analytics.schemas import (
    LossReasonSummary,
    SegmentPerformance,
    TerritoryTrendPoint,
)
from src.revintel.deals.schemas import Deal

# Archival bookkeeping reasons, not real loss causes.
_IGNORED_LOSS_MARKERS = ("OLD", "Mass Archive")


class _Bucket:
    __slots__ = ("won", "lost", "revenue", "pipeline", "loss_reasons")

    def __init__(self) -> None:
        self.won = 0
        self.lost = 0
        self.revenue = 0.0
        self.pipeline = 0.0
        self.loss_reasons: Counter[str] = Counter()


def _group(deals: Sequence[Deal], key: Callable[[Deal], str]) -> dict[str, _Bucket]:
    buckets: dict[str, _Bucket] = {}
    for deal in deals:
        name = key(deal)
        if not name:
            continue
        bucket = buckets.setdefault(name, _Bucket())
        if deal.is_won:
            bucket.won += 1
            bucket.revenue += deal.amount
        elif deal.is_lost:
            bucket.lost += 1
            if deal.loss_reason:
                bucket.loss_reasons[deal.loss_reason] += 1
        else:
            bucket.pipeline += deal.amount
    return buckets


def _prior_revenue(deals: Sequence[Deal], key: Callable[[Deal], str]) -> dict[str, float]:
    revenue: dict[str, float] = defaultdict(float)
    for deal in deals:
        if deal.is_won:
            revenue[key(deal)] += deal.amount
    return revenue


def _segments(
    deals: Sequence[Deal],
    prior_deals: Sequence[Deal],
    key: Callable[[Deal], str],
    with_loss_reason: bool = False,
) -> list[SegmentPerformance]:
    prior = _prior_revenue(prior_deals, key)
    segments = []
    for name, b in _group(deals, key).items():
        top_loss = None
        if with_loss_reason and b.loss_reasons:
            # most_common is stable, so ties keep first-seen order
            top_loss = b.loss_reasons.most_common(1)[0][0]
        segments.append(
            SegmentPerformance(
                name=name,
                won=b.won,
                lost=b.lost,
                revenue=b.revenue,
                pipeline=b.pipeline,
                win_rate=win_rate(b.won, b.lost),
                change=pct_change(b.revenue, prior.get(name, 0.0)),
                top_loss_reason=top_loss,
            )
        )
    return segments


def vertical_analysis(
    deals: Sequence[Deal], prior_deals: Sequence[Deal] = ()
) -> list[SegmentPerformance]:
    """Per-vertical performance with modal loss reason, by revenue desc."""
    segments = _segments(deals, prior_deals, lambda d: d.vertical, with_loss_reason=True)
    return sorted(segments, key=lambda s: s.revenue, reverse=True)


def territory_analysis(
    deals: Sequence[Deal], prior_deals: Sequence[Deal] = ()
) -> list[SegmentPerformance]:
    """Per-territory performance, by revenue desc."""
    segments = _segments(deals, prior_deals, lambda d: d.territory.value)
    return sorted(segments, key=lambda s: s.revenue, reverse=True)


def source_performance(
    deals: Sequence[Deal], prior_deals: Sequence[Deal] = ()
) -> list[SegmentPerformance]:
    """Per-lead-source performance, best win rate first."""
    segments = _segments(deals, prior_deals, lambda d: d.source)
    return sorted(segments, key=lambda s: s.win_rate, reverse=True)


def loss_reason_breakdown(deals: Sequence[Deal]) -> list[LossReasonSummary]:
    """Lost value and count per loss reason, largest lost value first."""
    _, lost, _ = split_by_stage(deals)
    value: dict[str, float] = defaultdict(float)
    count: Counter[str] = Counter()
    for deal in lost:
        reason = deal.loss_reason
        if not reason or any(m in reason for m in _IGNORED_LOSS_MARKERS):
            continue
        value[reason] += deal.amount
        count[reason] += 1

    summaries = [
        LossReasonSummary(
            name=reason,
            value=amount,
            count=count[reason],
            pct_of_loss=safe_ratio(count[reason], len(lost)),
        )
        for reason, amount in value.items()
    ]
    return sorted(summaries, key=lambda s: s.value, reverse=True)


def territory_trend(deals: Sequence[Deal]) -> list[TerritoryTrendPoint]:
    """Closed-won revenue per territory per ``YYYY-Qn``, oldest first."""
    periods: dict[str, dict[str, float]] = {}
    for deal in deals:
        if not deal.is_won:
            continue
        period = f"{deal.year}-{deal.quarter_label}"
        by_territory = periods.setdefault(period, {})
        territory = deal.territory.value
        by_territory[territory] = by_territory.get(territory, 0.0) + deal.amount
    return [
        TerritoryTrendPoint(period=period, revenue_by_territory=periods[period])
        for period in sorted(periods)
    ]
