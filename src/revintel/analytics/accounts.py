"""Top-N account concentration.

The cohort is the current top-N by closed-won revenue in the filtered set.
The concentration trend then measures, for every supported year, how much of
that year's closed-won revenue (across the full dataset) came from the same
fixed cohort.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

import structlog

from src.revintel.analytics.core import pct_change, safe_ratio
from src.revintel.analytics.schemas import (
    AccountConcentration,
    ConcentrationPoint,
    TopAccountsAnalysis,
)
from src.revintel.config import get_settings
from src.revintel.deals.schemas import Deal

logger = structlog.get_logger(__name__)

HIGH_CONCENTRATION_SHARE = 0.5


def _concentration_insight(share: float, top_n: int) -> str:
    pct = round(share * 100)
    if share > HIGH_CONCENTRATION_SHARE:
        return f"High concentration: Top {top_n} logos = {pct}% of revenue."
    return f"Top {top_n} logos = {pct}% of revenue."


def compute_top_accounts(
    deals: Sequence[Deal],
    prior_deals: Sequence[Deal] = (),
    all_deals: Sequence[Deal] | None = None,
    top_n: int | None = None,
    years: Iterable[int] | None = None,
) -> TopAccountsAnalysis:
    """Rank accounts and measure the cohort's share of revenue over time.

    Args:
        deals: Filtered deal set.
        prior_deals: Prior-year counterpart, for per-account YoY change.
        all_deals: Unfiltered dataset used for the concentration trend.
            Defaults to ``deals``.
        top_n: Cohort size (default from settings).
        years: Years in the trend (default: supported year range).
    """
    settings = get_settings()
    top_n = top_n if top_n is not None else settings.TOP_N_ACCOUNTS
    trend_years = list(years) if years is not None else settings.supported_years
    all_deals = deals if all_deals is None else all_deals

    revenue: dict[str, float] = {}
    pipeline: dict[str, float] = defaultdict(float)
    vertical: dict[str, str] = {}
    for deal in deals:
        vertical.setdefault(deal.account, deal.vertical)
        if deal.is_won:
            revenue[deal.account] = revenue.get(deal.account, 0.0) + deal.amount
        elif deal.is_open:
            pipeline[deal.account] += deal.amount

    # Pipeline-only accounts rank after every account with revenue.
    for account in pipeline:
        revenue.setdefault(account, 0.0)

    prior_revenue: dict[str, float] = defaultdict(float)
    for deal in prior_deals:
        if deal.is_won:
            prior_revenue[deal.account] += deal.amount

    total_revenue = sum(d.amount for d in deals if d.is_won)
    ranked = sorted(revenue.items(), key=lambda item: item[1], reverse=True)[:top_n]
    accounts = tuple(
        AccountConcentration(
            name=name,
            revenue=amount,
            pipeline=pipeline.get(name, 0.0),
            vertical=vertical.get(name, ""),
            change=pct_change(amount, prior_revenue.get(name, 0.0)),
            pct_of_business=safe_ratio(amount, total_revenue),
        )
        for name, amount in ranked
    )

    cohort = {a.name for a in accounts}
    trend = []
    for year in trend_years:
        year_total = 0.0
        cohort_total = 0.0
        for deal in all_deals:
            if deal.is_won and deal.year == year:
                year_total += deal.amount
                if deal.account in cohort:
                    cohort_total += deal.amount
        trend.append(
            ConcentrationPoint(year=year, pct_of_business=safe_ratio(cohort_total, year_total))
        )

    latest = trend[-1].pct_of_business if trend else 0.0
    top_share = safe_ratio(sum(a.revenue for a in accounts), total_revenue)

    logger.debug(
        "analytics.top_accounts_computed",
        accounts=len(accounts),
        top_share=round(top_share, 4),
        latest_share=round(latest, 4),
    )

    return TopAccountsAnalysis(
        accounts=accounts,
        trend=tuple(trend),
        top_share=top_share,
        latest_share=latest,
        high_concentration=latest > HIGH_CONCENTRATION_SHARE,
        insight=_concentration_insight(latest, top_n),
    )
