"""Retention cohort analysis over the account-year revenue ledger.

The base cohort is every account with nonzero revenue in the prior year;
the current cohort is every account with nonzero revenue in the current
(latest active) year. Dollar and logo retention are both measured against
the base cohort.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.revintel.analytics.schemas import RetentionMetrics
from src.revintel.deals.schemas import AccountYearLedger, Deal

logger = structlog.get_logger(__name__)


def fold_ledger(deals: Iterable[Deal]) -> AccountYearLedger:
    """Sum closed-won revenue per account per year."""
    ledger: AccountYearLedger = {}
    for deal in deals:
        if not deal.is_won:
            continue
        years = ledger.setdefault(deal.account, {})
        years[deal.year] = years.get(deal.year, 0.0) + deal.amount
    return ledger


def _cohort(ledger: AccountYearLedger, year: int) -> dict[str, float]:
    return {
        account: years[year]
        for account, years in ledger.items()
        if years.get(year, 0)
    }


def compute_retention(
    ledger: AccountYearLedger, active_years: Iterable[int]
) -> RetentionMetrics:
    """Dollar and logo retention from the prior year into the latest active year."""
    years = list(active_years)
    if not years:
        return RetentionMetrics()

    current_year = max(years)
    prior_year = current_year - 1
    base = _cohort(ledger, prior_year)
    current = _cohort(ledger, current_year)

    retained = expansion = contraction = churned = 0.0
    retained_logos = 0
    for account, prior_amount in base.items():
        current_amount = current.get(account, 0.0)
        retained += current_amount
        if current_amount > prior_amount:
            expansion += current_amount - prior_amount
        elif 0 < current_amount < prior_amount:
            contraction += prior_amount - current_amount
        if current_amount > 0:
            retained_logos += 1
        else:
            churned += prior_amount

    new_accounts = [a for a in current if a not in base]
    new_revenue = sum(current[a] for a in new_accounts)
    base_revenue = sum(base.values())
    base_logos = len(base)

    fields = dict(
        prior_year=prior_year,
        current_year=current_year,
        base_revenue=base_revenue,
        retained_revenue=retained,
        expansion_revenue=expansion,
        contraction_revenue=contraction,
        churned_revenue=churned,
        new_revenue=new_revenue,
        base_logos=base_logos,
        retained_logos=retained_logos,
        churned_logos=base_logos - retained_logos,
        new_logos=len(new_accounts),
        total_current_logos=len(current),
    )

    if not base_logos or base_revenue <= 0:
        logger.info(
            "analytics.retention_no_base_cohort",
            prior_year=prior_year,
            current_year=current_year,
        )
        return RetentionMetrics(has_data=False, **fields)

    return RetentionMetrics(
        has_data=True,
        ndr=retained / base_revenue,
        gdr=(base_revenue - churned) / base_revenue,
        net_logo_retention=(retained_logos + len(new_accounts)) / base_logos,
        gross_logo_retention=retained_logos / base_logos,
        **fields,
    )
