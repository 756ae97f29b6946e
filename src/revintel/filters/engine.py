"""Filter engine: categorical allow-lists, active years and time windows.

A deal passes when it satisfies every active allow-list (conjunction across
dimensions), its fiscal year is active, and it matches at least one selected
time-period token (disjunction within the time set). Filtering preserves
input order and never touches the deals themselves.

Relative tokens (MTD/QTD/YTD) compare against ``FilterCriteria.as_of``;
when it is unset the current wall-clock date is used.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from src.revintel.deals.schemas import Deal

# ── Time Tokens ──────────────────────────────────────────────────────────────

MTD = "MTD"
QTD = "QTD"
YTD = "YTD"
ALL = "All"
SINGLETON_PERIODS: tuple[str, ...] = (MTD, QTD, YTD, ALL)
QUARTER_PERIODS: tuple[str, ...] = ("Q1", "Q2", "Q3", "Q4")


def toggle_time_period(selected: Sequence[str], token: str) -> tuple[str, ...]:
    """Apply one click on a time-period selector.

    Singleton modes replace the whole selection. Quarter tokens combine
    with each other but clear any singleton mode; removing the last
    selected quarter falls back to ``All``.
    """
    if token in SINGLETON_PERIODS:
        return (token,)
    if token not in QUARTER_PERIODS:
        raise ValueError(f"Unknown time period token: {token!r}")
    if any(s in SINGLETON_PERIODS for s in selected):
        return (token,)
    if token in selected:
        remaining = tuple(s for s in selected if s != token)
        return remaining or (ALL,)
    return tuple(s for s in selected if s not in SINGLETON_PERIODS) + (token,)


# ── Criteria ─────────────────────────────────────────────────────────────────


class FilterCriteria(BaseModel):
    """Every input the filter engine reads.

    Empty allow-lists leave their dimension unrestricted. Criteria are
    frozen and hashable so they can key memoized results.
    """

    model_config = ConfigDict(frozen=True)

    territories: frozenset[str] = frozenset()
    sources: frozenset[str] = frozenset()
    types: frozenset[str] = frozenset()
    verticals: frozenset[str] = frozenset()
    customer_relationships: frozenset[str] = frozenset()
    active_years: frozenset[int] = Field(default_factory=frozenset)
    time_periods: tuple[str, ...] = (ALL,)
    as_of: date | None = None

    def reference_date(self) -> date:
        return self.as_of or date.today()

    def has_categorical_filters(self) -> bool:
        return bool(
            self.territories
            or self.sources
            or self.types
            or self.verticals
            or self.customer_relationships
        )

    def cache_key(self) -> str:
        """Stable string form, independent of set iteration order."""
        parts = [
            ",".join(sorted(self.territories)),
            ",".join(sorted(self.sources)),
            ",".join(sorted(self.types)),
            ",".join(sorted(self.verticals)),
            ",".join(sorted(self.customer_relationships)),
            ",".join(str(y) for y in sorted(self.active_years)),
            ",".join(self.time_periods),
            self.reference_date().isoformat(),
        ]
        return "|".join(parts)


def _matches_time(deal: Deal, periods: Sequence[str], today: date) -> bool:
    if ALL in periods:
        return True
    current_quarter = math.ceil(today.month / 3)
    for period in periods:
        if period == MTD and deal.year == today.year and deal.month == today.month:
            return True
        if (
            period == QTD
            and deal.year == today.year
            and (current_quarter - 1) * 3 + 1 <= deal.month <= today.month
        ):
            return True
        if period == YTD and deal.year == today.year and deal.month <= today.month:
            return True
        if period in QUARTER_PERIODS and deal.quarter_label == period:
            return True
    return False


def matches(deal: Deal, criteria: FilterCriteria, today: date | None = None) -> bool:
    """Whether a single deal passes ``criteria``."""
    if criteria.territories and deal.territory.value not in criteria.territories:
        return False
    if criteria.sources and deal.source not in criteria.sources:
        return False
    if criteria.types and deal.deal_type.value not in criteria.types:
        return False
    if criteria.verticals and deal.vertical not in criteria.verticals:
        return False
    if (
        criteria.customer_relationships
        and deal.customer_relationship not in criteria.customer_relationships
    ):
        return False
    if deal.year not in criteria.active_years:
        return False
    return _matches_time(deal, criteria.time_periods, today or criteria.reference_date())


def apply_filters(deals: Iterable[Deal], criteria: FilterCriteria) -> tuple[Deal, ...]:
    """Order-preserving subset of ``deals`` passing ``criteria``."""
    today = criteria.reference_date()
    return tuple(d for d in deals if matches(d, criteria, today))


def _shift_year(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def prior_year_criteria(criteria: FilterCriteria, keep_filters: bool = False) -> FilterCriteria:
    """Criteria for the prior-year comparison set.

    By default only the active years carry over, each decremented by one;
    allow-lists and time periods are dropped. With ``keep_filters`` the
    other filters are kept and the reference date moves back a year, so
    relative windows (YTD etc.) compare like for like.
    """
    years = frozenset(y - 1 for y in criteria.active_years)
    as_of = _shift_year(criteria.reference_date(), -1)
    if keep_filters:
        return criteria.model_copy(update={"active_years": years, "as_of": as_of})
    return FilterCriteria(active_years=years, as_of=as_of)


def prior_year_view(
    deals: Iterable[Deal], criteria: FilterCriteria, keep_filters: bool = False
) -> tuple[Deal, ...]:
    return apply_filters(deals, prior_year_criteria(criteria, keep_filters))


# ── Filter Options ───────────────────────────────────────────────────────────


class FilterOptions(BaseModel):
    """Distinct values present in a dataset, for filter widgets."""

    model_config = ConfigDict(frozen=True)

    territories: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    verticals: tuple[str, ...] = ()
    customer_relationships: tuple[str, ...] = ()
    years: tuple[int, ...] = ()


def filter_options(deals: Iterable[Deal]) -> FilterOptions:
    deals = list(deals)
    return FilterOptions(
        territories=tuple(sorted({d.territory.value for d in deals})),
        sources=tuple(sorted({d.source for d in deals if d.source})),
        types=tuple(sorted({d.deal_type.value for d in deals})),
        verticals=tuple(sorted({d.vertical for d in deals if d.vertical})),
        customer_relationships=tuple(
            sorted({d.customer_relationship for d in deals if d.customer_relationship})
        ),
        years=tuple(sorted({d.year for d in deals})),
    )
