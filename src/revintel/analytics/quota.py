"""Rep quota attainment and its territory rollup."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

import structlog

from src.revintel.analytics.core import safe_ratio, win_rate
from src.revintel.analytics.schemas import RepPerformance, TerritoryAttainment
from src.revintel.config import Settings, get_settings
from src.revintel.deals.schemas import Deal

logger = structlog.get_logger(__name__)


def resolve_rep_quota(
    rep: str,
    active_years: Iterable[int],
    overrides: Mapping[str, float] | None = None,
    quota_table: Mapping[str, Mapping[int, float]] | None = None,
    default: float = 500_000,
) -> float:
    """Effective quota for one rep.

    A manual override wins. Otherwise the rep's quota table is summed over
    the active years; with no active year in the table the latest listed
    year is used, and with no table entry at all the default applies.
    """
    if overrides and overrides.get(rep) is not None:
        return overrides[rep]
    by_year = (quota_table or {}).get(rep)
    if not by_year:
        return default
    years = list(active_years)
    total = sum(by_year[y] for y in years if y in by_year)
    if total:
        return total
    return by_year[max(by_year)]


def compute_rep_performance(
    deals: Sequence[Deal],
    active_years: Iterable[int],
    quota_overrides: Mapping[str, float] | None = None,
    settings: Settings | None = None,
) -> list[RepPerformance]:
    """Per-rep results for reps on the known roster, by revenue desc.

    Deals owned by anyone off the roster are ignored entirely.
    """
    settings = settings or get_settings()
    roster = {name.lower(): name for name in settings.KNOWN_REPS}
    years = list(active_years)

    stats: dict[str, dict] = {}
    skipped = 0
    for deal in deals:
        name = roster.get(deal.rep.strip().lower())
        if name is None:
            skipped += 1
            continue
        rep = stats.setdefault(
            name,
            {
                "territory": deal.territory.value,
                "won": 0,
                "lost": 0,
                "pipeline_count": 0,
                "revenue": 0.0,
                "pipeline": 0.0,
            },
        )
        if deal.is_won:
            rep["won"] += 1
            rep["revenue"] += deal.amount
        elif deal.is_lost:
            rep["lost"] += 1
        else:
            rep["pipeline_count"] += 1
            rep["pipeline"] += deal.amount

    if skipped:
        logger.debug("analytics.reps_off_roster", deals=skipped)

    results = []
    for name, rep in stats.items():
        quota = resolve_rep_quota(
            name,
            years,
            overrides=quota_overrides,
            quota_table=settings.REP_QUOTAS,
            default=settings.DEFAULT_REP_QUOTA,
        )
        results.append(
            RepPerformance(
                name=name,
                win_rate=win_rate(rep["won"], rep["lost"]),
                quota=quota,
                attainment=safe_ratio(rep["revenue"], quota),
                **rep,
            )
        )
    return sorted(results, key=lambda r: r.revenue, reverse=True)


def compute_territory_attainment(
    reps: Sequence[RepPerformance],
    territory_quotas: Mapping[str, float] | None = None,
) -> list[TerritoryAttainment]:
    """Roll rep revenue and quota up per territory, best attainment first.

    An explicit territory quota replaces the summed rep quotas.
    """
    totals: dict[str, dict] = {}
    for rep in reps:
        entry = totals.setdefault(rep.territory, {"revenue": 0.0, "quota": 0.0, "reps": []})
        entry["revenue"] += rep.revenue
        entry["quota"] += rep.quota
        entry["reps"].append(rep.name)

    overrides = territory_quotas or {}
    results = []
    for territory, entry in totals.items():
        quota = overrides.get(territory, entry["quota"])
        results.append(
            TerritoryAttainment(
                territory=territory,
                total_revenue=entry["revenue"],
                total_quota=quota,
                attainment=safe_ratio(entry["revenue"], quota),
                reps=tuple(entry["reps"]),
            )
        )
    return sorted(results, key=lambda t: t.attainment, reverse=True)
