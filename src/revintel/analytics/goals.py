"""Effective goals: manual overrides resolved against computed defaults.

An override is an optional value; ``resolve_goal`` is the single place where
"override if set, else default" is decided, so no ambient mutable state is
needed to remember which goals a user edited.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from src.revintel.analytics.schemas import GoalOverrides, GoalTargets
from src.revintel.config import Settings, get_settings


def resolve_goal(override: float | None, default: float) -> float:
    return default if override is None else override


def default_revenue_goal(active_years: Iterable[int], settings: Settings) -> float:
    """Sum of annual goals for the active years, or the fallback goal."""
    total = sum(settings.ANNUAL_GOALS.get(year, 0) for year in active_years)
    return total or settings.FALLBACK_REVENUE_GOAL


def default_pipeline_goal(active_years: Iterable[int], settings: Settings) -> float:
    """1.5x the annual goal total, rounded up to the next million."""
    total = sum(settings.ANNUAL_GOALS.get(year, 0) for year in active_years)
    if not total:
        return settings.FALLBACK_PIPELINE_GOAL
    return math.ceil(total * 1.5 / 1_000_000) * 1_000_000


def resolve_goals(
    active_years: Iterable[int],
    overrides: GoalOverrides | None = None,
    settings: Settings | None = None,
) -> GoalTargets:
    settings = settings or get_settings()
    overrides = overrides or GoalOverrides()
    years = list(active_years)
    return GoalTargets(
        revenue=resolve_goal(overrides.revenue, default_revenue_goal(years, settings)),
        pipeline=resolve_goal(overrides.pipeline, default_pipeline_goal(years, settings)),
        deal_size=resolve_goal(overrides.deal_size, settings.GOAL_DEAL_SIZE),
        win_rate=resolve_goal(overrides.win_rate, settings.GOAL_WIN_RATE),
        cycle_days=resolve_goal(overrides.cycle_days, settings.GOAL_CYCLE_DAYS),
        ndr=resolve_goal(overrides.ndr, settings.GOAL_NDR),
        gdr=resolve_goal(overrides.gdr, settings.GOAL_GDR),
    )
