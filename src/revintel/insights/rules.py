"""Priority-ordered insight and action rules.

Insights come from an ordered list of ``InsightRule`` entries, each a
(predicate, builder) pair over a read-only ``InsightContext``. Rules are
evaluated top-down, every rule fires at most once, and the collected text is
capped at ``MAX_INSIGHTS`` insights and ``MAX_ACTIONS`` actions.

The primary action is a separate, shorter chain that returns the first match
only.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict

from src.revintel.analytics.schemas import (
    CoreMetrics,
    GoalTargets,
    LossReasonSummary,
    RepPerformance,
    SegmentPerformance,
)
from src.revintel.insights.formatting import fmt_money, fmt_pct

logger = structlog.get_logger(__name__)

MAX_INSIGHTS = 3
MAX_ACTIONS = 3

WIN_RATE_SHIFT = 0.05
VERTICAL_OUTLIER_GAP = 0.12
VERTICAL_MIN_DEALS = 3
TERRITORY_DECLINE = -0.20
CYCLE_OVERRUN = 1.25
MIN_PIPELINE_COVERAGE = 2.5

CRITICAL_VERTICAL_WIN_RATE = 0.35
CRITICAL_VERTICAL_MIN_DECIDED = 5
PRICE_LOSS_MIN_DEALS = 3
MIN_REPS_AT_RISK = 2
STANDOUT_VERTICAL_GAP = 0.15

LOSS_REASON_ACTIONS: dict[str, str] = {
    "Price": "Strengthen ROI narrative",
    "Competition": "Build competitive battlecards",
    "No Budget": "Qualify budget earlier",
    "Product Fit": "Tighten ICP definition",
}


# ── Context ──────────────────────────────────────────────────────────────────


class InsightContext(BaseModel):
    """Aggregate outputs the rules read. Segment lists keep pipeline order."""

    model_config = ConfigDict(frozen=True)

    current: CoreMetrics
    prior: CoreMetrics
    goals: GoalTargets
    verticals: tuple[SegmentPerformance, ...] = ()
    territories: tuple[SegmentPerformance, ...] = ()
    sources: tuple[SegmentPerformance, ...] = ()
    loss_reasons: tuple[LossReasonSummary, ...] = ()
    reps_at_risk: tuple[RepPerformance, ...] = ()

    @property
    def gap(self) -> float:
        """Revenue goal minus forecast; positive means short of goal."""
        return self.goals.revenue - self.current.forecast

    @property
    def win_rate_delta(self) -> float | None:
        """Win-rate change in points vs the prior year, None with no prior decisions."""
        if not (self.prior.won_count + self.prior.lost_count):
            return None
        return self.current.win_rate - self.prior.win_rate

    @property
    def top_loss(self) -> LossReasonSummary | None:
        return self.loss_reasons[0] if self.loss_reasons else None

    @property
    def pipeline_coverage(self) -> float:
        remaining = self.goals.revenue - self.current.total_revenue
        if remaining <= 0:
            return math.inf
        return self.current.pipeline_value / remaining

    def struggling_vertical(self) -> SegmentPerformance | None:
        threshold = self.current.win_rate - VERTICAL_OUTLIER_GAP
        return next(
            (
                v
                for v in self.verticals
                if v.win_rate < threshold and v.decided >= VERTICAL_MIN_DEALS
            ),
            None,
        )

    def strong_vertical(self) -> SegmentPerformance | None:
        threshold = self.current.win_rate + VERTICAL_OUTLIER_GAP
        return next(
            (v for v in self.verticals if v.win_rate > threshold and v.won >= VERTICAL_MIN_DEALS),
            None,
        )

    def declining_territory(self) -> SegmentPerformance | None:
        return next(
            (
                t
                for t in self.territories
                if t.change is not None and t.change < TERRITORY_DECLINE
            ),
            None,
        )


# ── Insight Rules ────────────────────────────────────────────────────────────

RuleOutput = tuple[str | None, str | None]
NO_OUTPUT: RuleOutput = (None, None)


@dataclass(frozen=True)
class InsightRule:
    """One (predicate, builder) pair; ``build`` returns (insight, action)."""

    name: str
    predicate: Callable[[InsightContext], bool]
    build: Callable[[InsightContext], RuleOutput]


def _goal_gap(ctx: InsightContext) -> RuleOutput:
    gap = ctx.gap
    if gap > 0:
        deal_size = ctx.current.avg_deal_size
        needed = math.ceil(gap / deal_size) if deal_size > 0 else 0
        return f"{fmt_money(gap)} gap to goal ({needed} deals needed)", None
    return f"On track to exceed goal by {fmt_money(abs(gap))}", None


def _win_rate_dropped(ctx: InsightContext) -> bool:
    delta = ctx.win_rate_delta
    return delta is not None and delta < -WIN_RATE_SHIFT and ctx.top_loss is not None


def _win_rate_drop(ctx: InsightContext) -> RuleOutput:
    loss = ctx.top_loss
    if loss is None:
        return NO_OUTPUT
    points = abs(ctx.win_rate_delta or 0.0) * 100
    worst = next((v for v in ctx.verticals if v.top_loss_reason == loss.name), None)
    insight = (
        f"Win rate down {points:.0f}pp: {loss.name} killed {loss.count} deals "
        f"({fmt_money(loss.value)})"
    )
    if worst is not None:
        insight += f", worst in {worst.name}"
    return insight, LOSS_REASON_ACTIONS.get(loss.name)


def _win_rate_rose(ctx: InsightContext) -> bool:
    delta = ctx.win_rate_delta
    return delta is not None and delta > WIN_RATE_SHIFT and bool(ctx.sources)


def _win_rate_rise(ctx: InsightContext) -> RuleOutput:
    best = ctx.sources[0]
    points = (ctx.win_rate_delta or 0.0) * 100
    return (
        f"Win rate up {points:.0f}pp: {best.name} leading at {fmt_pct(best.win_rate)}",
        f"Shift 20% more budget to {best.name}",
    )


def _struggling_vertical(ctx: InsightContext) -> RuleOutput:
    v = ctx.struggling_vertical()
    if v is None:
        return NO_OUTPUT
    insight = f"{v.name} underperforming at {fmt_pct(v.win_rate)} WR"
    if v.top_loss_reason:
        insight += f" ({v.top_loss_reason})"
    return insight, f"Review {v.name} objection handling"


def _strong_vertical(ctx: InsightContext) -> RuleOutput:
    v = ctx.strong_vertical()
    if v is None:
        return NO_OUTPUT
    return f"{v.name} outperforming at {fmt_pct(v.win_rate)} WR", f"Increase {v.name} pipeline 20%"


def _territory_decline(ctx: InsightContext) -> RuleOutput:
    t = ctx.declining_territory()
    if t is None or t.change is None:
        return NO_OUTPUT
    return (
        f"{t.name} down {abs(t.change) * 100:.0f}% YoY",
        f"Review {t.name} pipeline coverage",
    )


def _cycle_overrun(ctx: InsightContext) -> RuleOutput:
    extra = round(ctx.current.avg_cycle - ctx.goals.cycle_days)
    return f"Sales cycle {extra}d over goal", "Implement 45-day deal reviews"


def _low_coverage(ctx: InsightContext) -> RuleOutput:
    return f"Pipeline coverage only {ctx.pipeline_coverage:.1f}x", "Accelerate top-of-funnel"


INSIGHT_RULES: tuple[InsightRule, ...] = (
    InsightRule("goal_gap", lambda ctx: True, _goal_gap),
    InsightRule("win_rate_drop", _win_rate_dropped, _win_rate_drop),
    InsightRule(
        "win_rate_rise",
        lambda ctx: not _win_rate_dropped(ctx) and _win_rate_rose(ctx),
        _win_rate_rise,
    ),
    InsightRule(
        "struggling_vertical",
        lambda ctx: ctx.struggling_vertical() is not None,
        _struggling_vertical,
    ),
    InsightRule(
        "strong_vertical",
        lambda ctx: ctx.struggling_vertical() is None and ctx.strong_vertical() is not None,
        _strong_vertical,
    ),
    InsightRule(
        "territory_decline",
        lambda ctx: ctx.declining_territory() is not None,
        _territory_decline,
    ),
    InsightRule(
        "cycle_overrun",
        lambda ctx: ctx.current.avg_cycle > ctx.goals.cycle_days * CYCLE_OVERRUN,
        _cycle_overrun,
    ),
    InsightRule(
        "low_pipeline_coverage",
        lambda ctx: ctx.gap > 0 and ctx.pipeline_coverage < MIN_PIPELINE_COVERAGE,
        _low_coverage,
    ),
)


class InsightSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    insights: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    fired: tuple[str, ...] = ()


def generate_insights(
    ctx: InsightContext,
    rules: Sequence[InsightRule] = INSIGHT_RULES,
) -> InsightSummary:
    """Evaluate ``rules`` in order and collect capped insight/action text."""
    insights: list[str] = []
    actions: list[str] = []
    fired: list[str] = []
    for rule in rules:
        if len(insights) >= MAX_INSIGHTS and len(actions) >= MAX_ACTIONS:
            break
        if not rule.predicate(ctx):
            continue
        insight, action = rule.build(ctx)
        if not insight and not action:
            continue
        fired.append(rule.name)
        if insight and len(insights) < MAX_INSIGHTS:
            insights.append(insight)
        if action and len(actions) < MAX_ACTIONS:
            actions.append(action)

    logger.debug("insights.generated", fired=fired, insights=len(insights), actions=len(actions))
    return InsightSummary(insights=tuple(insights), actions=tuple(actions), fired=tuple(fired))


# ── Primary Action ───────────────────────────────────────────────────────────


class ActionSeverity(str, Enum):
    DANGER = "danger"
    WARNING = "warning"
    SUCCESS = "success"


class PrimaryAction(BaseModel):
    """The single most important recommendation, with what it points at."""

    model_config = ConfigDict(frozen=True)

    severity: ActionSeverity
    title: str
    description: str
    focus: tuple[str, ...] = ()


def _critical_vertical(ctx: InsightContext) -> PrimaryAction | None:
    v = next(
        (
            v
            for v in ctx.verticals
            if v.win_rate < CRITICAL_VERTICAL_WIN_RATE
            and v.decided >= CRITICAL_VERTICAL_MIN_DECIDED
        ),
        None,
    )
    if v is None:
        return None
    description = f"{v.lost} losses"
    if v.top_loss_reason:
        description += f", top: {v.top_loss_reason}"
    return PrimaryAction(
        severity=ActionSeverity.DANGER,
        title=f"{v.name} win rate critical: {fmt_pct(v.win_rate)}",
        description=description + ".",
        focus=(v.name,),
    )


def _price_leak(ctx: InsightContext) -> PrimaryAction | None:
    loss = ctx.top_loss
    if loss is None or loss.name != "Price" or loss.count < PRICE_LOSS_MIN_DEALS:
        return None
    return PrimaryAction(
        severity=ActionSeverity.DANGER,
        title="Pricing is your biggest leak",
        description=f"{loss.count} deals ({fmt_money(loss.value)}) lost.",
        focus=(loss.name,),
    )


def _reps_at_risk(ctx: InsightContext) -> PrimaryAction | None:
    reps = ctx.reps_at_risk
    if len(reps) < MIN_REPS_AT_RISK:
        return None
    at_risk = sum(r.revenue for r in reps)
    return PrimaryAction(
        severity=ActionSeverity.WARNING,
        title=f"{len(reps)} reps below 50% quota",
        description=(
            f"{fmt_money(at_risk)} in revenue at risk. "
            "Review territory coverage and deal support."
        ),
        focus=tuple(r.name for r in reps),
    )


def _standout_vertical(ctx: InsightContext) -> PrimaryAction | None:
    threshold = ctx.current.win_rate + STANDOUT_VERTICAL_GAP
    v = next(
        (v for v in ctx.verticals if v.win_rate > threshold and v.won >= VERTICAL_MIN_DEALS),
        None,
    )
    if v is None:
        return None
    return PrimaryAction(
        severity=ActionSeverity.SUCCESS,
        title=f"Double down on {v.name}",
        description=f"{fmt_pct(v.win_rate)} win rate.",
        focus=(v.name,),
    )


PRIMARY_ACTION_CHAIN: tuple[Callable[[InsightContext], PrimaryAction | None], ...] = (
    _critical_vertical,
    _price_leak,
    _reps_at_risk,
    _standout_vertical,
)


def select_primary_action(ctx: InsightContext) -> PrimaryAction | None:
    """First match in priority order, or None."""
    for selector in PRIMARY_ACTION_CHAIN:
        action = selector(ctx)
        if action is not None:
            return action
    return None
