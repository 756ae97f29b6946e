"""Tests for core metrics, period comparison and goal resolution."""

from __future__ import annotations

import pytest

from src.revintel.analytics.core import (
    compare_periods,
    compute_core_metrics,
    pct_change,
    win_rate,
)
from src.revintel.analytics.goals import (
    default_pipeline_goal,
    default_revenue_goal,
    resolve_goal,
    resolve_goals,
)
from src.revintel.analytics.schemas import GoalOverrides
from src.revintel.config import get_settings
from src.revintel.deals.schemas import DealStage, DealType, Territory
from src.revintel.ingestion.normalize import build_deal

_seq = iter(range(1, 10_000))


def _deal(stage=DealStage.CLOSED_WON, amount=1000, age=30, **overrides):
    kwargs = dict(
        deal_id=f"C-{next(_seq)}",
        name="Deal",
        account="Acme",
        rep="Courtney Sands",
        territory=Territory.US,
        source="Inbound",
        deal_type=DealType.NEW_BUSINESS,
        stage=stage,
        amount=amount,
        year=2025,
        month=3,
        vertical="Technology",
        days_in_pipeline=age,
        loss_reason="Price" if stage == DealStage.CLOSED_LOST else None,
    )
    kwargs.update(overrides)
    return build_deal(**kwargs)


class TestCoreMetrics:
    """Revenue, win rate, deal size, cycle, pipeline and attainment."""

    def test_mixed_deals(self) -> None:
        deals = [
            _deal(amount=100_000, age=40),
            _deal(amount=50_000, age=20),
            _deal(DealStage.CLOSED_LOST, amount=70_000),
            _deal(DealStage.PIPELINE, amount=200_000),
        ]
        m = compute_core_metrics(deals, goal=700_000)

        assert m.total_revenue == 150_000
        assert (m.won_count, m.lost_count, m.pipeline_count) == (2, 1, 1)
        assert m.win_rate == pytest.approx(2 / 3)
        assert m.avg_deal_size == 75_000
        assert m.avg_cycle == 30
        assert m.pipeline_value == 200_000
        assert m.forecast == 350_000
        assert m.attainment == 0.5

    def test_empty_input_is_all_zero(self) -> None:
        m = compute_core_metrics([])
        assert m.total_revenue == 0
        assert m.win_rate == 0
        assert m.avg_deal_size == 0
        assert m.avg_cycle == 0
        assert m.attainment == 0

    def test_pipeline_only_has_zero_win_rate(self) -> None:
        m = compute_core_metrics([_deal(DealStage.PIPELINE)])
        assert m.win_rate == 0

    def test_win_rate_bounds(self) -> None:
        assert win_rate(0, 0) == 0
        assert win_rate(3, 0) == 1
        assert 0 <= win_rate(2, 7) <= 1


class TestPeriodComparison:
    def test_changes_against_prior(self) -> None:
        current = [_deal(amount=120_000), _deal(DealStage.CLOSED_LOST)]
        prior = [_deal(amount=100_000, year=2024)]
        comparison = compare_periods(current, prior, goal=1_000_000)

        assert comparison.revenue_change == pytest.approx(0.2)
        assert comparison.current.goal == 1_000_000
        assert comparison.prior.goal == 0

    def test_no_prior_gives_none(self) -> None:
        comparison = compare_periods([_deal()], [])
        assert comparison.revenue_change is None
        assert comparison.win_rate_change is None

    def test_pct_change(self) -> None:
        assert pct_change(150, 100) == 0.5
        assert pct_change(5, 0) is None


class TestGoals:
    """Overrides win; defaults come from the annual goal table."""

    def test_resolve_goal(self) -> None:
        assert resolve_goal(None, 10.0) == 10.0
        assert resolve_goal(0.0, 10.0) == 0.0
        assert resolve_goal(7.5, 10.0) == 7.5

    def test_default_revenue_goal_sums_active_years(self, settings) -> None:
        assert default_revenue_goal([2024, 2025], settings) == 93_000_000
        assert default_revenue_goal([2019], settings) == 55_000_000

    def test_default_pipeline_goal_rounds_up_to_million(self, settings) -> None:
        # 1.5 x 16,662,000 = 24,993,000
        assert default_pipeline_goal([2022], settings) == 25_000_000
        assert default_pipeline_goal([], settings) == 80_000_000

    def test_resolve_goals_applies_overrides(self, settings) -> None:
        goals = resolve_goals([2025], GoalOverrides(revenue=1_000_000, cycle_days=30), settings)
        assert goals.revenue == 1_000_000
        assert goals.pipeline == 83_000_000
        assert goals.cycle_days == 30
        assert goals.win_rate == 0.35
        assert goals.ndr == 1.10

    def test_annual_goals_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("REVINTEL_ANNUAL_GOALS", '{"2025": 1000000}')
        monkeypatch.setenv("REVINTEL_GOAL_WIN_RATE", "0.4")
        get_settings.cache_clear()
        settings = get_settings()

        assert settings.ANNUAL_GOALS == {2025: 1_000_000}
        goals = resolve_goals([2025], settings=settings)
        assert goals.revenue == 1_000_000
        assert goals.win_rate == 0.4
