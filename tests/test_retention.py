"""Tests for retention cohort analysis.

Covers:
    - The worked example: base {A:100, B:50}, current {A:120, C:40}
    - Expansion and contraction components
    - Explicit "no data" state for an empty base cohort or no active years
    - Ledger folding from closed-won deals
"""

from __future__ import annotations

import pytest

from src.revintel.analytics.retention import compute_retention, fold_ledger
from src.revintel.deals.schemas import DealStage, DealType, Territory
from src.revintel.ingestion.normalize import build_deal

EXAMPLE_LEDGER = {
    "A": {2024: 100.0, 2025: 120.0},
    "B": {2024: 50.0},
    "C": {2025: 40.0},
}


class TestRetentionExample:
    """Worked example from the retention definition."""

    def test_dollar_retention(self) -> None:
        r = compute_retention(EXAMPLE_LEDGER, [2025])

        assert r.has_data
        assert (r.prior_year, r.current_year) == (2024, 2025)
        assert r.base_revenue == 150
        assert r.retained_revenue == 120
        assert r.churned_revenue == 50
        assert r.new_revenue == 40
        assert r.expansion_revenue == 20
        assert r.contraction_revenue == 0
        assert r.ndr == pytest.approx(0.80)
        assert r.gdr == pytest.approx(0.667, abs=1e-3)

    def test_logo_retention(self) -> None:
        r = compute_retention(EXAMPLE_LEDGER, [2024, 2025])

        assert r.base_logos == 2
        assert r.retained_logos == 1
        assert r.churned_logos == 1
        assert r.new_logos == 1
        assert r.total_current_logos == 2
        assert r.gross_logo_retention == pytest.approx(0.5)
        assert r.net_logo_retention == pytest.approx(1.0)


class TestRetentionEdges:
    def test_contraction(self) -> None:
        r = compute_retention({"A": {2024: 100.0, 2025: 70.0}}, [2025])
        assert r.contraction_revenue == 30
        assert r.churned_revenue == 0
        assert r.ndr == pytest.approx(0.7)
        assert r.gdr == 1.0

    def test_zero_revenue_not_in_cohort(self) -> None:
        r = compute_retention({"A": {2024: 0.0, 2025: 10.0}}, [2025])
        assert r.base_logos == 0
        assert r.new_logos == 1

    def test_empty_base_cohort_is_no_data(self) -> None:
        r = compute_retention({"C": {2025: 40.0}}, [2025])

        assert not r.has_data
        assert r.ndr is None
        assert r.gdr is None
        assert r.net_logo_retention is None
        assert r.gross_logo_retention is None
        assert r.new_revenue == 40

    def test_no_active_years_is_no_data(self) -> None:
        r = compute_retention(EXAMPLE_LEDGER, [])
        assert not r.has_data
        assert r.ndr is None
        assert r.current_year is None


class TestFoldLedger:
    def test_sums_won_revenue_per_account_year(self) -> None:
        def deal(account, amount, year, stage=DealStage.CLOSED_WON):
            return build_deal(
                deal_id=f"{account}-{year}-{amount}",
                name="d",
                account=account,
                rep="r",
                territory=Territory.US,
                source="Inbound",
                deal_type=DealType.NEW_BUSINESS,
                stage=stage,
                amount=amount,
                year=year,
                month=1,
                vertical="Technology",
            )

        ledger = fold_ledger(
            [
                deal("A", 60, 2024),
                deal("A", 40, 2024),
                deal("A", 120, 2025),
                deal("B", 999, 2025, DealStage.PIPELINE),
            ]
        )
        assert ledger == {"A": {2024: 100, 2025: 120}}
