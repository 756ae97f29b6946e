"""Tests for row-level normalization helpers and the shared Deal target.

Covers:
    - Ordered keyword rules for vertical, lead source and deal type
    - Stage classification including numbered pipeline stages
    - Currency -> territory, money and age parsing
    - Period resolution from close date, fiscal period or today
    - build_deal invariants (loss reason only on Closed Lost, clamping)
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from src.revintel.deals.schemas import Deal, DealStage, DealType, Territory
from src.revintel.ingestion.normalize import (
    build_deal,
    classify_stage,
    combine_loss_reason,
    normalize_deal_type,
    normalize_source,
    normalize_vertical,
    parse_age,
    parse_amount,
    parse_close_date,
    resolve_period,
    territory_from_currency,
)

TODAY = date(2025, 6, 15)


def _deal_kwargs(**overrides) -> dict:
    kwargs = dict(
        deal_id="OPP-1",
        name="Acme - New Business",
        account="Acme",
        rep="Courtney Sands",
        territory=Territory.US,
        source="Inbound",
        deal_type=DealType.NEW_BUSINESS,
        stage=DealStage.CLOSED_WON,
        amount=1000,
        year=2025,
        month=5,
        vertical="Technology",
    )
    kwargs.update(overrides)
    return kwargs


# -- Categorical Rules -------------------------------------------------------


class TestCategoricalNormalization:
    """Enumerated values pass through; others go through ordered rules."""

    def test_known_vertical_passes_through(self) -> None:
        assert normalize_vertical("Healthcare") == "Healthcare"

    def test_vertical_keyword_rules(self) -> None:
        assert normalize_vertical("Enterprise Software") == "Technology"
        assert normalize_vertical("Regional Bank") == "Financial Services"
        assert normalize_vertical("Pharma") == "Healthcare"
        assert normalize_vertical("Industrial Goods") == "Manufacturing"
        assert normalize_vertical("Consumer Goods") == "Retail"
        assert normalize_vertical("Entertainment") == "Media"

    def test_first_matching_rule_wins(self) -> None:
        """'FinTech' hits the technology rule before the finance rule."""
        assert normalize_vertical("FinTech") == "Technology"

    def test_unknown_and_empty_vertical_use_default(self) -> None:
        assert normalize_vertical("Agriculture") == "Technology"
        assert normalize_vertical("") == "Technology"
        assert normalize_vertical(None) == "Technology"

    def test_source_rules(self) -> None:
        assert normalize_source("Outbound") == "Outbound"
        assert normalize_source("Cold Call") == "Outbound"
        assert normalize_source("Channel Partner") == "Partner"
        assert normalize_source("Customer Referral") == "Referral"
        assert normalize_source("Web") == "Inbound"

    def test_deal_type_rules(self) -> None:
        assert normalize_deal_type("Renewal") is DealType.RENEWAL
        assert normalize_deal_type("Existing Business - Expansion") is DealType.EXPANSION
        assert normalize_deal_type("Cross-sell") is DealType.UPSELL
        assert normalize_deal_type("Net New") is DealType.NEW_BUSINESS
        assert normalize_deal_type(None) is DealType.NEW_BUSINESS


# -- Scalars -----------------------------------------------------------------


class TestStageClassification:
    """Closed stages map directly; numbered stages from 2 up are pipeline."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Closed Won", DealStage.CLOSED_WON),
            ("closed lost", DealStage.CLOSED_LOST),
            ("2. Qualification", DealStage.PIPELINE),
            ("5. Negotiation", DealStage.PIPELINE),
            ("1. Discovery", None),
            ("0. Lead", None),
            ("Prospecting", None),
            ("", None),
        ],
    )
    def test_classify(self, raw, expected) -> None:
        assert classify_stage(raw) == expected


class TestScalarParsing:
    """Money, age, currency and date parsing fall back instead of raising."""

    def test_currency_to_territory(self) -> None:
        assert territory_from_currency("CAD") is Territory.CANADA
        assert territory_from_currency("cad") is Territory.CANADA
        assert territory_from_currency("USD") is Territory.US
        assert territory_from_currency(None) is Territory.US

    def test_amount_strips_symbols(self) -> None:
        assert parse_amount("$50,000") == 50_000
        assert parse_amount(" 1,250.50 ") == 1250.50

    def test_amount_defaults_to_zero(self) -> None:
        assert parse_amount("n/a") == 0
        assert parse_amount("") == 0
        assert parse_amount(None) == 0
        assert parse_amount("-500") == 0

    def test_age(self) -> None:
        assert parse_age("42") == 42
        assert parse_age("17 days") == 17
        assert parse_age("unknown") == 0

    def test_close_date_formats(self) -> None:
        assert parse_close_date("2024-03-15") == date(2024, 3, 15)
        assert parse_close_date("3/15/2024") == date(2024, 3, 15)
        assert parse_close_date("2024/03/15") == date(2024, 3, 15)
        assert parse_close_date("garbage") is None
        assert parse_close_date("") is None


class TestResolvePeriod:
    """Close date, then fiscal period, then today."""

    def test_close_date_wins(self) -> None:
        assert resolve_period(date(2024, 7, 1), "FY2023 Q1", TODAY) == (2024, 7)

    def test_fiscal_period_uses_mid_quarter_month(self) -> None:
        assert resolve_period(None, "Q3-2024", TODAY) == (2024, 8)
        assert resolve_period(None, "FY2023 Q1", TODAY) == (2023, 2)

    def test_fiscal_year_without_quarter(self) -> None:
        assert resolve_period(None, "FY2022", TODAY) == (2022, 1)

    def test_falls_back_to_today(self) -> None:
        assert resolve_period(None, "", TODAY) == (2025, 6)
        assert resolve_period(None, "next year", TODAY) == (2025, 6)


class TestLossReason:
    def test_combines_primary_and_secondary(self) -> None:
        assert combine_loss_reason("Price", "Too expensive") == "Price: Too expensive"

    def test_primary_only(self) -> None:
        assert combine_loss_reason("Competition", "") == "Competition"

    def test_unknown_when_empty(self) -> None:
        assert combine_loss_reason("", None) == "Unknown"


# -- Shared Target -----------------------------------------------------------


class TestBuildDeal:
    """build_deal enforces cross-path invariants."""

    def test_loss_reason_dropped_for_non_lost(self) -> None:
        deal = build_deal(**_deal_kwargs(loss_reason="Price", loss_reason_primary="Price"))
        assert deal.loss_reason is None
        assert deal.loss_reason_primary is None

    def test_lost_without_reason_gets_unknown(self) -> None:
        deal = build_deal(**_deal_kwargs(stage=DealStage.CLOSED_LOST))
        assert deal.loss_reason == "Unknown"

    def test_quarter_derived_from_month(self) -> None:
        for month, quarter in [(1, 1), (3, 1), (4, 2), (9, 3), (12, 4)]:
            deal = build_deal(**_deal_kwargs(month=month))
            assert deal.quarter == quarter
            assert deal.quarter_label == f"Q{quarter}"

    def test_negative_amount_and_age_clamped(self) -> None:
        deal = build_deal(**_deal_kwargs(amount=-10, days_in_pipeline=-3))
        assert deal.amount == 0
        assert deal.days_in_pipeline == 0

    def test_last_activity_defaults_to_capped_age(self) -> None:
        assert build_deal(**_deal_kwargs(days_in_pipeline=90)).last_activity_days == 30
        assert build_deal(**_deal_kwargs(days_in_pipeline=12)).last_activity_days == 12

    def test_key_account_flag(self) -> None:
        assert build_deal(**_deal_kwargs(amount=150_000)).is_key_account
        assert not build_deal(**_deal_kwargs(amount=100_000)).is_key_account

    def test_direct_construction_rejects_missing_loss_reason(self) -> None:
        with pytest.raises(ValidationError):
            Deal(
                id="X",
                name="X",
                account="A",
                rep="R",
                territory=Territory.US,
                source="Inbound",
                deal_type=DealType.NEW_BUSINESS,
                stage=DealStage.CLOSED_LOST,
                amount=1,
                year=2025,
                month=1,
                vertical="Technology",
            )

    def test_deal_is_immutable(self) -> None:
        deal = build_deal(**_deal_kwargs())
        with pytest.raises(ValidationError):
            deal.amount = 5  # type: ignore[misc]
