"""Tests for AnalysisSession: async loading, supersession and snapshots.

Covers:
    - Text, file (with encoding fallback), compact and demo loads
    - A load that finishes after a newer one started is discarded
    - "No usable data" results replace the dataset without raising
    - Snapshot memoization keyed on generation and inputs
    - Summary export serialization
"""

from __future__ import annotations

import asyncio
import json
from datetime import date

import pytest

from src.revintel.analytics.schemas import GoalOverrides
from src.revintel.filters.engine import FilterCriteria
from src.revintel import service
from src.revintel.service import AnalysisSession, decode_bytes

AS_OF = date(2025, 6, 30)

EXPORT = (
    "Opportunity Name,Account Name,Opportunity Owner,Stage,Amount,Currency,Close Date,Closed Why Options\n"
    'Acme Expansion,Acme,Courtney Sands,Closed Won,"$50,000",USD,2024-03-15,\n'
    "Beaver Deal,Beaver Ltd,Zoe George,Closed Lost,30000,CAD,2024-07-01,Price\n"
    "Acme Renewal,Acme,Courtney Sands,Closed Won,80000,USD,2025-02-01,\n"
    "Delta Pipe,Delta,Natalie Hitt,3. Proposal,120000,USD,2025-05-01,\n"
)

OTHER_EXPORT = (
    "Account Name,Stage,Amount,Close Date,Currency\n"
    "Zeta,Closed Won,999,2025-01-10,USD\n"
)


def _reader(text):
    async def read():
        return text

    return read


def _compact_payload() -> dict:
    return {
        "reps": ["Courtney Sands"],
        "accounts": ["Acme", "Beta"],
        "sources": ["Inbound"],
        "verticals": ["Retail"],
        "lossReasons": ["Price"],
        "custRels": ["New"],
        "data": [
            [0, 0, 0, 0, 0, 0, 100.0, 2024, 1, 2, -1, 0, 30, 0],
            [0, 0, 0, 0, 0, 0, 120.0, 2025, 1, 2, -1, 0, 30, 0],
            [0, 1, 0, 0, 0, 0, 40.0, 2025, 1, 2, -1, 0, 30, 0],
        ],
        "accountYearRevenue": {"Acme": {"2024": 100, "2025": 120}, "Beta": {"2024": 50}},
    }


# -- Loading -----------------------------------------------------------------


class TestLoading:
    @pytest.mark.asyncio
    async def test_load_text(self) -> None:
        session = AnalysisSession(today=AS_OF)
        result = await session.load_text(_reader(EXPORT))

        assert result.has_data
        assert not result.superseded
        assert session.generation == 1
        assert len(session.deals) == 4

    @pytest.mark.asyncio
    async def test_load_file_with_legacy_encoding(self, tmp_path) -> None:
        path = tmp_path / "export.csv"
        path.write_bytes(
            "Account Name,Stage,Amount,Close Date,Currency\n"
            "Café Société Générale,Closed Won,1000,2025-01-10,EUR\n".encode("latin-1")
        )
        session = AnalysisSession(today=AS_OF)
        result = await session.load_file(path)

        assert result.has_data
        assert result.deals[0].amount == 1000
        assert result.deals[0].account.startswith("Caf")

    @pytest.mark.asyncio
    async def test_load_compact_json_text(self) -> None:
        session = AnalysisSession(today=AS_OF)
        result = await session.load_compact(json.dumps(_compact_payload()))

        assert result.source_format == "compact"
        assert len(session.deals) == 3
        assert result.ledger["Beta"] == {2024: 50}

    @pytest.mark.asyncio
    async def test_load_compact_bad_json(self) -> None:
        session = AnalysisSession(today=AS_OF)
        result = await session.load_compact("{not json")
        assert not result.has_data
        assert not session.has_data

    @pytest.mark.asyncio
    async def test_load_compact_nan_literal_drops_row(self) -> None:
        session = AnalysisSession(today=AS_OF)
        text = (
            '{"accounts": ["Acme"], "data": ['
            "[0,0,0,0,0,0,NaN,2024,1,1,-1,0,0,0],"
            "[0,0,0,0,0,0,500,2024,1,1,-1,0,0,0]]}"
        )
        result = await session.load_compact(text)

        assert len(result.deals) == 1
        assert result.rows_dropped == 1
        assert session.deals[0].amount == 500

    @pytest.mark.asyncio
    async def test_load_demo_is_deterministic(self) -> None:
        first, second = AnalysisSession(today=AS_OF), AnalysisSession(today=AS_OF)
        await first.load_demo(seed=3)
        await second.load_demo(seed=3)

        assert first.has_data
        assert first.deals == second.deals

    @pytest.mark.asyncio
    async def test_no_usable_data_replaces_dataset(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        result = await session.load_text(_reader("Account Name,Stage\n"))

        assert not result.has_data
        assert not session.has_data
        assert session.generation == 2


class TestSupersession:
    """Only the most recently requested load may replace the dataset."""

    @pytest.mark.asyncio
    async def test_slow_older_load_is_discarded(self) -> None:
        session = AnalysisSession(today=AS_OF)
        release = asyncio.Event()

        async def slow_read():
            await release.wait()
            return EXPORT

        slow = asyncio.create_task(session.load_text(slow_read))
        await asyncio.sleep(0)

        fast = await session.load_text(_reader(OTHER_EXPORT))
        release.set()
        stale = await slow

        assert not fast.superseded
        assert stale.superseded
        assert stale.has_data
        assert [d.account for d in session.deals] == ["Zeta"]
        assert session.generation == 2

    @pytest.mark.asyncio
    async def test_sequential_loads_replace(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(OTHER_EXPORT))
        await session.load_text(_reader(EXPORT))
        assert len(session.deals) == 4


# -- Snapshots ---------------------------------------------------------------


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_default_criteria_uses_latest_two_years(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        criteria = session.default_criteria()

        assert criteria.active_years == frozenset({2024, 2025})
        assert criteria.as_of == AS_OF

    @pytest.mark.asyncio
    async def test_snapshot_contents(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        snapshot = session.snapshot(FilterCriteria(active_years=frozenset({2025})))

        assert snapshot.deal_count == 2
        assert snapshot.metrics.total_revenue == 80_000
        assert snapshot.metrics.pipeline_value == 120_000
        assert snapshot.comparison.prior.total_revenue == 50_000
        assert snapshot.goals.revenue == 55_000_000
        assert snapshot.retention.has_data
        assert snapshot.retention.ndr == pytest.approx(80_000 / 50_000)
        assert snapshot.insights.insights
        assert [r.name for r in snapshot.reps] == ["Courtney Sands", "Natalie Hitt"]

    @pytest.mark.asyncio
    async def test_compact_ledger_drives_retention(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_compact(_compact_payload())
        snapshot = session.snapshot(FilterCriteria(active_years=frozenset({2025})))

        assert snapshot.retention.ndr == pytest.approx(0.8)
        assert snapshot.retention.churned_revenue == 50

    @pytest.mark.asyncio
    async def test_snapshot_memoized_per_inputs(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        criteria = session.default_criteria()

        first = session.snapshot(criteria)
        assert session.snapshot(criteria) is first
        assert session.snapshot(criteria, goals=GoalOverrides(revenue=1.0)) is not first
        assert session.snapshot(criteria, quota_overrides={"Courtney Sands": 1.0}) is not first

    @pytest.mark.asyncio
    async def test_snapshot_cache_is_bounded(self, monkeypatch) -> None:
        monkeypatch.setattr(service, "SNAPSHOT_CACHE_SIZE", 2)
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        criteria = session.default_criteria()

        first = session.snapshot(criteria, goals=GoalOverrides(revenue=1.0))
        second = session.snapshot(criteria, goals=GoalOverrides(revenue=2.0))
        assert session.snapshot(criteria, goals=GoalOverrides(revenue=1.0)) is first

        session.snapshot(criteria, goals=GoalOverrides(revenue=3.0))
        assert session.snapshot(criteria, goals=GoalOverrides(revenue=1.0)) is first
        assert session.snapshot(criteria, goals=GoalOverrides(revenue=2.0)) is not second

    @pytest.mark.asyncio
    async def test_prior_year_set_ignores_filters_by_default(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        criteria = FilterCriteria(active_years=frozenset({2025}), territories=frozenset({"US"}))

        default = session.snapshot(criteria)
        filtered = session.snapshot(criteria, prior_keeps_filters=True)

        assert default.comparison.prior.lost_count == 1
        assert filtered.comparison.prior.lost_count == 0
        assert filtered.comparison.prior.total_revenue == 50_000

    @pytest.mark.asyncio
    async def test_new_load_invalidates_snapshots(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        criteria = session.default_criteria()
        before = session.snapshot(criteria)

        await session.load_text(_reader(EXPORT))
        after = session.snapshot(criteria)

        assert after is not before
        assert after.generation == 2
        assert after.metrics == before.metrics

    @pytest.mark.asyncio
    async def test_empty_session_snapshot(self) -> None:
        session = AnalysisSession(today=AS_OF)
        snapshot = session.snapshot()

        assert snapshot.deal_count == 0
        assert snapshot.metrics.win_rate == 0
        assert not snapshot.retention.has_data
        assert snapshot.risks.total == 0

    @pytest.mark.asyncio
    async def test_export_summary(self) -> None:
        session = AnalysisSession(today=AS_OF)
        await session.load_text(_reader(EXPORT))
        exported = json.loads(session.export_summary().model_dump_json())

        assert exported["total_revenue"] == 130_000
        assert exported["win_rate"] == pytest.approx(2 / 3)
        assert {t["name"] for t in exported["territories"]} == {"US", "Canada"}
        assert "verticals" in exported


class TestDecodeBytes:
    def test_utf8(self) -> None:
        assert decode_bytes("naïve".encode("utf-8")) == "naïve"

    def test_utf8_bom_stripped(self) -> None:
        assert decode_bytes(b"\xef\xbb\xbfAccount") == "Account"
