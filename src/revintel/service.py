"""Analysis session: async ingestion plus memoized dashboard snapshots.

One ``AnalysisSession`` holds the canonical dataset for one analysis. Loading
is the only suspension point; every load takes a generation number and a
load that completes after a newer one started is discarded. Snapshots are
pure functions of (dataset generation, criteria, goals, quotas) and are
memoized under a string key built from exactly those inputs.
"""

from __future__ import annotations

import asyncio
import json
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

import chardet
import structlog
from pydantic import BaseModel, ConfigDict

from src.revintel.analytics.accounts import compute_top_accounts
from src.revintel.analytics.breakdowns import (
    loss_reason_breakdown,
    source_performance,
    territory_analysis,
    territory_trend,
    vertical_analysis,
)
from src.revintel.analytics.core import compare_periods
from src.revintel.analytics.goals import resolve_goals
from src.revintel.analytics.quota import (
    compute_rep_performance,
    compute_territory_attainment,
)
from src.revintel.analytics.retention import compute_retention, fold_ledger
from src.revintel.analytics.risk import detect_risks
from src.revintel.analytics.schemas import (
    CoreMetrics,
    GoalOverrides,
    GoalTargets,
    LossReasonSummary,
    PeriodComparison,
    RepPerformance,
    RetentionMetrics,
    RiskReport,
    SegmentPerformance,
    TerritoryAttainment,
    TerritoryTrendPoint,
    TopAccountsAnalysis,
)
from src.revintel.config import Settings, get_settings
from src.revintel.deals.schemas import AccountYearLedger, Deal
from src.revintel.filters.engine import FilterCriteria, apply_filters, prior_year_view
from src.revintel.ingestion.compact import decode_compact
from src.revintel.ingestion.demo import demo_ingestion
from src.revintel.ingestion.schemas import CompactDataset, IngestionResult
from src.revintel.ingestion.text_parser import parse_text
from src.revintel.insights.rules import (
    InsightContext,
    InsightSummary,
    PrimaryAction,
    generate_insights,
    select_primary_action,
)

logger = structlog.get_logger(__name__)

TextReader = Callable[[], Awaitable[str | bytes]]

# Years selected by default: the latest N present in the data.
DEFAULT_ACTIVE_YEAR_COUNT = 2

# Memoized snapshots kept per session.
SNAPSHOT_CACHE_SIZE = 32


# ── Output Models ────────────────────────────────────────────────────────────


class DashboardSnapshot(BaseModel):
    """Every aggregate for one set of inputs."""

    model_config = ConfigDict(frozen=True)

    generation: int
    criteria: FilterCriteria
    goals: GoalTargets
    deal_count: int
    comparison: PeriodComparison
    verticals: tuple[SegmentPerformance, ...] = ()
    territories: tuple[SegmentPerformance, ...] = ()
    sources: tuple[SegmentPerformance, ...] = ()
    loss_reasons: tuple[LossReasonSummary, ...] = ()
    territory_trend: tuple[TerritoryTrendPoint, ...] = ()
    top_accounts: TopAccountsAnalysis
    retention: RetentionMetrics
    reps: tuple[RepPerformance, ...] = ()
    territory_attainment: tuple[TerritoryAttainment, ...] = ()
    risks: RiskReport
    insights: InsightSummary
    primary_action: PrimaryAction | None = None

    @property
    def metrics(self) -> CoreMetrics:
        return self.comparison.current


class SummaryExport(BaseModel):
    """Flat export of the headline figures and breakdowns."""

    model_config = ConfigDict(frozen=True)

    total_revenue: float
    win_rate: float
    avg_deal_size: float
    avg_cycle: float
    pipeline_value: float
    territories: tuple[SegmentPerformance, ...] = ()
    verticals: tuple[SegmentPerformance, ...] = ()


def export_summary(snapshot: DashboardSnapshot) -> SummaryExport:
    metrics = snapshot.metrics
    return SummaryExport(
        total_revenue=metrics.total_revenue,
        win_rate=metrics.win_rate,
        avg_deal_size=metrics.avg_deal_size,
        avg_cycle=metrics.avg_cycle,
        pipeline_value=metrics.pipeline_value,
        territories=snapshot.territories,
        verticals=snapshot.verticals,
    )


# ── Snapshot Assembly ────────────────────────────────────────────────────────


def build_snapshot(
    deals: tuple[Deal, ...],
    criteria: FilterCriteria,
    goal_overrides: GoalOverrides | None = None,
    quota_overrides: Mapping[str, float] | None = None,
    territory_quotas: Mapping[str, float] | None = None,
    ledger: AccountYearLedger | None = None,
    settings: Settings | None = None,
    generation: int = 0,
    prior_keeps_filters: bool = False,
) -> DashboardSnapshot:
    """Run every pipeline over one dataset and one set of inputs.

    Args:
        deals: Full canonical dataset.
        criteria: Active filters; the prior-year set is derived from them.
        goal_overrides: Manual goal edits.
        quota_overrides: Manual per-rep quotas.
        territory_quotas: Per-territory quota overrides; defaults to
            settings.
        ledger: Account-year revenue ledger; folded from ``deals`` when
            absent.
        settings: Defaults to ``get_settings()``.
        generation: Dataset generation the snapshot was built from.
        prior_keeps_filters: Apply the allow-lists and time periods to the
            prior-year set too; by default it is the active years shifted
            back one year and nothing else.
    """
    settings = settings or get_settings()
    filtered = apply_filters(deals, criteria)
    prior = prior_year_view(deals, criteria, keep_filters=prior_keeps_filters)
    active_years = sorted(criteria.active_years)

    goals = resolve_goals(active_years, goal_overrides, settings)
    comparison = compare_periods(filtered, prior, goals.revenue)
    verticals = tuple(vertical_analysis(filtered, prior))
    territories = tuple(territory_analysis(filtered, prior))
    sources = tuple(source_performance(filtered, prior))
    losses = tuple(loss_reason_breakdown(filtered))
    reps = tuple(compute_rep_performance(filtered, active_years, quota_overrides, settings))
    territory_attainment = tuple(
        compute_territory_attainment(
            reps,
            settings.TERRITORY_QUOTAS if territory_quotas is None else territory_quotas,
        )
    )
    risks = detect_risks(filtered, reps)

    context = InsightContext(
        current=comparison.current,
        prior=comparison.prior,
        goals=goals,
        verticals=verticals,
        territories=territories,
        sources=sources,
        loss_reasons=losses,
        reps_at_risk=risks.reps_at_risk,
    )

    snapshot = DashboardSnapshot(
        generation=generation,
        criteria=criteria,
        goals=goals,
        deal_count=len(filtered),
        comparison=comparison,
        verticals=verticals,
        territories=territories,
        sources=sources,
        loss_reasons=losses,
        territory_trend=tuple(territory_trend(filtered)),
        top_accounts=compute_top_accounts(
            filtered,
            prior,
            all_deals=deals,
            top_n=settings.TOP_N_ACCOUNTS,
            years=settings.supported_years,
        ),
        retention=compute_retention(
            ledger if ledger is not None else fold_ledger(deals), active_years
        ),
        reps=reps,
        territory_attainment=territory_attainment,
        risks=risks,
        insights=generate_insights(context),
        primary_action=select_primary_action(context),
    )

    logger.info(
        "session.snapshot_built",
        generation=generation,
        deals=len(filtered),
        prior_deals=len(prior),
        risks=risks.total,
    )
    return snapshot


# ── Decoding ─────────────────────────────────────────────────────────────────


def _read_file_bytes(path: Path) -> bytes:
    return path.read_bytes()


def decode_bytes(raw: bytes) -> str:
    """UTF-8 first, chardet detection as fallback."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        detected = chardet.detect(raw)
        encoding = detected.get("encoding") or "utf-8"
        logger.info(
            "ingestion.encoding_detected",
            encoding=encoding,
            confidence=detected.get("confidence"),
        )
        return raw.decode(encoding, errors="replace")


# ── Session ──────────────────────────────────────────────────────────────────


class AnalysisSession:
    """Holds one canonical dataset and memoizes snapshots over it.

    Only the most recently *requested* load may replace the dataset. A load
    that finishes after a newer one was requested returns its result with
    ``superseded=True`` and leaves the session untouched.
    """

    def __init__(self, settings: Settings | None = None, today: date | None = None):
        self._settings = settings or get_settings()
        self._today = today
        self._requested = 0
        self._generation = 0
        self._result = IngestionResult()
        self._ledger: AccountYearLedger = {}
        self._snapshot_cache: OrderedDict[str, DashboardSnapshot] = OrderedDict()

    # -- State ---------------------------------------------------------------

    @property
    def generation(self) -> int:
        """Generation of the dataset currently held (0 = nothing loaded)."""
        return self._generation

    @property
    def result(self) -> IngestionResult:
        return self._result

    @property
    def deals(self) -> tuple[Deal, ...]:
        return self._result.deals

    @property
    def has_data(self) -> bool:
        return self._result.has_data

    def available_years(self) -> list[int]:
        settings = self._settings
        return sorted(
            {
                d.year
                for d in self.deals
                if settings.MIN_YEAR <= d.year <= settings.MAX_YEAR
            }
        )

    def default_criteria(self) -> FilterCriteria:
        """No categorical filters, the latest two data years, all time periods."""
        years = self.available_years()[-DEFAULT_ACTIVE_YEAR_COUNT:]
        return FilterCriteria(active_years=frozenset(years), as_of=self._today)

    # -- Loading -------------------------------------------------------------

    async def _load(
        self, produce: Callable[[], Awaitable[IngestionResult]], kind: str
    ) -> IngestionResult:
        self._requested += 1
        request = self._requested
        logger.debug("session.load_started", kind=kind, request=request)

        result = await produce()

        if request != self._requested:
            logger.info(
                "session.load_superseded",
                kind=kind,
                request=request,
                latest=self._requested,
            )
            return result.model_copy(update={"superseded": True})

        self._result = result
        self._ledger = result.ledger if result.ledger is not None else fold_ledger(result.deals)
        self._generation = request
        self._snapshot_cache.clear()

        if not result.has_data:
            logger.warning(
                "session.no_usable_data",
                kind=kind,
                rows_read=result.rows_read,
                drop_reasons=result.drop_reasons,
            )
        else:
            logger.info(
                "session.load_completed",
                kind=kind,
                generation=request,
                deals=len(result.deals),
                rows_dropped=result.rows_dropped,
            )
        return result

    async def load_text(self, reader: TextReader) -> IngestionResult:
        """Await ``reader`` for the raw export, then parse it.

        ``reader`` may return ``str`` or ``bytes``; bytes are decoded with
        chardet fallback.
        """

        async def produce() -> IngestionResult:
            raw = await reader()
            text = decode_bytes(raw) if isinstance(raw, bytes) else raw
            return parse_text(
                text,
                today=self._today,
                min_year=self._settings.MIN_YEAR,
                max_year=self._settings.MAX_YEAR,
            )

        return await self._load(produce, "text")

    async def load_file(self, path: str | Path) -> IngestionResult:
        """Read a delimited export from disk off the event loop and parse it."""
        file_path = Path(path)
        return await self.load_text(lambda: asyncio.to_thread(_read_file_bytes, file_path))

    async def load_compact(
        self, payload: CompactDataset | Mapping[str, Any] | str | bytes
    ) -> IngestionResult:
        """Decode a compact dataset given as a model, mapping or JSON text."""

        async def produce() -> IngestionResult:
            data = payload
            if isinstance(data, (str, bytes)):
                try:
                    data = json.loads(data)
                except json.JSONDecodeError as exc:
                    logger.warning("ingestion.compact_not_json", error=str(exc))
                    return IngestionResult(source_format="compact")
            return decode_compact(
                data,
                min_year=self._settings.MIN_YEAR,
                max_year=self._settings.MAX_YEAR,
            )

        return await self._load(produce, "compact")

    async def load_demo(self, seed: int = 7) -> IngestionResult:
        async def produce() -> IngestionResult:
            return demo_ingestion(seed)

        return await self._load(produce, "demo")

    # -- Snapshots -----------------------------------------------------------

    def _cache_key(
        self,
        criteria: FilterCriteria,
        goals: GoalOverrides | None,
        quota_overrides: Mapping[str, float] | None,
        territory_quotas: Mapping[str, float] | None,
        prior_keeps_filters: bool,
    ) -> str:
        return (
            f"snapshot:{self._generation}:{criteria.cache_key()}"
            f":{(goals or GoalOverrides()).model_dump_json()}"
            f":{json.dumps(dict(quota_overrides or {}), sort_keys=True)}"
            f":{json.dumps(territory_quotas, sort_keys=True) if territory_quotas is not None else '-'}"
            f":{'prior-filtered' if prior_keeps_filters else 'prior-years'}"
        )

    def snapshot(
        self,
        criteria: FilterCriteria | None = None,
        goals: GoalOverrides | None = None,
        quota_overrides: Mapping[str, float] | None = None,
        territory_quotas: Mapping[str, float] | None = None,
        prior_keeps_filters: bool = False,
    ) -> DashboardSnapshot:
        """Memoized ``build_snapshot`` over the current dataset.

        The cache holds at most ``SNAPSHOT_CACHE_SIZE`` entries and evicts
        the least recently used one.
        """
        criteria = criteria or self.default_criteria()
        if criteria.as_of is None and self._today is not None:
            criteria = criteria.model_copy(update={"as_of": self._today})
        territory_quotas = dict(territory_quotas) if territory_quotas is not None else None

        cache_key = self._cache_key(
            criteria, goals, quota_overrides, territory_quotas, prior_keeps_filters
        )
        cached = self._snapshot_cache.get(cache_key)
        if cached is not None:
            self._snapshot_cache.move_to_end(cache_key)
            return cached

        snapshot = build_snapshot(
            self.deals,
            criteria,
            goal_overrides=goals,
            quota_overrides=quota_overrides,
            territory_quotas=territory_quotas,
            ledger=self._ledger,
            settings=self._settings,
            generation=self._generation,
            prior_keeps_filters=prior_keeps_filters,
        )
        self._snapshot_cache[cache_key] = snapshot
        if len(self._snapshot_cache) > SNAPSHOT_CACHE_SIZE:
            evicted, _ = self._snapshot_cache.popitem(last=False)
            logger.debug("session.snapshot_evicted", key=evicted)
        return snapshot

    def export_summary(self, criteria: FilterCriteria | None = None) -> SummaryExport:
        return export_summary(self.snapshot(criteria))
