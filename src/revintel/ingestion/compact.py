"""Decoder for the compact pre-encoded dataset format.

The compact format stores each dimension once in a lookup table and encodes
every deal as a fixed-width row of indices and scalars. Decoding resolves the
indices against the tables and hands the values to the same ``build_deal``
target the text path uses, so both paths yield identical ``Deal`` objects.

Out-of-range indices fall back to defaults instead of failing the row.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from src.revintel.config import get_settings
from src.revintel.deals.schemas import UNKNOWN, Deal, DealStage, DealType, Territory
from src.revintel.ingestion import schemas as s
from src.revintel.ingestion.normalize import build_deal
from src.revintel.ingestion.schemas import CompactDataset, IngestionResult

logger = structlog.get_logger(__name__)

STAGE_TABLE: tuple[DealStage, ...] = (
    DealStage.CLOSED_WON,
    DealStage.CLOSED_LOST,
    DealStage.PIPELINE,
)
TYPE_TABLE: tuple[DealType, ...] = (
    DealType.NEW_BUSINESS,
    DealType.EXPANSION,
    DealType.UPSELL,
    DealType.RENEWAL,
)
TERRITORY_TABLE: tuple[Territory, ...] = (Territory.US, Territory.CANADA)

DEFAULT_COMPACT_VERTICAL = "Other"


def _lookup(table: Sequence[Any], index: float | None, default: Any) -> Any:
    if index is None:
        return default
    idx = int(index)
    if 0 <= idx < len(table) and table[idx] not in (None, ""):
        return table[idx]
    return default


def _number(value: float | None, default: float = 0) -> float:
    return default if value is None else value


def decode_compact(
    payload: CompactDataset | Mapping[str, Any],
    min_year: int | None = None,
    max_year: int | None = None,
) -> IngestionResult:
    """Decode a compact dataset into canonical deals.

    Args:
        payload: A ``CompactDataset`` or the raw mapping (e.g. parsed JSON)
            to validate into one. Structurally invalid payloads produce an
            empty result.
        min_year / max_year: Supported fiscal-year range; defaults come
            from settings.

    Returns:
        IngestionResult carrying the deals and, when present, the
        pre-built account-year revenue ledger.
    """
    settings = get_settings()
    min_year = settings.MIN_YEAR if min_year is None else min_year
    max_year = settings.MAX_YEAR if max_year is None else max_year

    if isinstance(payload, CompactDataset):
        dataset = payload
    else:
        try:
            dataset = CompactDataset.model_validate(payload)
        except ValidationError as exc:
            logger.warning("ingestion.compact_invalid", error_count=exc.error_count())
            return IngestionResult(source_format="compact")

    deals: list[Deal] = []
    drops: Counter[str] = Counter()

    for i, row in enumerate(dataset.data):
        if len(row) < s.ROW_WIDTH:
            drops["short_row"] += 1
            continue
        if not all(v is None or math.isfinite(v) for v in row[: s.ROW_WIDTH]):
            drops["invalid_number"] += 1
            continue

        year = int(_number(row[s.ROW_YEAR]))
        if not min_year <= year <= max_year:
            drops["unsupported_year"] += 1
            continue

        month = int(_number(row[s.ROW_MONTH], 1)) or 1
        if not 1 <= month <= 12:
            drops["invalid_month"] += 1
            continue

        stage = _lookup(STAGE_TABLE, row[s.ROW_STAGE], DealStage.PIPELINE)
        account = _lookup(dataset.accounts, row[s.ROW_ACCOUNT], UNKNOWN)
        loss_index = row[s.ROW_LOSS_REASON]
        loss_reason = None
        if loss_index is not None and loss_index >= 0:
            loss_reason = _lookup(dataset.loss_reasons, loss_index, UNKNOWN)

        deals.append(
            build_deal(
                deal_id=f"OPP-{i}",
                name=account,
                account=account,
                rep=_lookup(dataset.reps, row[s.ROW_REP], UNKNOWN),
                territory=_lookup(TERRITORY_TABLE, row[s.ROW_TERRITORY], Territory.US),
                source=_lookup(dataset.sources, row[s.ROW_SOURCE], UNKNOWN),
                deal_type=_lookup(TYPE_TABLE, row[s.ROW_TYPE], DealType.NEW_BUSINESS),
                stage=stage,
                amount=_number(row[s.ROW_AMOUNT]),
                year=year,
                month=month,
                vertical=_lookup(dataset.verticals, row[s.ROW_VERTICAL], DEFAULT_COMPACT_VERTICAL),
                days_in_pipeline=int(_number(row[s.ROW_AGE])),
                loss_reason=loss_reason,
                loss_reason_primary=loss_reason,
                customer_relationship=_lookup(dataset.cust_rels, row[s.ROW_CUST_REL], UNKNOWN),
            )
        )

    rows_dropped = sum(drops.values())
    logger.info(
        "ingestion.compact_decoded",
        rows_read=len(dataset.data),
        deals=len(deals),
        rows_dropped=rows_dropped,
        has_ledger=dataset.account_year_revenue is not None,
    )
    return IngestionResult(
        deals=tuple(deals),
        rows_read=len(dataset.data),
        rows_dropped=rows_dropped,
        drop_reasons=dict(drops),
        ledger=dataset.account_year_revenue,
        source_format="compact",
    )
