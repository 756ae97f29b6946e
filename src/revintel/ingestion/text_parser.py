"""Delimited-text ingestion for CRM opportunity exports.

Handles comma- or tab-delimited exports with a header row. Column positions
are resolved from header tokens rather than fixed offsets so that exports
with extra, missing or reordered columns still load. Each semantic field owns
a ``ColumnRule``: exact aliases are tried first, then substring keywords
minus exclusion keywords (``"stage"`` contains ``"age"``, and an ``"Owner Manager"``
column must not be taken for the deal owner).

Quoted fields follow standard CSV escaping: a delimiter inside quotes does
not split, and ``""`` inside a quoted field is a literal quote.
"""

from __future__ import annotations

import csv
from collections import Counter
from dataclasses import dataclass
from datetime import date

import structlog

from src.revintel.config import get_settings
from src.revintel.deals.schemas import UNKNOWN, Deal
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
from src.revintel.ingestion.schemas import IngestionResult

logger = structlog.get_logger(__name__)

# Rows with fewer parsed fields than this are treated as noise.
MIN_ROW_FIELDS = 5

# ── Header Resolution ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnRule:
    """How to find one semantic field among the header tokens."""

    field: str
    exact: tuple[str, ...]
    contains: tuple[str, ...]
    excludes: tuple[str, ...] = ()

    def locate(self, headers: list[str]) -> int:
        for alias in self.exact:
            if alias in headers:
                return headers.index(alias)
        for idx, header in enumerate(headers):
            if any(e in header for e in self.excludes):
                continue
            if any(c in header for c in self.contains):
                return idx
        return -1


COLUMN_RULES: tuple[ColumnRule, ...] = (
    ColumnRule("account", ("account name",), ("account",), ("parent", "owner", "id")),
    ColumnRule("rep", ("opportunity owner",), ("owner", "rep"), ("manager", "report")),
    ColumnRule("name", ("opportunity name",), ("opportunity name", "deal name")),
    ColumnRule("stage", ("stage",), ("stage",), ("duration", "history")),
    ColumnRule("fiscal_period", ("fiscal period",), ("fiscal",)),
    ColumnRule("age", ("age",), ("age",), ("stage", "manager", "percentage", "message")),
    ColumnRule("close_date", ("close date",), ("close date", "closed date")),
    ColumnRule("created_date", ("created date",), ("created date", "create date")),
    ColumnRule("source", ("lead source",), ("source",)),
    ColumnRule("type", ("type",), ("type",), ("record", "currency")),
    ColumnRule("currency", ("opportunity currency",), ("currency",)),
    ColumnRule("vertical", ("vertical",), ("vertical", "industry")),
    ColumnRule("amount", ("amount (converted)",), ("amount",)),
    ColumnRule("customer_relationship", ("customer relationship",), ("relationship",)),
    ColumnRule("parent_account", ("parent account",), ("parent account",)),
    ColumnRule("loss_primary", ("closed why options",), ("closed why", "loss reason"), ("sub",)),
    ColumnRule(
        "loss_secondary",
        ("closed why sub options",),
        ("closed why sub", "loss reason sub", "sub reason", "sub option", "suboption"),
    ),
)


def detect_delimiter(header_line: str) -> str:
    """Tab if the header line contains one, else comma."""
    return "\t" if "\t" in header_line else ","


def split_line(line: str, delimiter: str) -> list[str]:
    """Split one physical line; quote state never carries into the next line."""
    return next(csv.reader([line], delimiter=delimiter, quotechar='"'), [])


def resolve_columns(headers: list[str]) -> dict[str, int]:
    """Map each semantic field to its column index (-1 when absent)."""
    tokens = [h.strip().replace('"', "").lower() for h in headers]
    return {rule.field: rule.locate(tokens) for rule in COLUMN_RULES}


# ── Parsing ──────────────────────────────────────────────────────────────────


def parse_text(
    text: str,
    today: date | None = None,
    min_year: int | None = None,
    max_year: int | None = None,
) -> IngestionResult:
    """Parse an exported opportunity table into canonical deals.

    Args:
        text: Full file contents.
        today: Date used for rows with neither a close date nor a fiscal
            period. Defaults to the current date.
        min_year / max_year: Supported fiscal-year range; defaults come
            from settings.

    Returns:
        IngestionResult with deals in file order. Fewer than two non-blank
        lines yields an empty result; malformed rows are counted, never
        raised.
    """
    settings = get_settings()
    today = today or date.today()
    min_year = settings.MIN_YEAR if min_year is None else min_year
    max_year = settings.MAX_YEAR if max_year is None else max_year

    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        logger.info("ingestion.text_too_short", line_count=len(lines))
        return IngestionResult(source_format="text")

    delimiter = detect_delimiter(lines[0])
    headers = split_line(lines[0], delimiter)
    columns = resolve_columns(headers)
    logger.debug(
        "ingestion.columns_resolved",
        delimiter="tab" if delimiter == "\t" else "comma",
        missing=[f for f, idx in columns.items() if idx < 0],
    )

    deals: list[Deal] = []
    drops: Counter[str] = Counter()
    rows_read = 0

    for row_number, line in enumerate(lines[1:], start=1):
        rows_read += 1
        values = split_line(line, delimiter)
        if len(values) < MIN_ROW_FIELDS:
            drops["too_few_fields"] += 1
            continue

        def get(field: str) -> str:
            idx = columns[field]
            if 0 <= idx < len(values):
                return values[idx].strip()
            return ""

        stage = classify_stage(get("stage"))
        if stage is None:
            drops["excluded_stage"] += 1
            continue

        close_date = parse_close_date(get("close_date"))
        year, month = resolve_period(close_date, get("fiscal_period"), today)
        if not min_year <= year <= max_year:
            drops["unsupported_year"] += 1
            continue

        deal_type = normalize_deal_type(get("type"))
        account = get("account") or UNKNOWN
        primary = get("loss_primary")
        secondary = get("loss_secondary")

        deals.append(
            build_deal(
                deal_id=f"OPP-{row_number}",
                name=get("name") or f"{account} - {deal_type.value}",
                account=account,
                rep=get("rep"),
                territory=territory_from_currency(get("currency")),
                source=normalize_source(get("source")),
                deal_type=deal_type,
                stage=stage,
                amount=parse_amount(get("amount")),
                year=year,
                month=month,
                vertical=normalize_vertical(get("vertical")),
                days_in_pipeline=parse_age(get("age")),
                loss_reason=combine_loss_reason(primary, secondary),
                loss_reason_primary=primary,
                loss_reason_secondary=secondary,
                customer_relationship=get("customer_relationship"),
                close_date=close_date,
                parent_account=get("parent_account"),
            )
        )

    rows_dropped = sum(drops.values())
    logger.info(
        "ingestion.text_parsed",
        rows_read=rows_read,
        deals=len(deals),
        rows_dropped=rows_dropped,
    )
    return IngestionResult(
        deals=tuple(deals),
        rows_read=rows_read,
        rows_dropped=rows_dropped,
        drop_reasons=dict(drops),
        source_format="text",
    )
