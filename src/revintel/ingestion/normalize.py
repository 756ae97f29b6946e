"""Row-level normalization shared by the text and compact ingestion paths.

Both paths funnel into ``build_deal`` so the canonical ``Deal`` schema has a
single construction site. The helpers here turn loosely formatted CRM values
(stage labels, currency codes, money strings, dates, free-text categories)
into canonical values, falling back to documented defaults instead of
raising.

Categorical normalization is data-driven: each field owns an ordered list of
``CategoryRule`` entries evaluated top-down, first match wins.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime

from src.revintel.deals.schemas import (
    LEAD_SOURCES,
    UNKNOWN,
    VERTICALS,
    Deal,
    DealStage,
    DealType,
    Territory,
)

# ── Categorical Rules ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CategoryRule:
    """Maps any value containing one of ``keywords`` to ``value``."""

    keywords: tuple[str, ...]
    value: str

    def matches(self, lowered: str) -> bool:
        return any(k in lowered for k in self.keywords)


VERTICAL_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(("tech", "software"), "Technology"),
    CategoryRule(("financ", "bank", "insurance"), "Financial Services"),
    CategoryRule(("health", "medical", "pharma"), "Healthcare"),
    CategoryRule(("manufact", "industrial"), "Manufacturing"),
    CategoryRule(("retail", "consumer"), "Retail"),
    CategoryRule(("media", "entertainment"), "Media"),
)
DEFAULT_VERTICAL = "Technology"

SOURCE_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(("outbound", "cold", "prospect"), "Outbound"),
    CategoryRule(("partner", "channel", "reseller"), "Partner"),
    CategoryRule(("referral", "customer ref"), "Referral"),
)
DEFAULT_SOURCE = "Inbound"

TYPE_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(("expan", "growth"), DealType.EXPANSION.value),
    CategoryRule(("upsell", "cross"), DealType.UPSELL.value),
    CategoryRule(("renew",), DealType.RENEWAL.value),
)
DEFAULT_TYPE = DealType.NEW_BUSINESS.value

DEAL_TYPES: tuple[str, ...] = tuple(t.value for t in DealType)


def normalize_category(
    raw: str | None,
    allowed: tuple[str, ...],
    rules: tuple[CategoryRule, ...],
    default: str,
) -> str:
    """Resolve a free-text category to a canonical value.

    Exact members of ``allowed`` pass through untouched. Anything else is
    matched case-insensitively against ``rules`` in order; no match (or an
    empty value) yields ``default``.
    """
    value = (raw or "").strip()
    if not value:
        return default
    if value in allowed:
        return value
    lowered = value.lower()
    for rule in rules:
        if rule.matches(lowered):
            return rule.value
    return default


def normalize_vertical(raw: str | None) -> str:
    return normalize_category(raw, VERTICALS, VERTICAL_RULES, DEFAULT_VERTICAL)


def normalize_source(raw: str | None) -> str:
    return normalize_category(raw, LEAD_SOURCES, SOURCE_RULES, DEFAULT_SOURCE)


def normalize_deal_type(raw: str | None) -> DealType:
    return DealType(normalize_category(raw, DEAL_TYPES, TYPE_RULES, DEFAULT_TYPE))


# ── Scalar Parsers ───────────────────────────────────────────────────────────

_NUMBERED_STAGE = re.compile(r"^(\d+)\.")
_MONEY_NOISE = re.compile(r"[$,\s]")
_FISCAL_YEAR = re.compile(r"20\d{2}")
_FISCAL_QUARTER = re.compile(r"Q(\d)", re.IGNORECASE)

# Stage 0 and Stage 1 are too early to count as pipeline.
MIN_PIPELINE_STAGE = 2

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def classify_stage(raw: str | None) -> DealStage | None:
    """Map a CRM stage label to a canonical stage, or None to drop the row.

    ``Closed Won``/``Closed Lost`` map directly. Other labels must look like
    ``"3. Proposal"``; stage numbers below 2 and unnumbered labels are
    excluded.
    """
    label = (raw or "").strip()
    lowered = label.lower()
    if lowered == "closed won":
        return DealStage.CLOSED_WON
    if lowered == "closed lost":
        return DealStage.CLOSED_LOST
    match = _NUMBERED_STAGE.match(label)
    if match is None:
        return None
    if int(match.group(1)) < MIN_PIPELINE_STAGE:
        return None
    return DealStage.PIPELINE


def territory_from_currency(currency: str | None) -> Territory:
    return Territory.CANADA if "CAD" in (currency or "").upper() else Territory.US


def parse_amount(raw: str | None) -> float:
    """Parse a money string like ``"$1,250.00"``; 0 on failure."""
    if not raw:
        return 0.0
    cleaned = _MONEY_NOISE.sub("", raw)
    try:
        value = float(cleaned)
    except ValueError:
        return 0.0
    if math.isnan(value) or math.isinf(value) or value < 0:
        return 0.0
    return value


def parse_age(raw: str | None) -> int:
    """Parse days-in-pipeline; 0 on failure."""
    if not raw:
        return 0
    match = re.match(r"\s*(\d+)", raw)
    return int(match.group(1)) if match else 0


def parse_close_date(raw: str | None) -> date | None:
    """Parse the close-date formats seen in CRM exports."""
    text = (raw or "").strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def resolve_period(
    close_date: date | None,
    fiscal_period: str | None,
    today: date,
) -> tuple[int, int]:
    """Return ``(year, month)`` for a row.

    Preference order: explicit close date, then a fiscal-period string
    such as ``"FY2024 Q3"`` (month set to the middle of the quarter), then
    ``today``.
    """
    if close_date is not None:
        return close_date.year, close_date.month

    period = (fiscal_period or "").strip()
    if period:
        year_match = _FISCAL_YEAR.search(period)
        quarter_match = _FISCAL_QUARTER.search(period)
        quarter = int(quarter_match.group(1)) if quarter_match else 0
        if year_match or 1 <= quarter <= 4:
            year = int(year_match.group(0)) if year_match else today.year
            month = (quarter - 1) * 3 + 2 if 1 <= quarter <= 4 else 1
            return year, month

    return today.year, today.month


def combine_loss_reason(primary: str | None, secondary: str | None) -> str:
    """Build ``"primary: secondary"``; ``Unknown`` when both are empty."""
    primary = (primary or "").strip()
    secondary = (secondary or "").strip()
    if secondary:
        return f"{primary}: {secondary}" if primary else secondary
    return primary or UNKNOWN


# ── Shared Construction Target ───────────────────────────────────────────────


def build_deal(
    *,
    deal_id: str,
    name: str,
    account: str,
    rep: str,
    territory: Territory,
    source: str,
    deal_type: DealType,
    stage: DealStage,
    amount: float,
    year: int,
    month: int,
    vertical: str,
    days_in_pipeline: int = 0,
    loss_reason: str | None = None,
    loss_reason_primary: str | None = None,
    loss_reason_secondary: str | None = None,
    customer_relationship: str | None = None,
    close_date: date | None = None,
    parent_account: str | None = None,
    probability: float | None = None,
    last_activity_days: int | None = None,
) -> Deal:
    """Construct a canonical Deal, applying the cross-path invariants.

    Loss reasons are kept only on Closed Lost deals (defaulting to
    ``Unknown``), amounts and ages are clamped at zero, and inactivity
    defaults to the pipeline age capped at 30 days.
    """
    days = max(int(days_in_pipeline or 0), 0)
    if stage == DealStage.CLOSED_LOST:
        reason: str | None = loss_reason or UNKNOWN
    else:
        reason = None
        loss_reason_primary = None
        loss_reason_secondary = None

    return Deal(
        id=deal_id,
        name=name,
        account=account or UNKNOWN,
        rep=rep or UNKNOWN,
        territory=territory,
        source=source,
        deal_type=deal_type,
        stage=stage,
        amount=max(float(amount or 0), 0.0),
        year=year,
        month=month,
        loss_reason=reason,
        loss_reason_primary=loss_reason_primary or None,
        loss_reason_secondary=loss_reason_secondary or None,
        vertical=vertical,
        days_in_pipeline=days,
        last_activity_days=(
            min(days, 30) if last_activity_days is None else max(last_activity_days, 0)
        ),
        customer_relationship=customer_relationship or UNKNOWN,
        close_date=close_date,
        parent_account=parent_account or None,
        probability=probability,
    )
