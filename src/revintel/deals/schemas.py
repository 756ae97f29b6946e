"""Canonical deal schemas shared by both ingestion paths.

Every deal that leaves ingestion is a ``Deal``: an immutable Pydantic model
whose invariants (stage set, non-negative amount, loss reason present iff
Closed Lost, quarter derived from month) are enforced at construction time.
Aggregation code downstream relies on these invariants and never re-checks
them.
"""

from __future__ import annotations

import math
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# ── Enums ────────────────────────────────────────────────────────────────────


class DealStage(str, Enum):
    """Lifecycle stage of a deal after normalization."""

    PIPELINE = "Pipeline"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


class Territory(str, Enum):
    """Sales territory, derived from the deal currency."""

    US = "US"
    CANADA = "Canada"


class DealType(str, Enum):
    """Commercial motion of a deal."""

    NEW_BUSINESS = "New Business"
    EXPANSION = "Expansion"
    UPSELL = "Upsell"
    RENEWAL = "Renewal"


# ── Enumerated Categories ────────────────────────────────────────────────────

LEAD_SOURCES: tuple[str, ...] = ("Inbound", "Outbound", "Partner", "Referral")
VERTICALS: tuple[str, ...] = (
    "Technology",
    "Financial Services",
    "Healthcare",
    "Manufacturing",
    "Retail",
    "Media",
)
LOSS_REASONS: tuple[str, ...] = (
    "Price",
    "Competition",
    "No Budget",
    "Timing",
    "Product Fit",
    "Champion Left",
)

KEY_ACCOUNT_THRESHOLD = 100_000
UNKNOWN = "Unknown"


# ── Deal ─────────────────────────────────────────────────────────────────────


class Deal(BaseModel):
    """One sales opportunity in canonical form.

    ``quarter`` and ``is_key_account`` are derived and cannot disagree with
    ``month`` and ``amount``. ``probability`` is only known for generated
    demo data; exported CRM rows leave it unset.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str
    name: str
    account: str
    rep: str
    territory: Territory
    source: str
    deal_type: DealType
    stage: DealStage
    amount: float = Field(..., ge=0.0)
    year: int
    month: int = Field(..., ge=1, le=12)
    loss_reason: str | None = None
    loss_reason_primary: str | None = None
    loss_reason_secondary: str | None = None
    vertical: str
    days_in_pipeline: int = Field(default=0, ge=0)
    last_activity_days: int = Field(default=0, ge=0)
    customer_relationship: str = UNKNOWN
    close_date: date | None = None
    parent_account: str | None = None
    probability: float | None = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_loss_reason(self) -> "Deal":
        if self.stage == DealStage.CLOSED_LOST and not self.loss_reason:
            raise ValueError(f"Closed Lost deal {self.id} has no loss reason")
        if self.stage != DealStage.CLOSED_LOST and self.loss_reason is not None:
            raise ValueError(
                f"Deal {self.id} in stage {self.stage.value} carries a loss reason"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def quarter(self) -> int:
        return math.ceil(self.month / 3)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_key_account(self) -> bool:
        return self.amount > KEY_ACCOUNT_THRESHOLD

    @property
    def quarter_label(self) -> str:
        """Quarter token as used by the time filter, e.g. ``Q3``."""
        return f"Q{self.quarter}"

    @property
    def is_won(self) -> bool:
        return self.stage == DealStage.CLOSED_WON

    @property
    def is_lost(self) -> bool:
        return self.stage == DealStage.CLOSED_LOST

    @property
    def is_open(self) -> bool:
        return self.stage == DealStage.PIPELINE


class Rep(BaseModel):
    """A sales rep as known to quota planning."""

    model_config = ConfigDict(frozen=True)

    name: str
    territory: Territory = Territory.US
    quota: float = Field(default=0.0, ge=0.0)


# account -> fiscal year -> summed closed-won revenue
AccountYearLedger = dict[str, dict[int, float]]
