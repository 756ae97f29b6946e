"""Pydantic schemas for ingestion inputs and results.

``CompactDataset`` is the wire shape of the pre-encoded dataset: per
dimension name-lookup tables plus integer row tuples. ``IngestionResult`` is
what both ingestion paths hand back to the session; it never carries an
exception, only counts and an explicit ``has_data`` signal.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from src.revintel.deals.schemas import AccountYearLedger, Deal

# Positions inside a compact row tuple.
ROW_REP = 0
ROW_ACCOUNT = 1
ROW_TERRITORY = 2
ROW_SOURCE = 3
ROW_TYPE = 4
ROW_STAGE = 5
ROW_AMOUNT = 6
ROW_YEAR = 7
ROW_QUARTER = 8
ROW_MONTH = 9
ROW_LOSS_REASON = 10
ROW_VERTICAL = 11
ROW_AGE = 12
ROW_CUST_REL = 13
ROW_WIDTH = 14


class CompactDataset(BaseModel):
    """Pre-encoded dataset with parallel lookup tables.

    Each entry of ``data`` is a 14-slot row:
    ``(repIdx, accountIdx, territoryIdx, sourceIdx, typeIdx, stageIdx,
    amount, year, quarterNum, month, lossReasonIdxOrSentinel, verticalIdx,
    ageDays, custRelIdx)``. A negative loss-reason index means "no reason".
    """

    model_config = ConfigDict(populate_by_name=True)

    reps: list[str] = Field(default_factory=list)
    accounts: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    verticals: list[str] = Field(default_factory=list)
    loss_reasons: list[str] = Field(default_factory=list, alias="lossReasons")
    cust_rels: list[str] = Field(default_factory=list, alias="custRels")
    data: list[list[float | None]] = Field(default_factory=list)
    account_year_revenue: dict[str, dict[int, float]] | None = Field(
        default=None, alias="accountYearRevenue"
    )


class IngestionResult(BaseModel):
    """Outcome of one ingestion pass.

    Attributes:
        deals: Canonical deals in input order.
        rows_read: Data rows seen (header excluded).
        rows_dropped: Rows that did not produce a deal.
        drop_reasons: Count of dropped rows per reason key.
        ledger: Pre-built account-year revenue ledger, when the input
            supplied one.
        source_format: ``"text"``, ``"compact"`` or ``"demo"``.
        superseded: Set by the session when a newer load finished first
            and this result was discarded.
    """

    model_config = ConfigDict(frozen=True)

    deals: tuple[Deal, ...] = ()
    rows_read: int = 0
    rows_dropped: int = 0
    drop_reasons: dict[str, int] = Field(default_factory=dict)
    ledger: AccountYearLedger | None = None
    source_format: str = "text"
    superseded: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_data(self) -> bool:
        """False signals "no usable data" to the caller."""
        return len(self.deals) > 0
