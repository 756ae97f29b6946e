"""Seeded synthetic deal generator for demos and tests.

Produces a multi-year book of business: a set of key accounts that grow
year over year, a long tail of small accounts, Q4-heavy seasonality, and
loss reasons skewed by vertical (Healthcare loses on competition and fit,
Financial Services on price and budget). Output goes through the shared
``build_deal`` target, so generated deals are indistinguishable in type
from ingested ones.
"""

from __future__ import annotations

import random

import structlog

from src.revintel.config import get_settings
from src.revintel.deals.schemas import (
    LEAD_SOURCES,
    LOSS_REASONS,
    Deal,
    DealStage,
    DealType,
    Territory,
)
from src.revintel.ingestion.normalize import build_deal
from src.revintel.ingestion.schemas import IngestionResult

logger = structlog.get_logger(__name__)

DEMO_REPS: tuple[tuple[str, Territory], ...] = (
    ("Courtney Sands", Territory.US),
    ("Natalie Hitt", Territory.US),
    ("Lena Perlmutter", Territory.US),
    ("Sarah Kenny", Territory.CANADA),
    ("Zoe George", Territory.CANADA),
    ("Jonny Wiebe", Territory.US),
)

# (name, yearly growth, base spend, vertical)
KEY_ACCOUNTS: tuple[tuple[str, float, int, str], ...] = (
    ("Acme Corp", 1.4, 150_000, "Technology"),
    ("TechFlow Inc", 1.6, 120_000, "Technology"),
    ("Global Systems", 1.3, 180_000, "Financial Services"),
    ("Quantum Dynamics", 1.5, 110_000, "Manufacturing"),
    ("Atlas Enterprises", 1.2, 200_000, "Financial Services"),
    ("Nexus Group", 1.7, 85_000, "Healthcare"),
    ("Apex Solutions", 1.4, 130_000, "Retail"),
    ("Vertex Industries", 1.1, 160_000, "Manufacturing"),
    ("Pinnacle Co", 1.9, 70_000, "Media"),
    ("Summit Corp", 1.3, 140_000, "Financial Services"),
    ("Nova Systems", 2.0, 60_000, "Healthcare"),
    ("Zenith Labs", 1.4, 100_000, "Healthcare"),
    ("Catalyst Inc", 1.6, 80_000, "Technology"),
    ("Meridian Group", 1.2, 170_000, "Retail"),
    ("Vector Dynamics", 1.7, 65_000, "Healthcare"),
)

SMALL_ACCOUNTS: tuple[tuple[str, str], ...] = (
    ("SmallCo A", "Technology"),
    ("SmallCo B", "Retail"),
    ("SmallCo C", "Healthcare"),
    ("MidSize D", "Financial Services"),
)

_QUARTER_WEIGHT = {1: 0.8, 2: 1.0, 3: 1.0, 4: 1.3}
_DEAL_TYPES = tuple(DealType)


def _loss_reason(rng: random.Random, vertical: str) -> str:
    if vertical == "Healthcare":
        return "Competition" if rng.random() > 0.5 else "Product Fit"
    if vertical == "Financial Services":
        return "Price" if rng.random() > 0.6 else "No Budget"
    return rng.choice(LOSS_REASONS)


def _stage(rng: random.Random, win_share: float, lost_share: float) -> DealStage:
    if rng.random() < win_share:
        return DealStage.CLOSED_WON
    return DealStage.CLOSED_LOST if rng.random() > lost_share else DealStage.PIPELINE


def _probability(rng: random.Random, stage: DealStage, choices: tuple[float, ...]) -> float:
    if stage == DealStage.PIPELINE:
        return rng.choice(choices)
    return 1.0 if stage == DealStage.CLOSED_WON else 0.0


def generate_demo_deals(seed: int = 7, years: list[int] | None = None) -> list[Deal]:
    """Generate a deterministic synthetic deal book.

    Args:
        seed: Random seed; identical seeds give identical output.
        years: Fiscal years to cover. Defaults to the supported range.
    """
    rng = random.Random(seed)
    years = years or get_settings().supported_years
    deals: list[Deal] = []

    for yi, year in enumerate(years):
        year_weight = 0.7 + yi * 0.1
        for quarter, q_weight in _QUARTER_WEIGHT.items():
            for ai, (account, growth, base_spend, vertical) in enumerate(KEY_ACCOUNTS):
                if rng.random() <= 0.35:
                    continue
                rep, territory = DEMO_REPS[ai % len(DEMO_REPS)]
                amount = int(
                    base_spend * growth ** (yi - 1) * q_weight * (0.8 + rng.random() * 0.4)
                )
                stage = _stage(rng, 0.55, 0.3)
                month = (quarter - 1) * 3 + 1 + rng.randrange(3)
                age = 30 + rng.randrange(40) if stage == DealStage.CLOSED_WON else 40 + rng.randrange(60)
                deal_type = rng.choice(_DEAL_TYPES)
                deals.append(
                    build_deal(
                        deal_id=f"K{year}Q{quarter}{ai}",
                        name=f"{account} - {deal_type.value}",
                        account=account,
                        rep=rep,
                        territory=territory,
                        source=rng.choice(LEAD_SOURCES),
                        deal_type=deal_type,
                        stage=stage,
                        amount=amount,
                        year=year,
                        month=month,
                        vertical=vertical,
                        days_in_pipeline=age,
                        last_activity_days=rng.randrange(20),
                        loss_reason=_loss_reason(rng, vertical) if stage == DealStage.CLOSED_LOST else None,
                        probability=_probability(rng, stage, (0.3, 0.5, 0.7)),
                    )
                )

            for i in range(8):
                rep, territory = rng.choice(DEMO_REPS)
                account, vertical = rng.choice(SMALL_ACCOUNTS)
                stage = _stage(rng, 0.45, 0.25)
                month = (quarter - 1) * 3 + 1 + rng.randrange(3)
                deal_type = rng.choice(_DEAL_TYPES)
                deals.append(
                    build_deal(
                        deal_id=f"S{year}Q{quarter}{i}",
                        name=f"{account} - {deal_type.value}",
                        account=account,
                        rep=rep,
                        territory=territory,
                        source=rng.choice(LEAD_SOURCES),
                        deal_type=deal_type,
                        stage=stage,
                        amount=int((20_000 + rng.random() * 40_000) * year_weight * q_weight),
                        year=year,
                        month=month,
                        vertical=vertical,
                        days_in_pipeline=30 + rng.randrange(50),
                        last_activity_days=rng.randrange(25),
                        loss_reason=rng.choice(LOSS_REASONS) if stage == DealStage.CLOSED_LOST else None,
                        probability=_probability(rng, stage, (0.2, 0.4, 0.6)),
                    )
                )

    logger.debug("ingestion.demo_generated", seed=seed, deals=len(deals))
    return deals


def demo_ingestion(seed: int = 7) -> IngestionResult:
    """Wrap the demo book in an IngestionResult for the session loader."""
    deals = generate_demo_deals(seed)
    return IngestionResult(
        deals=tuple(deals),
        rows_read=len(deals),
        source_format="demo",
    )
