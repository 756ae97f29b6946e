"""Ingestion and normalization of raw deal data.

Two entry paths share one construction target:

    parse_text(csv_or_tsv)      -> build_deal() -> Deal
    decode_compact(dataset)     -> build_deal() -> Deal

Both return an IngestionResult; malformed rows are counted and dropped,
never raised. ``generate_demo_deals`` produces a seeded synthetic book
through the same target.
"""

from src.revintel.ingestion.compact import decode_compact
from src.revintel.ingestion.demo import demo_ingestion, generate_demo_deals
from src.revintel.ingestion.normalize import build_deal
from src.revintel.ingestion.schemas import CompactDataset, IngestionResult
from src.revintel.ingestion.text_parser import parse_text

__all__ = [
    "CompactDataset",
    "IngestionResult",
    "build_deal",
    "decode_compact",
    "demo_ingestion",
    "generate_demo_deals",
    "parse_text",
]
