"""Revenue intelligence configuration via Pydantic BaseSettings.

All settings load from environment variables with the REVINTEL_ prefix.
For example, REVINTEL_TOP_N_ACCOUNTS sets TOP_N_ACCOUNTS. Dict and list
fields accept JSON (REVINTEL_ANNUAL_GOALS='{"2027": 70000000}').
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


# Planning-spreadsheet defaults. Callers override per session; the core
# only reads them.
DEFAULT_ANNUAL_GOALS: dict[int, float] = {
    2022: 16_662_000,
    2023: 35_725_000,
    2024: 38_000_000,
    2025: 55_000_000,
    2026: 65_000_000,
}

DEFAULT_KNOWN_REPS: list[str] = [
    "Courtney Sands",
    "Natalie Hitt",
    "Lena Perlmutter",
    "Sarah Kenny",
    "Hannah Wasson",
    "Max Houde Schulman",
    "Gretchan Nicholson",
    "Alex Welzel",
    "Alexsandra Welzel",
    "Zoe George",
    "Jonny Wiebe",
    "Cas Harding - Whatman",
    "Cas Harding",
]

DEFAULT_REP_QUOTAS: dict[str, dict[int, float]] = {
    "Courtney Sands": {2025: 6_200_000, 2026: 6_273_145},
    "Natalie Hitt": {2025: 6_200_000, 2026: 5_026_687},
    "Lena Perlmutter": {2025: 5_600_000, 2026: 7_838_600},
    "Sarah Kenny": {2025: 3_600_000, 2026: 6_650_000},
    "Hannah Wasson": {2025: 1_920_000, 2026: 3_704_580},
    "Max Houde Schulman": {2025: 2_700_000, 2026: 6_540_000},
    "Gretchan Nicholson": {2025: 2_612_700, 2026: 4_064_000},
    "Alex Welzel": {2025: 8_500_000, 2026: 7_650_000},
    "Alexsandra Welzel": {2025: 8_500_000, 2026: 7_650_000},
    "Zoe George": {2025: 4_600_000, 2026: 3_400_000},
    "Jonny Wiebe": {2025: 2_400_000, 2026: 3_700_000},
    "Cas Harding - Whatman": {2025: 4_800_000, 2026: 5_500_000},
    "Cas Harding": {2025: 4_800_000, 2026: 5_500_000},
}


class Settings(BaseSettings):
    """Session-wide defaults loaded from environment variables and .env file.

    Attributes:
        ENVIRONMENT: Deployment environment; production switches logging
            to JSON output.
        LOG_LEVEL: Minimum log level for the stdlib root logger.
        MIN_YEAR / MAX_YEAR: Supported fiscal-year range. Records outside
            it are dropped during ingestion on both input paths.
        TOP_N_ACCOUNTS: Size of the account concentration cohort.
        DEFAULT_REP_QUOTA: Quota used when neither an override nor the
            quota table covers a rep.
        ANNUAL_GOALS: Revenue goal per fiscal year.
        KNOWN_REPS: Roster admitted into rep performance.
        REP_QUOTAS: Multi-year quota table, rep -> year -> quota.
        TERRITORY_QUOTAS: Optional per-territory quota overrides.
    """

    model_config = SettingsConfigDict(
        env_prefix="REVINTEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ENVIRONMENT: Environment = Environment.development
    LOG_LEVEL: str = "INFO"

    # Supported fiscal years
    MIN_YEAR: int = 2020
    MAX_YEAR: int = 2026

    # Deal classification
    TOP_N_ACCOUNTS: int = 20
    DEFAULT_REP_QUOTA: float = 500_000

    # Goals
    ANNUAL_GOALS: dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_ANNUAL_GOALS))
    FALLBACK_REVENUE_GOAL: float = 55_000_000
    FALLBACK_PIPELINE_GOAL: float = 80_000_000
    GOAL_DEAL_SIZE: float = 120_000
    GOAL_WIN_RATE: float = 0.35
    GOAL_CYCLE_DAYS: float = 45
    GOAL_NDR: float = 1.10
    GOAL_GDR: float = 0.90

    # Rep roster and quotas
    KNOWN_REPS: list[str] = Field(default_factory=lambda: list(DEFAULT_KNOWN_REPS))
    REP_QUOTAS: dict[str, dict[int, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_REP_QUOTAS.items()}
    )
    TERRITORY_QUOTAS: dict[str, float] = Field(default_factory=dict)

    @property
    def supported_years(self) -> list[int]:
        """Every fiscal year in the supported range, ascending."""
        return list(range(self.MIN_YEAR, self.MAX_YEAR + 1))


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
