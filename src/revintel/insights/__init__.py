"""Rule-based insights and the primary recommended action."""

from src.revintel.insights.formatting import fmt_money, fmt_pct
from src.revintel.insights.rules import (
    INSIGHT_RULES,
    ActionSeverity,
    InsightContext,
    InsightRule,
    InsightSummary,
    PrimaryAction,
    generate_insights,
    select_primary_action,
)

__all__ = [
    "ActionSeverity",
    "INSIGHT_RULES",
    "InsightContext",
    "InsightRule",
    "InsightSummary",
    "PrimaryAction",
    "fmt_money",
    "fmt_pct",
    "generate_insights",
    "select_primary_action",
]
