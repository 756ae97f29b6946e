"""Compact money and percentage strings for insight text."""

from __future__ import annotations

def fmt_money(value: float) -> str:
    """``$1.2M``, ``$350K`` or ``$900``."""
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${value / 1_000:.0f}K"
    return f"${value:.0f}"


def fmt_pct(ratio: float) -> str:
    """A 0..1 ratio as a whole percentage, e.g. ``45%``."""
    return f"{ratio * 100:.0f}%"
