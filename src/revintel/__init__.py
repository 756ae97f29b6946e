"""Revenue intelligence core.

Turns exported per-deal sales records into a canonical dataset and derives
revenue, win-rate, retention, concentration, quota and risk metrics plus
rule-based insights for a presentation layer to render.
"""
