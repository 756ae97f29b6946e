"""Filter engine over the canonical deal list."""

from src.revintel.filters.engine import (
    FilterCriteria,
    FilterOptions,
    apply_filters,
    filter_options,
    prior_year_criteria,
    prior_year_view,
    toggle_time_period,
)

__all__ = [
    "FilterCriteria",
    "FilterOptions",
    "apply_filters",
    "filter_options",
    "prior_year_criteria",
    "prior_year_view",
    "toggle_time_period",
]
