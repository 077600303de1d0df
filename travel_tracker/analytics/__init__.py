"""
Analytics Package

Pure functions over receipts: monthly aggregation, month navigation,
history sorting and the combined dashboard snapshot.
"""

from travel_tracker.analytics.aggregation import (
    DEFAULT_WARNING_FRACTION,
    aggregate,
    classify_status,
    empty_month_stat,
    trend_series,
)
from travel_tracker.analytics.dashboard import DashboardSnapshot, build_dashboard
from travel_tracker.analytics.navigation import (
    current_month_key,
    latest_month_key,
    month_label,
    receipts_for_month,
    shift_month_key,
    stats_for_month,
    validate_month_key,
)
from travel_tracker.analytics.sorting import sort_receipts, sort_value

__all__ = [
    # Aggregation
    "DEFAULT_WARNING_FRACTION",
    "aggregate",
    "classify_status",
    "empty_month_stat",
    "trend_series",
    # Navigation
    "current_month_key",
    "latest_month_key",
    "month_label",
    "receipts_for_month",
    "shift_month_key",
    "stats_for_month",
    "validate_month_key",
    # Sorting
    "sort_receipts",
    "sort_value",
    # Dashboard
    "DashboardSnapshot",
    "build_dashboard",
]
