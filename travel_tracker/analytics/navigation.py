"""
Month Navigation & Selection

The dashboard always shows exactly one month. Selection lives in ViewState
(see models.receipt); this module holds the read-side helpers that turn a
selected month key into what the page displays.

Month keys that have no receipts are valid selections: they resolve to a
synthetic zero stat instead of an error.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from travel_tracker.analytics.aggregation import empty_month_stat
from travel_tracker.models.receipt import (
    MonthlyStat,
    Receipt,
    month_key_of,
    month_label,
    shift_month_key,
    validate_month_key,
)


__all__ = [
    "current_month_key",
    "latest_month_key",
    "month_label",
    "receipts_for_month",
    "shift_month_key",
    "stats_for_month",
    "validate_month_key",
]


def current_month_key(today: Optional[date] = None) -> str:
    """Month key of today (local date), the default selection."""
    return month_key_of(today or date.today())


def receipts_for_month(receipts: Iterable[Receipt], key: str) -> list[Receipt]:
    """Receipts of one month, newest trip first."""
    validate_month_key(key)
    selected = [receipt for receipt in receipts if receipt.month_key == key]
    return sorted(selected, key=lambda receipt: receipt.sort_instant, reverse=True)


def stats_for_month(stats: Iterable[MonthlyStat], key: str, allowance: Decimal) -> MonthlyStat:
    """The stat for `key`, or a zero stat if that month has no receipts."""
    validate_month_key(key)
    for stat in stats:
        if stat.month == key:
            return stat
    return empty_month_stat(key, allowance)


def latest_month_key(receipts: Iterable[Receipt]) -> Optional[str]:
    """Month of the most recent trip, or None when there are no receipts."""
    newest = max(receipts, key=lambda receipt: receipt.sort_instant, default=None)
    return newest.month_key if newest is not None else None
