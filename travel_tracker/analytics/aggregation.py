"""
Monthly Aggregation Engine

DESIGN DECISION: Aggregation is a PURE function of (receipts, allowance).
Nothing is cached or persisted; stats are recomputed whenever either
input changes, so they can never drift from the receipts they describe.

Guarantees:
- One MonthlyStat per month that has receipts (sparse, no empty months)
- Totals are Decimal sums, so input order never changes the result
- Output is sorted newest month first
- The input list is never modified
"""

from decimal import Decimal
from typing import Iterable

from travel_tracker.models.receipt import (
    BudgetStatus,
    MonthlyStat,
    Receipt,
    month_label,
    validate_month_key,
)


DEFAULT_WARNING_FRACTION = Decimal("0.8")

_ZERO = Decimal("0")


def classify_status(
    total: Decimal,
    allowance: Decimal,
    warning_fraction: Decimal = DEFAULT_WARNING_FRACTION,
) -> BudgetStatus:
    """
    OverBudget when strictly over the allowance, Warning from the warning
    fraction of the allowance upward, Safe below that.
    """
    if total > allowance:
        return BudgetStatus.OVER_BUDGET
    if total >= allowance * warning_fraction:
        return BudgetStatus.WARNING
    return BudgetStatus.SAFE


def _remaining(total: Decimal, allowance: Decimal) -> Decimal:
    return max(_ZERO, allowance - total)


def empty_month_stat(month: str, allowance: Decimal) -> MonthlyStat:
    """Zero-valued stat for a month with no receipts. Always Safe."""
    return MonthlyStat(
        month=validate_month_key(month),
        total_spent=_ZERO,
        trip_count=0,
        remaining_budget=_remaining(_ZERO, allowance),
        status=BudgetStatus.SAFE,
    )


def aggregate(
    receipts: Iterable[Receipt],
    allowance: Decimal,
    warning_fraction: Decimal = DEFAULT_WARNING_FRACTION,
) -> list[MonthlyStat]:
    """
    Group receipts by calendar month and compare each month to the allowance.

    Args:
        receipts: Any iterable of receipts (not modified)
        allowance: Monthly allowance, the same for every month
        warning_fraction: Share of the allowance where Warning starts

    Returns:
        MonthlyStat list, newest month first
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}

    for receipt in receipts:
        key = receipt.month_key
        totals[key] = totals.get(key, _ZERO) + receipt.amount
        counts[key] = counts.get(key, 0) + 1

    stats = [
        MonthlyStat(
            month=month,
            total_spent=total,
            trip_count=counts[month],
            remaining_budget=_remaining(total, allowance),
            status=classify_status(total, allowance, warning_fraction),
        )
        for month, total in totals.items()
    ]
    # YYYY-MM keys sort chronologically as strings
    stats.sort(key=lambda stat: stat.month, reverse=True)
    return stats


def trend_series(
    stats: Iterable[MonthlyStat],
    allowance: Decimal,
) -> list[dict]:
    """
    Chart rows for the spend trend, oldest month first.

    Each row: {"month", "label", "spent", "allowance"}, amounts as floats
    for the charting layer.
    """
    ordered = sorted(stats, key=lambda stat: stat.month)
    return [
        {
            "month": stat.month,
            "label": month_label(stat.month, short=True),
            "spent": float(stat.total_spent),
            "allowance": float(allowance),
        }
        for stat in ordered
    ]
