"""
History table sorting.

sorted() is stable and stays stable with reverse=True, so receipts with
equal keys keep their input order in both directions.
"""

from typing import Any, Iterable, Optional

from travel_tracker.models.receipt import Receipt, SortConfig, SortDirection, SortKey


def sort_value(receipt: Receipt, key: SortKey) -> Any:
    """The comparable value of one receipt for a sort key."""
    key = SortKey(key)
    if key == SortKey.DATE:
        return receipt.sort_instant
    if key == SortKey.AMOUNT:
        return receipt.amount
    # Empty locations sort first ascending
    return (receipt.pickup_location or "").casefold()


def sort_receipts(
    receipts: Iterable[Receipt],
    config: Optional[SortConfig] = None,
) -> list[Receipt]:
    """Return a new list ordered by the config (default: date, newest first)."""
    config = config or SortConfig()
    return sorted(
        receipts,
        key=lambda receipt: sort_value(receipt, config.key),
        reverse=config.direction == SortDirection.DESC,
    )
