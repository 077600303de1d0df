"""
Dashboard snapshot: everything one page render needs, computed in one place.

The Streamlit page only renders a DashboardSnapshot; it does no arithmetic.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from travel_tracker.analytics.aggregation import (
    DEFAULT_WARNING_FRACTION,
    aggregate,
    trend_series,
)
from travel_tracker.analytics.navigation import (
    latest_month_key,
    receipts_for_month,
    stats_for_month,
)
from travel_tracker.analytics.sorting import sort_receipts
from travel_tracker.models.receipt import MonthlyStat, Receipt, ViewState


class DashboardSnapshot(BaseModel):
    """Derived view of receipts + allowance for the selected month."""
    model_config = ConfigDict(frozen=True)

    allowance: Decimal
    monthly_stats: list[MonthlyStat] = Field(default_factory=list)
    selected_stats: MonthlyStat
    month_receipts: list[Receipt] = Field(
        default_factory=list,
        description="Selected month's receipts, in the view's sort order"
    )
    trend: list[dict] = Field(default_factory=list)
    has_any_receipts: bool = False
    latest_month_key: Optional[str] = None

    @property
    def utilization_percent(self) -> float:
        return self.selected_stats.utilization_percent(self.allowance)

    @property
    def selected_month_is_empty(self) -> bool:
        return self.selected_stats.trip_count == 0


def build_dashboard(
    receipts: list[Receipt],
    allowance: Decimal,
    view_state: ViewState,
    warning_fraction: Decimal = DEFAULT_WARNING_FRACTION,
) -> DashboardSnapshot:
    """Compute the snapshot for `view_state.selected_month_key`."""
    month = view_state.selected_month_key
    stats = aggregate(receipts, allowance, warning_fraction)

    return DashboardSnapshot(
        allowance=allowance,
        monthly_stats=stats,
        selected_stats=stats_for_month(stats, month, allowance),
        month_receipts=sort_receipts(receipts_for_month(receipts, month), view_state.sort),
        trend=trend_series(stats, allowance),
        has_any_receipts=bool(receipts),
        latest_month_key=latest_month_key(receipts),
    )
