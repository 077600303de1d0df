"""
Streamlit Frontend for Travel Tracker

A one-page dashboard for commute and travel receipts: upload ride
receipts, see how the month compares to the allowance, and browse the
month's trips.

DESIGN PRINCIPLES:
1. One month on screen at a time, with simple back / forward navigation
2. Upload problems shown as a short summary (counts + file names)
3. No hidden actions: removing a receipt is an explicit click
4. Guests keep data on this machine; signed-in users sync to Google Sheets

All numbers come from a DashboardSnapshot; this page only renders.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import streamlit as st

from travel_tracker.analytics import DashboardSnapshot, current_month_key, month_label
from travel_tracker.config import get_settings, validate_all_settings
from travel_tracker.models.receipt import (
    BatchResult,
    BudgetStatus,
    ReceiptFile,
    SortDirection,
    SortKey,
    Theme,
    UserIdentity,
    ViewState,
)
from travel_tracker.orchestrator import DashboardFlow, ReceiptUploadFlow, create_app_components


# Page configuration
st.set_page_config(
    page_title="Travel Tracker",
    page_icon="🚕",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .status-box {
        padding: 14px 20px;
        border-radius: 10px;
        margin: 10px 0;
        font-weight: 600;
    }
    .status-safe {
        background-color: #d4edda;
        border-left: 5px solid #28a745;
        color: #155724;
    }
    .status-warning {
        background-color: #fff3cd;
        border-left: 5px solid #ffc107;
        color: #856404;
    }
    .status-over {
        background-color: #f8d7da;
        border-left: 5px solid #dc3545;
        color: #721c24;
    }
    .month-title {
        text-align: center;
        font-size: 1.8em;
        font-weight: bold;
        margin: 0;
    }
</style>
""", unsafe_allow_html=True)

THEME_CSS = {
    Theme.DARK: """
<style>
    .stApp { background-color: #0f172a; color: #e2e8f0; }
    [data-testid="stSidebar"] { background-color: #1e293b; }
    .month-title { color: #e2e8f0; }
</style>
""",
    Theme.LIGHT: """
<style>
    .stApp { background-color: #ffffff; color: #1e293b; }
    [data-testid="stSidebar"] { background-color: #f1f5f9; }
</style>
""",
}

STATUS_TEXT = {
    BudgetStatus.SAFE: ("status-safe", "✅ On track: well within this month's allowance."),
    BudgetStatus.WARNING: ("status-warning", "⚠️ Getting close: most of the allowance is used."),
    BudgetStatus.OVER_BUDGET: ("status-over", "🚨 Over budget for this month."),
}

SORT_LABELS = {
    SortKey.DATE: "Date",
    SortKey.AMOUNT: "Amount",
    SortKey.PICKUP_LOCATION: "Pickup",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def current_identity() -> Optional[UserIdentity]:
    """Signed-in user from Streamlit's identity provider, or None for guests."""
    if not st.user.is_logged_in:
        return None
    uid = st.user.get("sub") or st.user.get("email")
    if not uid:
        return None
    return UserIdentity(
        uid=str(uid),
        display_name=st.user.get("name"),
        email=st.user.get("email"),
        avatar_url=st.user.get("picture"),
    )


@st.cache_resource
def get_components(uid: Optional[str], display_name: Optional[str], email: Optional[str]):
    """Get or create application components for one identity (cached)."""
    identity = None
    if uid:
        identity = UserIdentity(uid=uid, display_name=display_name, email=email)
    return create_app_components(identity)


def format_money(amount: Decimal) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol}{amount:,.2f}"


def get_view_state(dashboard_flow: DashboardFlow) -> ViewState:
    if "view_state" not in st.session_state:
        st.session_state.view_state = ViewState(
            selected_month_key=current_month_key(),
            theme=dashboard_flow.load_theme(),
        )
    return st.session_state.view_state


def set_view_state(view_state: ViewState) -> None:
    st.session_state.view_state = view_state


def main():
    """Main application entry point."""
    identity = current_identity()
    upload_flow, dashboard_flow, _ = get_components(
        identity.uid if identity else None,
        identity.display_name if identity else None,
        identity.email if identity else None,
    )

    view_state = get_view_state(dashboard_flow)
    if view_state.theme in THEME_CSS:
        st.markdown(THEME_CSS[view_state.theme], unsafe_allow_html=True)

    receipts = run_async(dashboard_flow.load_receipts())
    allowance = run_async(dashboard_flow.get_allowance())
    snapshot = run_async(dashboard_flow.snapshot(view_state, receipts, allowance))

    render_sidebar(identity, dashboard_flow, view_state, allowance)

    render_month_header(view_state, snapshot)
    render_stat_cards(snapshot)
    render_trend(snapshot, view_state)

    st.markdown("---")
    render_upload_section(upload_flow, view_state, receipts)

    st.markdown("---")
    render_history(dashboard_flow, view_state, snapshot)


def render_sidebar(
    identity: Optional[UserIdentity],
    dashboard_flow: DashboardFlow,
    view_state: ViewState,
    allowance: Decimal,
):
    """Identity, settings and connection status."""
    st.sidebar.title("🚕 Travel Tracker")
    st.sidebar.markdown("---")

    if identity:
        if identity.avatar_url:
            st.sidebar.image(identity.avatar_url, width=48)
        st.sidebar.markdown(f"Signed in as **{identity.display_name or identity.email}**")
        st.sidebar.caption("Receipts sync to your Google Sheet.")
        if st.sidebar.button("Sign out"):
            st.logout()
    else:
        st.sidebar.markdown("**Guest mode**")
        st.sidebar.caption("Receipts are stored on this machine only.")
        if st.sidebar.button("Sign in with Google"):
            try:
                st.login()
            except Exception:
                st.sidebar.error("Sign-in is not configured for this app.")

    st.sidebar.markdown("---")
    st.sidebar.markdown("### ⚙️ Settings")

    new_allowance = st.sidebar.number_input(
        "Monthly allowance",
        min_value=1.0,
        value=float(allowance),
        step=500.0,
    )
    if st.sidebar.button("Save allowance"):
        try:
            saved = run_async(dashboard_flow.update_allowance(Decimal(str(new_allowance))))
        except ValueError as e:
            st.sidebar.error(str(e))
        else:
            if saved:
                st.sidebar.success("Allowance updated.")
                st.rerun()
            else:
                st.sidebar.error("Could not save the allowance. Please try again.")

    themes = [Theme.SYSTEM, Theme.LIGHT, Theme.DARK]
    selected_theme = st.sidebar.selectbox(
        "Theme",
        themes,
        index=themes.index(view_state.theme),
        format_func=lambda theme: theme.value.capitalize(),
    )
    if selected_theme != view_state.theme:
        dashboard_flow.save_theme(selected_theme)
        set_view_state(view_state.with_theme(selected_theme))
        st.rerun()

    with st.sidebar.expander("Connection status"):
        status = validate_all_settings()
        services = [
            ("Gemini (receipt reading)", "gemini"),
            ("Google Sheets (sync)", "google_sheets"),
        ]
        for name, key in services:
            if status.get(key, False):
                st.success(f"✅ {name} - Configured")
            else:
                error = status.get(f"{key}_error", "Not configured")
                st.error(f"❌ {name} - {error}")
        st.caption("See `.env.example` for the required variables.")


def render_month_header(view_state: ViewState, snapshot: DashboardSnapshot):
    """Month title with previous / next navigation."""
    prev_col, title_col, next_col = st.columns([1, 4, 1])

    with prev_col:
        if st.button("◀ Previous", key="month_prev"):
            set_view_state(view_state.navigate(-1))
            st.rerun()

    with title_col:
        st.markdown(
            f'<p class="month-title">{month_label(view_state.selected_month_key)}</p>',
            unsafe_allow_html=True,
        )

    with next_col:
        if st.button("Next ▶", key="month_next"):
            set_view_state(view_state.navigate(1))
            st.rerun()

    if snapshot.selected_month_is_empty and snapshot.latest_month_key:
        if snapshot.latest_month_key != view_state.selected_month_key:
            st.info("No trips recorded for this month.")
            if st.button("View most recent activity"):
                set_view_state(view_state.select_month(snapshot.latest_month_key))
                st.rerun()


def render_stat_cards(snapshot: DashboardSnapshot):
    """Spend figures and budget status for the selected month."""
    stats = snapshot.selected_stats

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric(
        "Spent",
        format_money(stats.total_spent),
        help=f"Allowance {format_money(snapshot.allowance)}",
    )
    col2.metric("Remaining", format_money(stats.remaining_budget))
    col3.metric("Used", f"{snapshot.utilization_percent:.0f}%")
    col4.metric("Trips", stats.trip_count)
    col5.metric("Avg per trip", format_money(stats.average_per_trip))

    st.progress(min(snapshot.utilization_percent, 100.0) / 100)

    css_class, text = STATUS_TEXT[stats.status]
    st.markdown(
        f'<div class="status-box {css_class}">{text}</div>',
        unsafe_allow_html=True,
    )


def render_trend(snapshot: DashboardSnapshot, view_state: ViewState):
    """Monthly spend chart and a jump-to-month selector."""
    if not snapshot.trend:
        return

    st.markdown("### 📊 Monthly trend")
    st.bar_chart(
        snapshot.trend,
        x="month",
        y=["spent", "allowance"],
        stack=False,
    )

    months = [row["month"] for row in reversed(snapshot.trend)]
    selected = view_state.selected_month_key
    choice = st.selectbox(
        "Jump to month",
        months,
        index=months.index(selected) if selected in months else None,
        format_func=month_label,
        placeholder="Choose a month",
    )
    if choice and choice != selected:
        set_view_state(view_state.select_month(choice))
        st.rerun()


def render_upload_section(upload_flow: ReceiptUploadFlow, view_state: ViewState, receipts):
    """Multi-file uploader and the last batch's summary."""
    st.markdown("### 📤 Upload receipts")
    st.markdown("Uber, Ola, Rapido, Cityflo or any ride receipt. Images or PDFs.")

    if "uploader_generation" not in st.session_state:
        st.session_state.uploader_generation = 0

    formats = get_settings().app.supported_formats_list
    uploaded = st.file_uploader(
        "Choose receipt files",
        type=formats,
        accept_multiple_files=True,
        key=f"uploader_{st.session_state.uploader_generation}",
    )

    if uploaded and st.button(f"Process {len(uploaded)} receipt(s)", type="primary"):
        files = [
            ReceiptFile(
                file_name=item.name,
                content=item.getvalue(),
                mime_type=item.type,
            )
            for item in uploaded
        ]
        with st.spinner("Reading receipts..."):
            result = run_async(upload_flow.process_batch(files, existing=receipts))

        st.session_state.batch_result = result
        set_view_state(view_state.after_upload(result))
        # New key clears the uploader
        st.session_state.uploader_generation += 1
        st.rerun()

    result: Optional[BatchResult] = st.session_state.get("batch_result")
    if result is not None:
        render_batch_summary(result)


def render_batch_summary(result: BatchResult):
    message = result.summary_message()
    if result.errors and not result.added:
        st.error(message)
    elif result.has_issues:
        st.warning(message)
    else:
        st.success(message)

    if result.errors:
        with st.expander(f"Failed files ({len(result.errors)})"):
            for failure in result.errors:
                st.markdown(f"- **{failure.file_name}**: {failure.message}")

    if result.duplicates:
        with st.expander(f"Skipped duplicates ({len(result.duplicates)})"):
            for duplicate in result.duplicates:
                receipt = duplicate.data
                st.markdown(
                    f"- **{duplicate.file_name}**: {receipt.trip_date.isoformat()} "
                    f"{receipt.trip_time} · {format_money(receipt.amount)}"
                )

    if st.button("Dismiss"):
        del st.session_state.batch_result
        st.rerun()


def render_history(dashboard_flow: DashboardFlow, view_state: ViewState, snapshot: DashboardSnapshot):
    """The selected month's trips with sort controls and remove buttons."""
    st.markdown("### 🧾 Trip history")

    sort = view_state.sort
    sort_cols = st.columns(len(SORT_LABELS))
    for col, (key, label) in zip(sort_cols, SORT_LABELS.items()):
        arrow = ""
        if sort.key == key:
            arrow = " ↓" if sort.direction == SortDirection.DESC else " ↑"
        if col.button(f"{label}{arrow}", key=f"sort_{key.value}"):
            set_view_state(view_state.with_sort(key))
            st.rerun()

    if not snapshot.month_receipts:
        if snapshot.has_any_receipts:
            st.info("No receipts for this month.")
        else:
            st.info("No receipts yet. Upload your first ride receipt above.")
        return

    for receipt in snapshot.month_receipts:
        col1, col2, col3, col4, col5 = st.columns([2, 4, 2, 2, 1])
        with col1:
            st.markdown(f"**{receipt.trip_date.strftime('%d %b %Y')}**")
            st.caption(receipt.trip_time or "--:--")
        with col2:
            st.markdown(f"{receipt.pickup_location or 'N/A'} → {receipt.dropoff_location or 'N/A'}")
        with col3:
            st.markdown(receipt.trip_type)
        with col4:
            st.markdown(f"**{format_money(receipt.amount)}**")
        with col5:
            if st.button("🗑️", key=f"remove_{receipt.id}", help="Remove this receipt"):
                if run_async(dashboard_flow.delete_receipt(receipt.id)):
                    st.rerun()
                else:
                    st.error("Could not remove the receipt. Please try again.")


if __name__ == "__main__":
    main()
