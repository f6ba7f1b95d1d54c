"""
Streamlit Frontend for Envelope Finance

The screen a user opens every day to log spending and see how much is
left in each envelope.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every delete asks for confirmation
3. Clear error messages in simple language
4. Numbers always follow the selected month

All state lives in the FinanceDashboard. Pages only read its view and
call the write flows; snapshots arrive in the background.
"""

import asyncio
import time
from datetime import date

import streamlit as st

from envelope_finance.audit import configure_logging
from envelope_finance.config import get_settings, validate_all_settings
from envelope_finance.dashboard import DashboardView, FinanceDashboard
from envelope_finance.identity import IdentityError
from envelope_finance.models.ledger import (
    CATEGORIES,
    SPENDING_CATEGORIES,
    CategoryId,
    DebtDirection,
    TransactionDirection,
)
from envelope_finance.orchestrator import IdentityFlow, LedgerFlow, create_app_components
from envelope_finance.presentation import (
    build_spending_chart,
    format_currency,
    format_long_date,
    month_options,
    progress_fraction,
)
from envelope_finance.services.storage import PermissionDenied, StorageError
from envelope_finance.validation import InvalidEntry


# Page configuration
st.set_page_config(
    page_title="Envelope Finance",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

LOAD_TIMEOUT_SECONDS = 5.0

configure_logging(get_settings().app.debug_mode, get_settings().app.app_environment)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def money(amount) -> str:
    return format_currency(amount, get_settings().app.currency_symbol)


def category_label(value: str) -> str:
    """Short label for a stored category; unknown categories are shown as stored."""
    try:
        return CATEGORIES[CategoryId(value)].short_label
    except ValueError:
        return value


def show_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        st.warning(warning)


def run_write(action, success_message: str) -> bool:
    """Run a write flow and turn failures into messages. Returns True on success."""
    try:
        result = run_async(action)
    except InvalidEntry as e:
        st.error(str(e))
        return False
    except PermissionDenied:
        st.rerun()
    except StorageError as e:
        st.error(f"Could not save your change, please try again. ({e})")
        return False
    if isinstance(result, tuple):
        show_warnings(result[1])
    st.success(success_message)
    return True


def confirm_delete(key: str, label: str, action) -> None:
    """Two-step delete: first click asks, second click deletes."""
    pending = st.session_state.get("pending_delete")
    if pending != key:
        if st.button("🗑️", key=f"del-{key}", help=f"Delete {label}"):
            st.session_state.pending_delete = key
            st.rerun()
        return

    st.warning(f"Delete {label}?")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Yes, delete", key=f"yes-{key}", type="primary"):
            st.session_state.pending_delete = None
            if run_write(action(), "Deleted"):
                st.rerun()
    with col2:
        if st.button("Cancel", key=f"no-{key}"):
            st.session_state.pending_delete = None
            st.rerun()


def wait_until_loaded(dashboard: FinanceDashboard) -> None:
    deadline = time.monotonic() + LOAD_TIMEOUT_SECONDS
    while dashboard.loading and not dashboard.permission_denied and time.monotonic() < deadline:
        time.sleep(0.1)


def main():
    """Main application entry point."""
    sessions, identity_flow, ledger_flow, dashboard = get_components()

    if sessions.current is None:
        run_async(identity_flow.sign_in_anonymously())
    wait_until_loaded(dashboard)

    st.sidebar.title("💰 Envelope Finance")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "💸 Transactions", "🎯 Budget", "🤝 Debts", "🏦 Savings", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    render_period_selector(dashboard)

    if page == "⚙️ Settings":
        render_settings_page(sessions, identity_flow, dashboard)
        return

    try:
        view = dashboard.view()
    except PermissionDenied as e:
        render_permission_denied(dashboard, e)
        return

    if view.loading:
        st.info("Loading your data...")
        if st.button("🔄 Check again"):
            st.rerun()
        return
    if view.sync_error:
        st.warning(f"Sync problem: {view.sync_error}")

    if page == "📊 Dashboard":
        render_dashboard_page(view)
    elif page == "💸 Transactions":
        render_transactions_page(view, ledger_flow)
    elif page == "🎯 Budget":
        render_budget_page(view)
    elif page == "🤝 Debts":
        render_debts_page(view, ledger_flow)
    elif page == "🏦 Savings":
        render_savings_page(view, ledger_flow)


def render_period_selector(dashboard: FinanceDashboard):
    """Month and year pickers in the sidebar."""
    current = dashboard.period
    months = month_options()
    years = get_settings().app.supported_years_list

    month = st.sidebar.selectbox(
        "Month",
        options=[index for index, _ in months],
        index=current.month,
        format_func=lambda index: months[index][1],
    )
    year = st.sidebar.selectbox(
        "Year",
        options=years,
        index=years.index(current.year) if current.year in years else 0,
    )
    if (month, year) != (current.month, current.year):
        dashboard.select_period(month, year)
        st.rerun()


def render_permission_denied(dashboard: FinanceDashboard, error: PermissionDenied):
    st.title("🔒 Access Denied")
    st.markdown(f"""
    <div class="error-box">
        <h4>The storage backend refused access to your data.</h4>
        <p>{error}</p>
        <ol>
            <li>Share the spreadsheet with the service account email (Editor access).</li>
            <li>Check GOOGLE_SHEETS_SPREADSHEET_ID points at the right spreadsheet.</li>
            <li>Click <strong>Refresh</strong> below.</li>
        </ol>
    </div>
    """, unsafe_allow_html=True)
    if st.button("🔄 Refresh", type="primary"):
        dashboard.refresh()
        wait_until_loaded(dashboard)
        st.rerun()


def render_dashboard_page(view: DashboardView):
    st.title(f"📊 {view.period.label}")
    summary = view.summary

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", money(summary.total_income))
    col2.metric("Expenses", money(summary.total_expense))
    col3.metric("Balance", money(summary.balance))

    st.markdown("---")
    col1, col2 = st.columns([3, 2])
    with col1:
        st.subheader("Spending by envelope")
        st.plotly_chart(build_spending_chart(view.chart), use_container_width=True)
    with col2:
        st.subheader("Remaining")
        for category_id in SPENDING_CATEGORIES:
            bucket = summary.budgets[category_id]
            st.markdown(f"**{CATEGORIES[category_id].short_label}:** {money(bucket.remaining)}")

    st.markdown("---")
    st.subheader("Latest transactions")
    if not view.transactions:
        st.info("No transactions this month yet.")
    for tx in view.transactions[:5]:
        sign = "+" if tx.is_income else "-"
        st.markdown(f"{format_long_date(tx.occurs_on)} · {tx.description or tx.category} · **{sign}{money(tx.amount)}**")


def render_transactions_page(view: DashboardView, ledger_flow: LedgerFlow):
    st.title("💸 Transactions")

    with st.expander("➕ Add transaction", expanded=not view.transactions):
        with st.form("add-transaction", clear_on_submit=True):
            direction = st.radio(
                "Type",
                options=list(TransactionDirection),
                format_func=lambda d: "Income" if d is TransactionDirection.INCOME else "Expense",
                horizontal=True,
            )
            amount = st.text_input("Amount *", placeholder="e.g. 150000")
            category = st.selectbox(
                "Envelope (expenses only)",
                options=list(SPENDING_CATEGORIES),
                format_func=lambda c: CATEGORIES[c].label,
            )
            occurs_on = st.date_input("Date", value=date.today())
            description = st.text_input("Description")
            method = st.selectbox("Method", options=["Cash", "QRIS", "Transfer", "Card"])
            if st.form_submit_button("Save", type="primary"):
                run_write(
                    ledger_flow.add_transaction(
                        amount=amount,
                        direction=direction,
                        occurs_on=occurs_on,
                        category=category,
                        description=description,
                        method=method,
                    ),
                    "Transaction saved",
                )

    st.markdown("---")
    if not view.transactions:
        st.info(f"No transactions in {view.period.label}.")
    for tx in view.transactions:
        col1, col2, col3 = st.columns([4, 2, 1])
        label = category_label(tx.category)
        with col1:
            st.markdown(f"**{tx.description or label}**  \n{format_long_date(tx.occurs_on)} · {label} · {tx.method or 'CASH'}")
        with col2:
            sign = "+" if tx.is_income else "-"
            st.markdown(f"**{sign}{money(tx.amount)}**")
        with col3:
            confirm_delete(
                f"transactions:{tx.id}",
                "this transaction",
                lambda tx_id=tx.id: ledger_flow.delete_transaction(tx_id),
            )


def render_budget_page(view: DashboardView):
    st.title(f"🎯 Budget · {view.period.label}")
    st.markdown("Every income is split across the four envelopes.")

    for category_id in SPENDING_CATEGORIES:
        category = CATEGORIES[category_id]
        bucket = view.summary.budgets[category_id]
        st.markdown(f"#### {category.label}")
        st.progress(progress_fraction(bucket))
        col1, col2, col3 = st.columns(3)
        col1.metric("Limit", money(bucket.limit))
        col2.metric("Used", money(bucket.used))
        col3.metric("Remaining", money(bucket.remaining))
        if bucket.is_over_budget:
            st.error(f"Over budget by {money(-bucket.remaining)}")


def render_debts_page(view: DashboardView, ledger_flow: LedgerFlow):
    st.title("🤝 Debts")

    col1, col2 = st.columns(2)
    col1.metric("I owe", money(view.outstanding_payable))
    col2.metric("Owed to me", money(view.outstanding_receivable))

    with st.expander("➕ Add debt"):
        with st.form("add-debt", clear_on_submit=True):
            direction = st.radio(
                "Type",
                options=list(DebtDirection),
                format_func=lambda d: "I owe" if d is DebtDirection.PAYABLE else "Owed to me",
                horizontal=True,
            )
            name = st.text_input("Name *")
            amount = st.text_input("Amount *")
            incurred_on = st.date_input("Date", value=date.today())
            description = st.text_input("Description")
            if st.form_submit_button("Save", type="primary"):
                run_write(
                    ledger_flow.add_debt(
                        counterparty_name=name,
                        amount=amount,
                        direction=direction,
                        incurred_on=incurred_on,
                        description=description,
                    ),
                    "Debt saved",
                )

    tab_payable, tab_receivable = st.tabs(["I owe", "Owed to me"])
    for tab, debts in ((tab_payable, view.payables), (tab_receivable, view.receivables)):
        with tab:
            if not debts:
                st.info("Nothing here.")
            for debt in debts:
                col1, col2, col3, col4 = st.columns([4, 2, 1, 1])
                with col1:
                    status = "✅ Paid" if debt.is_paid else "⏳ Unpaid"
                    st.markdown(f"**{debt.counterparty_name}** · {status}  \n{format_long_date(debt.incurred_on)} {debt.description}")
                with col2:
                    st.markdown(f"**{money(debt.amount)}**")
                with col3:
                    if st.button("↔️", key=f"toggle-{debt.id}", help="Mark as paid/unpaid"):
                        if run_write(ledger_flow.toggle_debt_status(debt.id, debt.is_paid), "Updated"):
                            st.rerun()
                with col4:
                    confirm_delete(
                        f"debts:{debt.id}",
                        f"debt with {debt.counterparty_name}",
                        lambda debt_id=debt.id: ledger_flow.delete_debt(debt_id),
                    )


def render_savings_page(view: DashboardView, ledger_flow: LedgerFlow):
    st.title("🏦 Savings")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Total saved (all time)**")
        st.markdown(f'<div class="big-number">{money(view.total_savings)}</div>', unsafe_allow_html=True)
    with col2:
        st.markdown(f"""
        <div class="info-box">
            <h4>Recommended for {view.period.label}</h4>
            <p>{money(view.savings_recommendation)} (20% of this month's income)</p>
        </div>
        """, unsafe_allow_html=True)

    with st.expander("➕ Add deposit"):
        with st.form("add-saving", clear_on_submit=True):
            amount = st.text_input("Amount *")
            location = st.text_input("Where is it kept? *", placeholder="e.g. Bank Jago")
            occurs_on = st.date_input("Date", value=date.today())
            note = st.text_input("Note")
            if st.form_submit_button("Save", type="primary"):
                run_write(
                    ledger_flow.add_saving(
                        amount=amount,
                        location=location,
                        occurs_on=occurs_on,
                        note=note,
                    ),
                    "Deposit saved",
                )

    st.markdown("---")
    if not view.savings:
        st.info("No deposits yet.")
    for saving in view.savings:
        col1, col2, col3 = st.columns([4, 2, 1])
        with col1:
            st.markdown(f"**{saving.location}**  \n{format_long_date(saving.occurs_on)} {saving.note}")
        with col2:
            st.markdown(f"**{money(saving.amount)}**")
        with col3:
            confirm_delete(
                f"savings:{saving.id}",
                "this deposit",
                lambda saving_id=saving.id: ledger_flow.delete_saving(saving_id),
            )


def render_settings_page(sessions, identity_flow: IdentityFlow, dashboard: FinanceDashboard):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Account")
    session = sessions.current
    if session is not None:
        st.markdown(f"Signed in ({session.method.value}) as `{session.account_id}`")

    token = st.text_input("Sign in with a personal token", type="password")
    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("Sign in with token"):
            try:
                run_async(identity_flow.sign_in_with_token(token))
                st.rerun()
            except IdentityError as e:
                st.error(str(e))
    with col2:
        if st.button("Sign out"):
            run_async(identity_flow.sign_out())
            st.rerun()
    with col3:
        if st.button("🔄 Refresh data"):
            dashboard.refresh()
            wait_until_loaded(dashboard)
            st.rerun()

    st.markdown("---")
    st.markdown("### Connection Status")
    st.caption(f"Environment: {get_settings().app.app_environment}")

    status = validate_all_settings()
    sections = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Identity", "identity"),
        ("Application", "app"),
    ]
    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables."
    )


if __name__ == "__main__":
    main()
