"""
Streamlit Frontend for Finance Tracker

The user interface for recording expenses and savings, checking
payment method balances and keeping track of money lent or borrowed.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Clear error messages in simple language
3. Visual feedback for all operations
4. Balances are always shown as stored - never recomputed in the UI
"""

from datetime import date, datetime, time
from decimal import Decimal

import streamlit as st

from finance_tracker.audit import create_correlation_id
from finance_tracker.config import get_settings, validate_all_settings
from finance_tracker.models import (
    AccountType,
    CatalogKind,
    EntityStatus,
    EntryFilter,
    EntryKind,
    TransactionType,
)
from finance_tracker.orchestrator import (
    AppComponents,
    CatalogFlow,
    LedgerEntryFlow,
    create_app_components,
)
from finance_tracker.runner import BackgroundLoop
from finance_tracker.services.storage import DuplicateError, NotFoundError, StorageError
from finance_tracker.validation import EntryValidationError


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
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
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_runner() -> BackgroundLoop:
    """One event loop shared by every session (the reconciler's locks live on it)."""
    return BackgroundLoop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return get_runner().run(coro)


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def money(amount) -> str:
    return get_settings().app.format_amount(Decimal(amount))


def show_error(error: Exception):
    """Render a service error in plain language."""
    if isinstance(error, EntryValidationError):
        st.error("Please fix the following:")
        for issue in error.issues:
            st.markdown(f"- {issue.message}")
    elif isinstance(error, NotFoundError):
        st.error(f"Not found: {error}")
    elif isinstance(error, DuplicateError):
        st.error(str(error))
    elif isinstance(error, StorageError):
        st.error(f"Could not save your changes, nothing was changed. ({error})")
    else:
        run_async(get_components().audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
        ))
        st.error(f"Error: {error}")


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("💰 Finance Tracker")
    user_id = st.sidebar.text_input("Your user id", value="me")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🧾 Expenses", "🏦 Savings", "💳 Balances", "🤝 Accounts", "🗂️ Catalog", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How balances work:**
        - Amount types with "credit" or "income" in the name are credits
        - Every expense and saving moves its payment method balance
        - Your total balance is the sum of all payment method balances
        """
    )

    if not user_id:
        st.warning("Enter a user id to continue.")
        return

    if page == "🧾 Expenses":
        render_entries_page(components.expenses, components.catalog, user_id)
    elif page == "🏦 Savings":
        render_entries_page(components.savings, components.catalog, user_id)
    elif page == "💳 Balances":
        render_balances_page(components, user_id)
    elif page == "🤝 Accounts":
        render_accounts_page(components, user_id)
    elif page == "🗂️ Catalog":
        render_catalog_page(components.catalog)
    elif page == "⚙️ Settings":
        render_settings_page()


def _catalog_options(catalog: CatalogFlow, kind: CatalogKind, active_only: bool = True):
    return run_async(catalog.list_items(kind, active_only=active_only))


def render_entries_page(flow: LedgerEntryFlow, catalog: CatalogFlow, user_id: str):
    """Render the expense or saving page."""
    label = "Expenses" if flow.kind == EntryKind.EXPENSE else "Savings"
    st.title(f"🧾 {label}")

    categories = _catalog_options(catalog, CatalogKind.CATEGORY)
    payment_methods = _catalog_options(catalog, CatalogKind.PAYMENT_METHOD)
    amount_types = _catalog_options(catalog, CatalogKind.AMOUNT_TYPE)

    if not (categories and payment_methods and amount_types):
        st.info("Add at least one category, payment method and amount type on the Catalog page first.")
        return

    with st.form(f"new_{flow.kind.value}"):
        st.markdown(f"### Record a new {flow.kind.value}")
        col1, col2 = st.columns(2)
        with col1:
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            entry_date = st.date_input("Date", value=date.today())
            description = st.text_input("Description")
        with col2:
            category = st.selectbox("Category", categories, format_func=lambda i: i.name)
            payment_method = st.selectbox("Payment method", payment_methods, format_func=lambda i: i.name)
            amount_type = st.selectbox("Amount type", amount_types, format_func=lambda i: i.name)

        if st.form_submit_button("💾 Save", type="primary"):
            try:
                entry = run_async(flow.create_entry(
                    user_id,
                    {
                        "amount": Decimal(str(amount)),
                        "category_id": category.id,
                        "payment_method_id": payment_method.id,
                        "amount_type_id": amount_type.id,
                        "entry_date": datetime.combine(entry_date, time()),
                        "description": description,
                    },
                    correlation_id=create_correlation_id(),
                ))
                st.success(f"✅ Saved {money(entry.amount)}")
            except Exception as e:
                show_error(e)

    st.markdown("---")
    st.markdown(f"### Your {label.lower()}")

    col1, col2, col3 = st.columns(3)
    with col1:
        start_date = st.date_input("From", value=None, key=f"{flow.kind.value}_from")
    with col2:
        end_date = st.date_input("To", value=None, key=f"{flow.kind.value}_to")
    with col3:
        category_filter = st.selectbox(
            "Filter by Category",
            options=[None] + categories,
            format_func=lambda x: "All Categories" if x is None else x.name,
            key=f"{flow.kind.value}_category",
        )

    entry_filter = EntryFilter(
        start_date=start_date,
        end_date=end_date,
        category_id=category_filter.id if category_filter else None,
    )
    entries = run_async(flow.list_entries(user_id, entry_filter))

    if flow.kind == EntryKind.EXPENSE:
        stats = run_async(flow.expense_stats(user_id, entry_filter))
        col1, col2 = st.columns(2)
        col1.metric("Total credit", money(stats.total_credit))
        col2.metric("Total debit", money(stats.total_debit))
        if stats.payment_method_stats:
            st.dataframe([
                {"Payment method": s.name, "Credit": money(s.credit), "Debit": money(s.debit)}
                for s in stats.payment_method_stats
            ], use_container_width=True)
    else:
        total = run_async(flow.saving_total(user_id, entry_filter))
        st.metric("Net saved", money(total.total))

    if not entries:
        st.info(f"📋 Your {label.lower()} will appear here once you record them.")
        return

    names = {item.id: item.name for item in categories + payment_methods + amount_types}
    for entry in entries:
        title = (
            f"{entry.entry_date:%d %b %Y} · {money(entry.amount)} · "
            f"{names.get(entry.category_id, 'Unknown category')}"
        )
        with st.expander(title):
            st.markdown(f"**Payment method:** {names.get(entry.payment_method_id, 'Unknown')}")
            st.markdown(f"**Amount type:** {names.get(entry.amount_type_id, 'Unknown')}")
            if entry.description:
                st.markdown(f"**Description:** {entry.description}")
            if st.button("🗑️ Delete", key=f"delete_{entry.id}"):
                try:
                    run_async(flow.delete_entry(user_id, entry.id))
                    st.success("Deleted.")
                    st.rerun()
                except Exception as e:
                    show_error(e)


def render_balances_page(components: AppComponents, user_id: str):
    """Render stored balances and the manual override controls."""
    st.title("💳 Balances")

    reconciler = components.reconciler
    aggregate = run_async(reconciler.get_aggregate_balance(user_id))
    st.markdown("### Total balance")
    st.markdown(f'<p class="big-number">{money(aggregate.current_balance)}</p>', unsafe_allow_html=True)

    rows = run_async(reconciler.get_payment_method_balances(user_id))
    methods = {item.id: item for item in _catalog_options(components.catalog, CatalogKind.PAYMENT_METHOD, False)}

    st.markdown("### By payment method")
    if rows:
        st.dataframe([
            {
                "Payment method": methods[row.payment_method_id].name
                if row.payment_method_id in methods else str(row.payment_method_id),
                "Balance": money(row.balance),
                "Updated": f"{row.updated_at:%d %b %Y %H:%M}",
            }
            for row in rows
        ], use_container_width=True)
    else:
        st.info("No balances yet. They appear after your first expense or saving.")

    st.markdown("---")
    with st.expander("✏️ Correct a balance manually"):
        target = st.selectbox(
            "Balance to correct",
            options=[None] + list(methods.values()),
            format_func=lambda x: "Total balance" if x is None else x.name,
        )
        value = st.number_input("New balance", step=1.0, format="%.2f")
        if st.button("Set balance"):
            try:
                if target is None:
                    run_async(reconciler.override_aggregate_balance(user_id, Decimal(str(value))))
                else:
                    run_async(reconciler.override_payment_method_balance(
                        user_id, target.id, Decimal(str(value))
                    ))
                st.success("Balance updated.")
                st.rerun()
            except Exception as e:
                show_error(e)


def render_accounts_page(components: AppComponents, user_id: str):
    """Render loan accounts (money borrowed or lent)."""
    st.title("🤝 Accounts")
    ledger = components.accounts

    with st.form("new_account"):
        st.markdown("### Open an account")
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Name (who is it with?)")
            account_type = st.selectbox(
                "Type",
                list(AccountType),
                format_func=lambda t: "I borrowed" if t == AccountType.BORROWED else "I lent",
            )
        with col2:
            initial_amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            description = st.text_input("Description")

        if st.form_submit_button("Open account", type="primary"):
            try:
                run_async(ledger.create_account(user_id, {
                    "name": name,
                    "account_type": account_type,
                    "initial_amount": Decimal(str(initial_amount)),
                    "description": description,
                }))
                st.success("✅ Account opened")
            except Exception as e:
                show_error(e)

    st.markdown("---")
    views = run_async(ledger.list_accounts(user_id))
    if not views:
        st.info("No open accounts.")
        return

    for view in views:
        account, summary = view.account, view.summary
        with st.expander(f"{account.name} · outstanding {money(summary.outstanding)}"):
            col1, col2, col3 = st.columns(3)
            col1.metric("Principal", money(summary.total_borrowed))
            col2.metric("Repaid", money(summary.total_repaid))
            col3.metric("Outstanding", money(summary.outstanding))
            if summary.last_repayment_date:
                st.caption(f"Last repayment: {summary.last_repayment_date:%d %b %Y}")

            for txn in account.transactions:
                cols = st.columns([3, 1])
                cols[0].markdown(
                    f"{txn.transaction_date:%d %b %Y} · **{txn.type.value}** "
                    f"{money(txn.amount)} · {txn.payment_channel} {txn.note}"
                )
                if cols[1].button("Remove", key=f"remove_{txn.id}"):
                    try:
                        run_async(ledger.remove_transaction(user_id, account.id, txn.id))
                        st.rerun()
                    except Exception as e:
                        show_error(e)

            with st.form(f"txn_{account.id}"):
                txn_type = st.selectbox(
                    "Transaction",
                    [t for t in TransactionType if account.allows(t)],
                    format_func=lambda t: t.value.title(),
                )
                amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f", key=f"amt_{account.id}")
                note = st.text_input("Note", key=f"note_{account.id}")
                if st.form_submit_button("Add transaction"):
                    try:
                        run_async(ledger.add_transaction(user_id, account.id, {
                            "type": txn_type,
                            "amount": Decimal(str(amount)),
                            "note": note,
                        }))
                        st.rerun()
                    except Exception as e:
                        show_error(e)

            if st.button("📦 Archive", key=f"archive_{account.id}"):
                run_async(ledger.archive_account(user_id, account.id))
                st.rerun()


def render_catalog_page(catalog: CatalogFlow):
    """Render reference data maintenance."""
    st.title("🗂️ Catalog")

    tabs = st.tabs(["Amount types", "Categories", "Payment methods"])
    kinds = [CatalogKind.AMOUNT_TYPE, CatalogKind.CATEGORY, CatalogKind.PAYMENT_METHOD]

    for tab, kind in zip(tabs, kinds):
        with tab:
            with st.form(f"new_{kind.value}"):
                name = st.text_input("Name", key=f"name_{kind.value}")
                if st.form_submit_button("Add"):
                    try:
                        run_async(catalog.create_item(kind, name))
                        st.success(f"✅ Added {name}")
                    except Exception as e:
                        show_error(e)

            for item in run_async(catalog.list_items(kind)):
                cols = st.columns([3, 1, 1])
                cols[0].markdown(f"**{item.name}** ({item.status.value})")
                new_status = (
                    EntityStatus.INACTIVE if item.is_active else EntityStatus.ACTIVE
                )
                if cols[1].button(
                    "Deactivate" if item.is_active else "Activate",
                    key=f"status_{item.id}",
                ):
                    run_async(catalog.set_status(kind, item.id, new_status))
                    st.rerun()
                if cols[2].button("Delete", key=f"del_{item.id}"):
                    run_async(catalog.delete_item(kind, item.id))
                    st.rerun()


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Application", "app"),
        ("Google Sheets (Storage)", "google_sheets"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if status.get("app"):
        st.markdown(f"**Storage backend:** `{get_settings().app.storage_backend}`")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. Set "
        "`STORAGE_BACKEND=google_sheets` together with `GOOGLE_SHEETS_CREDENTIALS_PATH` "
        "and `GOOGLE_SHEETS_SPREADSHEET_ID` to keep your data in Google Sheets."
    )


if __name__ == "__main__":
    main()
