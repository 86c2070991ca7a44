"""
Streamlit Frontend for ZeroBudget

The household-facing interface over the ledger and the budget engine.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every write is an explicit button press
3. Ledger errors are shown as plain messages, never tracebacks
4. Balances are always re-read after a write, never patched in the UI
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import streamlit as st

from zerobudget.errors import LedgerError
from zerobudget.models import AccountType, GroupType
from zerobudget.orchestrator import LedgerApp, create_app_components
from zerobudget.services.storage import StorageError


# Page configuration
st.set_page_config(
    page_title="ZeroBudget",
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
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def attempt(coro, success: str) -> bool:
    """Run a write, reporting ledger errors to the user. True on success."""
    try:
        run_async(coro)
    except LedgerError as e:
        st.error(f"❌ {e.message}")
        return False
    except StorageError as e:
        st.error(f"❌ Storage problem: {e}")
        return False
    st.success(f"✅ {success}")
    return True


def money(value) -> str:
    return f"{Decimal(value):,.2f}"


@st.cache_resource
def get_components() -> LedgerApp:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    app = get_components()

    st.sidebar.title("💰 ZeroBudget")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Dashboard",
            "🧾 Transactions",
            "🔁 Transfers",
            "🏦 Reconciliation",
            "📅 Budget",
            "📆 Bills",
            "⚙️ Settings",
        ],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Zero-based budgeting:**
        1. Create a pay period
        2. Assign every dollar to a category
        3. Record what you spend
        4. Recalculate the year to roll leftovers forward
        """
    )

    if page == "📊 Dashboard":
        render_dashboard_page(app)
    elif page == "🧾 Transactions":
        render_transactions_page(app)
    elif page == "🔁 Transfers":
        render_transfers_page(app)
    elif page == "🏦 Reconciliation":
        render_reconciliation_page(app)
    elif page == "📅 Budget":
        render_budget_page(app)
    elif page == "📆 Bills":
        render_bills_page(app)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_dashboard_page(app: LedgerApp):
    """Render the dashboard."""
    st.title("📊 Dashboard")
    data = run_async(app.dashboard())

    period = data["pay_period"]
    if period is None:
        st.info("No pay period covers today. Create one on the Budget page.")
    else:
        summary = data["summary"]
        st.markdown(f"### {period.name}")
        col1, col2, col3 = st.columns(3)
        col1.metric("Planned income", money(summary.total_planned_income))
        col2.metric("Assigned", money(summary.total_expense_assigned))
        col3.metric("To be assigned", money(summary.unassigned))

        st.dataframe([
            {
                "Group": b.group_name,
                "Category": b.category_name,
                "Carryover": money(b.carryover),
                "Assigned": money(b.assigned),
                "Spent": money(b.spent),
                "Available": money(b.available),
            }
            for b in data["category_balances"]
        ], use_container_width=True)

    st.markdown("### Accounts")
    for account in data["accounts"]:
        col1, col2, col3 = st.columns([2, 1, 1])
        col1.markdown(f"**{account.name}** ({account.account_type.value})")
        col2.metric("Balance", money(account.balance))
        col3.metric("Cleared", money(account.cleared_balance))

    if data["upcoming_bills"]:
        st.markdown("### Upcoming Bills")
        for bill in data["upcoming_bills"]:
            auto = " (auto-pay)" if bill.is_auto_pay else ""
            st.markdown(f"- {bill.due_date:%d %b}: **{bill.bill_name}** {money(bill.amount)}{auto}")

    if data["goals"]:
        st.markdown("### Goals")
        for goal in data["goals"]:
            st.progress(goal.progress, text=f"{goal.name}: {money(goal.current_amount)} / {money(goal.target_amount)}")


def render_transactions_page(app: LedgerApp):
    """Render accounts and their transactions."""
    st.title("🧾 Transactions")

    with st.expander("➕ New Account"):
        name = st.text_input("Account name")
        account_type = st.selectbox("Type", options=list(AccountType), format_func=lambda x: x.value)
        opening = st.number_input("Opening balance", value=0.0, step=0.01, format="%.2f")
        if st.button("Create Account"):
            attempt(
                app.transactions.create_account(name, account_type, Decimal(str(opening))),
                f"Account {name} created",
            )

    accounts = run_async(app.transactions.list_accounts())
    if not accounts:
        st.info("Create an account to start recording transactions.")
        return

    account = st.selectbox("Account", options=accounts, format_func=lambda a: a.name)
    categories = run_async(app.planner.list_categories(include_hidden=False))

    st.markdown("### Record Transaction")
    col1, col2 = st.columns(2)
    with col1:
        payee = st.text_input("Payee")
        amount = st.number_input(
            "Amount (negative for spending)", value=0.0, step=0.01, format="%.2f",
        )
    with col2:
        when = st.date_input("Date", value=date.today())
        category = st.selectbox(
            "Category",
            options=[None] + categories,
            format_func=lambda c: "Uncategorized" if c is None else c.name,
        )
    if st.button("💾 Save Transaction", type="primary"):
        attempt(
            app.transactions.create_transaction(
                account_key=account.key,
                amount=Decimal(str(amount)),
                transaction_date=when,
                category_key=category.key if category else None,
                payee=payee,
            ),
            "Transaction saved",
        )

    st.markdown("---")
    st.markdown(f"### {account.name}: {money(account.balance)}")
    for t in run_async(app.transactions.list_transactions(account_key=account.key, limit=100)):
        col1, col2, col3, col4 = st.columns([3, 1, 1, 1])
        flags = "✔️" if t.is_cleared else ""
        flags += " 🔒" if t.is_reconciled else ""
        label = f"~~{t.payee}~~" if t.is_void else t.payee
        col1.markdown(f"{t.transaction_date:%d %b %Y} {label} {flags}")
        col2.markdown(money(t.amount))
        if not t.is_void and not t.is_reconciled:
            if col3.button("Clear", key=f"clear-{t.key}"):
                attempt(app.transactions.clear_transaction(t.key), "Cleared state toggled")
            if col4.button("Void", key=f"void-{t.key}"):
                attempt(app.transactions.void_transaction(t.key), "Transaction voided")


def render_transfers_page(app: LedgerApp):
    """Render the transfer form."""
    st.title("🔁 Transfers")
    accounts = run_async(app.transactions.list_accounts())
    if len(accounts) < 2:
        st.info("You need at least two accounts to transfer money.")
        return

    col1, col2 = st.columns(2)
    source = col1.selectbox("From", options=accounts, format_func=lambda a: a.name)
    destination = col2.selectbox("To", options=accounts, index=1, format_func=lambda a: a.name)
    amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
    when = st.date_input("Date", value=date.today())
    memo = st.text_input("Memo (optional)")

    if st.button("🔁 Transfer", type="primary"):
        attempt(
            app.transactions.create_transfer(
                source.key, destination.key, Decimal(str(amount)), when, memo or None,
            ),
            f"Moved {money(amount)} from {source.name} to {destination.name}",
        )


def render_reconciliation_page(app: LedgerApp):
    """Render statement reconciliation."""
    st.title("🏦 Reconciliation")
    accounts = run_async(app.transactions.list_accounts())
    if not accounts:
        st.info("Create an account first.")
        return

    account = st.selectbox("Account", options=accounts, format_func=lambda a: a.name)
    in_progress = [
        r for r in run_async(app.reconciliation.list_reconciliations(account_key=account.key))
        if r.is_in_progress
    ]

    if not in_progress:
        statement_date = st.date_input("Statement date", value=date.today())
        balance = st.number_input("Statement balance", value=0.0, step=0.01, format="%.2f")
        if st.button("Start Reconciliation", type="primary"):
            attempt(
                app.reconciliation.create_reconciliation(
                    account.key, statement_date, Decimal(str(balance)),
                ),
                "Reconciliation started",
            )
        return

    reconciliation = in_progress[0]
    col1, col2, col3 = st.columns(3)
    col1.metric("Statement", money(reconciliation.statement_balance))
    col2.metric("Matched", money(reconciliation.cleared_balance))
    col3.metric("Difference", money(reconciliation.difference))

    candidates = [
        t for t in run_async(app.transactions.list_transactions(
            account_key=account.key, include_void=False,
        ))
        if not t.is_reconciled
    ]
    selected = st.multiselect(
        "Matched transactions",
        options=[t.key for t in candidates],
        default=[k for k in reconciliation.matched_transaction_keys if k in {t.key for t in candidates}],
        format_func=lambda k: next(
            f"{t.transaction_date:%d %b} {t.payee} {money(t.amount)}" for t in candidates if t.key == k
        ),
    )

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Update Matches"):
            current = set(reconciliation.matched_transaction_keys)
            chosen = set(selected)
            attempt(
                app.reconciliation.unmatch_transactions(reconciliation.key, sorted(current - chosen)),
                "Unmatched removed transactions",
            )
            attempt(
                app.reconciliation.match_transactions(reconciliation.key, sorted(chosen - current)),
                "Matched selected transactions",
            )
    with col2:
        if st.button("✅ Complete", type="primary"):
            attempt(
                app.reconciliation.complete_reconciliation(reconciliation.key),
                "Reconciliation completed",
            )


def render_budget_page(app: LedgerApp):
    """Render pay periods, assignments and category setup."""
    st.title("📅 Budget")

    with st.expander("➕ New Pay Period"):
        start = st.date_input("Start", value=date.today())
        end = st.date_input("End", value=date.today() + timedelta(days=13))
        name = st.text_input("Name", value=f"{start:%b %d} - {end:%b %d}")
        if st.button("Create Pay Period"):
            attempt(app.planner.create_pay_period(name, start, end), f"Pay period {name} created")

    with st.expander("➕ New Category"):
        groups = run_async(app.planner.list_category_groups())
        group_name = st.text_input("New group name (optional)")
        group_type = st.selectbox("Group type", options=list(GroupType), format_func=lambda x: x.value)
        if st.button("Create Group") and group_name:
            attempt(app.planner.create_category_group(group_name, group_type), f"Group {group_name} created")
        if groups:
            group = st.selectbox("Group", options=groups, format_func=lambda g: g.name)
            category_name = st.text_input("Category name")
            if st.button("Create Category") and category_name:
                attempt(app.planner.create_category(group.key, category_name), f"Category {category_name} created")

    periods = run_async(app.planner.list_pay_periods())
    if not periods:
        st.info("Create a pay period to start assigning money.")
        return

    period = st.selectbox("Pay period", options=periods, format_func=lambda p: p.name)
    summary = run_async(app.projector.budget_summary(period.key))
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Planned income", money(summary.total_planned_income))
    col2.metric("Assigned", money(summary.total_expense_assigned))
    col3.metric("To be assigned", money(summary.unassigned))
    col4.metric("Received", money(summary.received_income))

    st.markdown("### Assign Money")
    for balance in run_async(app.projector.category_balances(period.key)):
        col1, col2, col3 = st.columns([2, 1, 1])
        col1.markdown(
            f"**{balance.category_name}** ({balance.group_name}) "
            f"available {money(balance.available)}"
        )
        amount = col2.number_input(
            "Assigned",
            value=float(balance.assigned),
            step=0.01,
            format="%.2f",
            key=f"assign-{balance.category_key}",
            label_visibility="collapsed",
        )
        if col3.button("Assign", key=f"btn-{balance.category_key}"):
            attempt(
                app.planner.assign_money(period.key, balance.category_key, Decimal(str(amount))),
                f"Assigned {money(amount)} to {balance.category_name}",
            )

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        description = st.text_input("Income description")
        income = st.number_input("Income amount", min_value=0.0, step=0.01, format="%.2f")
        if st.button("💵 Add Income") and description:
            attempt(
                app.planner.add_income(period.key, description, Decimal(str(income))),
                "Income recorded",
            )
    with col2:
        st.markdown("Roll every category's leftover into the following periods.")
        if st.button("🔄 Recalculate Year", type="primary"):
            attempt(app.engine.recalculate_year(period.key), "Carryovers recalculated")


def render_bills_page(app: LedgerApp):
    """Render recurring bills."""
    st.title("📆 Bills")
    accounts = run_async(app.transactions.list_accounts())

    with st.expander("➕ New Bill"):
        name = st.text_input("Bill name")
        amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
        due_day = st.number_input("Due day", min_value=1, max_value=31, value=1)
        account = st.selectbox(
            "Pay from",
            options=[None] + accounts,
            format_func=lambda a: "No account" if a is None else a.name,
        )
        if st.button("Create Bill") and name:
            attempt(
                app.bills.create_bill(
                    name, Decimal(str(amount)), int(due_day),
                    account_key=account.key if account else None,
                ),
                f"Bill {name} created",
            )

    for bill in run_async(app.bills.list_bills()):
        col1, col2, col3 = st.columns([3, 1, 1])
        next_due = f"next due {bill.next_due_date:%d %b %Y}" if bill.next_due_date else f"day {bill.due_day}"
        col1.markdown(f"**{bill.name}** ({bill.frequency.value}, {next_due})")
        col2.markdown(money(bill.amount))
        if col3.button("Mark Paid", key=f"paid-{bill.key}"):
            attempt(app.bills.mark_bill_paid(bill.key, date.today()), f"{bill.name} paid")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    from zerobudget.config import validate_all_settings

    status = validate_all_settings()

    sections = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Ledger Rules", "ledger"),
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
