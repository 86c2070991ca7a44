"""
Shared fixtures.

Every test runs against a fresh InMemoryDocumentStore; nothing touches
Google Sheets.
"""

from datetime import date
from decimal import Decimal

import pytest

from zerobudget.activity import ActivityLogger
from zerobudget.budget import (
    BillService,
    BudgetPeriodEngine,
    BudgetPlanner,
    CategoryBalanceProjector,
)
from zerobudget.config import LedgerSettings, PeriodChainPolicy, StorageBackend
from zerobudget.ledger import ReconciliationMatcher, TransactionLedger
from zerobudget.models import GroupType
from zerobudget.services.storage import InMemoryDocumentStore, LedgerStore


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        default_family_id="default",
        reconciliation_tolerance=Decimal("0.01"),
        period_chain_policy=PeriodChainPolicy.REJECT_OVERLAP,
        storage_backend=StorageBackend.MEMORY,
        upcoming_bills_days=30,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def activity() -> ActivityLogger:
    return ActivityLogger.recording()


@pytest.fixture
def ledger(store, activity) -> LedgerStore:
    return LedgerStore(store, activity_logger=activity)


@pytest.fixture
def transactions(ledger, activity, settings) -> TransactionLedger:
    return TransactionLedger(ledger, activity, settings)


@pytest.fixture
def matcher(ledger, transactions, activity, settings) -> ReconciliationMatcher:
    return ReconciliationMatcher(ledger, transactions, activity, settings)


@pytest.fixture
def planner(ledger, activity, settings) -> BudgetPlanner:
    return BudgetPlanner(ledger, activity, settings)


@pytest.fixture
def engine(ledger, activity, settings) -> BudgetPeriodEngine:
    return BudgetPeriodEngine(ledger, activity, settings)


@pytest.fixture
def projector(ledger, settings) -> CategoryBalanceProjector:
    return CategoryBalanceProjector(ledger, settings)


@pytest.fixture
def bills(ledger, transactions, activity, settings) -> BillService:
    return BillService(ledger, transactions, activity, settings)


@pytest.fixture
async def checking(transactions):
    return await transactions.create_account("Checking", opening_balance="1000.00")


@pytest.fixture
async def budget(planner):
    """
    Two adjacent January pay periods with one income and two expense categories.

    Returns a dict of the created entities by short name.
    """
    jan1 = await planner.create_pay_period("Jan 1", date(2024, 1, 1), date(2024, 1, 14))
    jan2 = await planner.create_pay_period("Jan 2", date(2024, 1, 15), date(2024, 1, 28))

    income_group = await planner.create_category_group("Income", GroupType.INCOME)
    bills_group = await planner.create_category_group("Everyday")

    salary = await planner.create_category(income_group.key, "Salary")
    groceries = await planner.create_category(bills_group.key, "Groceries")
    fuel = await planner.create_category(bills_group.key, "Fuel")

    return {
        "jan1": jan1,
        "jan2": jan2,
        "income_group": income_group,
        "everyday": bills_group,
        "salary": salary,
        "groceries": groceries,
        "fuel": fuel,
    }
