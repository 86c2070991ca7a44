"""
Data Models Package

This package contains all Pydantic models used by ZeroBudget.
Every document read from or written to the Ledger Store conforms to one
of these schemas.
"""

from zerobudget.models.primitives import (
    CENT,
    ZERO,
    DateRange,
    Money,
    money_sum,
    new_key,
    period_key,
    to_money,
    utcnow,
)
from zerobudget.models.base import Document
from zerobudget.models.ledger import (
    Account,
    AccountType,
    Reconciliation,
    ReconciliationStatus,
    Split,
    Transaction,
    TransactionStatus,
)
from zerobudget.models.budget import (
    Assignment,
    Bill,
    BillFrequency,
    BudgetSummary,
    Carryover,
    Category,
    CategoryBalance,
    CategoryGroup,
    Goal,
    GroupType,
    IncomeEntry,
    PayPeriod,
    UpcomingBill,
    assignment_key,
    carryover_key,
)
from zerobudget.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)

__all__ = [
    # Primitives
    "CENT",
    "ZERO",
    "DateRange",
    "Money",
    "money_sum",
    "new_key",
    "period_key",
    "to_money",
    "utcnow",
    "Document",
    # Ledger models
    "Account",
    "AccountType",
    "Reconciliation",
    "ReconciliationStatus",
    "Split",
    "Transaction",
    "TransactionStatus",
    # Budget models
    "Assignment",
    "Bill",
    "BillFrequency",
    "BudgetSummary",
    "Carryover",
    "Category",
    "CategoryBalance",
    "CategoryGroup",
    "Goal",
    "GroupType",
    "IncomeEntry",
    "PayPeriod",
    "UpcomingBill",
    "assignment_key",
    "carryover_key",
    # Activity models
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityEventType",
    "ActivitySeverity",
]
