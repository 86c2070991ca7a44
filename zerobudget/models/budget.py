"""
Budget Models for zero-based pay-period budgeting

Categories have no balance of their own. Every balance is scoped to a
pay period and assembled from three stored facts:
- Carryover: what was left over from the previous period
- Assignment: what the user funded in this period
- spending: derived from the period's transactions

DESIGN DECISION: Assignment and Carryover use deterministic keys built
from (pay_period_key, category_key). Writing one is therefore an upsert:
at most one live row exists per period and category.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from zerobudget.models.base import Document
from zerobudget.models.primitives import ZERO, DateRange, Money, period_key


def assignment_key(pay_period_key: str, category_key: str) -> str:
    return f"{pay_period_key}:{category_key}"


def carryover_key(pay_period_key: str, category_key: str) -> str:
    return f"{pay_period_key}:{category_key}"


# =============================================================================
# ENUMS
# =============================================================================

class GroupType(str, Enum):
    """
    Category group classification.

    Only INCOME changes balance semantics: spending on income categories
    counts positive inflows instead of negative outflows.
    """
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


class BillFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryGroup(Document):
    """A named group of categories, e.g. 'Bills' or 'Income'."""

    name: str = Field(..., min_length=1, max_length=100)
    group_type: GroupType = GroupType.EXPENSE
    sort_order: int = 0
    is_system: bool = False

    @property
    def is_income(self) -> bool:
        return self.group_type == GroupType.INCOME


class Category(Document):
    """A budget envelope inside a group."""

    group_key: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Optional[Money] = None
    sort_order: int = 0
    is_hidden: bool = False


# =============================================================================
# PAY PERIODS
# =============================================================================

class PayPeriod(Document):
    """
    An inclusive date range over which income is earned and spent.

    The key defaults to the deterministic `pp-YYYYMMDD-YYYYMMDD` form.
    It is assigned once; later date edits keep the original key so
    transactions and assignments stay attached.
    """

    key: str = ""
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    is_active: bool = True
    is_closed: bool = False
    expected_income: Money = ZERO
    total_income: Money = Field(
        default=ZERO,
        description="Derived: sum of income entries for the period"
    )

    @model_validator(mode='after')
    def validate_range(self) -> 'PayPeriod':
        if self.end_date < self.start_date:
            raise ValueError("Pay period end date cannot be before start date")
        if not self.key:
            self.key = period_key(self.start_date, self.end_date)
        return self

    @property
    def date_range(self) -> DateRange:
        return DateRange(start=self.start_date, end=self.end_date)


class Assignment(Document):
    """Money assigned to a category for one pay period."""

    key: str = ""
    pay_period_key: str = Field(..., min_length=1)
    category_key: str = Field(..., min_length=1)
    assigned_amount: Money = ZERO

    @model_validator(mode='after')
    def derive_key(self) -> 'Assignment':
        if not self.key:
            self.key = assignment_key(self.pay_period_key, self.category_key)
        return self


class Carryover(Document):
    """A category's ending balance rolled into the next pay period."""

    key: str = ""
    pay_period_key: str = Field(..., min_length=1)
    category_key: str = Field(..., min_length=1)
    carryover: Money = ZERO

    @model_validator(mode='after')
    def derive_key(self) -> 'Carryover':
        if not self.key:
            self.key = carryover_key(self.pay_period_key, self.category_key)
        return self


class IncomeEntry(Document):
    """Income actually received during a pay period. Append-only."""

    pay_period_key: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Money
    received_date: date


# =============================================================================
# BILLS AND GOALS
# =============================================================================

class Bill(Document):
    """
    A recurring obligation.

    Marking a bill paid materializes one cleared Transaction and advances
    next_due_date according to the frequency.
    """

    name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    due_day: int = Field(..., ge=1, le=31)
    frequency: BillFrequency = BillFrequency.MONTHLY
    account_key: Optional[str] = None
    category_key: Optional[str] = None
    is_auto_pay: bool = False
    is_active: bool = True
    last_paid_date: Optional[date] = None
    next_due_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class Goal(Document):
    """A savings target. Not part of any balancing invariant."""

    name: str = Field(..., min_length=1, max_length=200)
    category_key: Optional[str] = None
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = ZERO
    target_date: Optional[date] = None
    is_completed: bool = False

    @property
    def progress(self) -> float:
        """Completion ratio between 0 and 1."""
        return float(min(self.current_amount / self.target_amount, 1))


# =============================================================================
# PROJECTIONS (never stored)
# =============================================================================

class CategoryBalance(BaseModel):
    """A category's position within one pay period."""

    category_key: str
    category_name: str
    group_key: str
    group_name: str
    is_income: bool
    carryover: Money = ZERO
    assigned: Money = ZERO
    spent: Money = ZERO

    @property
    def available(self):
        return self.carryover + self.assigned - self.spent


class UpcomingBill(BaseModel):
    """A bill falling due inside a look-ahead window."""

    bill_key: str
    bill_name: str
    amount: Money
    due_date: date
    category_name: str = ""
    account_name: str = ""
    is_auto_pay: bool = False


class BudgetSummary(BaseModel):
    """
    Planning view of a pay period.

    Totals come from assignments only. `received_income` is the actual
    income recorded for the period and is reported separately so the
    planned and actual views are never mixed.
    """

    pay_period_key: str
    pay_period_name: str
    total_planned_income: Money = ZERO
    total_expense_assigned: Money = ZERO
    received_income: Money = ZERO

    @property
    def unassigned(self):
        return self.total_planned_income - self.total_expense_assigned
