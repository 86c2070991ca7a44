"""Budget engine, projection and planning package."""

from zerobudget.budget.engine import (
    BudgetPeriodEngine,
    PeriodActivity,
    PeriodRollover,
    compute_ending,
    income_category_keys,
    propagate_carryovers,
    spent_by_category,
)
from zerobudget.budget.projector import CategoryBalanceProjector
from zerobudget.budget.planning import BudgetPlanner
from zerobudget.budget.bills import BillService, next_due_date

__all__ = [
    # Engine
    "BudgetPeriodEngine",
    "PeriodActivity",
    "PeriodRollover",
    "compute_ending",
    "income_category_keys",
    "propagate_carryovers",
    "spent_by_category",
    # Read side
    "CategoryBalanceProjector",
    # Planning
    "BillService",
    "BudgetPlanner",
    "next_due_date",
]
