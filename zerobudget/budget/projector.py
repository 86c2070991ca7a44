"""
Category Balance Projector

Read-side aggregation for one pay period. Never writes.

Two views are kept deliberately separate:
- category_balances: the ACTUAL view (carryover + assigned - spent)
- budget_summary: the PLANNING view (assignments to income categories
  versus assignments to everything else)
"""

from typing import Optional

from zerobudget.budget.engine import income_category_keys, spent_by_category
from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import NotFoundError
from zerobudget.models import (
    ZERO,
    BudgetSummary,
    CategoryBalance,
    PayPeriod,
    money_sum,
)
from zerobudget.services.storage import LedgerStore


class CategoryBalanceProjector:
    """Projects per-category balances and budget totals for a pay period."""

    def __init__(
        self,
        ledger: LedgerStore,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._settings = settings or get_settings().ledger

    async def _period(self, pay_period_key: str) -> PayPeriod:
        period = await self._ledger.pay_periods.get(pay_period_key)
        if period is None:
            raise NotFoundError("PayPeriod", pay_period_key)
        return period

    async def category_balances(
        self,
        pay_period_key: str,
        family_id: Optional[str] = None,
    ) -> list[CategoryBalance]:
        """
        Carryover, assigned and spent for every category of the tenant.

        Categories are ordered by group sort order, then category sort order.
        """
        family = family_id or self._settings.default_family_id
        await self._period(pay_period_key)

        categories = await self._ledger.categories.find(family_id=family)
        groups = {g.key: g for g in await self._ledger.category_groups.find(family_id=family)}
        income = income_category_keys(categories, groups.values())

        carryovers = {
            c.category_key: c.carryover
            for c in await self._ledger.carryovers.find(pay_period_key=pay_period_key)
        }
        assigned = {
            a.category_key: a.assigned_amount
            for a in await self._ledger.assignments.find(pay_period_key=pay_period_key)
        }
        spent = spent_by_category(
            await self._ledger.transactions.find(pay_period_key=pay_period_key),
            income,
        )

        balances = []
        for category in categories:
            group = groups.get(category.group_key)
            balances.append(CategoryBalance(
                category_key=category.key,
                category_name=category.name,
                group_key=category.group_key,
                group_name=group.name if group else "",
                is_income=category.key in income,
                carryover=carryovers.get(category.key, ZERO),
                assigned=assigned.get(category.key, ZERO),
                spent=spent.get(category.key, ZERO),
            ))

        sort_orders = {c.key: c.sort_order for c in categories}

        def order(balance: CategoryBalance):
            group = groups.get(balance.group_key)
            return (
                group.sort_order if group else 0,
                sort_orders[balance.category_key],
                balance.category_name,
            )

        return sorted(balances, key=order)

    async def category_balance(
        self,
        category_key: str,
        pay_period_key: str,
    ) -> CategoryBalance:
        """Balance of a single category within a pay period."""
        category = await self._ledger.categories.get(category_key)
        if category is None:
            raise NotFoundError("Category", category_key)

        for balance in await self.category_balances(pay_period_key, category.family_id):
            if balance.category_key == category_key:
                return balance
        raise NotFoundError("Category", category_key)

    async def budget_summary(self, pay_period_key: str) -> BudgetSummary:
        """
        Planning totals for a pay period.

        unassigned = assigned to income categories - assigned to all others
        """
        period = await self._period(pay_period_key)

        categories = await self._ledger.categories.find(family_id=period.family_id)
        groups = await self._ledger.category_groups.find(family_id=period.family_id)
        income = income_category_keys(categories, groups)

        assignments = await self._ledger.assignments.find(pay_period_key=pay_period_key)
        planned_income = money_sum(
            a.assigned_amount for a in assignments if a.category_key in income
        )
        expense_assigned = money_sum(
            a.assigned_amount for a in assignments if a.category_key not in income
        )

        return BudgetSummary(
            pay_period_key=period.key,
            pay_period_name=period.name,
            total_planned_income=planned_income,
            total_expense_assigned=expense_assigned,
            received_income=period.total_income,
        )
