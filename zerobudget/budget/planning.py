"""
Budget Planning

Everything the user edits to plan a budget: pay periods, category groups,
categories, assignments, income entries and goals.

DESIGN DECISION: Deletes are guarded, then cascaded.
- A category (or group) with transactions referencing it is never
  deleted; the user must recategorize first.
- Once the guard passes, dependent assignments, carryovers and goals
  go with it and bills are unlinked.
- Deleting a pay period removes its assignments, carryovers and income
  but only detaches its transactions; money never disappears from an
  account because a budget period was removed.

Every cascade runs in one unit of work.
"""

from datetime import date
from typing import Any, Optional

from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import BusinessRuleViolation, NotFoundError, ValidationError
from zerobudget.models import (
    ZERO,
    ActivityEventType,
    Assignment,
    Category,
    CategoryGroup,
    Goal,
    GroupType,
    IncomeEntry,
    PayPeriod,
    assignment_key,
    money_sum,
)
from zerobudget.services.storage import LedgerStore
from zerobudget.validation import apply_changes, build, parse_amount, require_key


UPDATABLE_PERIOD_FIELDS = {
    "name",
    "start_date",
    "end_date",
    "is_active",
    "is_closed",
    "expected_income",
}
UPDATABLE_GROUP_FIELDS = {"name", "group_type", "sort_order"}
UPDATABLE_CATEGORY_FIELDS = {"name", "group_key", "target_amount", "sort_order", "is_hidden"}


class BudgetPlanner:
    """CRUD over the budget plan with guarded, cascading deletes."""

    def __init__(
        self,
        ledger: LedgerStore,
        activity_logger=None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._activity = activity_logger
        self._settings = settings or get_settings().ledger

    def _family(self, family_id: Optional[str]) -> str:
        return family_id or self._settings.default_family_id

    async def _log(
        self,
        event_type: ActivityEventType,
        entity_type: str,
        entity_key: str,
        description: str,
        family_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        if self._activity:
            await self._activity.log_entity_changed(
                event_type, entity_type, entity_key, description,
                family_id=family_id, details=details,
            )

    # =========================================================================
    # PAY PERIODS
    # =========================================================================

    async def create_pay_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        expected_income: Any = ZERO,
        family_id: Optional[str] = None,
    ) -> PayPeriod:
        """
        Create a pay period keyed `pp-YYYYMMDD-YYYYMMDD`.

        Raises:
            ValidationError: end_date before start_date
            BusinessRuleViolation: A period with the same dates already exists
        """
        if end_date < start_date:
            raise ValidationError("Pay period end date cannot be before start date")

        period = build(
            PayPeriod,
            name=name,
            start_date=start_date,
            end_date=end_date,
            expected_income=parse_amount(expected_income, "expected_income"),
            family_id=self._family(family_id),
        )
        if await self._ledger.pay_periods.get(period.key) is not None:
            raise BusinessRuleViolation(f"Pay period {period.key} already exists")

        period = await self._ledger.pay_periods.save(period, expected_version=0)
        await self._log(
            ActivityEventType.PAY_PERIOD_CREATED, "pay_periods", period.key,
            f"Pay period created: {period.name}", family_id=period.family_id,
        )
        return period

    async def get_pay_period(self, key: str) -> PayPeriod:
        period = await self._ledger.pay_periods.get(key)
        if period is None:
            raise NotFoundError("PayPeriod", key)
        return period

    async def list_pay_periods(self, family_id: Optional[str] = None) -> list[PayPeriod]:
        """All periods of the tenant, newest first."""
        periods = await self._ledger.pay_periods.find(family_id=self._family(family_id))
        return sorted(periods, key=lambda p: p.start_date, reverse=True)

    async def current_pay_period(
        self,
        today: Optional[date] = None,
        family_id: Optional[str] = None,
    ) -> Optional[PayPeriod]:
        """The period containing `today` (latest start wins), or None."""
        today = today or date.today()
        for period in await self.list_pay_periods(family_id):
            if period.date_range.contains(today):
                return period
        return None

    async def update_pay_period(self, key: str, **changes: Any) -> PayPeriod:
        """Partial update; the key stays stable even when the dates move."""
        period = await self.get_pay_period(key)
        if "expected_income" in changes:
            changes["expected_income"] = parse_amount(changes["expected_income"], "expected_income")
        updated = apply_changes(period, changes, UPDATABLE_PERIOD_FIELDS)
        updated = await self._ledger.pay_periods.save(updated)

        await self._log(
            ActivityEventType.PAY_PERIOD_UPDATED, "pay_periods", key,
            f"Pay period updated: {updated.name}", family_id=updated.family_id,
            details={"fields": sorted(changes)},
        )
        return updated

    async def delete_pay_period(self, key: str) -> None:
        """Delete a period, its assignments, carryovers and income; detach its transactions."""
        period = await self.get_pay_period(key)

        async with self._ledger.unit_of_work() as uow:
            for assignment in await uow.assignments.find(pay_period_key=key):
                await uow.assignments.delete(assignment.key)
            for carryover in await uow.carryovers.find(pay_period_key=key):
                await uow.carryovers.delete(carryover.key)
            for entry in await uow.income_entries.find(pay_period_key=key):
                await uow.income_entries.delete(entry.key)
            for transaction in await uow.transactions.find(pay_period_key=key):
                await uow.transactions.save(transaction.with_changes(pay_period_key=None))
            await uow.pay_periods.delete(key)

        await self._log(
            ActivityEventType.PAY_PERIOD_DELETED, "pay_periods", key,
            f"Pay period deleted: {period.name}", family_id=period.family_id,
        )

    # =========================================================================
    # ASSIGNMENTS AND INCOME
    # =========================================================================

    async def assign_money(
        self,
        pay_period_key: str,
        category_key: str,
        amount: Any,
    ) -> Assignment:
        """
        Set the amount assigned to a category for a period (upsert).

        Assigning again replaces the previous amount; it does not add to it.
        """
        period = await self.get_pay_period(require_key(pay_period_key, "pay_period_key"))
        category = await self.get_category(require_key(category_key, "category_key"))
        amount = parse_amount(amount)

        existing = await self._ledger.assignments.get(assignment_key(period.key, category.key))
        if existing is not None:
            assignment = existing.with_changes(assigned_amount=amount)
        else:
            assignment = Assignment(
                pay_period_key=period.key,
                category_key=category.key,
                assigned_amount=amount,
                family_id=period.family_id,
            )
        assignment = await self._ledger.assignments.save(assignment)

        await self._log(
            ActivityEventType.MONEY_ASSIGNED, "assignments", assignment.key,
            f"Assigned {amount} to {category.name}", family_id=period.family_id,
            details={"pay_period_key": period.key, "category_key": category.key},
        )
        return assignment

    async def list_assignments(self, pay_period_key: str) -> list[Assignment]:
        return await self._ledger.assignments.find(pay_period_key=pay_period_key)

    async def add_income(
        self,
        pay_period_key: str,
        description: str,
        amount: Any,
        received_date: Optional[date] = None,
    ) -> IncomeEntry:
        """Record received income and refresh the period's total_income."""
        period = await self.get_pay_period(require_key(pay_period_key, "pay_period_key"))
        entry = build(
            IncomeEntry,
            pay_period_key=period.key,
            description=description,
            amount=parse_amount(amount),
            received_date=received_date or date.today(),
            family_id=period.family_id,
        )

        async with self._ledger.unit_of_work() as uow:
            entry = await uow.income_entries.save(entry, expected_version=0)
            entries = await uow.income_entries.find(pay_period_key=period.key)
            await uow.pay_periods.save(
                period.with_changes(total_income=money_sum(e.amount for e in entries))
            )

        await self._log(
            ActivityEventType.INCOME_ADDED, "income_entries", entry.key,
            f"Income added: {entry.description} {entry.amount}", family_id=period.family_id,
            details={"pay_period_key": period.key},
        )
        return entry

    async def list_income(self, pay_period_key: str) -> list[IncomeEntry]:
        entries = await self._ledger.income_entries.find(pay_period_key=pay_period_key)
        return sorted(entries, key=lambda e: e.received_date)

    # =========================================================================
    # CATEGORY GROUPS
    # =========================================================================

    async def create_category_group(
        self,
        name: str,
        group_type: GroupType = GroupType.EXPENSE,
        sort_order: Optional[int] = None,
        family_id: Optional[str] = None,
    ) -> CategoryGroup:
        family = self._family(family_id)
        if sort_order is None:
            sort_order = len(await self._ledger.category_groups.find(family_id=family))

        group = build(
            CategoryGroup,
            name=name,
            group_type=group_type,
            sort_order=sort_order,
            family_id=family,
        )
        group = await self._ledger.category_groups.save(group, expected_version=0)
        await self._log(
            ActivityEventType.CATEGORY_GROUP_CREATED, "category_groups", group.key,
            f"Category group created: {group.name}", family_id=family,
        )
        return group

    async def get_category_group(self, key: str) -> CategoryGroup:
        group = await self._ledger.category_groups.get(key)
        if group is None:
            raise NotFoundError("CategoryGroup", key)
        return group

    async def list_category_groups(self, family_id: Optional[str] = None) -> list[CategoryGroup]:
        groups = await self._ledger.category_groups.find(family_id=self._family(family_id))
        return sorted(groups, key=lambda g: (g.sort_order, g.name))

    async def update_category_group(self, key: str, **changes: Any) -> CategoryGroup:
        group = await self.get_category_group(key)
        updated = await self._ledger.category_groups.save(
            apply_changes(group, changes, UPDATABLE_GROUP_FIELDS)
        )
        await self._log(
            ActivityEventType.CATEGORY_GROUP_UPDATED, "category_groups", key,
            f"Category group updated: {updated.name}", family_id=updated.family_id,
            details={"fields": sorted(changes)},
        )
        return updated

    async def reorder_category_groups(self, ordered_keys: list[str]) -> list[CategoryGroup]:
        """Set sort_order to each key's position in `ordered_keys`."""
        groups = [await self.get_category_group(key) for key in ordered_keys]
        async with self._ledger.unit_of_work() as uow:
            return [
                await uow.category_groups.save(group.with_changes(sort_order=index))
                for index, group in enumerate(groups)
            ]

    async def delete_category_group(self, key: str) -> None:
        """
        Delete a group and all its categories.

        Raises:
            BusinessRuleViolation: System group, or any of its categories
                has transactions
        """
        group = await self.get_category_group(key)
        if group.is_system:
            raise BusinessRuleViolation(f"System group {group.name} cannot be deleted")

        categories = await self._ledger.categories.find(group_key=key)
        for category in categories:
            if await self._category_in_use(category):
                raise BusinessRuleViolation(
                    f"Cannot delete group {group.name}: category {category.name} has transactions"
                )

        async with self._ledger.unit_of_work() as uow:
            for category in categories:
                await self._remove_category(uow, category)
            await uow.category_groups.delete(key)

        await self._log(
            ActivityEventType.CATEGORY_GROUP_DELETED, "category_groups", key,
            f"Category group deleted: {group.name}", family_id=group.family_id,
            details={"categories_removed": len(categories)},
        )

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def create_category(
        self,
        group_key: str,
        name: str,
        target_amount: Any = None,
        sort_order: Optional[int] = None,
        is_hidden: bool = False,
    ) -> Category:
        group = await self.get_category_group(require_key(group_key, "group_key"))
        if sort_order is None:
            sort_order = len(await self._ledger.categories.find(group_key=group.key))

        category = build(
            Category,
            group_key=group.key,
            name=name,
            target_amount=parse_amount(target_amount, "target_amount") if target_amount is not None else None,
            sort_order=sort_order,
            is_hidden=is_hidden,
            family_id=group.family_id,
        )
        category = await self._ledger.categories.save(category, expected_version=0)
        await self._log(
            ActivityEventType.CATEGORY_CREATED, "categories", category.key,
            f"Category created: {category.name}", family_id=category.family_id,
            details={"group_key": group.key},
        )
        return category

    async def get_category(self, key: str) -> Category:
        category = await self._ledger.categories.get(key)
        if category is None:
            raise NotFoundError("Category", key)
        return category

    async def list_categories(
        self,
        family_id: Optional[str] = None,
        group_key: Optional[str] = None,
        include_hidden: bool = True,
    ) -> list[Category]:
        filters: dict[str, Any] = {"family_id": self._family(family_id)}
        if group_key:
            filters["group_key"] = group_key
        categories = await self._ledger.categories.find(**filters)
        if not include_hidden:
            categories = [c for c in categories if not c.is_hidden]
        return sorted(categories, key=lambda c: (c.sort_order, c.name))

    async def update_category(self, key: str, **changes: Any) -> Category:
        category = await self.get_category(key)
        if changes.get("group_key"):
            await self.get_category_group(changes["group_key"])
        updated = await self._ledger.categories.save(
            apply_changes(category, changes, UPDATABLE_CATEGORY_FIELDS)
        )
        await self._log(
            ActivityEventType.CATEGORY_UPDATED, "categories", key,
            f"Category updated: {updated.name}", family_id=updated.family_id,
            details={"fields": sorted(changes)},
        )
        return updated

    async def reorder_categories(self, items: list[dict[str, Any]]) -> list[Category]:
        """
        Apply a new ordering.

        Each item has `key` and `sort_order`, and optionally `group_key`
        to move the category into another group.
        """
        updates = []
        for item in items:
            category = await self.get_category(require_key(item.get("key"), "key"))
            changes: dict[str, Any] = {"sort_order": item.get("sort_order", category.sort_order)}
            if item.get("group_key"):
                await self.get_category_group(item["group_key"])
                changes["group_key"] = item["group_key"]
            updates.append(apply_changes(category, changes, UPDATABLE_CATEGORY_FIELDS))

        async with self._ledger.unit_of_work() as uow:
            return [await uow.categories.save(category) for category in updates]

    async def _category_in_use(self, category: Category) -> bool:
        """True if any transaction (or transaction split) references the category."""
        if await self._ledger.transactions.find(category_key=category.key):
            return True
        transactions = await self._ledger.transactions.find(family_id=category.family_id)
        return any(
            split.category_key == category.key
            for t in transactions
            for split in t.splits
        )

    async def _remove_category(self, uow: LedgerStore, category: Category) -> None:
        for assignment in await uow.assignments.find(category_key=category.key):
            await uow.assignments.delete(assignment.key)
        for carryover in await uow.carryovers.find(category_key=category.key):
            await uow.carryovers.delete(carryover.key)
        for goal in await uow.goals.find(category_key=category.key):
            await uow.goals.delete(goal.key)
        for bill in await uow.bills.find(category_key=category.key):
            await uow.bills.save(bill.with_changes(category_key=None))
        await uow.categories.delete(category.key)

    async def delete_category(self, key: str) -> None:
        """
        Delete a category nothing has been spent against.

        Removes its assignments, carryovers and goals and unlinks its bills.

        Raises:
            BusinessRuleViolation: If any transaction references the category
        """
        category = await self.get_category(key)
        if await self._category_in_use(category):
            raise BusinessRuleViolation(
                f"Category {category.name} has transactions and cannot be deleted"
            )

        async with self._ledger.unit_of_work() as uow:
            await self._remove_category(uow, category)

        await self._log(
            ActivityEventType.CATEGORY_DELETED, "categories", key,
            f"Category deleted: {category.name}", family_id=category.family_id,
        )

    # =========================================================================
    # GOALS
    # =========================================================================

    async def create_goal(
        self,
        name: str,
        target_amount: Any,
        category_key: Optional[str] = None,
        target_date: Optional[date] = None,
        current_amount: Any = ZERO,
        family_id: Optional[str] = None,
    ) -> Goal:
        if category_key:
            await self.get_category(category_key)

        target = parse_amount(target_amount, "target_amount")
        current = parse_amount(current_amount, "current_amount")
        goal = build(
            Goal,
            name=name,
            category_key=category_key,
            target_amount=target,
            current_amount=current,
            target_date=target_date,
            is_completed=current >= target,
            family_id=self._family(family_id),
        )
        goal = await self._ledger.goals.save(goal, expected_version=0)
        await self._log(
            ActivityEventType.GOAL_CREATED, "goals", goal.key,
            f"Goal created: {goal.name}", family_id=goal.family_id,
        )
        return goal

    async def get_goal(self, key: str) -> Goal:
        goal = await self._ledger.goals.get(key)
        if goal is None:
            raise NotFoundError("Goal", key)
        return goal

    async def list_goals(
        self,
        family_id: Optional[str] = None,
        include_completed: bool = True,
    ) -> list[Goal]:
        goals = await self._ledger.goals.find(family_id=self._family(family_id))
        if not include_completed:
            goals = [g for g in goals if not g.is_completed]
        return sorted(goals, key=lambda g: (g.target_date or date.max, g.name))

    async def update_goal_progress(self, key: str, amount: Any) -> Goal:
        """Add `amount` (may be negative) to a goal; it completes once current >= target."""
        goal = await self.get_goal(key)
        current = goal.current_amount + parse_amount(amount)
        goal = await self._ledger.goals.save(
            goal.with_changes(
                current_amount=current,
                is_completed=current >= goal.target_amount,
            )
        )
        await self._log(
            ActivityEventType.GOAL_PROGRESS_UPDATED, "goals", key,
            f"Goal progress: {goal.name} {goal.current_amount}/{goal.target_amount}",
            family_id=goal.family_id,
        )
        return goal
