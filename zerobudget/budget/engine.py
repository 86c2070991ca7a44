"""
Budget Period Engine

Maintains the carryover chain across a year of pay periods:

    ending(c, i)      = carryover(c, i) + assigned(c, i) - spent(c, i)
    carryover(c, i+1) = ending(c, i)

DESIGN DECISION: The propagation is a pure fold over immutable snapshots.
`propagate_carryovers` takes the opening carryovers plus each period's
assignments and spending and returns one PeriodRollover per period,
with read-only maps. Nothing is written while the fold runs.

BudgetPeriodEngine loads the snapshots, validates the period chain,
runs the fold and only then rewrites the Carryover rows of every period
after the first, inside a single unit of work. A failure partway
through restores the previous carryovers.

Spending is polarity-aware everywhere (see spent_by_category): income
categories count positive inflows, every other category counts
negative outflows. The projector uses the same function, so a
category's `available` in the projector always equals its `ending`
here.
"""

from decimal import Decimal
from functools import reduce
from types import MappingProxyType
from typing import AbstractSet, Iterable, Mapping, NamedTuple, Optional, Sequence

from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import BusinessRuleViolation, NotFoundError
from zerobudget.models import (
    ZERO,
    Carryover,
    Category,
    CategoryGroup,
    PayPeriod,
    Transaction,
    to_money,
)
from zerobudget.services.storage import LedgerStore
from zerobudget.validation import ensure_valid_chain


class PeriodActivity(NamedTuple):
    """What happened in one period: assignments and spending per category."""
    pay_period_key: str
    assigned: Mapping[str, Decimal]
    spent: Mapping[str, Decimal]


class PeriodRollover(NamedTuple):
    """Result of folding one period."""
    pay_period_key: str
    carryover: Mapping[str, Decimal]
    assigned: Mapping[str, Decimal]
    spent: Mapping[str, Decimal]
    ending: Mapping[str, Decimal]


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def income_category_keys(
    categories: Iterable[Category],
    groups: Iterable[CategoryGroup],
) -> frozenset[str]:
    """Keys of categories whose group is an Income group."""
    income_groups = {g.key for g in groups if g.is_income}
    return frozenset(c.key for c in categories if c.group_key in income_groups)


def spent_by_category(
    transactions: Iterable[Transaction],
    income_categories: AbstractSet[str],
) -> Mapping[str, Decimal]:
    """
    Aggregate spending per category with category polarity.

    - income category: sum of |amount| for amount > 0
    - any other category: sum of |amount| for amount < 0

    Void and uncategorized transactions are ignored.
    """
    def step(totals: Mapping[str, Decimal], t: Transaction) -> Mapping[str, Decimal]:
        if t.is_void or not t.category_key:
            return totals
        is_income = t.category_key in income_categories
        if (is_income and t.amount > 0) or (not is_income and t.amount < 0):
            return {**totals, t.category_key: totals.get(t.category_key, ZERO) + abs(t.amount)}
        return totals

    return MappingProxyType(reduce(step, transactions, {}))


def compute_ending(
    category_keys: Iterable[str],
    carryover: Mapping[str, Decimal],
    assigned: Mapping[str, Decimal],
    spent: Mapping[str, Decimal],
) -> Mapping[str, Decimal]:
    """ending = carryover + assigned - spent, every missing term defaulting to 0."""
    return MappingProxyType({
        c: to_money(carryover.get(c, ZERO) + assigned.get(c, ZERO) - spent.get(c, ZERO))
        for c in category_keys
    })


def propagate_carryovers(
    category_keys: Sequence[str],
    opening: Mapping[str, Decimal],
    periods: Sequence[PeriodActivity],
) -> tuple[PeriodRollover, ...]:
    """
    Fold an ordered chain of periods.

    The first period starts from `opening`; every later period starts
    from the previous period's ending.
    """
    seed = MappingProxyType({c: to_money(opening.get(c, ZERO)) for c in category_keys})

    def step(
        rollovers: tuple[PeriodRollover, ...],
        activity: PeriodActivity,
    ) -> tuple[PeriodRollover, ...]:
        carryover = rollovers[-1].ending if rollovers else seed
        ending = compute_ending(category_keys, carryover, activity.assigned, activity.spent)
        return rollovers + (PeriodRollover(
            pay_period_key=activity.pay_period_key,
            carryover=carryover,
            assigned=activity.assigned,
            spent=activity.spent,
            ending=ending,
        ),)

    return reduce(step, periods, ())


# =============================================================================
# ENGINE
# =============================================================================

class BudgetPeriodEngine:
    """Recalculates and persists the carryover chain for a year."""

    def __init__(
        self,
        ledger: LedgerStore,
        activity_logger=None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._activity = activity_logger
        self._settings = settings or get_settings().ledger

    async def load_chain(
        self,
        start_period_key: str,
        family_id: Optional[str] = None,
    ) -> list[PayPeriod]:
        """
        The start period plus every later period starting in the same year.

        Raises:
            NotFoundError: If the start period does not exist
        """
        start = await self._ledger.pay_periods.get(start_period_key)
        if start is None:
            raise NotFoundError("PayPeriod", start_period_key)

        year = start.start_date.year
        periods = await self._ledger.pay_periods.find(
            family_id=family_id or start.family_id,
        )
        chain = [
            p for p in periods
            if p.start_date.year == year and p.start_date >= start.start_date
        ]
        # The named start period leads any period sharing its start date
        return sorted(
            chain,
            key=lambda p: (p.start_date, p.key != start.key, p.end_date, p.key),
        )

    async def _period_activity(
        self,
        period: PayPeriod,
        income_categories: AbstractSet[str],
    ) -> PeriodActivity:
        assignments = await self._ledger.assignments.find(pay_period_key=period.key)
        transactions = await self._ledger.transactions.find(pay_period_key=period.key)
        return PeriodActivity(
            pay_period_key=period.key,
            assigned=MappingProxyType({a.category_key: a.assigned_amount for a in assignments}),
            spent=spent_by_category(transactions, income_categories),
        )

    async def simulate_year(
        self,
        start_period_key: str,
        family_id: Optional[str] = None,
    ) -> tuple[PeriodRollover, ...]:
        """
        Compute the carryover chain without writing anything.

        Raises:
            NotFoundError: If the start period does not exist
            BusinessRuleViolation: If the chain breaks the period chain policy
        """
        chain = await self.load_chain(start_period_key, family_id)
        if not chain:
            return ()
        family = family_id or chain[0].family_id

        try:
            ensure_valid_chain(chain, self._settings.period_chain_policy)
        except BusinessRuleViolation as exc:
            if self._activity:
                await self._activity.log_period_chain_rejected(
                    start_period_key, exc.message, family,
                )
            raise

        categories = await self._ledger.categories.find(family_id=family)
        groups = await self._ledger.category_groups.find(family_id=family)
        category_keys = [c.key for c in categories]
        income = income_category_keys(categories, groups)

        # Manually seeded carryovers on the first period are respected
        stored = await self._ledger.carryovers.find(pay_period_key=chain[0].key)
        opening = {c.category_key: c.carryover for c in stored if c.category_key in category_keys}

        activity = [await self._period_activity(p, income) for p in chain]
        return propagate_carryovers(category_keys, opening, activity)

    async def recalculate_year(
        self,
        start_period_key: str,
        family_id: Optional[str] = None,
    ) -> int:
        """
        Propagate ending balances into the carryovers of every later period.

        For each period after the first, its Carryover rows are deleted
        and one row per category is written from the previous period's
        ending balance.

        Returns:
            Number of periods processed (0 if the chain is empty)
        """
        rollovers = await self.simulate_year(start_period_key, family_id)
        if not rollovers:
            return 0

        start = await self._ledger.pay_periods.get(start_period_key)
        family = family_id or start.family_id

        async with self._ledger.unit_of_work() as uow:
            for rollover in rollovers[1:]:
                for existing in await uow.carryovers.find(pay_period_key=rollover.pay_period_key):
                    await uow.carryovers.delete(existing.key)
                for category_key, amount in rollover.carryover.items():
                    await uow.carryovers.save(Carryover(
                        pay_period_key=rollover.pay_period_key,
                        category_key=category_key,
                        carryover=amount,
                        family_id=family,
                    ))

        if self._activity:
            await self._activity.log_year_recalculated(
                start_period_key, len(rollovers), family,
            )
        return len(rollovers)
