"""
Tests for carryover propagation across a year of pay periods.

The running example: Groceries is assigned 300 and spends 120 in the
first period (ending 180), then assigned 300 and spends 50 in the
second (ending 430).
"""

import pytest
from datetime import date
from decimal import Decimal
from types import MappingProxyType

from zerobudget.budget import (
    BudgetPeriodEngine,
    BudgetPlanner,
    PeriodActivity,
    propagate_carryovers,
    spent_by_category,
)
from zerobudget.config import LedgerSettings, PeriodChainPolicy
from zerobudget.errors import BusinessRuleViolation, NotFoundError
from zerobudget.ledger import TransactionLedger
from zerobudget.models import ActivityEventType, Carryover, Transaction, TransactionStatus
from zerobudget.services.storage import InMemoryDocumentStore, LedgerStore, StorageError


def D(value: str) -> Decimal:
    return Decimal(value)


class FailingCarryoverStore(InMemoryDocumentStore):
    """Fails the Nth carryover write once armed."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.armed = False
        self._fail_on = fail_on
        self._writes = 0

    async def upsert(self, collection, document, expected_version=None):
        if self.armed and collection == "carryovers":
            self._writes += 1
            if self._writes == self._fail_on:
                raise StorageError("quota exceeded")
        return await super().upsert(collection, document, expected_version)


@pytest.fixture
async def jan3(planner, budget):
    return await planner.create_pay_period("Jan 3", date(2024, 1, 29), date(2024, 2, 11))


@pytest.fixture
async def groceries_year(planner, transactions, checking, budget, jan3):
    """Assignments and spending for the running Groceries example."""
    groceries = budget["groceries"]
    await planner.assign_money(budget["jan1"].key, groceries.key, "300")
    await planner.assign_money(budget["jan2"].key, groceries.key, "300")
    await transactions.create_transaction(
        checking.key, "-120", date(2024, 1, 5), category_key=groceries.key,
    )
    await transactions.create_transaction(
        checking.key, "-50", date(2024, 1, 20), category_key=groceries.key,
    )
    return budget


class TestPureFold:
    """Tests for the pure propagation functions."""

    def test_propagate_carryovers_example(self):
        periods = [
            PeriodActivity("p1", MappingProxyType({"g": D("300")}), MappingProxyType({"g": D("120")})),
            PeriodActivity("p2", MappingProxyType({"g": D("300")}), MappingProxyType({"g": D("50")})),
            PeriodActivity("p3", MappingProxyType({}), MappingProxyType({})),
        ]
        rollovers = propagate_carryovers(["g"], {}, periods)

        assert [r.carryover["g"] for r in rollovers] == [D("0.00"), D("180.00"), D("430.00")]
        assert rollovers[-1].ending["g"] == D("430.00")

    def test_opening_seeds_first_period(self):
        periods = [PeriodActivity("p1", MappingProxyType({}), MappingProxyType({}))]
        rollovers = propagate_carryovers(["g"], {"g": D("25")}, periods)
        assert rollovers[0].ending["g"] == D("25.00")

    def test_results_are_read_only(self):
        periods = [PeriodActivity("p1", MappingProxyType({}), MappingProxyType({}))]
        rollover = propagate_carryovers(["g"], {}, periods)[0]
        with pytest.raises(TypeError):
            rollover.ending["g"] = D("1")

    def test_empty_chain(self):
        assert propagate_carryovers(["g"], {}, []) == ()

    def test_spent_polarity(self):
        """Income categories count inflows; every other category counts outflows."""
        day = date(2024, 1, 2)
        transactions = [
            Transaction(account_key="a", category_key="salary", amount="2000", transaction_date=day),
            Transaction(account_key="a", category_key="salary", amount="-10", transaction_date=day),
            Transaction(account_key="a", category_key="food", amount="-60", transaction_date=day),
            Transaction(account_key="a", category_key="food", amount="15", transaction_date=day),
            Transaction(
                account_key="a", category_key="food", amount="-999", transaction_date=day,
                status=TransactionStatus.VOID,
            ),
            Transaction(account_key="a", amount="-5", transaction_date=day),
        ]
        spent = spent_by_category(transactions, {"salary"})
        assert dict(spent) == {"salary": D("2000.00"), "food": D("60.00")}


class TestRecalculateYear:
    """Tests for the stored carryover chain."""

    async def test_groceries_example(self, engine, projector, groceries_year, jan3):
        processed = await engine.recalculate_year(groceries_year["jan1"].key)
        assert processed == 3

        groceries = groceries_year["groceries"].key
        first = await projector.category_balance(groceries, groceries_year["jan1"].key)
        second = await projector.category_balance(groceries, groceries_year["jan2"].key)
        third = await projector.category_balance(groceries, jan3.key)

        assert (first.carryover, first.available) == (D("0.00"), D("180.00"))
        assert (second.carryover, second.available) == (D("180.00"), D("430.00"))
        assert third.carryover == D("430.00")

    async def test_first_period_carryovers_untouched(self, engine, ledger, groceries_year):
        """Carryovers seeded on the start period are inputs, not outputs."""
        groceries = groceries_year["groceries"].key
        jan1 = groceries_year["jan1"].key
        await ledger.carryovers.save(Carryover(pay_period_key=jan1, category_key=groceries, carryover="20"))

        await engine.recalculate_year(jan1)

        assert (await ledger.carryovers.get(f"{jan1}:{groceries}")).carryover == D("20.00")
        second = await ledger.carryovers.get(f"{groceries_year['jan2'].key}:{groceries}")
        assert second.carryover == D("200.00")

    async def test_recalculate_is_idempotent(self, engine, store, groceries_year):
        await engine.recalculate_year(groceries_year["jan1"].key)
        count = store.count("carryovers")
        await engine.recalculate_year(groceries_year["jan1"].key)
        assert store.count("carryovers") == count
        # 3 categories x 2 later periods
        assert count == 6

    async def test_starting_mid_year_leaves_earlier_periods(self, engine, ledger, groceries_year, jan3):
        await engine.recalculate_year(groceries_year["jan2"].key)
        assert await ledger.carryovers.find(pay_period_key=groceries_year["jan2"].key) == []
        assert len(await ledger.carryovers.find(pay_period_key=jan3.key)) == 3

    async def test_next_year_not_touched(self, engine, planner, ledger, groceries_year):
        following = await planner.create_pay_period("Jan 2025", date(2025, 1, 1), date(2025, 1, 14))
        processed = await engine.recalculate_year(groceries_year["jan1"].key)
        assert processed == 3
        assert await ledger.carryovers.find(pay_period_key=following.key) == []

    async def test_void_spending_excluded(self, engine, projector, transactions, checking, groceries_year):
        oops = await transactions.create_transaction(
            checking.key, "-500", date(2024, 1, 6), category_key=groceries_year["groceries"].key,
        )
        await transactions.void_transaction(oops.key)
        await engine.recalculate_year(groceries_year["jan1"].key)
        second = await projector.category_balance(
            groceries_year["groceries"].key, groceries_year["jan2"].key,
        )
        assert second.carryover == D("180.00")

    async def test_missing_start_period(self, engine):
        with pytest.raises(NotFoundError):
            await engine.recalculate_year("pp-nope")

    async def test_logs_recalculation(self, engine, activity, groceries_year):
        await engine.recalculate_year(groceries_year["jan1"].key)
        events = activity.of_type(ActivityEventType.YEAR_RECALCULATED)
        assert events[-1].details["affected_periods"] == 3

    async def test_failure_restores_previous_carryovers(self, activity, settings):
        """A write failing partway leaves the earlier carryovers in place."""
        store = FailingCarryoverStore(fail_on=4)
        ledger = LedgerStore(store, activity_logger=activity)
        planner = BudgetPlanner(ledger, activity, settings)
        engine = BudgetPeriodEngine(ledger, activity, settings)
        ledger_service = TransactionLedger(ledger, activity, settings)

        jan1 = await planner.create_pay_period("Jan 1", date(2024, 1, 1), date(2024, 1, 14))
        await planner.create_pay_period("Jan 2", date(2024, 1, 15), date(2024, 1, 28))
        await planner.create_pay_period("Jan 3", date(2024, 1, 29), date(2024, 2, 11))
        group = await planner.create_category_group("Everyday")
        food = await planner.create_category(group.key, "Food")
        fuel = await planner.create_category(group.key, "Fuel")
        await planner.assign_money(jan1.key, food.key, "100")
        await planner.assign_money(jan1.key, fuel.key, "40")
        await engine.recalculate_year(jan1.key)
        before = {c.key: c.carryover for c in await ledger.carryovers.find()}

        account = await ledger_service.create_account("Checking")
        await ledger_service.create_transaction(account.key, "-30", date(2024, 1, 3), category_key=food.key)
        store.armed = True

        with pytest.raises(StorageError):
            await engine.recalculate_year(jan1.key)

        after = {c.key: c.carryover for c in await ledger.carryovers.find()}
        assert after == before
        assert activity.of_type(ActivityEventType.WRITES_COMPENSATED)


class TestPeriodChainPolicy:
    """Tests for chain validation before propagation."""

    @staticmethod
    def _engine(ledger, activity, policy):
        return BudgetPeriodEngine(ledger, activity, LedgerSettings(period_chain_policy=policy))

    async def test_overlap_rejected_without_writes(self, ledger, activity, planner, store, budget):
        await planner.create_pay_period("Overlap", date(2024, 1, 10), date(2024, 1, 20))
        engine = self._engine(ledger, activity, PeriodChainPolicy.REJECT_OVERLAP)

        with pytest.raises(BusinessRuleViolation, match="overlaps"):
            await engine.recalculate_year(budget["jan1"].key)

        assert store.count("carryovers") == 0
        assert activity.of_type(ActivityEventType.PERIOD_CHAIN_REJECTED)

    async def test_gap_allowed_by_default(self, ledger, activity, planner, budget):
        await planner.create_pay_period("Feb", date(2024, 2, 5), date(2024, 2, 18))
        engine = self._engine(ledger, activity, PeriodChainPolicy.REJECT_OVERLAP)
        assert await engine.recalculate_year(budget["jan1"].key) == 3

    async def test_gap_rejected_when_adjacency_required(self, ledger, activity, planner, budget):
        await planner.create_pay_period("Feb", date(2024, 2, 5), date(2024, 2, 18))
        engine = self._engine(ledger, activity, PeriodChainPolicy.REQUIRE_ADJACENT)
        with pytest.raises(BusinessRuleViolation, match="gap"):
            await engine.recalculate_year(budget["jan1"].key)

    async def test_no_policy_propagates_in_start_order(self, ledger, activity, planner, budget):
        await planner.create_pay_period("Overlap", date(2024, 1, 10), date(2024, 1, 20))
        engine = self._engine(ledger, activity, PeriodChainPolicy.NONE)
        assert await engine.recalculate_year(budget["jan1"].key) == 3

    async def test_named_start_leads_periods_sharing_its_start_date(self, ledger, activity, planner, budget):
        """A same-day period that sorts first never displaces the start period."""
        jan1 = budget["jan1"].key
        groceries = budget["groceries"].key
        short = await planner.create_pay_period("Short", date(2024, 1, 1), date(2024, 1, 7))
        await ledger.carryovers.save(Carryover(pay_period_key=jan1, category_key=groceries, carryover="20"))
        engine = self._engine(ledger, activity, PeriodChainPolicy.NONE)

        chain = await engine.load_chain(jan1)
        await engine.recalculate_year(jan1)

        assert chain[0].key == jan1
        assert chain[1].key == short.key
        assert (await ledger.carryovers.get(f"{jan1}:{groceries}")).carryover == D("20.00")
        assert (await ledger.carryovers.get(f"{short.key}:{groceries}")).carryover == D("20.00")
