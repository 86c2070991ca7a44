"""
Bills

Recurring obligations and their payment.

Marking a bill paid goes through the TransactionLedger like any other
outflow, so the account balance stays consistent. The payment is
recorded as cleared (the money has already left) and linked back to
the bill through bill_key.
"""

import calendar
from datetime import date, timedelta
from typing import Any, Optional

from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import BusinessRuleViolation, NotFoundError
from zerobudget.ledger.transactions import TransactionLedger
from zerobudget.models import (
    ActivityEventType,
    Bill,
    BillFrequency,
    Transaction,
    UpcomingBill,
)
from zerobudget.services.storage import LedgerStore
from zerobudget.validation import apply_changes, build, parse_amount


UPDATABLE_BILL_FIELDS = {
    "name",
    "amount",
    "due_day",
    "frequency",
    "account_key",
    "category_key",
    "is_auto_pay",
    "is_active",
    "next_due_date",
    "notes",
}


def _on_day(year: int, month: int, day: int) -> date:
    """The given day of a month, clamped to the month's last day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def add_months(start: date, months: int, due_day: int) -> date:
    """Move `months` forward and land on `due_day` (clamped to month length)."""
    index = start.month - 1 + months
    return _on_day(start.year + index // 12, index % 12 + 1, due_day)


def next_due_date(last_paid: date, frequency: Any, due_day: int) -> date:
    """
    Due date following a payment on `last_paid`.

    weekly/biweekly add 7/14 days. monthly/quarterly/yearly advance 1/3/12
    months and snap to the bill's due day. Unknown frequencies behave as
    monthly.
    """
    try:
        frequency = BillFrequency(str(getattr(frequency, "value", frequency)).lower())
    except ValueError:
        frequency = BillFrequency.MONTHLY

    if frequency == BillFrequency.WEEKLY:
        return last_paid + timedelta(days=7)
    if frequency == BillFrequency.BIWEEKLY:
        return last_paid + timedelta(days=14)
    if frequency == BillFrequency.QUARTERLY:
        return add_months(last_paid, 3, due_day)
    if frequency == BillFrequency.YEARLY:
        return add_months(last_paid, 12, due_day)
    return add_months(last_paid, 1, due_day)


def due_date_from(bill: Bill, from_date: date) -> date:
    """First occurrence of the bill's due day on or after `from_date`."""
    if bill.next_due_date and bill.next_due_date >= from_date:
        return bill.next_due_date
    due = _on_day(from_date.year, from_date.month, bill.due_day)
    if due < from_date:
        due = add_months(due, 1, bill.due_day)
    return due


class BillService:
    """Bill templates, payments and the upcoming-bills view."""

    def __init__(
        self,
        ledger: LedgerStore,
        transactions: TransactionLedger,
        activity_logger=None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._transactions = transactions
        self._activity = activity_logger
        self._settings = settings or get_settings().ledger

    async def create_bill(
        self,
        name: str,
        amount: Any,
        due_day: int,
        frequency: BillFrequency = BillFrequency.MONTHLY,
        account_key: Optional[str] = None,
        category_key: Optional[str] = None,
        is_auto_pay: bool = False,
        next_due_date: Optional[date] = None,
        notes: Optional[str] = None,
        family_id: Optional[str] = None,
    ) -> Bill:
        if account_key:
            await self._transactions.get_account(account_key)
        if category_key and await self._ledger.categories.get(category_key) is None:
            raise NotFoundError("Category", category_key)

        bill = build(
            Bill,
            name=name,
            amount=parse_amount(amount),
            due_day=due_day,
            frequency=frequency,
            account_key=account_key,
            category_key=category_key,
            is_auto_pay=is_auto_pay,
            next_due_date=next_due_date,
            notes=notes,
            family_id=family_id or self._settings.default_family_id,
        )
        bill = await self._ledger.bills.save(bill, expected_version=0)

        if self._activity:
            await self._activity.log_entity_changed(
                ActivityEventType.BILL_CREATED, "bills", bill.key,
                f"Bill created: {bill.name}", family_id=bill.family_id,
            )
        return bill

    async def get_bill(self, key: str) -> Bill:
        bill = await self._ledger.bills.get(key)
        if bill is None:
            raise NotFoundError("Bill", key)
        return bill

    async def list_bills(
        self,
        family_id: Optional[str] = None,
        include_inactive: bool = False,
    ) -> list[Bill]:
        bills = await self._ledger.bills.find(
            family_id=family_id or self._settings.default_family_id,
        )
        if not include_inactive:
            bills = [b for b in bills if b.is_active]
        return sorted(bills, key=lambda b: (b.due_day, b.name))

    async def update_bill(self, key: str, **changes: Any) -> Bill:
        bill = await self.get_bill(key)
        if changes.get("account_key"):
            await self._transactions.get_account(changes["account_key"])
        if "amount" in changes:
            changes["amount"] = parse_amount(changes["amount"])
        updated = await self._ledger.bills.save(
            apply_changes(bill, changes, UPDATABLE_BILL_FIELDS)
        )

        if self._activity:
            await self._activity.log_entity_changed(
                ActivityEventType.BILL_UPDATED, "bills", key,
                f"Bill updated: {updated.name}", family_id=updated.family_id,
                details={"fields": sorted(changes)},
            )
        return updated

    async def mark_bill_paid(
        self,
        key: str,
        paid_date: date,
        actual_amount: Any = None,
        memo: Optional[str] = None,
    ) -> tuple[Bill, Transaction]:
        """
        Record a payment: one cleared outflow plus an advanced due date.

        Raises:
            NotFoundError: The bill does not exist
            BusinessRuleViolation: The bill has no account to pay from

        Returns:
            (updated bill, payment transaction)
        """
        bill = await self.get_bill(key)
        if not bill.account_key:
            raise BusinessRuleViolation("Bill must have an account assigned")

        amount = parse_amount(actual_amount) if actual_amount is not None else bill.amount

        async with self._ledger.unit_of_work() as uow:
            ledger = TransactionLedger(uow, self._activity, self._settings)
            payment = await ledger.create_transaction(
                account_key=bill.account_key,
                amount=-abs(amount),
                transaction_date=paid_date,
                category_key=bill.category_key,
                payee=bill.name,
                memo=memo or f"Bill payment: {bill.name}",
                is_cleared=True,
                bill_key=bill.key,
            )
            bill = await uow.bills.save(bill.with_changes(
                last_paid_date=paid_date,
                next_due_date=next_due_date(paid_date, bill.frequency, bill.due_day),
            ))

        if self._activity:
            await self._activity.log_bill_paid(bill, payment)
        return bill, payment

    async def upcoming_bills(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        family_id: Optional[str] = None,
    ) -> list[UpcomingBill]:
        """Active bills due between from_date and to_date (inclusive), soonest first."""
        from_date = from_date or date.today()
        to_date = to_date or from_date + timedelta(days=self._settings.upcoming_bills_days)

        upcoming = []
        for bill in await self.list_bills(family_id):
            due = due_date_from(bill, from_date)
            if not from_date <= due <= to_date:
                continue

            category = (
                await self._ledger.categories.get(bill.category_key)
                if bill.category_key else None
            )
            account = (
                await self._ledger.accounts.get(bill.account_key)
                if bill.account_key else None
            )
            upcoming.append(UpcomingBill(
                bill_key=bill.key,
                bill_name=bill.name,
                amount=bill.amount,
                due_date=due,
                category_name=category.name if category else "",
                account_name=account.name if account else "",
                is_auto_pay=bill.is_auto_pay,
            ))
        return sorted(upcoming, key=lambda b: (b.due_date, b.bill_name))
