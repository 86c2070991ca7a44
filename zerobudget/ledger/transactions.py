"""
Transaction Ledger

Creates, edits, clears, voids and deletes transactions against accounts,
and pairs transactions into transfers.

DESIGN DECISION: Account balances are caches. After every write that can
move money, the owning account's `balance` and `cleared_balance` are
recomputed from scratch:

    balance         = opening_balance + sum(amount of posted transactions)
    cleared_balance = opening_balance + sum(amount of cleared posted transactions)

Void transactions stay in the ledger for history but never count.

Every write and its balance recompute run inside one unit of work, so
a failing recompute (e.g. the account vanished) rolls the write back
and surfaces AccountNotFoundError.
"""

from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Any, Iterable, Optional

from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import (
    AccountNotFoundError,
    BusinessRuleViolation,
    NotFoundError,
    ValidationError,
)
from zerobudget.models import (
    ZERO,
    Account,
    AccountType,
    ActivityEventType,
    Split,
    Transaction,
    TransactionStatus,
    new_key,
    to_money,
    utcnow,
)
from zerobudget.services.storage import LedgerStore
from zerobudget.validation import (
    apply_changes,
    build,
    parse_amount,
    require_key,
    require_positive,
)


UPDATABLE_TRANSACTION_FIELDS = {
    "category_key",
    "pay_period_key",
    "payee",
    "memo",
    "amount",
    "transaction_date",
    "is_cleared",
}

UPDATABLE_ACCOUNT_FIELDS = {
    "name",
    "account_type",
    "institution",
    "opening_balance",
    "is_active",
    "is_closed",
    "notes",
}


def compute_account_balances(
    opening_balance: Decimal,
    transactions: Iterable[Transaction],
) -> tuple[Decimal, Decimal]:
    """
    Fold a transaction set into (balance, cleared_balance).

    Pure: depends only on its inputs.
    """
    def step(totals: tuple[Decimal, Decimal], t: Transaction) -> tuple[Decimal, Decimal]:
        balance, cleared = totals
        if t.is_void:
            return totals
        return balance + t.amount, (cleared + t.amount if t.is_cleared else cleared)

    balance, cleared = reduce(step, transactions, (opening_balance, opening_balance))
    return to_money(balance), to_money(cleared)


class TransactionLedger:
    """
    Ledger operations over accounts and their transactions.

    GUARANTEES:
    - Validation and not-found checks happen before any write
    - Account balances are recomputed after every money-moving write
    - Reconciled transactions keep their amount and cannot be deleted
    """

    def __init__(
        self,
        ledger: LedgerStore,
        activity_logger=None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._activity = activity_logger
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(
        self,
        name: str,
        account_type: AccountType = AccountType.CHECKING,
        opening_balance: Any = ZERO,
        institution: Optional[str] = None,
        notes: Optional[str] = None,
        family_id: Optional[str] = None,
    ) -> Account:
        """Open an account. Its balances start at the opening balance."""
        opening = parse_amount(opening_balance, "opening_balance")
        account = build(
            Account,
            name=name,
            account_type=account_type,
            opening_balance=opening,
            balance=opening,
            cleared_balance=opening,
            institution=institution,
            notes=notes,
            family_id=family_id or self._settings.default_family_id,
        )
        account = await self._ledger.accounts.save(account, expected_version=0)

        if self._activity:
            await self._activity.log_entity_changed(
                ActivityEventType.ACCOUNT_CREATED,
                "accounts",
                account.key,
                f"Account created: {account.name}",
                family_id=account.family_id,
                details={"opening_balance": account.opening_balance},
            )
        return account

    async def get_account(self, key: str) -> Account:
        account = await self._ledger.accounts.get(key)
        if account is None:
            raise AccountNotFoundError(key)
        return account

    async def list_accounts(
        self,
        family_id: Optional[str] = None,
        include_closed: bool = False,
    ) -> list[Account]:
        accounts = await self._ledger.accounts.find(
            family_id=family_id or self._settings.default_family_id,
        )
        if not include_closed:
            accounts = [a for a in accounts if not a.is_closed]
        return sorted(accounts, key=lambda a: a.name.lower())

    async def update_account(self, key: str, **changes: Any) -> Account:
        """Partially update an account; a new opening balance triggers a recompute."""
        account = await self.get_account(key)
        updated = apply_changes(account, changes, UPDATABLE_ACCOUNT_FIELDS)

        async with self._ledger.unit_of_work() as uow:
            updated = await uow.accounts.save(updated)
            if updated.opening_balance != account.opening_balance:
                updated = await self.recompute_account_balance(key, ledger=uow)

        if self._activity:
            await self._activity.log_entity_changed(
                ActivityEventType.ACCOUNT_UPDATED,
                "accounts",
                key,
                f"Account updated: {updated.name}",
                family_id=updated.family_id,
                details={"fields": sorted(changes)},
            )
        return updated

    async def delete_account(self, key: str) -> None:
        """Delete an account that has no transactions."""
        account = await self.get_account(key)
        if await self._ledger.transactions.find(account_key=key):
            raise BusinessRuleViolation(
                f"Account {account.name} has transactions and cannot be deleted; close it instead"
            )
        await self._ledger.accounts.delete(key)

        if self._activity:
            await self._activity.log_entity_changed(
                ActivityEventType.ACCOUNT_DELETED,
                "accounts",
                key,
                f"Account deleted: {account.name}",
                family_id=account.family_id,
            )

    async def recompute_account_balance(
        self,
        account_key: str,
        ledger: Optional[LedgerStore] = None,
    ) -> Account:
        """
        Recompute and persist an account's balance and cleared balance.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        ledger = ledger or self._ledger
        account = await ledger.accounts.get(account_key)
        if account is None:
            raise AccountNotFoundError(account_key)

        transactions = await ledger.transactions.find(account_key=account_key)
        balance, cleared = compute_account_balances(account.opening_balance, transactions)

        if balance == account.balance and cleared == account.cleared_balance:
            return account

        account = await ledger.accounts.save(
            account.with_changes(balance=balance, cleared_balance=cleared)
        )
        if self._activity:
            await self._activity.log_balance_recomputed(account)
        return account

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def get_transaction(self, key: str) -> Transaction:
        transaction = await self._ledger.transactions.get(key)
        if transaction is None:
            raise NotFoundError("Transaction", key)
        return transaction

    async def list_transactions(
        self,
        account_key: Optional[str] = None,
        pay_period_key: Optional[str] = None,
        category_key: Optional[str] = None,
        family_id: Optional[str] = None,
        include_void: bool = True,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """List transactions, newest first."""
        filters: dict[str, Any] = {
            "family_id": family_id or self._settings.default_family_id,
        }
        if account_key:
            filters["account_key"] = account_key
        if pay_period_key:
            filters["pay_period_key"] = pay_period_key
        if category_key:
            filters["category_key"] = category_key

        transactions = await self._ledger.transactions.find(**filters)
        if not include_void:
            transactions = [t for t in transactions if not t.is_void]
        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions[:limit] if limit else transactions

    async def _resolve_pay_period(
        self,
        family_id: str,
        transaction_date: date,
        pay_period_key: Optional[str],
    ) -> Optional[str]:
        """
        Validate an explicit period, or find the one containing the date.

        When several periods contain the date, the earliest-starting wins.
        """
        if pay_period_key:
            if await self._ledger.pay_periods.get(pay_period_key) is None:
                raise NotFoundError("PayPeriod", pay_period_key)
            return pay_period_key

        periods = await self._ledger.pay_periods.find(family_id=family_id)
        containing = sorted(
            (p for p in periods if p.date_range.contains(transaction_date)),
            key=lambda p: p.start_date,
        )
        return containing[0].key if containing else None

    async def create_transaction(
        self,
        account_key: Optional[str],
        amount: Any,
        transaction_date: date,
        category_key: Optional[str] = None,
        payee: str = "",
        memo: Optional[str] = None,
        pay_period_key: Optional[str] = None,
        splits: Optional[list] = None,
        is_cleared: bool = False,
        bill_key: Optional[str] = None,
    ) -> Transaction:
        """
        Record a transaction and refresh the account balance.

        Raises:
            ValidationError: Missing account key or malformed fields
            AccountNotFoundError: The account does not exist
            NotFoundError: An explicit pay period does not exist
        """
        account_key = require_key(account_key, "account_key")
        amount = parse_amount(amount)
        account = await self.get_account(account_key)

        period_key = await self._resolve_pay_period(
            account.family_id, transaction_date, pay_period_key,
        )

        transaction = build(
            Transaction,
            account_key=account_key,
            category_key=category_key,
            pay_period_key=period_key,
            payee=payee,
            memo=memo,
            amount=amount,
            transaction_date=transaction_date,
            is_cleared=is_cleared,
            splits=splits or [],
            bill_key=bill_key,
            family_id=account.family_id,
        )

        async with self._ledger.unit_of_work() as uow:
            transaction = await uow.transactions.save(transaction, expected_version=0)
            await self.recompute_account_balance(account_key, ledger=uow)

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.TRANSACTION_CREATED, transaction,
            )
            if transaction.splits and transaction.split_total != transaction.amount:
                await self._activity.log_split_mismatch(transaction)
        return transaction

    @staticmethod
    def _require_unmatched(transaction: Transaction) -> None:
        """Matched transactions are frozen until unmatched or reconciled."""
        if transaction.reconciliation_key:
            raise BusinessRuleViolation(
                f"Transaction is matched to reconciliation {transaction.reconciliation_key}; "
                "unmatch it first"
            )

    async def update_transaction(self, key: str, **changes: Any) -> Transaction:
        """
        Apply only the supplied fields.

        The account balance is recomputed when the amount or cleared
        state changes.
        """
        transaction = await self.get_transaction(key)
        if transaction.is_void:
            raise BusinessRuleViolation("Void transactions cannot be edited")

        if "amount" in changes:
            changes["amount"] = parse_amount(changes["amount"])
            if changes["amount"] != transaction.amount:
                if transaction.is_reconciled:
                    raise BusinessRuleViolation(
                        "Cannot change the amount of a reconciled transaction"
                    )
                self._require_unmatched(transaction)
        if "is_cleared" in changes and changes["is_cleared"] != transaction.is_cleared:
            if transaction.is_reconciled:
                raise BusinessRuleViolation("Reconciled transactions stay cleared")
            self._require_unmatched(transaction)
        if changes.get("pay_period_key"):
            if await self._ledger.pay_periods.get(changes["pay_period_key"]) is None:
                raise NotFoundError("PayPeriod", changes["pay_period_key"])

        updated = apply_changes(transaction, changes, UPDATABLE_TRANSACTION_FIELDS)

        async with self._ledger.unit_of_work() as uow:
            updated = await uow.transactions.save(updated)
            if (
                updated.amount != transaction.amount
                or updated.is_cleared != transaction.is_cleared
            ):
                await self.recompute_account_balance(updated.account_key, ledger=uow)

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.TRANSACTION_UPDATED, updated,
            )
        return updated

    async def clear_transaction(self, key: str) -> Transaction:
        """Toggle the cleared flag and refresh the cleared balance."""
        transaction = await self.get_transaction(key)
        if transaction.is_void:
            raise BusinessRuleViolation("Void transactions cannot be cleared")
        if transaction.is_reconciled:
            raise BusinessRuleViolation("Reconciled transactions stay cleared")
        self._require_unmatched(transaction)

        async with self._ledger.unit_of_work() as uow:
            updated = await uow.transactions.save(
                transaction.with_changes(is_cleared=not transaction.is_cleared)
            )
            await self.recompute_account_balance(updated.account_key, ledger=uow)

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.TRANSACTION_CLEARED, updated,
            )
        return updated

    async def delete_transaction(self, key: str) -> None:
        """Remove a transaction and refresh the account balance."""
        transaction = await self.get_transaction(key)
        if transaction.is_reconciled:
            raise BusinessRuleViolation(
                "Reconciled transactions cannot be deleted; void them instead"
            )
        self._require_unmatched(transaction)

        async with self._ledger.unit_of_work() as uow:
            await uow.transactions.delete(key)
            await self.recompute_account_balance(transaction.account_key, ledger=uow)

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.TRANSACTION_DELETED, transaction,
            )

    async def void_transaction(self, key: str) -> Transaction:
        """
        Mark a transaction void without deleting it.

        Raises:
            NotFoundError: The transaction does not exist
            BusinessRuleViolation: Already void, or locked by a reconciliation
        """
        transaction = await self.get_transaction(key)
        if transaction.is_void:
            raise BusinessRuleViolation("Transaction is already void")
        if transaction.is_reconciled:
            raise BusinessRuleViolation("Cannot void a reconciled transaction")
        self._require_unmatched(transaction)

        async with self._ledger.unit_of_work() as uow:
            voided = await uow.transactions.save(
                transaction.with_changes(
                    status=TransactionStatus.VOID,
                    voided_at=utcnow(),
                )
            )
            await self.recompute_account_balance(voided.account_key, ledger=uow)

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.TRANSACTION_VOIDED, voided,
            )
        return voided

    async def replace_splits(self, key: str, splits: list) -> Transaction:
        """
        Replace the split list of a transaction.

        Splits that don't add up to the transaction amount are accepted
        and logged as a warning.
        """
        transaction = await self.get_transaction(key)
        if transaction.is_void:
            raise BusinessRuleViolation("Void transactions cannot be edited")

        parsed = [
            split if isinstance(split, Split) else build(Split, **split)
            for split in splits
        ]
        updated = await self._ledger.transactions.save(
            transaction.with_changes(splits=[s.model_dump() for s in parsed])
        )

        if self._activity:
            await self._activity.log_transaction(
                ActivityEventType.SPLITS_REPLACED, updated,
            )
            if updated.splits and updated.split_total != updated.amount:
                await self._activity.log_split_mismatch(updated)
        return updated

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    async def create_transfer(
        self,
        from_account_key: Optional[str],
        to_account_key: Optional[str],
        amount: Any,
        transaction_date: date,
        memo: Optional[str] = None,
    ) -> tuple[Transaction, Transaction]:
        """
        Move money between two accounts as a linked pair.

        The withdrawal (-amount on the source) and the deposit (+amount on
        the destination) share a transfer_id. Both legs and both balance
        recomputes run in one unit of work.

        Returns:
            (withdrawal, deposit)
        """
        from_account_key = require_key(from_account_key, "from_account_key")
        to_account_key = require_key(to_account_key, "to_account_key")
        if from_account_key == to_account_key:
            raise ValidationError("Cannot transfer to the same account")
        amount = require_positive(amount)

        source = await self.get_account(from_account_key)
        destination = await self.get_account(to_account_key)

        transfer_id = new_key()
        period_key = await self._resolve_pay_period(
            source.family_id, transaction_date, None,
        )

        withdrawal = build(
            Transaction,
            account_key=source.key,
            payee=f"Transfer to: {destination.name}",
            memo=memo,
            amount=-amount,
            transaction_date=transaction_date,
            pay_period_key=period_key,
            transfer_id=transfer_id,
            family_id=source.family_id,
        )
        deposit = build(
            Transaction,
            account_key=destination.key,
            payee=f"Transfer from: {source.name}",
            memo=memo,
            amount=amount,
            transaction_date=transaction_date,
            pay_period_key=period_key,
            transfer_id=transfer_id,
            family_id=destination.family_id,
        )

        async with self._ledger.unit_of_work() as uow:
            withdrawal = await uow.transactions.save(withdrawal, expected_version=0)
            deposit = await uow.transactions.save(deposit, expected_version=0)
            await self.recompute_account_balance(source.key, ledger=uow)
            await self.recompute_account_balance(destination.key, ledger=uow)

        if self._activity:
            await self._activity.log_transfer_created(
                transfer_id=transfer_id,
                from_account_key=source.key,
                to_account_key=destination.key,
                amount=amount,
                family_id=source.family_id,
            )
        return withdrawal, deposit
