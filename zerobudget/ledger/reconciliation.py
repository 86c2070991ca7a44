"""
Reconciliation Matcher

Associates ledger transactions with a bank statement and gates
completion on the statement and the matched transactions agreeing.

State machine:
    IN_PROGRESS --complete (|difference| <= tolerance)--> COMPLETED

COMPLETED is terminal. While in progress, transactions can be matched
and unmatched freely; every change recomputes

    cleared_balance = sum(amount of matched transactions)
    difference      = statement_balance - cleared_balance

Matching marks the transaction cleared. Completing marks every matched
transaction reconciled, which locks its amount.
"""

from datetime import date
from typing import Any, Iterable, Optional

from zerobudget.config import LedgerSettings, get_settings
from zerobudget.errors import BusinessRuleViolation, NotFoundError
from zerobudget.ledger.transactions import TransactionLedger
from zerobudget.models import (
    ActivityEventType,
    Reconciliation,
    ReconciliationStatus,
    Transaction,
    money_sum,
    utcnow,
)
from zerobudget.services.storage import LedgerStore
from zerobudget.validation import build, parse_amount, require_key


class ReconciliationMatcher:
    """Bank statement reconciliation over the transaction ledger."""

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

    @property
    def tolerance(self):
        return self._settings.reconciliation_tolerance

    async def get_reconciliation(self, key: str) -> Reconciliation:
        reconciliation = await self._ledger.reconciliations.get(key)
        if reconciliation is None:
            raise NotFoundError("Reconciliation", key)
        return reconciliation

    async def list_reconciliations(
        self,
        account_key: Optional[str] = None,
        status: Optional[ReconciliationStatus] = None,
        family_id: Optional[str] = None,
    ) -> list[Reconciliation]:
        """List reconciliations, most recent statement first."""
        filters: dict[str, Any] = {
            "family_id": family_id or self._settings.default_family_id,
        }
        if account_key:
            filters["account_key"] = account_key
        if status:
            filters["status"] = status

        reconciliations = await self._ledger.reconciliations.find(**filters)
        return sorted(reconciliations, key=lambda r: r.statement_date, reverse=True)

    async def create_reconciliation(
        self,
        account_key: Optional[str],
        statement_date: date,
        statement_balance: Any,
    ) -> Reconciliation:
        """
        Start reconciling an account against a statement.

        Starts with nothing matched: cleared balance 0 and a difference
        equal to the statement balance.
        """
        account_key = require_key(account_key, "account_key")
        statement_balance = parse_amount(statement_balance, "statement_balance")
        account = await self._transactions.get_account(account_key)

        open_ones = await self._ledger.reconciliations.find(
            account_key=account_key,
            status=ReconciliationStatus.IN_PROGRESS,
        )
        if open_ones:
            raise BusinessRuleViolation(
                f"Account {account.name} already has a reconciliation in progress"
            )

        reconciliation = build(
            Reconciliation,
            account_key=account_key,
            statement_date=statement_date,
            statement_balance=statement_balance,
            difference=statement_balance,
            family_id=account.family_id,
        )
        reconciliation = await self._ledger.reconciliations.save(
            reconciliation, expected_version=0,
        )

        if self._activity:
            await self._activity.log_reconciliation(
                ActivityEventType.RECONCILIATION_CREATED, reconciliation,
            )
        return reconciliation

    def _require_in_progress(self, reconciliation: Reconciliation) -> None:
        if not reconciliation.is_in_progress:
            raise BusinessRuleViolation(
                f"Reconciliation {reconciliation.key} is {reconciliation.status.value}"
            )

    async def _load_transactions(self, keys: Iterable[str]) -> list[Transaction]:
        transactions = []
        for key in keys:
            transaction = await self._ledger.transactions.get(key)
            if transaction is None:
                raise NotFoundError("Transaction", key)
            transactions.append(transaction)
        return transactions

    async def _refresh_totals(
        self,
        uow: LedgerStore,
        reconciliation: Reconciliation,
        matched_keys: list[str],
    ) -> Reconciliation:
        """Recompute cleared balance and difference from the matched set."""
        matched = [await uow.transactions.get(key) for key in matched_keys]
        cleared = money_sum(
            t.amount for t in matched if t is not None and not t.is_void
        )
        return await uow.reconciliations.save(
            reconciliation.with_changes(
                matched_transaction_keys=matched_keys,
                cleared_balance=cleared,
                difference=reconciliation.statement_balance - cleared,
            )
        )

    async def match_transactions(
        self,
        key: str,
        transaction_keys: list[str],
    ) -> Reconciliation:
        """
        Add transactions to the matched set.

        Idempotent: keys that are already matched are skipped, so matching
        overlapping sets equals matching their union once. Every key is
        checked before anything is written.

        Raises:
            NotFoundError: Reconciliation or any transaction missing
            BusinessRuleViolation: Not in progress, wrong account, void,
                or already matched elsewhere
        """
        reconciliation = await self.get_reconciliation(key)
        self._require_in_progress(reconciliation)

        already = set(reconciliation.matched_transaction_keys)
        new_keys = list(dict.fromkeys(k for k in transaction_keys if k not in already))
        candidates = await self._load_transactions(new_keys)

        for transaction in candidates:
            if transaction.account_key != reconciliation.account_key:
                raise BusinessRuleViolation(
                    f"Transaction {transaction.key} belongs to another account"
                )
            if transaction.is_void:
                raise BusinessRuleViolation(
                    f"Transaction {transaction.key} is void and cannot be matched"
                )
            if transaction.reconciliation_key not in (None, key):
                raise BusinessRuleViolation(
                    f"Transaction {transaction.key} is matched to "
                    f"reconciliation {transaction.reconciliation_key}"
                )

        if not candidates:
            return reconciliation

        async with self._ledger.unit_of_work() as uow:
            for transaction in candidates:
                await uow.transactions.save(
                    transaction.with_changes(is_cleared=True, reconciliation_key=key)
                )
            reconciliation = await self._refresh_totals(
                uow,
                reconciliation,
                reconciliation.matched_transaction_keys + [t.key for t in candidates],
            )
            await self._transactions.recompute_account_balance(
                reconciliation.account_key, ledger=uow,
            )

        if self._activity:
            await self._activity.log_reconciliation(
                ActivityEventType.TRANSACTIONS_MATCHED,
                reconciliation,
                details={"added": [t.key for t in candidates]},
            )
        return reconciliation

    async def unmatch_transactions(
        self,
        key: str,
        transaction_keys: list[str],
    ) -> Reconciliation:
        """Remove transactions from the matched set and un-clear them."""
        reconciliation = await self.get_reconciliation(key)
        self._require_in_progress(reconciliation)

        removing = [k for k in dict.fromkeys(transaction_keys)
                    if k in reconciliation.matched_transaction_keys]
        if not removing:
            return reconciliation

        async with self._ledger.unit_of_work() as uow:
            for transaction in await self._load_transactions(removing):
                await uow.transactions.save(
                    transaction.with_changes(is_cleared=False, reconciliation_key=None)
                )
            reconciliation = await self._refresh_totals(
                uow,
                reconciliation,
                [k for k in reconciliation.matched_transaction_keys if k not in removing],
            )
            await self._transactions.recompute_account_balance(
                reconciliation.account_key, ledger=uow,
            )

        if self._activity:
            await self._activity.log_reconciliation(
                ActivityEventType.TRANSACTIONS_UNMATCHED,
                reconciliation,
                details={"removed": removing},
            )
        return reconciliation

    async def complete_reconciliation(
        self,
        key: str,
        notes: Optional[str] = None,
    ) -> Reconciliation:
        """
        Close the reconciliation and lock its transactions.

        Totals are recomputed from the current matched transactions before
        the tolerance check.

        Raises:
            BusinessRuleViolation: Not in progress, or the difference is
                larger than the configured tolerance
        """
        reconciliation = await self.get_reconciliation(key)
        self._require_in_progress(reconciliation)

        async with self._ledger.unit_of_work() as uow:
            reconciliation = await self._refresh_totals(
                uow, reconciliation, reconciliation.matched_transaction_keys,
            )

        if abs(reconciliation.difference) > self.tolerance:
            if self._activity:
                await self._activity.log_reconciliation_rejected(
                    reconciliation, self.tolerance,
                )
            raise BusinessRuleViolation(
                f"Cannot complete reconciliation: difference is {reconciliation.difference}"
            )

        async with self._ledger.unit_of_work() as uow:
            for transaction in await self._load_transactions(
                reconciliation.matched_transaction_keys
            ):
                if transaction.is_void:
                    continue
                await uow.transactions.save(
                    transaction.with_changes(is_reconciled=True, is_cleared=True)
                )
            reconciliation = await uow.reconciliations.save(
                reconciliation.with_changes(
                    status=ReconciliationStatus.COMPLETED,
                    completed_at=utcnow(),
                    notes=notes if notes is not None else reconciliation.notes,
                )
            )

        if self._activity:
            await self._activity.log_reconciliation(
                ActivityEventType.RECONCILIATION_COMPLETED, reconciliation,
            )
        return reconciliation
