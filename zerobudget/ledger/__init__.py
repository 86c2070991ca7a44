"""Transaction ledger and reconciliation package."""

from zerobudget.ledger.transactions import TransactionLedger, compute_account_balances
from zerobudget.ledger.reconciliation import ReconciliationMatcher

__all__ = [
    "ReconciliationMatcher",
    "TransactionLedger",
    "compute_account_balances",
]
