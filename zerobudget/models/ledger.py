"""
Ledger Models: accounts, transactions and reconciliations

DESIGN DECISION: Account balances are never authoritative.
`balance` and `cleared_balance` are caches recomputed from the
transaction set plus the opening balance after every ledger write.

Transactions are signed: negative amounts are outflows, positive are
inflows. Voiding marks status and keeps the row for history.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from zerobudget.models.base import Document
from zerobudget.models.primitives import ZERO, Money, money_sum


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Kinds of accounts the ledger can hold."""
    CHECKING = "Checking"
    SAVINGS = "Savings"
    CREDIT_CARD = "CreditCard"
    CASH = "Cash"
    LOAN = "Loan"
    INVESTMENT = "Investment"
    ASSET = "Asset"
    LIABILITY = "Liability"


class TransactionStatus(str, Enum):
    POSTED = "Posted"
    VOID = "Void"


class ReconciliationStatus(str, Enum):
    """
    Reconciliation lifecycle.

    IN_PROGRESS -> COMPLETED is the only transition; COMPLETED is terminal.
    """
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(Document):
    """A bank, card or cash account."""

    name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType = AccountType.CHECKING
    institution: Optional[str] = Field(default=None, max_length=200)
    opening_balance: Money = ZERO
    balance: Money = Field(
        default=ZERO,
        description="Derived: opening balance plus all posted transactions"
    )
    cleared_balance: Money = Field(
        default=ZERO,
        description="Derived: opening balance plus cleared posted transactions"
    )
    is_active: bool = True
    is_closed: bool = False
    notes: Optional[str] = Field(default=None, max_length=1000)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Split(BaseModel):
    """One category share of a split transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category_key: str = Field(..., min_length=1)
    amount: Money
    memo: Optional[str] = Field(default=None, max_length=500)


class Transaction(Document):
    """
    A single signed movement of money on one account.

    Links:
    - pay_period_key ties the transaction to a budget period
    - transfer_id pairs the two legs of a transfer
    - bill_key points at the bill that materialized it
    - reconciliation_key points at the reconciliation that matched it
    """

    account_key: str = Field(..., min_length=1)
    category_key: Optional[str] = None
    pay_period_key: Optional[str] = None
    payee: str = Field(default="", max_length=200)
    memo: Optional[str] = Field(default=None, max_length=1000)
    amount: Money
    transaction_date: date

    is_cleared: bool = False
    is_reconciled: bool = False
    status: TransactionStatus = TransactionStatus.POSTED
    voided_at: Optional[datetime] = None

    splits: list[Split] = Field(default_factory=list)

    bill_key: Optional[str] = None
    reconciliation_key: Optional[str] = None
    transfer_id: Optional[str] = None

    @property
    def is_void(self) -> bool:
        return self.status == TransactionStatus.VOID

    @property
    def is_transfer(self) -> bool:
        return self.transfer_id is not None

    @property
    def split_total(self):
        return money_sum(split.amount for split in self.splits)


# =============================================================================
# RECONCILIATION
# =============================================================================

class Reconciliation(Document):
    """
    A bank statement claim matched against ledger transactions.

    `difference = statement_balance - cleared_balance` must reach zero
    (within tolerance) before the reconciliation can complete.
    """

    account_key: str = Field(..., min_length=1)
    statement_date: date
    statement_balance: Money
    cleared_balance: Money = Field(
        default=ZERO,
        description="Derived: sum of matched transaction amounts"
    )
    difference: Money = Field(
        default=ZERO,
        description="Derived: statement balance minus cleared balance"
    )
    status: ReconciliationStatus = ReconciliationStatus.IN_PROGRESS
    matched_transaction_keys: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
    completed_at: Optional[datetime] = None

    @property
    def is_in_progress(self) -> bool:
        return self.status == ReconciliationStatus.IN_PROGRESS
