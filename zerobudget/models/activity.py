"""
Activity Models for ZeroBudget

Every ledger and budget mutation emits an ActivityEvent that is written
to the structured log. This provides:
1. Traceability of balance-changing operations
2. Debugging information when a multi-step write is compensated
3. A correlation id to tie related writes together (e.g. both transfer legs)

DESIGN DECISION: Activity events are log records only. They are not
persisted as a history the ledger can be rebuilt from.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from zerobudget.models.primitives import utcnow


class ActivityEventType(str, Enum):
    """Types of events we log."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_BALANCE_RECOMPUTED = "account_balance_recomputed"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_CLEARED = "transaction_cleared"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_VOIDED = "transaction_voided"
    SPLITS_REPLACED = "splits_replaced"
    SPLIT_TOTAL_MISMATCH = "split_total_mismatch"
    TRANSFER_CREATED = "transfer_created"

    # Reconciliation
    RECONCILIATION_CREATED = "reconciliation_created"
    TRANSACTIONS_MATCHED = "transactions_matched"
    TRANSACTIONS_UNMATCHED = "transactions_unmatched"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_REJECTED = "reconciliation_rejected"

    # Budget
    PAY_PERIOD_CREATED = "pay_period_created"
    PAY_PERIOD_UPDATED = "pay_period_updated"
    PAY_PERIOD_DELETED = "pay_period_deleted"
    MONEY_ASSIGNED = "money_assigned"
    INCOME_ADDED = "income_added"
    CATEGORY_GROUP_CREATED = "category_group_created"
    CATEGORY_GROUP_UPDATED = "category_group_updated"
    CATEGORY_GROUP_DELETED = "category_group_deleted"
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"
    GOAL_CREATED = "goal_created"
    GOAL_PROGRESS_UPDATED = "goal_progress_updated"
    YEAR_RECALCULATED = "year_recalculated"
    PERIOD_CHAIN_REJECTED = "period_chain_rejected"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_PAID = "bill_paid"

    # Unit of work
    WRITES_COMPENSATED = "writes_compensated"
    COMPENSATION_FAILED = "compensation_failed"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """A single logged ledger or budget action."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utcnow)

    event_type: ActivityEventType
    severity: ActivitySeverity = ActivitySeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection of the entity (e.g., 'transactions', 'pay_periods')"
    )
    entity_key: Optional[str] = None
    family_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., both legs of a transfer)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_key": self.entity_key,
            "family_id": self.family_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": {k: _loggable(v) for k, v in self.details.items()},
            "error_message": self.error_message,
        }


def _loggable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_loggable(v) for v in value]
    return value


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.transaction_changed(
            ActivityEventType.TRANSACTION_VOIDED, transaction,
        )
    """

    @staticmethod
    def entity_changed(
        event_type: ActivityEventType,
        entity_type: str,
        entity_key: str,
        description: str,
        family_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_key=entity_key,
            family_id=family_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def transaction_changed(
        event_type: ActivityEventType,
        transaction,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        verb = event_type.value.removeprefix("transaction_")
        return ActivityEvent(
            event_type=event_type,
            entity_type="transactions",
            entity_key=transaction.key,
            family_id=transaction.family_id,
            correlation_id=correlation_id,
            description=f"Transaction {verb}: {transaction.payee or 'no payee'} {transaction.amount}",
            details={
                "account_key": transaction.account_key,
                "category_key": transaction.category_key,
                "pay_period_key": transaction.pay_period_key,
                "amount": transaction.amount,
                "is_cleared": transaction.is_cleared,
                "status": transaction.status.value,
            },
        )

    @staticmethod
    def balance_recomputed(account) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.ACCOUNT_BALANCE_RECOMPUTED,
            severity=ActivitySeverity.DEBUG,
            entity_type="accounts",
            entity_key=account.key,
            family_id=account.family_id,
            description=f"Balance recomputed for {account.name}",
            details={
                "balance": account.balance,
                "cleared_balance": account.cleared_balance,
            },
        )

    @staticmethod
    def transfer_created(
        transfer_id: str,
        from_account_key: str,
        to_account_key: str,
        amount,
        family_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.TRANSFER_CREATED,
            entity_type="transactions",
            entity_key=transfer_id,
            family_id=family_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} from {from_account_key} to {to_account_key}",
            details={
                "from_account_key": from_account_key,
                "to_account_key": to_account_key,
                "amount": amount,
            },
        )

    @staticmethod
    def split_total_mismatch(transaction) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.SPLIT_TOTAL_MISMATCH,
            severity=ActivitySeverity.WARNING,
            entity_type="transactions",
            entity_key=transaction.key,
            family_id=transaction.family_id,
            description="Split amounts do not add up to the transaction amount",
            details={
                "amount": transaction.amount,
                "split_total": transaction.split_total,
            },
        )

    @staticmethod
    def reconciliation_changed(
        event_type: ActivityEventType,
        reconciliation,
        details: Optional[dict] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=event_type,
            entity_type="reconciliations",
            entity_key=reconciliation.key,
            family_id=reconciliation.family_id,
            description=(
                f"Reconciliation {reconciliation.status.value}: "
                f"difference {reconciliation.difference}"
            ),
            details={
                "account_key": reconciliation.account_key,
                "statement_balance": reconciliation.statement_balance,
                "cleared_balance": reconciliation.cleared_balance,
                "matched": len(reconciliation.matched_transaction_keys),
                **(details or {}),
            },
        )

    @staticmethod
    def reconciliation_rejected(reconciliation, tolerance) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.RECONCILIATION_REJECTED,
            severity=ActivitySeverity.WARNING,
            entity_type="reconciliations",
            entity_key=reconciliation.key,
            family_id=reconciliation.family_id,
            description=f"Reconciliation cannot complete: difference {reconciliation.difference}",
            details={
                "difference": reconciliation.difference,
                "tolerance": tolerance,
            },
        )

    @staticmethod
    def year_recalculated(
        start_period_key: str,
        affected_periods: int,
        family_id: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.YEAR_RECALCULATED,
            entity_type="pay_periods",
            entity_key=start_period_key,
            family_id=family_id,
            description=f"Carryovers recalculated across {affected_periods} pay periods",
            details={"affected_periods": affected_periods},
        )

    @staticmethod
    def period_chain_rejected(
        start_period_key: str,
        reason: str,
        family_id: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.PERIOD_CHAIN_REJECTED,
            severity=ActivitySeverity.WARNING,
            entity_type="pay_periods",
            entity_key=start_period_key,
            family_id=family_id,
            description="Pay period chain failed validation",
            error_message=reason,
        )

    @staticmethod
    def bill_paid(bill, transaction) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.BILL_PAID,
            entity_type="bills",
            entity_key=bill.key,
            family_id=bill.family_id,
            description=f"Bill paid: {bill.name} {transaction.amount}",
            details={
                "transaction_key": transaction.key,
                "next_due_date": bill.next_due_date.isoformat() if bill.next_due_date else None,
            },
        )

    @staticmethod
    def writes_compensated(
        steps: int,
        error: BaseException,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.WRITES_COMPENSATED,
            severity=ActivitySeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Rolled back {steps} writes after failure",
            error_message=str(error),
            details={"error_type": type(error).__name__},
        )

    @staticmethod
    def compensation_failed(
        collection: str,
        key: str,
        error: BaseException,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.COMPENSATION_FAILED,
            severity=ActivitySeverity.ERROR,
            entity_type=collection,
            entity_key=key,
            correlation_id=correlation_id,
            description=f"Could not restore {collection}/{key}",
            error_message=str(error),
        )
