"""
Activity Logger

DESIGN DECISION: Every balance-changing action in the system is logged.
This provides:
1. Traceability of ledger writes
2. Debugging capability when a multi-step write is compensated
3. Correlation ids to tie related writes together

The activity logger:
- Is async so services await it the same way they await storage
- Only logs locally (structured JSON through structlog)
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from zerobudget.models.activity import (
    ActivityEvent,
    ActivityEventBuilder,
    ActivityEventType,
    ActivitySeverity,
)


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging (and therefore structlog) to stderr at `level`."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class ActivityLogger:
    """
    Central activity logging service.

    Services receive an optional ActivityLogger and log through it only
    when one is configured.
    """

    def __init__(self, name: str = "zerobudget.activity"):
        self._logger = structlog.get_logger(name)
        self.events: list[ActivityEvent] = []
        self._keep_events = False

    @classmethod
    def recording(cls) -> "ActivityLogger":
        """Logger that also keeps every event in memory (used by tests and the UI)."""
        logger = cls()
        logger._keep_events = True
        return logger

    async def log(self, event: ActivityEvent) -> None:
        """Log an activity event at a level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity == ActivitySeverity.ERROR:
            self._logger.error("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.WARNING:
            self._logger.warning("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.DEBUG:
            self._logger.debug("activity_event", **log_dict)
        else:
            self._logger.info("activity_event", **log_dict)

        if self._keep_events:
            self.events.append(event)

    def of_type(self, event_type: ActivityEventType) -> list[ActivityEvent]:
        return [e for e in self.events if e.event_type == event_type]

    async def log_entity_changed(
        self,
        event_type: ActivityEventType,
        entity_type: str,
        entity_key: str,
        description: str,
        family_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete of a budget entity."""
        await self.log(ActivityEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_key=entity_key,
            description=description,
            family_id=family_id,
            details=details,
        ))

    async def log_transaction(
        self,
        event_type: ActivityEventType,
        transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction write."""
        await self.log(ActivityEventBuilder.transaction_changed(
            event_type, transaction, correlation_id=correlation_id,
        ))

    async def log_balance_recomputed(self, account) -> None:
        await self.log(ActivityEventBuilder.balance_recomputed(account))

    async def log_transfer_created(
        self,
        transfer_id: str,
        from_account_key: str,
        to_account_key: str,
        amount,
        family_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a completed transfer pair."""
        await self.log(ActivityEventBuilder.transfer_created(
            transfer_id=transfer_id,
            from_account_key=from_account_key,
            to_account_key=to_account_key,
            amount=amount,
            family_id=family_id,
            correlation_id=correlation_id,
        ))

    async def log_split_mismatch(self, transaction) -> None:
        await self.log(ActivityEventBuilder.split_total_mismatch(transaction))

    async def log_reconciliation(
        self,
        event_type: ActivityEventType,
        reconciliation,
        details: Optional[dict] = None,
    ) -> None:
        """Log a reconciliation state change."""
        await self.log(ActivityEventBuilder.reconciliation_changed(
            event_type, reconciliation, details=details,
        ))

    async def log_reconciliation_rejected(self, reconciliation, tolerance) -> None:
        await self.log(ActivityEventBuilder.reconciliation_rejected(reconciliation, tolerance))

    async def log_year_recalculated(
        self,
        start_period_key: str,
        affected_periods: int,
        family_id: str,
    ) -> None:
        await self.log(ActivityEventBuilder.year_recalculated(
            start_period_key, affected_periods, family_id,
        ))

    async def log_period_chain_rejected(
        self,
        start_period_key: str,
        reason: str,
        family_id: str,
    ) -> None:
        await self.log(ActivityEventBuilder.period_chain_rejected(
            start_period_key, reason, family_id,
        ))

    async def log_bill_paid(self, bill, transaction) -> None:
        await self.log(ActivityEventBuilder.bill_paid(bill, transaction))

    async def log_writes_compensated(
        self,
        steps: int,
        error: BaseException,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(ActivityEventBuilder.writes_compensated(
            steps, error, correlation_id=correlation_id,
        ))

    async def log_compensation_failed(
        self,
        collection: str,
        key: str,
        error: BaseException,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a compensating write that itself failed."""
        await self.log(ActivityEventBuilder.compensation_failed(
            collection, key, error, correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step write (e.g., a transfer)
    and pass it through all subsequent operations.
    """
    return uuid4()
