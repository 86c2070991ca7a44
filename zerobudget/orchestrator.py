"""
Main Orchestrator for ZeroBudget

This module ties together all the services over one LedgerStore and
defines the read flows the UI needs in a single call (the dashboard).

DESIGN DECISION: The orchestrator owns the wiring only.
- Every service shares the same LedgerStore and ActivityLogger
- No business rules live here; they belong to the services
- Storage falls back to memory when Google Sheets is not configured,
  so the app still starts on a fresh machine
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

import structlog

from zerobudget.activity import ActivityLogger, configure_logging
from zerobudget.budget import (
    BillService,
    BudgetPeriodEngine,
    BudgetPlanner,
    CategoryBalanceProjector,
)
from zerobudget.config import StorageBackend, get_settings
from zerobudget.ledger import ReconciliationMatcher, TransactionLedger
from zerobudget.services.storage import (
    DocumentStore,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    LedgerStore,
)


logger = structlog.get_logger("zerobudget.orchestrator")


@dataclass
class LedgerApp:
    """Every service of the application, wired to one store."""

    ledger: LedgerStore
    activity: ActivityLogger
    transactions: TransactionLedger
    reconciliation: ReconciliationMatcher
    engine: BudgetPeriodEngine
    projector: CategoryBalanceProjector
    planner: BudgetPlanner
    bills: BillService

    @classmethod
    def build(cls, store: DocumentStore, activity: Optional[ActivityLogger] = None) -> "LedgerApp":
        activity = activity or ActivityLogger()
        settings = get_settings().ledger
        ledger = LedgerStore(store, activity_logger=activity)
        transactions = TransactionLedger(ledger, activity, settings)
        return cls(
            ledger=ledger,
            activity=activity,
            transactions=transactions,
            reconciliation=ReconciliationMatcher(ledger, transactions, activity, settings),
            engine=BudgetPeriodEngine(ledger, activity, settings),
            projector=CategoryBalanceProjector(ledger, settings),
            planner=BudgetPlanner(ledger, activity, settings),
            bills=BillService(ledger, transactions, activity, settings),
        )

    async def dashboard(
        self,
        family_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> dict[str, Any]:
        """
        Everything the dashboard page shows, in one read.

        Returns:
            Dict with the current pay period (or None), active accounts,
            incomplete goals, bills due in the look-ahead window and, when a
            period is current, its summary and category balances.
        """
        today = today or date.today()
        settings = get_settings().ledger

        period = await self.planner.current_pay_period(today, family_id)
        accounts = await self.transactions.list_accounts(family_id)
        goals = [g for g in await self.planner.list_goals(family_id) if not g.is_completed]
        upcoming = await self.bills.upcoming_bills(
            from_date=today,
            to_date=today + timedelta(days=settings.upcoming_bills_days),
            family_id=family_id,
        )

        summary = None
        balances = []
        if period is not None:
            summary = await self.projector.budget_summary(period.key)
            balances = await self.projector.category_balances(period.key, family_id)

        return {
            "pay_period": period,
            "accounts": accounts,
            "goals": goals,
            "upcoming_bills": upcoming,
            "summary": summary,
            "category_balances": balances,
        }


def create_app_components(use_storage: bool = True) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured storage backend.
                    Set to False for an in-memory ledger (tests, demos).

    Returns:
        A fully wired LedgerApp
    """
    configure_logging(get_settings().app.log_level)
    activity = ActivityLogger()

    store: DocumentStore = InMemoryDocumentStore()
    backend = get_settings().ledger.storage_backend
    if use_storage and backend == StorageBackend.GOOGLE_SHEETS:
        try:
            client = GoogleSheetsClient()
            client.get_spreadsheet()
            store = GoogleSheetsDocumentStore(client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_unavailable", backend=backend.value, error=str(e))

    return LedgerApp.build(store, activity)
