"""Tests for application wiring, configuration and the dashboard read."""

from datetime import date
from decimal import Decimal

import pytest

from zerobudget.config import (
    LedgerSettings,
    PeriodChainPolicy,
    StorageBackend,
    get_settings,
    validate_all_settings,
)
from zerobudget.orchestrator import LedgerApp, create_app_components
from zerobudget.services.storage import InMemoryDocumentStore


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_ledger_defaults(self, monkeypatch):
        monkeypatch.delenv("ZEROBUDGET_PERIOD_CHAIN_POLICY", raising=False)
        monkeypatch.delenv("ZEROBUDGET_RECONCILIATION_TOLERANCE", raising=False)
        ledger = LedgerSettings()
        assert ledger.period_chain_policy == PeriodChainPolicy.REJECT_OVERLAP
        assert ledger.reconciliation_tolerance == Decimal("0.01")

    def test_ledger_from_environment(self, monkeypatch):
        monkeypatch.setenv("ZEROBUDGET_PERIOD_CHAIN_POLICY", "require_adjacent")
        monkeypatch.setenv("ZEROBUDGET_RECONCILIATION_TOLERANCE", "0.05")
        ledger = LedgerSettings()
        assert ledger.period_chain_policy == PeriodChainPolicy.REQUIRE_ADJACENT
        assert ledger.reconciliation_tolerance == Decimal("0.05")

    def test_missing_google_sheets_reported(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        status = validate_all_settings()
        assert status["ledger"] is True
        assert status["google_sheets"] is False
        assert "google_sheets_error" in status


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("ZEROBUDGET_STORAGE_BACKEND", StorageBackend.MEMORY.value)
        app = create_app_components(use_storage=True)
        assert isinstance(app, LedgerApp)
        assert isinstance(app.ledger.store, InMemoryDocumentStore)

    def test_unconfigured_sheets_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setenv("ZEROBUDGET_STORAGE_BACKEND", StorageBackend.GOOGLE_SHEETS.value)
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        app = create_app_components(use_storage=True)
        assert isinstance(app.ledger.store, InMemoryDocumentStore)


class TestDashboard:
    """Tests for the combined dashboard read."""

    async def test_empty_ledger(self):
        app = LedgerApp.build(InMemoryDocumentStore())
        data = await app.dashboard(today=date(2024, 1, 5))
        assert data["pay_period"] is None
        assert data["summary"] is None
        assert data["accounts"] == []

    async def test_current_period_view(self):
        app = LedgerApp.build(InMemoryDocumentStore())
        period = await app.planner.create_pay_period("Jan", date(2024, 1, 1), date(2024, 1, 14))
        group = await app.planner.create_category_group("Everyday")
        food = await app.planner.create_category(group.key, "Food")
        await app.planner.assign_money(period.key, food.key, "100")
        account = await app.transactions.create_account("Checking", opening_balance="50")
        await app.bills.create_bill("Rent", "500", 10, account_key=account.key)
        await app.planner.create_goal("Trip", "1000")

        data = await app.dashboard(today=date(2024, 1, 5))

        assert data["pay_period"].key == period.key
        assert data["summary"].total_expense_assigned == Decimal("100.00")
        assert [b.category_name for b in data["category_balances"]] == ["Food"]
        assert [a.name for a in data["accounts"]] == ["Checking"]
        assert [b.due_date for b in data["upcoming_bills"]] == [date(2024, 1, 10)]
        assert [g.name for g in data["goals"]] == ["Trip"]
