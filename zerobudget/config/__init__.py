"""Configuration package."""

from zerobudget.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    PeriodChainPolicy,
    Settings,
    StorageBackend,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "PeriodChainPolicy",
    "Settings",
    "StorageBackend",
    "get_settings",
    "validate_all_settings",
]
