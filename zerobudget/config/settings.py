"""
Configuration Management for ZeroBudget

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger rules that a deployment may want to tune (reconciliation tolerance,
how strictly pay periods must chain) live next to the storage settings so
every knob is visible in one place and validated at startup.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PeriodChainPolicy(str, Enum):
    """
    How pay periods must relate to each other before carryovers propagate.

    NONE propagates purely by start-date order.
    REJECT_OVERLAP refuses chains where two periods share a day.
    REQUIRE_ADJACENT additionally refuses gaps between periods.
    """
    NONE = "none"
    REJECT_OVERLAP = "reject_overlap"
    REQUIRE_ADJACENT = "require_adjacent"


class StorageBackend(str, Enum):
    """Document store implementations that can back the ledger."""
    MEMORY = "memory"
    GOOGLE_SHEETS = "google_sheets"


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Every collection gets its own worksheet, optionally prefixed
    worksheet_prefix: str = Field(
        default="",
        description="Prefix prepended to every collection worksheet name"
    )
    worksheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Initial row count for newly created worksheets"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class LedgerSettings(BaseSettings):
    """Budgeting and ledger rules."""

    model_config = SettingsConfigDict(
        env_prefix="ZEROBUDGET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_family_id: str = Field(
        default="default",
        min_length=1,
        description="Tenant used when a caller does not name one"
    )
    reconciliation_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Largest absolute difference allowed when completing a reconciliation"
    )
    period_chain_policy: PeriodChainPolicy = Field(
        default=PeriodChainPolicy.REJECT_OVERLAP,
        description="Validation applied to a pay period chain before carryovers propagate"
    )
    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Document store used by the application"
    )
    upcoming_bills_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Default look-ahead window for upcoming bills"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus `<name>_error`
    entries describing what failed. Useful for startup checks.
    """
    results: dict[str, bool | str] = {}

    settings = get_settings()

    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "ledger": lambda: settings.ledger,
        "app": lambda: settings.app,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
