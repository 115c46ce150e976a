"""
Configuration Management for Expense Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable behaviour of the ledger (where data lives, how unknown ids
are handled, whether a caller-chosen purchase date is kept) is visible
in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local device storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_STORAGE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path(".expense_ledger"),
        description="Directory holding the local storage files"
    )
    store_filename: str = Field(
        default="storage.json",
        description="Key-value file shared by receipts and session data"
    )

    # Logical keys within the key-value store
    receipts_key: str = Field(
        default="receipts",
        min_length=1,
        description="Key under which the receipt collection is stored"
    )
    session_key: str = Field(
        default="username",
        min_length=1,
        description="Key under which the logged-in username is stored"
    )

    audit_enabled: bool = Field(
        default=True,
        description="Append audit events to a local JSON-lines file"
    )
    audit_filename: str = Field(
        default="audit.jsonl",
        description="Audit log file name inside data_dir"
    )

    @field_validator('store_filename', 'audit_filename')
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """File names must not escape data_dir."""
        if not v or Path(v).name != v:
            raise ValueError(f"Expected a bare file name, got: {v!r}")
        return v

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_filename

    @property
    def audit_path(self) -> Path:
        return self.data_dir / self.audit_filename


class LedgerSettings(BaseSettings):
    """Ledger behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_LEDGER_",
        extra="ignore"
    )

    strict_not_found: bool = Field(
        default=False,
        description="Raise NotFoundError on update/delete of an unknown id "
                    "instead of silently ignoring it"
    )
    honor_supplied_date: bool = Field(
        default=True,
        description="Keep a caller-supplied purchase date on create "
                    "(False always stamps the current time)"
    )
    recent_receipts_limit: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Number of receipts shown as 'recent' on the dashboard"
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
        description="Enable debug logging"
    )


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

    # Sub-settings are loaded lazily so one bad group doesn't block the rest

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
