"""
Configuration Management for Household Finance

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The local cache location, the sync debounce window and the remote
store credentials are the only knobs the core needs.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

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
        description="ID of the spreadsheet acting as the remote store"
    )

    # One worksheet per remote table
    user_state_sheet_name: str = Field(
        default="user_state",
        description="Worksheet holding one state blob per user"
    )
    snapshots_sheet_name: str = Field(
        default="monthly_snapshots",
        description="Worksheet holding monthly net-worth snapshots"
    )
    transactions_sheet_name: str = Field(
        default="expense_transactions",
        description="Worksheet holding expense transactions"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Remote sync will fail until it exists."
            )
        return v


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

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Display
    default_currency: str = Field(
        default="GBP",
        pattern="^(GBP|EUR|USD|INR)$",
        description="Display currency for a fresh state"
    )

    # Local cache
    storage_key: str = Field(
        default="household_finance_v1",
        min_length=1,
        description="Fixed key (file stem) of the local state cache"
    )
    cache_dir: Path = Field(
        default=Path.home() / ".household_finance",
        description="Directory holding the local state cache"
    )

    # Remote sync
    sync_debounce_seconds: float = Field(
        default=0.8,
        gt=0.0,
        le=60.0,
        description="Quiet period before a debounced remote write fires"
    )
    remote_sync_enabled: bool = Field(
        default=False,
        description="Mirror state to the Google Sheets remote store"
    )

    @property
    def cache_file(self) -> Path:
        """Full path of the local state cache."""
        return self.cache_dir / f"{self.storage_key}.json"


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

    # Sub-settings are loaded lazily so the app runs without remote config

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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


def validate_all_settings() -> dict:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
