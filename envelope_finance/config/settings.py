"""
Configuration Management for Envelope Finance

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here, so every external dependency
(the spreadsheet backend, identity defaults) is visible in one place and
validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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

    # One worksheet per record kind
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for income/expense transactions"
    )
    debts_sheet_name: str = Field(
        default="Debts",
        description="Name of the sheet for debts and receivables"
    )
    savings_sheet_name: str = Field(
        default="Savings",
        description="Name of the sheet for savings deposits"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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


class IdentitySettings(BaseSettings):
    """Identity provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    anonymous_account_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Fixed account id reused by anonymous sign-in (a new one is minted when unset)"
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
    storage_backend: str = Field(
        default="google_sheets",
        pattern="^(google_sheets|memory)$",
        description="Which persistence backend to use"
    )

    # Period selector
    supported_years: str = Field(
        default="2024,2025,2026,2027,2028",
        description="Comma-separated list of years offered by the period selector"
    )

    # Display
    currency_symbol: str = Field(
        default="Rp",
        description="Currency symbol used when rendering amounts"
    )

    # Sanity thresholds (warnings only, never rejections)
    max_entry_amount: Decimal = Field(
        default=Decimal("1000000000"),
        gt=0,
        description="Amounts above this are flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future an entry date can be before it is flagged"
    )

    # Realtime sync
    snapshot_poll_seconds: float = Field(
        default=5.0,
        ge=0.5,
        le=300.0,
        description="How often polling subscriptions re-read the backend"
    )

    @property
    def supported_years_list(self) -> list[int]:
        """Get supported years as a sorted list."""
        return sorted(
            int(year.strip())
            for year in self.supported_years.split(",")
            if year.strip()
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def identity(self) -> IdentitySettings:
        return IdentitySettings()

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

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for sections that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "identity", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
