"""Tests for environment-driven configuration."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from envelope_finance.config import AppSettings, IdentitySettings
from envelope_finance.config.settings import GoogleSheetsSettings


class TestAppSettings:
    """Defaults and environment overrides."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("APP_ENVIRONMENT", "STORAGE_BACKEND", "SUPPORTED_YEARS", "CURRENCY_SYMBOL"):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings()

        assert settings.storage_backend == "google_sheets"
        assert settings.currency_symbol == "Rp"
        assert settings.supported_years_list == [2024, 2025, 2026, 2027, 2028]
        assert settings.max_entry_amount == Decimal("1000000000")

    def test_years_are_parsed_and_sorted(self):
        settings = AppSettings(supported_years=" 2030, 2026,,2027 ")
        assert settings.supported_years_list == [2026, 2027, 2030]

    def test_environment_override(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("SNAPSHOT_POLL_SECONDS", "2.5")

        settings = AppSettings()

        assert settings.storage_backend == "memory"
        assert settings.snapshot_poll_seconds == 2.5

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            AppSettings(storage_backend="postgres")

    def test_poll_interval_bounds(self):
        with pytest.raises(ValidationError):
            AppSettings(snapshot_poll_seconds=0.1)


class TestSectionSettings:

    def test_identity_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("IDENTITY_ANONYMOUS_ACCOUNT_ID", "household")
        assert IdentitySettings().anonymous_account_id == "household"

    def test_sheets_missing_credentials_file_warns(self, tmp_path):
        with pytest.warns(UserWarning, match="credentials file not found"):
            settings = GoogleSheetsSettings(
                credentials_path=str(tmp_path / "missing.json"),
                spreadsheet_id="sheet-id",
            )
        assert settings.transactions_sheet_name == "Transactions"
        assert settings.audit_sheet_name == "AuditLog"
