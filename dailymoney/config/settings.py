"""
Configuration Management for DailyMoney

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so every external dependency
(storage backend, Gemini, Google Sheets audit sink) is visible in one place
and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Ledger storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DAILYMONEY_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        description="Which ledger backend to use"
    )
    sqlite_path: str = Field(
        default="data/dailymoney.db",
        description="Path to the SQLite database file"
    )
    sqlite_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a writer waits for the database lock"
    )

    @property
    def sqlite_file(self) -> Path:
        return Path(self.sqlite_path)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit log configuration."""

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


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for transaction classification."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=512,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    review_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Classifications below this confidence are flagged for review"
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

    # Budgets
    default_alert_threshold: int = Field(
        default=80,
        ge=1,
        le=100,
        description="Alert threshold (%) used when a budget has none"
    )

    # Listing
    default_max_results: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default number of records returned by list operations"
    )

    # Income allocation retries
    allocation_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try applying an income allocation"
    )
    allocation_retry_min_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum backoff between allocation attempts"
    )
    allocation_retry_max_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum backoff between allocation attempts"
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

    # Sub-settings are built on access so a missing Gemini or Sheets
    # configuration does not prevent the ledger from starting.

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    `<name>_error` entries for the sections that failed.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("storage", "google_sheets", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
