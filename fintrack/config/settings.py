"""
Configuration Management for fintrack

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which sync backends exist and
ensures the selected transport is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Sync transport configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINTRACK_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    transport: Literal["memory", "file", "http", "sheets"] = Field(
        default="file",
        description="Which backend holds the remote snapshot"
    )

    # HTTP backend
    base_url: str = Field(
        default="http://localhost:3030/api",
        description="Base URL of the REST API (GET/POST {base_url}/data)"
    )
    auth_token: Optional[str] = Field(
        default=None,
        description="Session token sent in the Authorization header"
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=300,
        description="Per-request timeout for the HTTP backend"
    )

    # Flat-file backend
    data_file: str = Field(
        default="data/db.json",
        description="Path of the JSON document used by the file backend"
    )

    # Retry policy for transient failures
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per pull/push before reporting failure"
    )
    retry_wait_min: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum backoff between attempts (seconds)"
    )
    retry_wait_max: float = Field(
        default=8.0,
        ge=0.0,
        description="Maximum backoff between attempts (seconds)"
    )

    # Coalescing window for pushes after local mutations
    push_debounce_seconds: float = Field(
        default=0.0,
        ge=0.0,
        le=60.0,
        description="Delay before a scheduled push snapshots the store"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets backend configuration."""

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

    # Worksheets are named "<prefix><collection>", e.g. "fintrack_transactions"
    sheet_prefix: str = Field(
        default="fintrack_",
        description="Prefix for the per-collection worksheet names"
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


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the local structured log"
    )

    # Store behaviour
    seed_defaults: bool = Field(
        default=True,
        description="Seed default categories and tags when starting without data"
    )
    require_category: bool = Field(
        default=False,
        description="Reject transactions that carry no category"
    )
    protect_fixed_categories: bool = Field(
        default=True,
        description="Refuse to remove categories marked isFixed"
    )

    # Placeholder labels for unresolved references
    unknown_category_label: str = Field(
        default="Desconocido",
        description="Name shown for a category id that does not resolve"
    )
    uncategorized_label: str = Field(
        default="Otros",
        description="Name shown for transactions without a category"
    )
    untagged_label: str = Field(
        default="Sin etiqueta",
        description="Name of the bucket for transactions without tags"
    )

    # Audit
    audit_buffer_size: int = Field(
        default=500,
        ge=10,
        le=100000,
        description="How many recent audit events to keep in memory"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    The Google Sheets section is only checked when it is the selected transport.
    """
    results = {}

    settings = get_settings()

    try:
        sync = settings.sync
        results["sync"] = True
    except Exception as e:
        sync = None
        results["sync"] = False
        results["sync_error"] = str(e)

    if sync is not None and sync.transport == "sheets":
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
