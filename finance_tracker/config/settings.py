"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The reconciliation engine itself takes its thresholds as plain arguments
(so it stays pure); the orchestrator reads them from here and passes them in.
"""

from functools import lru_cache
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration (classification, extraction, chat)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
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
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout for Gemini calls"
    )
    chat_history_limit: int = Field(
        default=10,
        ge=0,
        description="How many previous chat turns are sent with a question"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets configuration for the encrypted backup store."""

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
    backups_sheet_name: str = Field(
        default="Backups",
        description="Name of the sheet holding encrypted backup blobs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running a backup."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Local storage
    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory for the local JSON key-value store"
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone used to decide what 'today' is"
    )
    data_key: str = Field(
        default="financeData",
        description="Key holding the transaction snapshot"
    )
    rules_key: str = Field(
        default="intelligenceCache",
        description="Key holding the category rule cache"
    )
    audit_key: str = Field(
        default="auditLog",
        description="Key holding the local audit trail"
    )
    audit_history_limit: int = Field(
        default=500,
        ge=0,
        description="How many audit events are kept locally"
    )

    # Reconciliation thresholds
    stale_recurring_days: int = Field(
        default=60,
        ge=1,
        description="Monthly items older than this are treated as lapsed"
    )
    cc_payment_amount_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Max amount difference for two CC payments to be the same posting"
    )
    cc_payment_window_days: int = Field(
        default=5,
        ge=0,
        description="Max day distance for two CC payments to be the same posting"
    )
    duplicate_amount_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Max amount difference for an imported row to match an existing one"
    )
    strict_frequency: bool = Field(
        default=False,
        description="Raise instead of zeroing amounts with an unknown frequency"
    )

    # Validation thresholds
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a one-time item can be dated"
    )

    @property
    def store_path(self) -> Path:
        """Path of the JSON file backing the local key-value store."""
        return self.data_dir / "finance_store.json"


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
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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

