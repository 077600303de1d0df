"""
Configuration Management for Travel Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

Keyword lists (e.g. office locations) live here as data rather than as
literals in the classifier, so they can be extended from the environment.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_OFFICE_KEYWORDS = (
    "office,tech park,techpark,business park,it park,corporate park,"
    "sez,cyber city,business bay,knowledge park"
)


class GeminiSettings(BaseSettings):
    """Gemini receipt extraction configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
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
        default=1024,
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


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration (signed-in users)."""

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

    # One receipts worksheet per user: "<prefix>_<user id>"
    receipts_sheet_prefix: str = Field(
        default="Receipts",
        description="Prefix of the per-user receipts worksheet"
    )
    budget_sheet_name: str = Field(
        default="Budgets",
        description="Name of the worksheet holding per-user allowances"
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
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level for the stdlib logger behind structlog"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=20,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_file_formats: str = Field(
        default="jpg,jpeg,png,webp,pdf",
        description="Comma-separated list of supported receipt file formats"
    )

    # Budget
    default_monthly_allowance: Decimal = Field(
        default=Decimal("6500"),
        ge=0,
        description="Monthly allowance used until the user sets one"
    )
    warning_fraction: Decimal = Field(
        default=Decimal("0.8"),
        gt=0,
        le=1,
        description="Share of the allowance at which a month turns to Warning"
    )
    default_currency: str = Field(
        default="INR",
        max_length=5,
        description="Currency assumed when the receipt does not show one"
    )
    currency_symbol: str = Field(
        default="₹",
        description="Symbol used when displaying amounts"
    )

    # Trip classification
    office_keywords: str = Field(
        default=DEFAULT_OFFICE_KEYWORDS,
        description="Comma-separated office / business-park keywords"
    )

    # Guest-mode local storage
    local_storage_path: str = Field(
        default="~/.travel_tracker/local_storage.json",
        description="JSON file standing in for browser local storage"
    )
    receipts_storage_key: str = Field(default="travel-tracker-invoices")
    legacy_receipts_storage_key: str = Field(default="uber-tracker-invoices")
    allowance_storage_key: str = Field(default="travel-tracker-allowance")
    theme_storage_key: str = Field(default="theme")

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_file_formats.split(",")]

    @property
    def office_keywords_list(self) -> list[str]:
        """Get office keywords as a lower-cased list (blank entries dropped)."""
        return [
            kw.strip().lower()
            for kw in self.office_keywords.split(",")
            if kw.strip()
        ]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def local_storage_file(self) -> Path:
        return Path(self.local_storage_path).expanduser()


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

    # Sub-settings are loaded lazily to allow partial configuration:
    # a guest user needs neither Google Sheets nor, for browsing, Gemini.

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.gemini
        results["gemini"] = True
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

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
