"""
Configuration Management for Expense Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here and built ONCE at the edge of the
application (see create_app_components). Services receive the settings
object they need through their constructor; nothing below the orchestrator
reads the environment on its own.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    sheet_id: str = Field(
        ...,
        min_length=1,
        description="ID of the Google Sheets spreadsheet holding the ledger"
    )

    # Service account credential: either inline email + key, or a JSON file
    client_email: Optional[str] = Field(
        default=None,
        description="Service account email"
    )
    private_key: Optional[str] = Field(
        default=None,
        description="Service account private key (PEM, \\n escapes allowed)"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account credentials JSON file"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(default="Transactions")
    categories_sheet_name: str = Field(default="Categories")
    budgets_sheet_name: str = Field(default="Budgets")
    settings_sheet_name: str = Field(default="Settings")

    time_zone: str = Field(
        default="Asia/Kolkata",
        description="Zone in which stored calendar dates are interpreted"
    )

    @field_validator("private_key")
    @classmethod
    def unescape_private_key(cls, v: Optional[str]) -> Optional[str]:
        """Keys pasted into .env files usually carry literal \\n sequences."""
        if v is None:
            return v
        return v.replace("\\n", "\n")

    @field_validator("time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {v}")
        return v

    @model_validator(mode="after")
    def require_credentials(self) -> "GoogleSheetsSettings":
        """Either inline credentials or a credentials file must be given."""
        has_inline = bool(self.client_email and self.private_key)
        if not has_inline and not self.credentials_path:
            raise ValueError(
                "Google Sheets credentials are not set: provide "
                "GOOGLE_SHEETS_CLIENT_EMAIL and GOOGLE_SHEETS_PRIVATE_KEY, "
                "or GOOGLE_SHEETS_CREDENTIALS_PATH"
            )
        if not has_inline and not Path(self.credentials_path).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {self.credentials_path}. "
                "Make sure it exists before running the application."
            )
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    def service_account_info(self) -> dict:
        """Credential mapping accepted by Credentials.from_service_account_info."""
        return {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        }


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

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
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=16,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class PerplexitySettings(BaseSettings):
    """Third-party chat completion endpoint used by the chat proxy."""

    model_config = SettingsConfigDict(
        env_prefix="PERPLEXITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Optional: the proxy reports itself as unavailable when missing
    api_key: Optional[str] = Field(
        default=None,
        description="Perplexity API key"
    )
    base_url: str = Field(
        default="https://api.perplexity.ai",
        description="Base URL of the chat completions API"
    )
    default_model: str = Field(
        default="sonar",
        description="Model used when a chat request names none"
    )
    request_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Socket timeout; None waits indefinitely"
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

    log_level: str = Field(
        default="INFO",
        description="Root log level for structured logging"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
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

    # Sub-settings are loaded lazily to allow partial configuration:
    # the chat proxy works without Sheets, reports work without Gemini.

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def perplexity(self) -> PerplexitySettings:
        return PerplexitySettings()

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


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus a
    "<name>_error" entry for every section that failed.
    """
    settings = settings or get_settings()
    results = {}

    for name in ("google_sheets", "gemini", "perplexity", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # The chat proxy section always loads; what matters is the key
    if results.get("perplexity") and not settings.perplexity.api_key:
        results["perplexity"] = False
        results["perplexity_error"] = "PERPLEXITY_API_KEY is not set"

    return results
