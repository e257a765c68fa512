"""Configuration package."""

from expense_ledger.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    PerplexitySettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "PerplexitySettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
