"""Services package."""

from expense_ledger.services.chat import ChatProxyError, PerplexityChatProxy
from expense_ledger.services.storage import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConfigurationError,
    DuplicateError,
    ExpenseStorageInterface,
    GoogleSheetsBudgetStorage,
    GoogleSheetsCategoryStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    GoogleSheetsSettingStorage,
    NotFoundError,
    ReadResult,
    SchemaError,
    SettingStorageInterface,
    StorageError,
)

__all__ = [
    # Chat proxy
    "ChatProxyError",
    "PerplexityChatProxy",
    # Storage services
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "ConfigurationError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsCategoryStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "GoogleSheetsSettingStorage",
    "NotFoundError",
    "ReadResult",
    "SchemaError",
    "SettingStorageInterface",
    "StorageError",
]
