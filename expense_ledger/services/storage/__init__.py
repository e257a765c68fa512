"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements Google Sheets as the backend, but designed to be swappable.
"""

from expense_ledger.services.storage.interface import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConfigurationError,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    ReadResult,
    SchemaError,
    SettingStorageInterface,
    StorageError,
)
from expense_ledger.services.storage.google_sheets import (
    GoogleSheetsBudgetStorage,
    GoogleSheetsCategoryStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    GoogleSheetsSettingStorage,
)

__all__ = [
    # Interfaces
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "ExpenseStorageInterface",
    "ReadResult",
    "SettingStorageInterface",
    # Exceptions
    "ConfigurationError",
    "DuplicateError",
    "NotFoundError",
    "SchemaError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsCategoryStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "GoogleSheetsSettingStorage",
]
