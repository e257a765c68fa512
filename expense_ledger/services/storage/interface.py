"""
Abstract Storage Interface

The ledger is persisted in a remote spreadsheet today, but the rest of the
application only ever talks to these interfaces. They are intentionally
small: whole-table reads, appends, and replace/delete of single rows.

Read operations return a ReadResult so that callers can tell an empty
ledger apart from a ledger that could not be fetched. Write operations
raise.

SINGLE-WRITER ASSUMPTION: no operation here is atomic across calls.
Id allocation (max + 1), scan-then-write and clear-then-rewrite all assume
one writer at a time. Two sessions writing concurrently can collide.
"""

from abc import ABC, abstractmethod
from typing import Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, Field

from expense_ledger.models.ledger import Budget, Expense


T = TypeVar("T")


class ReadResult(BaseModel, Generic[T]):
    """
    Outcome of a read: Ok(records) or Err(reason).

    An empty Ok means the table really holds no matching rows.
    """

    ok: bool
    records: list[T] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, records: Iterable[T]) -> "ReadResult[T]":
        return cls(ok=True, records=list(records))

    @classmethod
    def failure(cls, reason: str) -> "ReadResult[T]":
        return cls(ok=False, error=reason)

    def unwrap(self) -> list[T]:
        """Return the records or raise StorageError with the failure reason."""
        if not self.ok:
            raise StorageError(self.error or "Read failed")
        return self.records

    def unwrap_or_empty(self) -> list[T]:
        """Return the records, or an empty list when the read failed."""
        return self.records if self.ok else []


class ExpenseStorageInterface(ABC):
    """Storage operations on the Transactions table."""

    @abstractmethod
    async def list_expenses(self) -> ReadResult[Expense]:
        """
        All expenses, newest first.

        Returns:
            Ok with every parseable row, or Err when the table
            could not be read or its header is invalid.

        Raises:
            ConfigurationError: If the store is misconfigured
        """
        pass

    @abstractmethod
    async def list_expenses_for_year(self, year: int) -> ReadResult[Expense]:
        """Expenses whose local calendar date falls in `year`, newest first."""
        pass

    @abstractmethod
    async def years_with_expenses(self) -> ReadResult[int]:
        """Distinct calendar years present in the ledger, most recent first."""
        pass

    @abstractmethod
    async def search_expenses(self, query: str) -> ReadResult[Expense]:
        """
        Case-insensitive substring search over descriptions.

        Scans every expense of every year; there is no index.
        """
        pass

    @abstractmethod
    async def get_expense_by_id(self, expense_id: str) -> Optional[Expense]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def add_expense(self, expense: Expense) -> Expense:
        """
        Append a new expense.

        The store allocates the id; any id on the input is ignored.

        Returns:
            The stored expense including its new id

        Raises:
            StorageError: If the append fails
        """
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> Expense:
        """
        Overwrite the row holding `expense.id`.

        Raises:
            NotFoundError: If no row has that id (nothing is written)
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> None:
        """
        Physically remove the row holding `expense_id`.

        Raises:
            NotFoundError: If no row has that id (nothing is deleted)
        """
        pass


class CategoryStorageInterface(ABC):
    """Storage operations on the Categories table (user categories only)."""

    @abstractmethod
    async def list_categories(self) -> ReadResult[str]:
        pass

    @abstractmethod
    async def add_category(self, name: str) -> str:
        """
        Raises:
            DuplicateError: If a category with that name (any case) exists
        """
        pass

    @abstractmethod
    async def delete_category(self, name: str) -> None:
        """
        Raises:
            NotFoundError: If the category is not stored
        """
        pass


class BudgetStorageInterface(ABC):
    """Storage operations on the Budgets table."""

    @abstractmethod
    async def list_budgets(self) -> ReadResult[Budget]:
        pass

    @abstractmethod
    async def save_budgets(self, budgets: list[Budget]) -> None:
        """
        Replace every stored budget with `budgets`.

        This is a clear followed by a rewrite: budgets written by another
        session in between are lost.
        """
        pass


class SettingStorageInterface(ABC):
    """Storage operations on the Settings key/value table."""

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[str]:
        """
        Raises:
            StorageError: If the table cannot be read
        """
        pass

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None:
        """Update the value in place, or append a new row."""
        pass

    @abstractmethod
    async def delete_setting(self, key: str) -> None:
        """
        Raises:
            NotFoundError: If the key is not stored
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConfigurationError(StorageError):
    """Credentials or spreadsheet id are missing or wrong. Never retried."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class SchemaError(StorageError):
    """A table's header row does not match the expected layout."""

    def __init__(self, table: str, missing: list[str]):
        self.table = table
        self.missing = missing
        super().__init__(
            f"Sheet '{table}' is missing required header(s): {', '.join(missing)}"
        )
