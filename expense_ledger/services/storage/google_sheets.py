"""
Google Sheets Storage Implementation

The ledger lives in one spreadsheet with four sheets:

    Transactions  id | date | description | category | amount | paid
    Categories    name
    Budgets       category | limit
    Settings      key | value

Row 1 of every sheet is its header. Sheets are created with their header on
first use, so an empty spreadsheet is a valid ledger.

TRADEOFFS:
- Every read is a whole-table read followed by a linear scan in Python.
  Fine for one person's ledger, not for anything bigger.
- No transactions. Id allocation, scan-then-write and clear-then-rewrite
  all assume a single writer (see interface.py).
- Rows are addressed by their current position. A structural delete shifts
  every row below it, so row numbers are never cached across operations.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import google.auth.exceptions
import gspread
import requests
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import ValueRenderOption, rowcol_to_a1
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_ledger.config import GoogleSheetsSettings
from expense_ledger.models.ledger import (
    CREDIT_CARD,
    DEFAULT_CATEGORY,
    Budget,
    Expense,
)
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


logger = structlog.get_logger(__name__)


# Column layouts (header row of each sheet)
TRANSACTION_COLUMNS = ["id", "date", "description", "category", "amount", "paid"]
CATEGORY_COLUMNS = ["name"]
BUDGET_COLUMNS = ["category", "limit"]
SETTING_COLUMNS = ["key", "value"]

# "paid" was added later; sheets without it are still readable
REQUIRED_TRANSACTION_COLUMNS = ["id", "date", "description", "category", "amount"]

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Day zero of spreadsheet date serial numbers
SERIAL_EPOCH = date(1899, 12, 30)

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d", "%d %b %Y", "%d %B %Y")

TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    google.auth.exceptions.TransportError,
)


# =============================================================================
# CELL PARSING
# =============================================================================

def cell_text(value: Any) -> str:
    """
    Normalize a cell to text.

    Unformatted reads return numbers as int/float; 3.0 and 3 must both
    read as "3" so ids compare equal whichever way they were written.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an amount cell. Returns None unless it is a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = repr(value)
    else:
        text = cell_text(value).replace(",", "").replace("₹", "").strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_day(value: Any) -> Optional[date]:
    """
    Parse a date cell into a calendar day.

    Accepts ISO strings (with or without a time part), a few common
    day-first layouts and spreadsheet serial numbers.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return SERIAL_EPOCH + timedelta(days=int(value))

    text = cell_text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return cell_text(value).lower() in {"true", "yes", "y", "1"}


def parse_int(value: Any) -> Optional[int]:
    text = cell_text(value)
    try:
        return int(text)
    except ValueError:
        return None


def resolve_columns(
    table: str,
    header_row: list,
    expected: list[str],
    required: list[str],
) -> dict[str, Optional[int]]:
    """
    Map each expected column name to its position in the header row.

    Header names are matched case-insensitively. Optional columns that are
    absent map to None.

    Raises:
        SchemaError: If any required column is missing
    """
    normalized = [cell_text(h).lower() for h in header_row]
    columns: dict[str, Optional[int]] = {}
    for name in expected:
        columns[name] = normalized.index(name) if name in normalized else None

    missing = [name for name in required if columns[name] is None]
    if missing:
        raise SchemaError(table, missing)
    return columns


def _is_blank_row(row: list) -> bool:
    return all(cell_text(c) == "" for c in row)


# =============================================================================
# CLIENT
# =============================================================================

class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, opening the spreadsheet and provisioning the
    ledger's sheets. Settings are passed in; nothing here reads the
    environment.
    """

    def __init__(
        self,
        settings: GoogleSheetsSettings,
        client: Optional[gspread.Client] = None,
    ):
        self._settings = settings
        self._client = client
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    def connect(self) -> gspread.Client:
        """
        Authorize with the service account credential.

        Raises:
            ConfigurationError: If the credential is unusable
        """
        if self._client is None:
            try:
                if self._settings.client_email and self._settings.private_key:
                    credentials = Credentials.from_service_account_info(
                        self._settings.service_account_info(),
                        scopes=SCOPES,
                    )
                else:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=SCOPES,
                    )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConfigurationError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except (ValueError, KeyError, TypeError) as e:
                raise ConfigurationError(f"Invalid Google service account credential: {e}")

        return self._client

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """
        Open the configured spreadsheet.

        Only network-level failures are retried. A wrong sheet id or a
        spreadsheet not shared with the service account fails at once.
        """
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.sheet_id)
            except gspread.exceptions.SpreadsheetNotFound:
                raise ConfigurationError(
                    f"Spreadsheet not found: {self._settings.sheet_id}"
                )
            except gspread.exceptions.APIError as e:
                if e.response is not None and e.response.status_code in (403, 404):
                    raise ConfigurationError(
                        f"Spreadsheet {self._settings.sheet_id} is not accessible "
                        f"to the service account: {e}"
                    )
                raise
        return self._spreadsheet

    def ensure_table(self, name: str, headers: list[str]) -> gspread.Worksheet:
        """
        Get the named sheet, creating it with `headers` as row 1 if needed.

        Idempotent: an existing sheet with a header row is left alone; an
        existing sheet with an empty first row gets the header written.
        """
        if name in self._worksheets:
            return self._worksheets[name]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(name)
        except gspread.exceptions.WorksheetNotFound:
            logger.info("sheet_created", sheet=name, headers=headers)
            sheet = spreadsheet.add_worksheet(
                title=name,
                rows=1000,
                cols=len(headers),
            )
            self._write_header(sheet, headers)
        else:
            if _is_blank_row(sheet.row_values(1)):
                logger.info("sheet_header_written", sheet=name, headers=headers)
                self._write_header(sheet, headers)

        self._worksheets[name] = sheet
        return sheet

    def _write_header(self, sheet: gspread.Worksheet, headers: list[str]) -> None:
        sheet.update(range_name="A1", values=[headers], value_input_option="RAW")

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.ensure_table(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.ensure_table(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self.ensure_table(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_settings_sheet(self) -> gspread.Worksheet:
        return self.ensure_table(self._settings.settings_sheet_name, SETTING_COLUMNS)


# =============================================================================
# SHARED ROW HELPERS
# =============================================================================

def find_row(
    sheet: gspread.Worksheet,
    predicate: Callable[[str], bool],
    column: int = 1,
) -> Optional[int]:
    """
    1-based row number of the first data row whose `column` cell matches.

    The header row is never matched.
    """
    values = sheet.col_values(column, value_render_option=ValueRenderOption.unformatted)
    for row_number, value in enumerate(values[1:], start=2):
        if predicate(cell_text(value)):
            return row_number
    return None


def _read_rows(sheet: gspread.Worksheet) -> list[list]:
    return sheet.get_all_values(value_render_option=ValueRenderOption.unformatted)


# =============================================================================
# EXPENSES
# =============================================================================

class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    One expense per row of the Transactions sheet. Dates are written as
    yyyy-mm-dd text in the configured time zone and read back as local
    midnight in that zone.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client
        self._zone = client.settings.zone
        self._table = client.settings.transactions_sheet_name

    def _expense_to_row(self, expense: Expense) -> list:
        """Convert an Expense to a spreadsheet row."""
        return [
            expense.id or "",
            expense.storage_date(self._zone),
            expense.description,
            expense.category,
            float(expense.amount),
            expense.paid if expense.is_credit_card else "",
        ]

    def _row_to_expense(
        self,
        row: list,
        columns: dict[str, Optional[int]],
    ) -> Optional[Expense]:
        """
        Convert a spreadsheet row to an Expense.

        Returns None for rows that should be skipped: blank rows, rows whose
        amount is not a finite non-negative number and rows without a
        readable date.
        """
        def cell(name: str) -> Any:
            idx = columns.get(name)
            if idx is None or idx >= len(row):
                return ""
            return row[idx]

        if _is_blank_row(row):
            return None

        amount = parse_amount(cell("amount"))
        day = parse_day(cell("date"))
        if amount is None or day is None:
            logger.debug("expense_row_skipped", row=[cell_text(c) for c in row])
            return None

        category = cell_text(cell("category")) or DEFAULT_CATEGORY
        try:
            return Expense.in_zone(
                self._zone,
                id=cell_text(cell("id")) or None,
                description=cell_text(cell("description")),
                amount=amount,
                category=category,
                date=day,
                paid=parse_flag(cell("paid")) if category == CREDIT_CARD else None,
            )
        except ValidationError as e:
            logger.debug("expense_row_invalid", error=str(e))
            return None

    def _parse_rows(self, rows: list[list]) -> list[Expense]:
        """
        Parse a whole-table read, header first.

        Raises:
            SchemaError: If the header lacks a required column
        """
        if not rows:
            return []
        columns = resolve_columns(
            self._table,
            rows[0],
            TRANSACTION_COLUMNS,
            REQUIRED_TRANSACTION_COLUMNS,
        )
        expenses = []
        for row in rows[1:]:
            expense = self._row_to_expense(row, columns)
            if expense is not None:
                expenses.append(expense)

        # Newest first
        expenses.sort(key=lambda e: e.date, reverse=True)
        return expenses

    def _read_all(self) -> ReadResult[Expense]:
        try:
            sheet = self._client.get_transactions_sheet()
            rows = _read_rows(sheet)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("expense_read_failed", sheet=self._table, error=str(e))
            return ReadResult.failure(f"Failed to read expenses: {e}")

        try:
            return ReadResult.success(self._parse_rows(rows))
        except SchemaError as e:
            logger.warning(
                "expense_sheet_schema_invalid",
                sheet=self._table,
                missing=e.missing,
            )
            return ReadResult.failure(str(e))

    async def list_expenses(self) -> ReadResult[Expense]:
        """All expenses, newest first."""
        return self._read_all()

    async def list_expenses_for_year(self, year: int) -> ReadResult[Expense]:
        """Expenses dated in `year` (local calendar), newest first."""
        result = self._read_all()
        if not result.ok:
            return result
        return ReadResult.success(e for e in result.records if e.date.year == year)

    async def years_with_expenses(self) -> ReadResult[int]:
        """Distinct years present, most recent first."""
        result = self._read_all()
        if not result.ok:
            return ReadResult.failure(result.error)
        years = sorted({e.date.year for e in result.records}, reverse=True)
        return ReadResult.success(years)

    async def search_expenses(self, query: str) -> ReadResult[Expense]:
        """Case-insensitive substring match on description, across all years."""
        needle = query.strip().casefold()
        if not needle:
            return ReadResult.success([])
        result = self._read_all()
        if not result.ok:
            return result
        return ReadResult.success(
            e for e in result.records if needle in e.description.casefold()
        )

    async def get_expense_by_id(self, expense_id: str) -> Optional[Expense]:
        """Retrieve an expense by its ID."""
        for expense in self._read_all().unwrap():
            if expense.id == expense_id:
                return expense
        return None

    def _next_id(self, sheet: gspread.Worksheet) -> str:
        """max(existing integer ids) + 1, or 1 for an empty ledger."""
        ids = sheet.col_values(1, value_render_option=ValueRenderOption.unformatted)[1:]
        numeric = [n for n in (parse_int(v) for v in ids) if n is not None]
        return str(max(numeric) + 1 if numeric else 1)

    async def add_expense(self, expense: Expense) -> Expense:
        """Allocate an id and append the expense as a new row."""
        try:
            sheet = self._client.get_transactions_sheet()
            stored = expense.model_copy(update={"id": self._next_id(sheet)})
            sheet.append_row(
                self._expense_to_row(stored),
                value_input_option="RAW",
                table_range="A1",
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add expense: {e}") from e

        logger.info("expense_appended", expense_id=stored.id)
        return stored

    async def update_expense(self, expense: Expense) -> Expense:
        """Overwrite the row holding expense.id."""
        if not expense.id:
            raise NotFoundError("Expense has no id")
        try:
            sheet = self._client.get_transactions_sheet()
            row_number = find_row(sheet, lambda v: v == expense.id)
            if row_number is None:
                raise NotFoundError(f"Expense not found: {expense.id}")

            last_column = rowcol_to_a1(row_number, len(TRANSACTION_COLUMNS))
            sheet.update(
                range_name=f"A{row_number}:{last_column}",
                values=[self._expense_to_row(expense)],
                value_input_option="RAW",
            )
        except (NotFoundError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}") from e

        return expense

    async def delete_expense(self, expense_id: str) -> None:
        """Delete the row holding expense_id."""
        try:
            sheet = self._client.get_transactions_sheet()
            row_number = find_row(sheet, lambda v: v == expense_id)
            if row_number is None:
                raise NotFoundError(f"Expense not found: {expense_id}")
            sheet.delete_rows(row_number)
        except (NotFoundError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}") from e


# =============================================================================
# CATEGORIES
# =============================================================================

class GoogleSheetsCategoryStorage(CategoryStorageInterface):
    """
    User-defined categories, one name per row.

    Built-in categories are never written here; protecting them from
    deletion is the caller's job.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _stored_names(self, sheet: gspread.Worksheet) -> list[str]:
        values = sheet.col_values(1, value_render_option=ValueRenderOption.unformatted)
        return [name for name in (cell_text(v) for v in values[1:]) if name]

    async def list_categories(self) -> ReadResult[str]:
        try:
            sheet = self._client.get_categories_sheet()
            return ReadResult.success(self._stored_names(sheet))
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("category_read_failed", error=str(e))
            return ReadResult.failure(f"Failed to read categories: {e}")

    async def add_category(self, name: str) -> str:
        name = name.strip()
        if not name:
            raise StorageError("Category name cannot be empty")
        try:
            sheet = self._client.get_categories_sheet()
            existing = {n.casefold() for n in self._stored_names(sheet)}
            if name.casefold() in existing:
                raise DuplicateError(f"Category already exists: {name}")
            sheet.append_row([name], value_input_option="RAW", table_range="A1")
        except (DuplicateError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to add category: {e}") from e
        return name

    async def delete_category(self, name: str) -> None:
        try:
            sheet = self._client.get_categories_sheet()
            row_number = find_row(sheet, lambda v: v == name)
            if row_number is None:
                raise NotFoundError(f"Category not found: {name}")
            sheet.delete_rows(row_number)
        except (NotFoundError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}") from e


# =============================================================================
# BUDGETS
# =============================================================================

class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """Budgets, one category per row. Saving rewrites the whole table."""

    def __init__(self, client: GoogleSheetsClient):
        self._client = client
        self._table = client.settings.budgets_sheet_name

    async def list_budgets(self) -> ReadResult[Budget]:
        try:
            sheet = self._client.get_budgets_sheet()
            rows = _read_rows(sheet)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("budget_read_failed", error=str(e))
            return ReadResult.failure(f"Failed to read budgets: {e}")

        if not rows:
            return ReadResult.success([])
        try:
            columns = resolve_columns(self._table, rows[0], BUDGET_COLUMNS, BUDGET_COLUMNS)
        except SchemaError as e:
            logger.warning("budget_sheet_schema_invalid", missing=e.missing)
            return ReadResult.failure(str(e))

        budgets = []
        for row in rows[1:]:
            padded = list(row) + [""] * len(BUDGET_COLUMNS)
            category = cell_text(padded[columns["category"]])
            limit = parse_amount(padded[columns["limit"]])
            if not category or limit is None or limit < 0:
                continue
            budgets.append(Budget(category=category, limit=limit))
        return ReadResult.success(budgets)

    async def save_budgets(self, budgets: list[Budget]) -> None:
        """Clear every data row, then write `budgets` from row 2 down."""
        rows = [[b.category, float(b.limit)] for b in budgets]
        try:
            sheet = self._client.get_budgets_sheet()
            sheet.batch_clear(["A2:B"])
            if rows:
                sheet.update(range_name="A2", values=rows, value_input_option="RAW")
        except ConfigurationError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budgets: {e}") from e


# =============================================================================
# SETTINGS
# =============================================================================

class GoogleSheetsSettingStorage(SettingStorageInterface):
    """Key/value settings: key in column A, value in column B."""

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    async def get_setting(self, key: str) -> Optional[str]:
        try:
            sheet = self._client.get_settings_sheet()
            rows = _read_rows(sheet)
        except ConfigurationError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read settings: {e}") from e

        for row in rows[1:]:
            if row and cell_text(row[0]) == key:
                return cell_text(row[1]) if len(row) > 1 else ""
        return None

    async def set_setting(self, key: str, value: str) -> None:
        try:
            sheet = self._client.get_settings_sheet()
            row_number = find_row(sheet, lambda v: v == key)
            if row_number is None:
                sheet.append_row([key, value], value_input_option="RAW", table_range="A1")
            else:
                # RAW keeps values like "0042" as text
                sheet.update(
                    range_name=rowcol_to_a1(row_number, 2),
                    values=[[value]],
                    value_input_option="RAW",
                )
        except ConfigurationError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save setting {key}: {e}") from e

    async def delete_setting(self, key: str) -> None:
        try:
            sheet = self._client.get_settings_sheet()
            row_number = find_row(sheet, lambda v: v == key)
            if row_number is None:
                raise NotFoundError(f"Setting not found: {key}")
            sheet.delete_rows(row_number)
        except (NotFoundError, ConfigurationError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete setting {key}: {e}") from e
