"""
Main Orchestrator for Expense Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses (list, search, add with optional AI categorization, edit, delete)
2. Categories (built-in set plus user categories)
3. Budgets (load, change one limit, rescale the total, save)
4. Insights (monthly summary, budget progress, financial tips)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Edits and deletes of expenses pass the master password gate first
- Built-in categories are never deleted; the store is not even asked
- Failed reads come back as Err and are audited; callers pick the fallback
- Every change is audited

Configuration is read once, in create_app_components. Everything below
receives its collaborators through the constructor.
"""

import asyncio
from decimal import Decimal
from datetime import date, datetime
from typing import NamedTuple, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from pydantic import ValidationError

from expense_ledger.agents import AgentError, ExpenseCategorizationAgent, FinancialTipsAgent
from expense_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from expense_ledger.config import Settings, get_settings
from expense_ledger.models.ledger import (
    BUILT_IN_CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_TIME_ZONE,
    MASTER_PASSWORD_KEY,
    BudgetBook,
    Expense,
    effective_categories,
    is_built_in_category,
)
from expense_ledger.reports import (
    BudgetProgress,
    MonthlySummary,
    budget_progress,
    filter_by_month,
    monthly_summary,
    spending_digest,
)
from expense_ledger.services.chat import PerplexityChatProxy
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
    ReadResult,
    SettingStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 4


async def _audit_after_write(
    audit_logger: Optional[AuditLogger],
    log_call: str,
    *args,
    **kwargs,
) -> None:
    """
    Record the audit event for a write that has already happened.

    The write stands whatever happens here, so an audit failure is logged
    and not raised.
    """
    if audit_logger is None:
        return
    try:
        await getattr(audit_logger, log_call)(*args, **kwargs)
    except Exception as e:
        logger.error("audit_failed", audit_call=log_call, error=str(e))


class ProtectedCategoryError(Exception):
    """Attempted to delete a built-in category."""
    pass


class PasswordRejectedError(Exception):
    """The master password did not match."""
    pass


class MasterPasswordGate:
    """
    Edit-confirmation gate backed by the masterPassword setting.

    This is a plaintext comparison meant to stop accidental edits. It is
    NOT a security boundary: anyone with access to the spreadsheet can
    read the password.

    Until a password is stored the gate is open; the first authorize()
    call stores the password it is given.
    """

    def __init__(
        self,
        setting_storage: SettingStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = setting_storage
        self._audit_logger = audit_logger

    async def _stored_password(self) -> Optional[str]:
        return await self._storage.get_setting(MASTER_PASSWORD_KEY) or None

    async def is_password_set(self) -> bool:
        return await self._stored_password() is not None

    async def verify(self, password: str) -> bool:
        stored = await self._stored_password()
        return stored is not None and password == stored

    async def set_password(
        self,
        password: str,
        confirm_password: Optional[str] = None,
        current_password: Optional[str] = None,
    ) -> None:
        """
        Store a new master password.

        Replacing an existing password requires the current one.

        Raises:
            ValueError: If the password is too short or the confirmation differs
            PasswordRejectedError: If a password is set and `current_password`
                does not match it
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
        if confirm_password is not None and confirm_password != password:
            raise ValueError("Passwords do not match.")

        if await self.is_password_set():
            if current_password is None or not await self.verify(current_password):
                await self._reject("change password")

        await self._storage.set_setting(MASTER_PASSWORD_KEY, password)
        await _audit_after_write(self._audit_logger, "log_setting_changed", MASTER_PASSWORD_KEY)

    async def authorize(self, password: str, action: str) -> None:
        """
        Let `action` through or raise PasswordRejectedError.

        With no password stored yet, `password` becomes the master password.
        """
        if not await self.is_password_set():
            await self.set_password(password)
            return
        if not await self.verify(password):
            await self._reject(action)

    async def _reject(self, action: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log_password_rejected(action)
        raise PasswordRejectedError("Incorrect password.")


class CategoryFlow:
    """Effective category set: built-ins plus the Categories sheet."""

    def __init__(
        self,
        category_storage: CategoryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = category_storage
        self._audit_logger = audit_logger

    async def list_categories(self) -> list[str]:
        """
        Sorted union of built-in and stored categories.

        When the Categories sheet cannot be read, the built-ins alone are
        returned and the failure is audited.
        """
        result = await self._storage.list_categories()
        if not result.ok and self._audit_logger:
            await self._audit_logger.log_read_failed("categories", result.error or "")
        return effective_categories(result.unwrap_or_empty())

    async def add_category(self, name: str) -> str:
        """
        Raises:
            DuplicateError: If the name matches a built-in or stored category
        """
        name = name.strip()
        if any(name.casefold() == c.casefold() for c in BUILT_IN_CATEGORIES):
            raise DuplicateError(f"Category already exists: {name}")

        stored = await self._storage.add_category(name)
        await _audit_after_write(self._audit_logger, "log_category_added", stored)
        return stored

    async def delete_category(self, name: str) -> None:
        """
        Raises:
            ProtectedCategoryError: For built-in categories, whatever the store holds
            NotFoundError: If the category is not stored
        """
        if is_built_in_category(name):
            if self._audit_logger:
                await self._audit_logger.log_protected_category_rejected(name)
            raise ProtectedCategoryError(f"Cannot delete built-in category: {name}")

        await self._storage.delete_category(name)
        await _audit_after_write(self._audit_logger, "log_category_deleted", name)


class ExpenseFlow:
    """
    Orchestrates the expense pages.

    Reads return ReadResult so the caller can show "could not load" instead
    of an empty table. Writes raise; failed writes are audited first.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        category_flow: Optional[CategoryFlow] = None,
        categorization_agent: Optional[ExpenseCategorizationAgent] = None,
        password_gate: Optional[MasterPasswordGate] = None,
        audit_logger: Optional[AuditLogger] = None,
        zone: ZoneInfo = DEFAULT_TIME_ZONE,
    ):
        self._storage = expense_storage
        self._category_flow = category_flow
        self._agent = categorization_agent
        self._gate = password_gate
        self._audit_logger = audit_logger
        self._zone = zone

    async def _audit_read(self, result: ReadResult, table: str) -> ReadResult:
        if not result.ok and self._audit_logger:
            await self._audit_logger.log_read_failed(table, result.error or "")
        return result

    async def list_expenses(self) -> ReadResult[Expense]:
        return await self._audit_read(await self._storage.list_expenses(), "expenses")

    async def list_year(self, year: int) -> ReadResult[Expense]:
        result = await self._storage.list_expenses_for_year(year)
        return await self._audit_read(result, "expenses")

    async def list_month(self, year: int, month: int) -> ReadResult[Expense]:
        """Expenses of one month, newest first."""
        result = await self.list_year(year)
        if not result.ok:
            return result
        return ReadResult.success(filter_by_month(result.records, year, month))

    async def years(self) -> ReadResult[int]:
        return await self._audit_read(await self._storage.years_with_expenses(), "expenses")

    async def search(self, query: str) -> ReadResult[Expense]:
        return await self._audit_read(await self._storage.search_expenses(query), "expenses")

    async def load_overview(self) -> tuple[ReadResult[int], list[str]]:
        """Years and categories for the landing page, requested together."""
        if self._category_flow is None:
            return await self.years(), effective_categories([])
        years, categories = await asyncio.gather(
            self.years(),
            self._category_flow.list_categories(),
        )
        return years, categories

    async def suggest_category(
        self,
        description: str,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """AI suggestion for `description`; "Other" when no agent is configured."""
        if self._agent is None:
            return DEFAULT_CATEGORY

        if self._category_flow is not None:
            categories = await self._category_flow.list_categories()
        else:
            categories = effective_categories([])

        category = await self._agent.suggest_category(description, categories)
        if self._audit_logger:
            await self._audit_logger.log_expense_categorized(
                description=description,
                category=category,
                correlation_id=correlation_id,
            )
        return category

    async def add_expense(
        self,
        description: str,
        amount: Decimal,
        expense_date: date | datetime,
        category: Optional[str] = None,
        paid: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Add an expense. A blank category is filled by the AI suggestion.

        Raises:
            pydantic.ValidationError: If the fields do not form a valid expense
            StorageError: If the append fails
        """
        correlation_id = correlation_id or create_correlation_id()

        if not (category or "").strip():
            category = await self.suggest_category(description, correlation_id)

        expense = Expense.in_zone(
            self._zone,
            description=description,
            amount=amount,
            category=category,
            date=expense_date,
            paid=paid,
        )

        try:
            stored = await self._storage.add_expense(expense)
        except StorageError as e:
            await self._audit_write_failure("add expense", e, correlation_id)
            raise

        await _audit_after_write(
            self._audit_logger,
            "log_expense_added",
            expense_id=stored.id,
            description=stored.description,
            amount=str(stored.amount),
            correlation_id=correlation_id,
        )
        return stored

    async def update_expense(
        self,
        expense: Expense,
        password: str,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Raises:
            PasswordRejectedError: If the master password does not match
            NotFoundError: If no stored expense has this id
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._gate:
            await self._gate.authorize(password, "edit expense")

        try:
            updated = await self._storage.update_expense(expense)
        except StorageError as e:
            await self._audit_write_failure("update expense", e, correlation_id)
            raise

        await _audit_after_write(
            self._audit_logger, "log_expense_updated", updated.id, correlation_id
        )
        return updated

    async def delete_expense(
        self,
        expense_id: str,
        password: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            PasswordRejectedError: If the master password does not match
            NotFoundError: If no stored expense has this id
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._gate:
            await self._gate.authorize(password, "delete expense")

        try:
            await self._storage.delete_expense(expense_id)
        except StorageError as e:
            await self._audit_write_failure("delete expense", e, correlation_id)
            raise

        await _audit_after_write(
            self._audit_logger, "log_expense_deleted", expense_id, correlation_id
        )

    async def _audit_write_failure(
        self,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_write_failed(operation, str(error), correlation_id)


class BudgetFlow:
    """
    Budget page operations.

    Every change is saved straight away, and saving replaces every stored
    budget row with the book's contents.
    """

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = budget_storage
        self._audit_logger = audit_logger

    async def load(self) -> BudgetBook:
        """
        Stored budgets, or the default budgets when none are stored.

        Raises:
            StorageError: If the Budgets sheet cannot be read. Defaults are
                not substituted here; saving them would wipe the real rows.
        """
        result = await self._storage.list_budgets()
        if not result.ok:
            if self._audit_logger:
                await self._audit_logger.log_read_failed("budgets", result.error or "")
            result.unwrap()

        if not result.records:
            return BudgetBook.defaults()
        return BudgetBook(budgets=result.records)

    async def save(self, book: BudgetBook) -> BudgetBook:
        await self._storage.save_budgets(book.budgets)
        await _audit_after_write(
            self._audit_logger,
            "log_budgets_saved",
            count=len(book.budgets),
            total=str(book.total_limit),
        )
        return book

    async def set_limit(self, book: BudgetBook, category: str, limit: Decimal) -> BudgetBook:
        """Add or overwrite one category's budget, then save."""
        book.set_limit(category, limit)
        return await self.save(book)

    async def rescale_total(self, book: BudgetBook, new_total: Decimal) -> BudgetBook:
        book.rescale_total(new_total)
        return await self.save(book)

    async def remove(self, book: BudgetBook, category: str) -> BudgetBook:
        if book.remove(category):
            await self.save(book)
        return book


class MonthlyInsights(NamedTuple):
    summary: MonthlySummary
    progress: list[BudgetProgress]


class InsightsFlow:
    """Dashboard figures and AI financial tips for one month."""

    def __init__(
        self,
        expense_flow: ExpenseFlow,
        budget_flow: BudgetFlow,
        tips_agent: Optional[FinancialTipsAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._expenses = expense_flow
        self._budgets = budget_flow
        self._tips_agent = tips_agent
        self._audit_logger = audit_logger

    async def month(self, year: int, month: int) -> MonthlyInsights:
        """
        Raises:
            StorageError: If expenses or budgets cannot be read
        """
        expenses, book = await asyncio.gather(
            self._expenses.list_month(year, month),
            self._budgets.load(),
        )
        in_month = expenses.unwrap()
        return MonthlyInsights(
            summary=monthly_summary(in_month, book.budgets, year, month),
            progress=budget_progress(in_month, book.budgets),
        )

    async def financial_tips(
        self,
        year: int,
        month: int,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Raises:
            AgentError: If no tips agent is configured or the model call fails
            StorageError: If the month's expenses cannot be read
        """
        if self._tips_agent is None:
            raise AgentError("Financial tips are not configured (GEMINI_API_KEY)")

        expenses = (await self._expenses.list_month(year, month)).unwrap()
        if not expenses:
            return "No spending recorded for this month yet."

        try:
            return await self._tips_agent.generate_tips(spending_digest(expenses))
        except AgentError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise


class AppComponents(NamedTuple):
    expense_flow: ExpenseFlow
    category_flow: CategoryFlow
    budget_flow: BudgetFlow
    insights_flow: InsightsFlow
    password_gate: MasterPasswordGate
    chat_proxy: PerplexityChatProxy
    sheets_client: GoogleSheetsClient


def create_app_components(
    settings: Optional[Settings] = None,
    sheets_client: Optional[GoogleSheetsClient] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration to build from. Defaults to the environment.
        sheets_client: Pre-built client (tests pass one over a fake spreadsheet)

    Raises:
        ConfigurationError: If Google Sheets is not configured. The
            Gemini-backed features are optional and simply switched off.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    if sheets_client is None:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
        except ValidationError as e:
            raise ConfigurationError(f"Google Sheets is not configured: {e}")

    audit_logger = AuditLogger()

    categorization_agent = None
    tips_agent = None
    try:
        gemini = settings.gemini
    except ValidationError as e:
        logger.warning("gemini_not_configured", error=str(e))
    else:
        categorization_agent = ExpenseCategorizationAgent(gemini)
        tips_agent = FinancialTipsAgent(gemini)

    password_gate = MasterPasswordGate(
        GoogleSheetsSettingStorage(sheets_client),
        audit_logger=audit_logger,
    )
    category_flow = CategoryFlow(
        GoogleSheetsCategoryStorage(sheets_client),
        audit_logger=audit_logger,
    )
    expense_flow = ExpenseFlow(
        GoogleSheetsExpenseStorage(sheets_client),
        category_flow=category_flow,
        categorization_agent=categorization_agent,
        password_gate=password_gate,
        audit_logger=audit_logger,
        zone=sheets_client.settings.zone,
    )
    budget_flow = BudgetFlow(
        GoogleSheetsBudgetStorage(sheets_client),
        audit_logger=audit_logger,
    )
    insights_flow = InsightsFlow(
        expense_flow,
        budget_flow,
        tips_agent=tips_agent,
        audit_logger=audit_logger,
    )

    return AppComponents(
        expense_flow=expense_flow,
        category_flow=category_flow,
        budget_flow=budget_flow,
        insights_flow=insights_flow,
        password_gate=password_gate,
        chat_proxy=PerplexityChatProxy(settings.perplexity),
        sheets_client=sheets_client,
    )
