"""
Tests for the orchestration flows.

Flows run on the real Google Sheets storage classes over the in-memory
spreadsheet; only the model and the audit sink are stubbed.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from expense_ledger.agents import AgentError, ExpenseCategorizationAgent, FinancialTipsAgent
from expense_ledger.audit import AuditLogger
from expense_ledger.config import Settings
from expense_ledger.models import BudgetBook
from expense_ledger.orchestrator import (
    BudgetFlow,
    CategoryFlow,
    ExpenseFlow,
    InsightsFlow,
    MasterPasswordGate,
    PasswordRejectedError,
    ProtectedCategoryError,
    create_app_components,
)
from expense_ledger.services.storage import (
    DuplicateError,
    GoogleSheetsBudgetStorage,
    GoogleSheetsCategoryStorage,
    GoogleSheetsExpenseStorage,
    GoogleSheetsSettingStorage,
    NotFoundError,
    StorageError,
)

from fakes import StubModel


HEADER = ["id", "date", "description", "category", "amount", "paid"]


def run(coro):
    return asyncio.run(coro)


class BrokenAuditLogger(AuditLogger):
    async def log(self, event) -> None:
        raise RuntimeError("log sink unavailable")


@pytest.fixture
def gate(sheets_client, audit):
    return MasterPasswordGate(GoogleSheetsSettingStorage(sheets_client), audit_logger=audit)


@pytest.fixture
def category_flow(sheets_client, audit):
    return CategoryFlow(GoogleSheetsCategoryStorage(sheets_client), audit_logger=audit)


@pytest.fixture
def budget_flow(sheets_client, audit):
    return BudgetFlow(GoogleSheetsBudgetStorage(sheets_client), audit_logger=audit)


@pytest.fixture
def model():
    return StubModel(reply="Grocery")


@pytest.fixture
def expense_flow(sheets_client, category_flow, gate, audit, gemini_settings, model):
    return ExpenseFlow(
        GoogleSheetsExpenseStorage(sheets_client),
        category_flow=category_flow,
        categorization_agent=ExpenseCategorizationAgent(gemini_settings, model=model),
        password_gate=gate,
        audit_logger=audit,
    )


@pytest.fixture
def ledger(spreadsheet):
    return spreadsheet.seed("Transactions", [
        HEADER,
        ["1", "2024-03-02", "Coffee with Bob", "Snacks", "150", ""],
        ["2", "2024-03-20", "Vegetables", "Veggi", "200", ""],
        ["3", "2024-03-11", "Fuel", "Petrol", "900", ""],
        ["4", "2024-04-01", "Fruit basket", "Fruits", "300", ""],
    ])


class TestMasterPasswordGate:
    """Tests for the edit-confirmation gate."""

    def test_first_authorize_sets_the_password(self, gate, audit):
        assert not run(gate.is_password_set())
        run(gate.authorize("1234", "edit expense"))
        assert run(gate.is_password_set())
        assert run(gate.verify("1234"))
        assert "setting_changed" in audit.event_types

    def test_wrong_password_rejected(self, gate, audit):
        run(gate.set_password("1234"))
        with pytest.raises(PasswordRejectedError):
            run(gate.authorize("0000", "delete expense"))
        assert "password_rejected" in audit.event_types

    def test_short_password_refused(self, gate):
        with pytest.raises(ValueError):
            run(gate.set_password("12"))

    def test_confirmation_must_match(self, gate):
        with pytest.raises(ValueError):
            run(gate.set_password("1234", confirm_password="1235"))

    def test_changing_requires_current_password(self, gate):
        run(gate.set_password("1234"))
        with pytest.raises(PasswordRejectedError):
            run(gate.set_password("abcd", current_password="nope"))
        run(gate.set_password("abcd", current_password="1234"))
        assert run(gate.verify("abcd"))


class TestCategoryFlow:
    """Tests for the effective category set."""

    def test_list_merges_built_ins_and_stored(self, category_flow):
        run(category_flow.add_category("Books"))
        categories = run(category_flow.list_categories())
        assert "Books" in categories
        assert "Grocery" in categories
        assert categories == sorted(categories)

    @pytest.mark.parametrize("name", ["Grocery", "Credit Card", "Other"])
    def test_built_in_delete_rejected(self, category_flow, spreadsheet, audit, name):
        """Rejected even when the same name is also stored in the sheet."""
        spreadsheet.seed("Categories", [["name"], [name]])

        with pytest.raises(ProtectedCategoryError):
            run(category_flow.delete_category(name))

        assert spreadsheet.worksheets["Categories"].data_rows == [[name]]
        assert "protected_category_rejected" in audit.event_types

    def test_user_category_delete(self, category_flow):
        run(category_flow.add_category("Books"))
        run(category_flow.delete_category("Books"))
        assert "Books" not in run(category_flow.list_categories())

    def test_built_in_name_cannot_be_added_again(self, category_flow):
        with pytest.raises(DuplicateError):
            run(category_flow.add_category("grocery"))

    def test_unreadable_sheet_falls_back_to_built_ins(self, category_flow, spreadsheet, audit):
        spreadsheet.seed("Categories", [["name"], ["Books"]]).fail_with = RuntimeError("down")

        categories = run(category_flow.list_categories())

        assert "Books" not in categories
        assert "Grocery" in categories
        assert "read_failed" in audit.event_types


class TestExpenseFlow:
    """Tests for the expense flow."""

    def test_years_and_month(self, expense_flow, ledger):
        """Three March rows and one April row of 2024."""
        assert run(expense_flow.years()).records == [2024]
        march = run(expense_flow.list_month(2024, 3)).records
        assert [e.id for e in march] == ["2", "3", "1"]

    def test_search(self, expense_flow, ledger):
        assert [e.id for e in run(expense_flow.search("coffee")).records] == ["1"]
        assert run(expense_flow.search("zzz")).records == []

    def test_load_overview(self, expense_flow, ledger):
        years, categories = run(expense_flow.load_overview())
        assert years.records == [2024]
        assert "Petrol" in categories

    def test_add_with_explicit_category(self, expense_flow, model, audit):
        stored = run(expense_flow.add_expense("Milk", Decimal("60"), date(2024, 3, 14), category="Grocery"))
        assert stored.id == "1"
        assert model.prompts == []
        assert audit.event_types == ["expense_added"]

    def test_add_with_blank_category_asks_the_model(self, expense_flow, model, audit):
        stored = run(expense_flow.add_expense("Weekly shop", Decimal("900"), date(2024, 3, 14), category=" "))
        assert stored.category == "Grocery"
        assert len(model.prompts) == 1
        assert audit.event_types == ["expense_categorized", "expense_added"]
        # One action, one correlation id
        assert audit.events[0].correlation_id == audit.events[1].correlation_id

    def test_long_description_is_added_once(self, sheets_client, spreadsheet):
        """A 495-character description is stored and audited in one go."""
        flow = ExpenseFlow(GoogleSheetsExpenseStorage(sheets_client), audit_logger=AuditLogger())

        stored = run(flow.add_expense("x" * 495, Decimal("10"), date(2024, 3, 5), category="Grocery"))

        assert stored.id == "1"
        assert spreadsheet.worksheets["Transactions"].data_rows == [
            ["1", "2024-03-05", "x" * 495, "Grocery", 10.0, ""],
        ]

    def test_audit_failure_does_not_fail_a_stored_write(self, sheets_client, spreadsheet):
        flow = ExpenseFlow(GoogleSheetsExpenseStorage(sheets_client), audit_logger=BrokenAuditLogger())

        stored = run(flow.add_expense("Milk", Decimal("60"), date(2024, 3, 5), category="Grocery"))

        assert stored.id == "1"
        assert len(spreadsheet.worksheets["Transactions"].data_rows) == 1

    def test_add_uses_the_ledger_zone(self, sheets_client, spreadsheet):
        """The calendar day is taken in the zone the flow was built with."""
        flow = ExpenseFlow(GoogleSheetsExpenseStorage(sheets_client), zone=ZoneInfo("Asia/Kolkata"))
        late_utc = datetime(2024, 3, 31, 20, 0, tzinfo=ZoneInfo("UTC"))

        stored = run(flow.add_expense("Dinner", Decimal("500"), late_utc, category="Extra"))

        assert stored.storage_date() == "2024-04-01"
        assert spreadsheet.worksheets["Transactions"].data_rows[0][1] == "2024-04-01"

    def test_update_requires_the_password(self, expense_flow, gate, ledger):
        run(gate.set_password("1234"))
        expense = run(expense_flow.list_expenses()).records[0]

        with pytest.raises(PasswordRejectedError):
            run(expense_flow.update_expense(expense.model_copy(update={"amount": Decimal("1")}), "bad"))
        assert ledger.write_calls == 0

        run(expense_flow.update_expense(expense.model_copy(update={"amount": Decimal("1")}), "1234"))
        assert run(expense_flow.list_expenses()).records[0].amount == Decimal("1")

    def test_delete_missing_is_not_found_and_audited(self, expense_flow, gate, ledger, audit):
        run(gate.set_password("1234"))

        with pytest.raises(NotFoundError):
            run(expense_flow.delete_expense("99", "1234"))

        assert len(ledger.data_rows) == 4
        assert audit.event_types[-1] == "write_failed"

    def test_delete(self, expense_flow, gate, ledger, audit):
        run(gate.set_password("1234"))
        run(expense_flow.delete_expense("4", "1234"))
        assert run(expense_flow.years()).records == [2024]
        assert [r[0] for r in ledger.data_rows] == ["1", "2", "3"]
        assert audit.event_types[-1] == "expense_deleted"

    def test_failed_read_is_err_and_audited(self, expense_flow, ledger, audit):
        ledger.fail_with = RuntimeError("timeout")
        result = run(expense_flow.list_month(2024, 3))
        assert not result.ok
        assert audit.event_types == ["read_failed"]


class TestBudgetFlow:
    """Tests for the budget flow."""

    def test_defaults_when_nothing_stored(self, budget_flow):
        book = run(budget_flow.load())
        assert book.total_limit == BudgetBook.defaults().total_limit

    def test_set_limit_overwrites_and_saves(self, budget_flow, spreadsheet, audit):
        book = run(budget_flow.load())
        run(budget_flow.set_limit(book, "Grocery", Decimal("750")))

        reloaded = run(budget_flow.load())
        assert reloaded.get("Grocery").limit == Decimal("750")
        assert reloaded.categories.count("Grocery") == 1
        assert "budgets_saved" in audit.event_types

    def test_rescale_total_saves(self, budget_flow):
        book = run(budget_flow.load())
        run(budget_flow.rescale_total(book, Decimal("8000")))

        reloaded = run(budget_flow.load())
        assert reloaded.get("Grocery").limit == Decimal("1000.00")
        assert reloaded.get("Credit Card").limit == Decimal("0")

    def test_remove(self, budget_flow):
        book = run(budget_flow.load())
        run(budget_flow.remove(book, "Snacks"))
        assert "Snacks" not in run(budget_flow.load()).categories

    def test_unreadable_budgets_raise(self, budget_flow, spreadsheet):
        """Defaults are not substituted for a failed read."""
        spreadsheet.seed("Budgets", [["category", "limit"]]).fail_with = RuntimeError("down")
        with pytest.raises(StorageError):
            run(budget_flow.load())


class TestInsightsFlow:
    """Tests for dashboard insights and tips."""

    def test_month_summary_and_progress(self, expense_flow, budget_flow, ledger):
        insights = InsightsFlow(expense_flow, budget_flow)

        result = run(insights.month(2024, 3))

        assert result.summary.total_spent == Decimal("1250")
        assert result.summary.total_budget == Decimal("4000")
        petrol = next(p for p in result.progress if p.category == "Petrol")
        assert petrol.spent == Decimal("900")

    def test_tips_use_the_month_digest(self, expense_flow, budget_flow, ledger, gemini_settings):
        model = StubModel(reply="Cook at home.")
        insights = InsightsFlow(expense_flow, budget_flow, tips_agent=FinancialTipsAgent(gemini_settings, model=model))

        assert run(insights.financial_tips(2024, 4)) == "Cook at home."
        assert "Fruits: 300.00 - Fruit basket" in model.prompts[0]
        assert "Fuel" not in model.prompts[0]

    def test_tips_for_an_empty_month_skip_the_model(self, expense_flow, budget_flow, ledger, gemini_settings):
        model = StubModel(reply="unused")
        insights = InsightsFlow(expense_flow, budget_flow, tips_agent=FinancialTipsAgent(gemini_settings, model=model))

        run(insights.financial_tips(2024, 6))
        assert model.prompts == []

    def test_tips_failure_is_audited(self, expense_flow, budget_flow, ledger, gemini_settings, audit):
        model = StubModel(error=RuntimeError("quota"))
        insights = InsightsFlow(
            expense_flow,
            budget_flow,
            tips_agent=FinancialTipsAgent(gemini_settings, model=model),
            audit_logger=audit,
        )
        with pytest.raises(AgentError):
            run(insights.financial_tips(2024, 3))
        assert audit.event_types[-1] == "external_service_error"

    def test_tips_without_agent(self, expense_flow, budget_flow):
        with pytest.raises(AgentError):
            run(InsightsFlow(expense_flow, budget_flow).financial_tips(2024, 3))


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_builds_every_flow(self, monkeypatch, sheets_client, ledger):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("PERPLEXITY_API_KEY", raising=False)

        components = create_app_components(Settings(), sheets_client=sheets_client)

        assert components.sheets_client is sheets_client
        assert not components.chat_proxy.is_configured()
        assert run(components.expense_flow.years()).records == [2024]
        # Without Gemini the blank category stays Other
        stored = run(components.expense_flow.add_expense("Thing", Decimal("1"), date(2024, 5, 1)))
        assert stored.category == "Other"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
