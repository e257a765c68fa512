"""Tests for the derived reports."""

from datetime import date
from decimal import Decimal

import pytest

from expense_ledger.models import Budget, Expense
from expense_ledger.reports import (
    budget_progress,
    category_breakdown,
    filter_by_month,
    monthly_summary,
    monthly_totals,
    spending_digest,
)


def expense(day: date, amount: str, category: str = "Other", description: str = "") -> Expense:
    return Expense(
        description=description,
        amount=Decimal(amount),
        category=category,
        date=day,
    )


@pytest.fixture
def march_and_april():
    # Newest first, as the store returns them
    return [
        expense(date(2024, 4, 2), "300", "Fruits", "Mangoes"),
        expense(date(2024, 3, 20), "200", "Veggi", "Vegetables"),
        expense(date(2024, 3, 11), "900", "Petrol", "Fuel"),
        expense(date(2024, 3, 2), "150", "Snacks", "Coffee with Bob"),
    ]


class TestMonthFilter:
    """Tests for filter_by_month."""

    def test_three_march_rows_newest_first(self, march_and_april):
        """March holds exactly the three March rows, order kept."""
        march = filter_by_month(march_and_april, 2024, 3)
        assert [e.date.day for e in march] == [20, 11, 2]

    def test_other_year_same_month_excluded(self, march_and_april):
        assert filter_by_month(march_and_april, 2023, 3) == []


class TestTotals:
    """Tests for breakdowns and totals."""

    def test_category_breakdown_largest_first(self, march_and_april):
        breakdown = category_breakdown(march_and_april)
        assert list(breakdown) == ["Petrol", "Fruits", "Veggi", "Snacks"]
        assert breakdown["Petrol"] == Decimal("900")

    def test_monthly_totals_covers_twelve_months(self, march_and_april):
        totals = monthly_totals(march_and_april, 2024)
        assert len(totals) == 12
        assert totals[3] == Decimal("1250")
        assert totals[4] == Decimal("300")
        assert totals[1] == Decimal("0")

    def test_monthly_summary(self, march_and_april):
        """Total budget leaves out Credit Card; remaining can go negative."""
        budgets = [
            Budget(category="Petrol", limit=Decimal("1000")),
            Budget(category="Credit Card", limit=Decimal("5000")),
        ]
        summary = monthly_summary(march_and_april, budgets, 2024, 3)

        assert summary.expense_count == 3
        assert summary.total_spent == Decimal("1250")
        assert summary.total_budget == Decimal("1000")
        assert summary.remaining_budget == Decimal("-250")
        assert summary.by_category["Veggi"] == Decimal("200")


class TestBudgetProgress:
    """Tests for budget_progress."""

    def test_progress_per_budget(self, march_and_april):
        march = filter_by_month(march_and_april, 2024, 3)
        budgets = [
            Budget(category="Petrol", limit=Decimal("600")),
            Budget(category="Veggi", limit=Decimal("400")),
            Budget(category="Grocery", limit=Decimal("500")),
        ]
        petrol, veggi, grocery = budget_progress(march, budgets)

        assert petrol.is_over
        assert petrol.remaining == Decimal("-300")
        assert petrol.percent_used == 100.0
        assert veggi.percent_used == 50.0
        assert grocery.spent == Decimal("0")
        assert grocery.percent_used == 0.0

    def test_spend_without_limit_is_full(self):
        """Any spend against a zero budget shows as 100%."""
        [progress] = budget_progress(
            [expense(date(2024, 3, 1), "10", "Snacks")],
            [Budget(category="Snacks", limit=Decimal("0"))],
        )
        assert progress.percent_used == 100.0


class TestSpendingDigest:
    """Tests for the tips prompt digest."""

    def test_one_line_per_expense(self):
        digest = spending_digest([
            expense(date(2024, 3, 2), "150", "Snacks", "Coffee with Bob"),
            expense(date(2024, 3, 3), "60.5", "Grocery", "Milk"),
        ])
        assert digest == "Snacks: 150.00 - Coffee with Bob\nGrocery: 60.50 - Milk"

    def test_empty(self):
        assert spending_digest([]) == ""


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
