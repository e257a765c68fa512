"""
Derived Reports

DESIGN DECISION: Reports are pure functions over records already read from
storage. They never call the store themselves, so the same expense list can
feed the dashboard totals, the budget page and the tips prompt without a
second read.

Month and year are always those of the expense's local calendar date.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from pydantic import BaseModel, Field

from expense_ledger.models.ledger import CREDIT_CARD, Budget, Expense


ZERO = Decimal("0")


class BudgetProgress(BaseModel):
    """Spend against one category budget."""

    category: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal = Field(description="Negative when over budget")
    percent_used: float = Field(ge=0.0, le=100.0)

    @property
    def is_over(self) -> bool:
        return self.remaining < 0


class MonthlySummary(BaseModel):
    """Dashboard figures for one month."""

    year: int
    month: int = Field(ge=1, le=12)
    expense_count: int
    total_spent: Decimal
    total_budget: Decimal = Field(description="Excludes the Credit Card budget")
    remaining_budget: Decimal
    by_category: dict[str, Decimal] = Field(default_factory=dict)


def filter_by_month(expenses: Iterable[Expense], year: int, month: int) -> list[Expense]:
    """Expenses dated in the given month. Input order is kept."""
    return [e for e in expenses if e.date.year == year and e.date.month == month]


def category_breakdown(expenses: Iterable[Expense]) -> dict[str, Decimal]:
    """Total spent per category, largest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        totals[expense.category] += expense.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def monthly_totals(expenses: Iterable[Expense], year: int) -> dict[int, Decimal]:
    """Total spent in each month (1-12) of `year`; months without spend are zero."""
    totals = {month: ZERO for month in range(1, 13)}
    for expense in expenses:
        if expense.date.year == year:
            totals[expense.date.month] += expense.amount
    return totals


def total_budget(budgets: Iterable[Budget]) -> Decimal:
    return sum((b.limit for b in budgets if b.category != CREDIT_CARD), ZERO)


def monthly_summary(
    expenses: Iterable[Expense],
    budgets: Iterable[Budget],
    year: int,
    month: int,
) -> MonthlySummary:
    in_month = filter_by_month(expenses, year, month)
    spent = sum((e.amount for e in in_month), ZERO)
    budget = total_budget(budgets)
    return MonthlySummary(
        year=year,
        month=month,
        expense_count=len(in_month),
        total_spent=spent,
        total_budget=budget,
        remaining_budget=budget - spent,
        by_category=category_breakdown(in_month),
    )


def _percent_used(spent: Decimal, limit: Decimal) -> float:
    if limit > 0:
        return min(float(spent / limit * 100), 100.0)
    return 100.0 if spent > 0 else 0.0


def budget_progress(
    expenses: Iterable[Expense],
    budgets: Sequence[Budget],
) -> list[BudgetProgress]:
    """
    Spend against every budget, in budget order.

    `expenses` should already be restricted to the period being reviewed
    (usually one month). Percent used is capped at 100.
    """
    spent_by_category = category_breakdown(expenses)
    progress = []
    for budget in budgets:
        spent = spent_by_category.get(budget.category, ZERO)
        progress.append(BudgetProgress(
            category=budget.category,
            limit=budget.limit,
            spent=spent,
            remaining=budget.limit - spent,
            percent_used=_percent_used(spent, budget.limit),
        ))
    return progress


def spending_digest(expenses: Iterable[Expense]) -> str:
    """One "category: amount - description" line per expense."""
    return "\n".join(
        f"{e.category}: {e.amount:.2f} - {e.description}" for e in expenses
    )
