"""Derived reports over ledger records."""

from expense_ledger.reports.summary import (
    BudgetProgress,
    MonthlySummary,
    budget_progress,
    category_breakdown,
    filter_by_month,
    monthly_summary,
    monthly_totals,
    spending_digest,
    total_budget,
)

__all__ = [
    "BudgetProgress",
    "MonthlySummary",
    "budget_progress",
    "category_breakdown",
    "filter_by_month",
    "monthly_summary",
    "monthly_totals",
    "spending_digest",
    "total_budget",
]
