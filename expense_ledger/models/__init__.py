"""
Data Models Package

This package contains all Pydantic models used in the Expense Ledger.
All data flowing through the system must conform to these schemas.
"""

from expense_ledger.models.ledger import (
    BUILT_IN_CATEGORIES,
    CREDIT_CARD,
    DEFAULT_BUDGET_LIMITS,
    DEFAULT_CATEGORY,
    DEFAULT_TIME_ZONE,
    MASTER_PASSWORD_KEY,
    Budget,
    BudgetBook,
    Expense,
    Setting,
    effective_categories,
    is_built_in_category,
    localize_day,
)
from expense_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from expense_ledger.models.chat import ChatMessage, ChatRequest

__all__ = [
    # Ledger models
    "BUILT_IN_CATEGORIES",
    "CREDIT_CARD",
    "DEFAULT_BUDGET_LIMITS",
    "DEFAULT_CATEGORY",
    "DEFAULT_TIME_ZONE",
    "MASTER_PASSWORD_KEY",
    "Budget",
    "BudgetBook",
    "Expense",
    "Setting",
    "effective_categories",
    "is_built_in_category",
    "localize_day",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Chat models
    "ChatMessage",
    "ChatRequest",
]
