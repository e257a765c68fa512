"""
Audit Models for Expense Ledger

Every mutation of the ledger and every failed read is described by an
AuditEvent. Events are written to the structured log; the spreadsheet only
ever holds ledger data.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_CATEGORIZED = "expense_categorized"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_DELETED = "category_deleted"
    PROTECTED_CATEGORY_REJECTED = "protected_category_rejected"

    # Budgets and settings
    BUDGETS_SAVED = "budgets_saved"
    SETTING_CHANGED = "setting_changed"
    PASSWORD_REJECTED = "password_rejected"

    # Failures
    READ_FAILED = "read_failed"
    WRITE_FAILED = "write_failed"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # What entity is this about? ("expense", "category", "budget", "setting")
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None

    # Ties together the events of one user action
    correlation_id: Optional[UUID] = None

    # Free text from the ledger (descriptions, category names) goes in
    # entity_id or details, never in this summary line
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, "Coffee", "120.00")
    """

    @staticmethod
    def expense_added(
        expense_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense added - ₹{amount}",
            details={"amount": amount, "expense_description": description},
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Expense updated",
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def expense_categorized(
        description: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CATEGORIZED,
            entity_type="expense",
            correlation_id=correlation_id,
            description="Category suggested",
            details={"expense_description": description, "category": category},
        )

    @staticmethod
    def category_added(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=name,
            description="Category added",
            is_user_action=True,
        )

    @staticmethod
    def category_deleted(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=name,
            description="Category deleted",
            is_user_action=True,
        )

    @staticmethod
    def protected_category_rejected(name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROTECTED_CATEGORY_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="category",
            entity_id=name,
            description="Refused to delete a built-in category",
            is_user_action=True,
        )

    @staticmethod
    def budgets_saved(count: int, total: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGETS_SAVED,
            entity_type="budget",
            description=f"{count} budgets saved, total ₹{total}",
            details={"count": count, "total": total},
            is_user_action=True,
        )

    @staticmethod
    def setting_changed(key: str) -> AuditEvent:
        # Never put the value in the log: the only setting is a password
        return AuditEvent(
            event_type=AuditEventType.SETTING_CHANGED,
            entity_type="setting",
            entity_id=key,
            description="Setting changed",
            is_user_action=True,
        )

    @staticmethod
    def password_rejected(action: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PASSWORD_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Master password rejected for {action}",
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def read_failed(
        table: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.READ_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="table",
            entity_id=table,
            correlation_id=correlation_id,
            description=f"Could not read {table}",
            error_message=error_message,
        )

    @staticmethod
    def write_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Write failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
