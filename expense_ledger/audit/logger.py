"""
Audit Logger

DESIGN DECISION: Every change to the ledger and every failed read is logged
as a typed AuditEvent, rendered as one JSON line by structlog.

The audit trail is log-only. The spreadsheet holds ledger data and nothing
else, so a broken store never takes the audit trail down with it.

Correlation ids tie together the events of one user action (for example a
categorization suggestion followed by the add it fed).
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the stdlib root logger at `level`.

    structlog renders the JSON line; stdlib only decides what gets through
    and where it goes (stderr).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )


class AuditLogger:
    """Central audit logging service."""

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("expense_ledger.audit")

    async def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def log_expense_added(
        self,
        expense_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_added(
            expense_id=expense_id,
            description=description,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_expense_updated(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(expense_id, correlation_id))

    async def log_expense_deleted(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(expense_id, correlation_id))

    async def log_expense_categorized(
        self,
        description: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_categorized(
            description=description,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_category_added(self, name: str) -> None:
        await self.log(AuditEventBuilder.category_added(name))

    async def log_category_deleted(self, name: str) -> None:
        await self.log(AuditEventBuilder.category_deleted(name))

    async def log_protected_category_rejected(self, name: str) -> None:
        await self.log(AuditEventBuilder.protected_category_rejected(name))

    async def log_budgets_saved(self, count: int, total: str) -> None:
        await self.log(AuditEventBuilder.budgets_saved(count, total))

    async def log_setting_changed(self, key: str) -> None:
        await self.log(AuditEventBuilder.setting_changed(key))

    async def log_password_rejected(self, action: str) -> None:
        await self.log(AuditEventBuilder.password_rejected(action))

    async def log_read_failed(
        self,
        table: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a read that came back as Err."""
        await self.log(AuditEventBuilder.read_failed(table, error_message, correlation_id))

    async def log_write_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.write_failed(operation, error_message, correlation_id))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action and pass it through every
    operation that action triggers.
    """
    return uuid4()
