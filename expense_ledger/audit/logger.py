"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Traceability of creates, edits and deletes
2. Debugging capability when persistence fails
3. A local history the user can inspect

The audit logger:
- Is async so it can share the ledger's event loop
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_ledger.models.audit import AuditEvent, AuditEventBuilder
from expense_ledger.services.storage import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_ledger_loaded(self, receipt_count: int) -> None:
        """Log a successful ledger load."""
        await self.log(AuditEventBuilder.ledger_loaded(receipt_count))

    async def log_ledger_load_failed(self, error_message: str) -> None:
        """Log a load that fell back to an empty ledger."""
        await self.log(AuditEventBuilder.ledger_load_failed(error_message))

    async def log_receipt_created(
        self,
        receipt_id: int,
        name: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log receipt creation."""
        event = AuditEventBuilder.receipt_created(
            receipt_id=receipt_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_receipt_updated(
        self,
        receipt_id: int,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log receipt update."""
        event = AuditEventBuilder.receipt_updated(
            receipt_id=receipt_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_receipt_deleted(
        self,
        receipt_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log receipt deletion."""
        event = AuditEventBuilder.receipt_deleted(
            receipt_id=receipt_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_receipts_cleared(self, removed_count: int) -> None:
        await self.log(AuditEventBuilder.receipts_cleared(removed_count))

    async def log_receipt_not_found(
        self,
        operation: str,
        receipt_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an update/delete aimed at an unknown receipt."""
        event = AuditEventBuilder.receipt_not_found(
            operation=operation,
            receipt_id=receipt_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a persistence failure that aborted a mutation."""
        event = AuditEventBuilder.save_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        form: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            form=form,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_report_generated(
        self,
        entries: int,
        total_spent: str,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.report_generated(
            entries=entries,
            total_spent=total_spent,
            period=period,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_user_logged_in(self, username: str) -> None:
        await self.log(AuditEventBuilder.user_logged_in(username))

    async def log_user_logged_out(self) -> None:
        await self.log(AuditEventBuilder.user_logged_out())

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a form submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
