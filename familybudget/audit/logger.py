"""
Audit Logger

DESIGN DECISION: Every ledger mutation, and every refused attempt, is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. A per-family history of who moved which money

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the ledger if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from familybudget.errors import LedgerError
from familybudget.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from familybudget.models.ledger import (
    Account,
    Identity,
    PlannedOperation,
    Transaction,
)
from familybudget.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for local JSON logging at the given level."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)
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


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence)
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
        self._logger = structlog.get_logger("familybudget.audit")

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

    async def log_transaction_posted(
        self,
        transaction: Transaction,
        account: Account,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_posted(
            transaction_id=transaction.id,
            family_id=transaction.family_id,
            user_id=transaction.user_id,
            account_id=account.id,
            signed_amount=transaction.signed_amount,
            currency=transaction.currency,
            balance_after=account.balance_minor,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_planned_operation_created(
        self,
        plan: PlannedOperation,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.planned_operation_created(
            operation_id=plan.id,
            family_id=plan.family_id,
            user_id=plan.user_id,
            title=plan.title,
            recurrence=plan.recurrence.value,
            due_at=plan.due_at,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_planned_operation_completed(
        self,
        plan: PlannedOperation,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """One-off plans report no next due date."""
        next_due: Optional[datetime] = plan.due_at if plan.is_recurring else None
        event = AuditEventBuilder.planned_operation_completed(
            operation_id=plan.id,
            transaction_id=transaction.id,
            family_id=plan.family_id,
            user_id=transaction.user_id,
            is_completed=plan.is_completed,
            next_due_at=next_due,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        identity: Identity,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            family_id=identity.family_id,
            user_id=identity.user_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rejected(
        self,
        event_type: AuditEventType,
        error: LedgerError,
        identity: Optional[Identity] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a refused operation with the error's stable code."""
        event = AuditEventBuilder.rejected(
            event_type=event_type,
            error_code=error.code,
            error_message=error.message,
            family_id=identity.family_id if identity else None,
            user_id=identity.user_id if identity else None,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_family_bootstrapped(
        self,
        identity: Identity,
        categories_created: int,
        accounts_created: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.family_bootstrapped(
            family_id=identity.family_id,
            user_id=identity.user_id,
            categories_created=categories_created,
            accounts_created=accounts_created,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_retry(
        self,
        operation: str,
        attempt: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_retry(
            operation=operation,
            attempt=attempt,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

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

    Use this at the start of a new user action (e.g., posting a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
