"""
Audit Models for Family Budget

Every mutation of the ledger, and every rejected attempt, is logged for
audit purposes. This provides:
1. Complete traceability of who moved which money
2. Debugging information when a posting is refused
3. Material for reconciling balances by hand if ever needed

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from familybudget.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger operation has a success and, where it can be refused,
    a rejection event type.
    """
    # Transactions
    TRANSACTION_POSTED = "transaction_posted"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Planned operations
    PLANNED_OPERATION_CREATED = "planned_operation_created"
    PLANNED_OPERATION_REJECTED = "planned_operation_rejected"
    PLANNED_OPERATION_COMPLETED = "planned_operation_completed"
    PLANNED_OPERATION_COMPLETION_REJECTED = "planned_operation_completion_rejected"

    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_ARCHIVE_TOGGLED = "account_archive_toggled"
    ACCOUNT_REJECTED = "account_rejected"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_ARCHIVE_TOGGLED = "category_archive_toggled"
    CATEGORY_REJECTED = "category_rejected"

    # Family
    FAMILY_BOOTSTRAPPED = "family_bootstrapped"

    # System events
    STORAGE_RETRY = "storage_retry"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about, and whose?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    family_id: Optional[str] = None
    user_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "family_id": self.family_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit_events table.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         family_id, user_id, correlation_id, description, details_json,
         error_code, error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            self.entity_id,
            self.family_id,
            self.user_id,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_code,
            self.error_message,
            int(self.is_user_action),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_posted(txn, balance, correlation_id)
        event = AuditEventBuilder.rejected(event_type, error, ...)
    """

    @staticmethod
    def transaction_posted(
        transaction_id: str,
        family_id: str,
        user_id: str,
        account_id: str,
        signed_amount: int,
        currency: str,
        balance_after: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            entity_type="transaction",
            entity_id=transaction_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction posted: {signed_amount:+d} {currency}",
            details={
                "account_id": account_id,
                "signed_amount_minor": signed_amount,
                "currency": currency,
                "balance_after_minor": balance_after,
            },
            is_user_action=True,
        )

    @staticmethod
    def planned_operation_created(
        operation_id: str,
        family_id: str,
        user_id: str,
        title: str,
        recurrence: str,
        due_at: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLANNED_OPERATION_CREATED,
            entity_type="planned_operation",
            entity_id=operation_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Planned operation created: {title}",
            details={
                "recurrence": recurrence,
                "due_at": due_at.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def planned_operation_completed(
        operation_id: str,
        transaction_id: str,
        family_id: str,
        user_id: str,
        is_completed: bool,
        next_due_at: Optional[datetime],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLANNED_OPERATION_COMPLETED,
            entity_type="planned_operation",
            entity_id=operation_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Planned operation completed",
            details={
                "transaction_id": transaction_id,
                "is_completed": is_completed,
                "next_due_at": next_due_at.isoformat() if next_due_at else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        family_id: str,
        user_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Account and category creation, edits and archive toggles."""
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def rejected(
        event_type: AuditEventType,
        error_code: str,
        error_message: str,
        family_id: Optional[str] = None,
        user_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Rejected: {error_message}"[:500],
            details=details or {},
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def family_bootstrapped(
        family_id: str,
        user_id: str,
        categories_created: int,
        accounts_created: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FAMILY_BOOTSTRAPPED,
            entity_type="family",
            entity_id=family_id,
            family_id=family_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Family seeded with {categories_created} categories "
                f"and {accounts_created} accounts"
            ),
            details={
                "categories_created": categories_created,
                "accounts_created": accounts_created,
            },
        )

    @staticmethod
    def storage_retry(
        operation: str,
        attempt: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_RETRY,
            severity=AuditSeverity.WARNING,
            description=f"Transient storage error during {operation}, attempt {attempt}",
            error_code="storage_transient",
            error_message=error_message,
            details={
                "operation": operation,
                "attempt": attempt,
            },
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
