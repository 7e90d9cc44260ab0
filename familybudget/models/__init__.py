"""
Data Models Package

This package contains all Pydantic models used in the Family Budget ledger.
All data flowing through the system must conform to these schemas.
"""

from familybudget.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryType,
    Identity,
    MemberRole,
    PlannedOperation,
    Recurrence,
    Transaction,
    TransactionType,
    UtcDatetime,
    new_id,
    utcnow,
)
from familybudget.models.requests import (
    AccountRequest,
    CategoryRequest,
    PlannedOperationRequest,
    TransactionFilters,
    TransactionRequest,
)
from familybudget.models.results import (
    BootstrapResult,
    CategoryTotals,
    CompletionResult,
    CurrencyBalance,
    CurrencyTotals,
    PlannedOperationListing,
    PostedTransaction,
    ReportsOverview,
)
from familybudget.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountType",
    "Category",
    "CategoryType",
    "Identity",
    "MemberRole",
    "PlannedOperation",
    "Recurrence",
    "Transaction",
    "TransactionType",
    "UtcDatetime",
    "new_id",
    "utcnow",
    # Requests
    "AccountRequest",
    "CategoryRequest",
    "PlannedOperationRequest",
    "TransactionFilters",
    "TransactionRequest",
    # Results
    "BootstrapResult",
    "CategoryTotals",
    "CompletionResult",
    "CurrencyBalance",
    "CurrencyTotals",
    "PlannedOperationListing",
    "PostedTransaction",
    "ReportsOverview",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
