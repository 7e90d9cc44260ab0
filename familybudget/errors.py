"""
Error Taxonomy for the Ledger Core

Every failure the core can report has its own exception class with a
stable `code`. The transport layer maps codes to status codes; the core
never does.

Cross-tenant references are reported exactly like missing entities so
that a caller cannot probe for the existence of another family's data.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger core errors."""

    code = "ledger_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


# =============================================================================
# NOT FOUND (absent or belongs to another family)
# =============================================================================

class NotFoundError(LedgerError):
    """Entity not found."""
    code = "not_found"


class AccountNotFoundError(NotFoundError):
    """Account not found."""
    code = "account_not_found"


class CategoryNotFoundError(NotFoundError):
    """Category not found."""
    code = "category_not_found"


class ParentCategoryNotFoundError(NotFoundError):
    """Parent category not found."""
    code = "parent_category_not_found"


class TransactionNotFoundError(NotFoundError):
    """Transaction not found."""
    code = "transaction_not_found"


class PlannedOperationNotFoundError(NotFoundError):
    """Planned operation not found."""
    code = "planned_operation_not_found"


# =============================================================================
# ARCHIVED (exists but disabled for mutation)
# =============================================================================

class ArchivedError(LedgerError):
    """Entity is archived."""
    code = "archived"


class AccountArchivedError(ArchivedError):
    """Account is archived."""
    code = "account_archived"


class CategoryArchivedError(ArchivedError):
    """Category is archived."""
    code = "category_archived"


class ParentCategoryArchivedError(ArchivedError):
    """Parent category is archived."""
    code = "parent_category_archived"


# =============================================================================
# CURRENCY
# =============================================================================

class CurrencyMismatchError(LedgerError):
    """Currency must match account currency."""
    code = "currency_mismatch"


class CurrencyDriftError(LedgerError):
    """Account currency changed since the operation was planned."""
    code = "currency_drift"


class UnsupportedCurrencyError(LedgerError):
    """Currency is not supported."""
    code = "unsupported_currency"


# =============================================================================
# RECURRENCE / LIFECYCLE
# =============================================================================

class InvalidRecurrenceError(LedgerError):
    """Recurrence must be one of weekly, monthly, yearly or none."""
    code = "invalid_recurrence"


class RecurrenceLimitExceededError(LedgerError):
    """Due date catch-up did not converge."""
    code = "recurrence_limit_exceeded"


class AlreadyTerminalError(LedgerError):
    """Operation already completed."""
    code = "already_terminal"


# =============================================================================
# INPUT
# =============================================================================

class InvalidInputError(LedgerError):
    """Invalid payload."""
    code = "invalid_input"


class CategoryTypeMismatchError(LedgerError):
    """Category type mismatch."""
    code = "category_type_mismatch"


class CategoryCycleError(LedgerError):
    """Category parent chain would form a cycle."""
    code = "category_cycle"


# =============================================================================
# STORAGE
# =============================================================================

class StorageError(LedgerError):
    """Base exception for storage operations."""
    code = "storage_error"


class StorageTransientError(StorageError):
    """Storage is temporarily unavailable; the caller may retry."""
    code = "storage_transient"


class StorageFatalError(StorageError):
    """Storage failed in a way that retrying will not fix."""
    code = "storage_fatal"


class DuplicateError(StorageFatalError):
    """Attempted to insert a duplicate entity."""
    code = "duplicate"
