"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
SQLite is the production backend; the in-memory backend serves tests and
throwaway sessions.
"""

from familybudget.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PlanAdvancer,
    StorageError,
    StorageFatalError,
    StorageTransientError,
    TransactionBuilder,
    TransactionQuery,
)
from familybudget.services.storage.memory import (
    MemoryAuditStorage,
    MemoryLedgerStorage,
)
from familybudget.services.storage.sqlite import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "PlanAdvancer",
    "TransactionBuilder",
    "TransactionQuery",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StorageFatalError",
    "StorageTransientError",
    # In-memory implementation
    "MemoryAuditStorage",
    "MemoryLedgerStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteLedgerStorage",
]
