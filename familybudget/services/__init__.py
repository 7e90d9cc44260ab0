"""Services package."""

from familybudget.services.storage import (
    AuditStorageInterface,
    LedgerStorageInterface,
    MemoryAuditStorage,
    MemoryLedgerStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
    TransactionQuery,
)

__all__ = [
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "MemoryAuditStorage",
    "MemoryLedgerStorage",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteLedgerStorage",
    "TransactionQuery",
]
