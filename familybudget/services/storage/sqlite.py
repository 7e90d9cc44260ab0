"""
SQLite Storage Implementation

DESIGN DECISION: SQLite (through aiosqlite) is the production backend because:
1. It gives us real transactions, so a posting and its balance delta
   commit together or not at all
2. No database server to run for a single household
3. WAL mode lets readers proceed while one writer holds the lock

Every unit of work opens its own connection and starts with
BEGIN IMMEDIATE, which takes the write lock up front. Two postings that
race for the same account are therefore serialized by SQLite itself; the
balance is changed with a relative UPDATE, never by writing back a value
read earlier.

Timestamps are stored as fixed-width UTC text, so string order is
chronological order.

LIMITATION: `path` must name a file. ":memory:" gives every connection
its own empty database.
"""

import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional
from uuid import UUID

import aiosqlite
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from familybudget.config import get_settings
from familybudget.errors import (
    AccountNotFoundError,
    AlreadyTerminalError,
    CategoryNotFoundError,
    DuplicateError,
    PlannedOperationNotFoundError,
    StorageError,
    StorageFatalError,
    StorageTransientError,
)
from familybudget.models.audit import AuditEvent, AuditEventType, AuditSeverity
from familybudget.models.ledger import (
    Account,
    Category,
    PlannedOperation,
    Transaction,
    utcnow,
)
from familybudget.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    PlanAdvancer,
    TransactionBuilder,
    TransactionQuery,
)
from familybudget.validation.guards import (
    ensure_currency_matches,
    ensure_not_archived,
    ensure_postable_account,
    ensure_same_family,
)

logger = structlog.get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    currency TEXT NOT NULL,
    balance_minor INTEGER NOT NULL DEFAULT 0,
    is_shared INTEGER NOT NULL DEFAULT 1,
    is_archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_accounts_family ON accounts(family_id);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL,
    parent_id TEXT REFERENCES categories(id),
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    color TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    is_system INTEGER NOT NULL DEFAULT 0,
    is_archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_categories_family ON categories(family_id);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    account_id TEXT NOT NULL REFERENCES accounts(id),
    category_id TEXT NOT NULL REFERENCES categories(id),
    type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
    currency TEXT NOT NULL,
    comment TEXT NOT NULL DEFAULT '',
    occurred_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transactions_family_occurred
    ON transactions(family_id, occurred_at);
CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id);

CREATE TABLE IF NOT EXISTS planned_operations (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    account_id TEXT NOT NULL REFERENCES accounts(id),
    category_id TEXT NOT NULL REFERENCES categories(id),
    type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    title TEXT NOT NULL,
    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
    currency TEXT NOT NULL,
    comment TEXT NOT NULL DEFAULT '',
    due_at TEXT NOT NULL,
    recurrence TEXT NOT NULL DEFAULT 'none',
    is_completed INTEGER NOT NULL DEFAULT 0,
    last_completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_planned_family_due
    ON planned_operations(family_id, is_completed, due_at);

CREATE TABLE IF NOT EXISTS audit_events (
    event_id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    entity_type TEXT,
    entity_id TEXT,
    family_id TEXT,
    user_id TEXT,
    correlation_id TEXT,
    description TEXT NOT NULL,
    details_json TEXT,
    error_code TEXT,
    error_message TEXT,
    is_user_action INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_audit_correlation ON audit_events(correlation_id);
CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_events(entity_type, entity_id);
"""


def _to_db_ts(value: datetime) -> str:
    # Four-digit year and fixed microseconds at every instant, so text order
    # stays chronological.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def translate_error(error: sqlite3.Error) -> StorageError:
    """Map a driver error onto the ledger's storage error taxonomy."""
    message = str(error)
    if isinstance(error, sqlite3.IntegrityError):
        if "UNIQUE" in message or "PRIMARY KEY" in message:
            return DuplicateError(message)
        return StorageFatalError(message)
    if isinstance(error, sqlite3.OperationalError):
        lowered = message.lower()
        if "locked" in lowered or "busy" in lowered:
            return StorageTransientError(message)
    return StorageFatalError(message)


class SQLiteDatabase:
    """
    Wrapper for the ledger's SQLite file.

    Handles:
    - WAL mode and busy timeout
    - Reads retried on transient lock errors
    - Row factory for dict-like access
    - Units of work with rollback on any exception, cancellation included
    """

    def __init__(
        self,
        path: str,
        busy_timeout_ms: int = 5000,
        journal_mode: str = "WAL",
        retry_attempts: int = 3,
        retry_max_wait_seconds: float = 2.0,
    ):
        self.path = path
        self.busy_timeout_ms = busy_timeout_ms
        self.journal_mode = journal_mode
        self.retry_attempts = retry_attempts
        self.retry_max_wait_seconds = retry_max_wait_seconds

    @classmethod
    def from_settings(cls) -> "SQLiteDatabase":
        settings = get_settings()
        database = settings.database
        ledger = settings.ledger
        return cls(
            path=database.path,
            busy_timeout_ms=database.busy_timeout_ms,
            journal_mode=database.journal_mode,
            retry_attempts=ledger.storage_retry_attempts,
            retry_max_wait_seconds=ledger.storage_retry_max_wait_seconds,
        )

    async def initialize(self) -> None:
        """Create the file, switch journal mode and apply the schema."""
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        async with self.connect() as conn:
            try:
                await conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
                await conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise translate_error(e) from e
        logger.debug("database_initialized", path=self.path, journal_mode=self.journal_mode)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a configured autocommit connection and close it afterwards."""
        try:
            conn = await aiosqlite.connect(self.path, isolation_level=None)
        except sqlite3.Error as e:
            raise translate_error(e) from e
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            await conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Transaction context manager.

        Usage:
            async with db.unit_of_work() as conn:
                await conn.execute("UPDATE ...")
                await conn.execute("INSERT ...")
                # Commits on success, rolls back on exception

        Driver errors leave as StorageError subclasses.
        """
        async with self.connect() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise translate_error(e) from e
            try:
                yield conn
                await conn.execute("COMMIT")
            except BaseException as e:
                await self._rollback(conn)
                if isinstance(e, sqlite3.Error):
                    raise translate_error(e) from e
                raise

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # Closing the connection discards the transaction anyway.
            logger.warning("rollback_failed", path=self.path, error=str(e))

    def _read_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(StorageTransientError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=self.retry_max_wait_seconds),
            reraise=True,
        )

    async def fetchone(self, sql: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        """Execute and fetch one row."""
        async for attempt in self._read_retrying():
            with attempt:
                async with self.connect() as conn:
                    try:
                        cursor = await conn.execute(sql, params)
                        return await cursor.fetchone()
                    except sqlite3.Error as e:
                        raise translate_error(e) from e

    async def fetchall(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        """Execute and fetch all rows."""
        async for attempt in self._read_retrying():
            with attempt:
                async with self.connect() as conn:
                    try:
                        cursor = await conn.execute(sql, params)
                        return list(await cursor.fetchall())
                    except sqlite3.Error as e:
                        raise translate_error(e) from e


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _row_to_account(row) -> Account:
    return Account(
        id=row["id"],
        family_id=row["family_id"],
        name=row["name"],
        type=row["type"],
        currency=row["currency"],
        balance_minor=row["balance_minor"],
        is_shared=bool(row["is_shared"]),
        is_archived=bool(row["is_archived"]),
        created_at=_from_db_ts(row["created_at"]),
        updated_at=_from_db_ts(row["updated_at"]),
    )


def _row_to_category(row) -> Category:
    return Category(
        id=row["id"],
        family_id=row["family_id"],
        parent_id=row["parent_id"],
        name=row["name"],
        type=row["type"],
        color=row["color"],
        description=row["description"],
        is_system=bool(row["is_system"]),
        is_archived=bool(row["is_archived"]),
        created_at=_from_db_ts(row["created_at"]),
        updated_at=_from_db_ts(row["updated_at"]),
    )


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        family_id=row["family_id"],
        user_id=row["user_id"],
        account_id=row["account_id"],
        category_id=row["category_id"],
        type=row["type"],
        amount_minor=row["amount_minor"],
        currency=row["currency"],
        comment=row["comment"],
        occurred_at=_from_db_ts(row["occurred_at"]),
        created_at=_from_db_ts(row["created_at"]),
    )


def _row_to_plan(row) -> PlannedOperation:
    return PlannedOperation(
        id=row["id"],
        family_id=row["family_id"],
        user_id=row["user_id"],
        account_id=row["account_id"],
        category_id=row["category_id"],
        type=row["type"],
        title=row["title"],
        amount_minor=row["amount_minor"],
        currency=row["currency"],
        comment=row["comment"],
        due_at=_from_db_ts(row["due_at"]),
        recurrence=row["recurrence"],
        is_completed=bool(row["is_completed"]),
        last_completed_at=_from_db_ts(row["last_completed_at"]),
        created_at=_from_db_ts(row["created_at"]),
        updated_at=_from_db_ts(row["updated_at"]),
    )


class SQLiteLedgerStorage(LedgerStorageInterface):
    """
    SQLite implementation of ledger storage.

    One row per entity; reads use short-lived autocommit connections,
    writes go through SQLiteDatabase.unit_of_work().
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase.from_settings()

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    async def initialize(self) -> None:
        await self._db.initialize()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def create_account(self, account: Account) -> Account:
        async with self._db.unit_of_work() as conn:
            await conn.execute(
                """
                INSERT INTO accounts (id, family_id, name, type, currency, balance_minor,
                                      is_shared, is_archived, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    account.id,
                    account.family_id,
                    account.name,
                    account.type.value,
                    account.currency,
                    account.balance_minor,
                    int(account.is_shared),
                    int(account.is_archived),
                    _to_db_ts(account.created_at),
                    _to_db_ts(account.updated_at),
                ),
            )
        return account

    async def get_account(self, account_id: str) -> Optional[Account]:
        row = await self._db.fetchone("SELECT * FROM accounts WHERE id = ?", (account_id,))
        return _row_to_account(row) if row else None

    async def list_accounts(self, family_id: str) -> list[Account]:
        rows = await self._db.fetchall(
            "SELECT * FROM accounts WHERE family_id = ? ORDER BY is_archived, name",
            (family_id,),
        )
        return [_row_to_account(row) for row in rows]

    async def update_account(self, account: Account) -> Account:
        async with self._db.unit_of_work() as conn:
            cursor = await conn.execute(
                """
                UPDATE accounts
                   SET name = ?, type = ?, currency = ?, is_shared = ?,
                       is_archived = ?, updated_at = ?
                 WHERE id = ? AND family_id = ?
                """,
                (
                    account.name,
                    account.type.value,
                    account.currency,
                    int(account.is_shared),
                    int(account.is_archived),
                    _to_db_ts(utcnow()),
                    account.id,
                    account.family_id,
                ),
            )
            if cursor.rowcount == 0:
                raise AccountNotFoundError()
            return await self._read_account(conn, account.id)

    async def _read_account(self, conn: aiosqlite.Connection, account_id: str) -> Optional[Account]:
        cursor = await conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
        row = await cursor.fetchone()
        return _row_to_account(row) if row else None

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def create_category(self, category: Category) -> Category:
        async with self._db.unit_of_work() as conn:
            await conn.execute(
                """
                INSERT INTO categories (id, family_id, parent_id, name, type, color,
                                        description, is_system, is_archived,
                                        created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    category.id,
                    category.family_id,
                    category.parent_id,
                    category.name,
                    category.type.value,
                    category.color,
                    category.description,
                    int(category.is_system),
                    int(category.is_archived),
                    _to_db_ts(category.created_at),
                    _to_db_ts(category.updated_at),
                ),
            )
        return category

    async def get_category(self, category_id: str) -> Optional[Category]:
        row = await self._db.fetchone("SELECT * FROM categories WHERE id = ?", (category_id,))
        return _row_to_category(row) if row else None

    async def list_categories(self, family_id: str) -> list[Category]:
        rows = await self._db.fetchall(
            "SELECT * FROM categories WHERE family_id = ? ORDER BY is_archived, name",
            (family_id,),
        )
        return [_row_to_category(row) for row in rows]

    async def update_category(self, category: Category) -> Category:
        async with self._db.unit_of_work() as conn:
            cursor = await conn.execute(
                """
                UPDATE categories
                   SET parent_id = ?, name = ?, type = ?, color = ?, description = ?,
                       is_system = ?, is_archived = ?, updated_at = ?
                 WHERE id = ? AND family_id = ?
                """,
                (
                    category.parent_id,
                    category.name,
                    category.type.value,
                    category.color,
                    category.description,
                    int(category.is_system),
                    int(category.is_archived),
                    _to_db_ts(utcnow()),
                    category.id,
                    category.family_id,
                ),
            )
            if cursor.rowcount == 0:
                raise CategoryNotFoundError()
            cursor = await conn.execute("SELECT * FROM categories WHERE id = ?", (category.id,))
            return _row_to_category(await cursor.fetchone())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _post_within(self, conn: aiosqlite.Connection, transaction: Transaction) -> Account:
        """Re-check account and category, then apply one posting inside an open unit of work."""
        account = ensure_postable_account(
            await self._read_account(conn, transaction.account_id),
            transaction.family_id,
        )
        cursor = await conn.execute(
            "SELECT * FROM categories WHERE id = ?", (transaction.category_id,)
        )
        row = await cursor.fetchone()
        ensure_not_archived(ensure_same_family(
            _row_to_category(row) if row else None,
            transaction.family_id,
            CategoryNotFoundError,
        ))
        ensure_currency_matches(transaction.currency, account.currency)

        await conn.execute(
            """
            UPDATE accounts
               SET balance_minor = balance_minor + ?, updated_at = ?
             WHERE id = ?
            """,
            (transaction.signed_amount, _to_db_ts(utcnow()), account.id),
        )
        await conn.execute(
            """
            INSERT INTO transactions (id, family_id, user_id, account_id, category_id, type,
                                      amount_minor, currency, comment, occurred_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                transaction.id,
                transaction.family_id,
                transaction.user_id,
                transaction.account_id,
                transaction.category_id,
                transaction.type.value,
                transaction.amount_minor,
                transaction.currency,
                transaction.comment,
                _to_db_ts(transaction.occurred_at),
                _to_db_ts(transaction.created_at),
            ),
        )
        return await self._read_account(conn, account.id)

    async def post_transaction(self, transaction: Transaction) -> Account:
        async with self._db.unit_of_work() as conn:
            account = await self._post_within(conn, transaction)
        logger.debug(
            "transaction_committed",
            transaction_id=transaction.id,
            account_id=account.id,
            balance_minor=account.balance_minor,
        )
        return account

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        row = await self._db.fetchone(
            "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
        )
        return _row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        family_id: str,
        query: Optional[TransactionQuery] = None,
    ) -> list[Transaction]:
        query = query or TransactionQuery()
        clauses = ["family_id = ?"]
        params: list = [family_id]

        if query.start:
            clauses.append("occurred_at >= ?")
            params.append(_to_db_ts(query.start))
        if query.end:
            clauses.append("occurred_at <= ?")
            params.append(_to_db_ts(query.end))
        if query.type:
            clauses.append("type = ?")
            params.append(query.type.value)
        if query.category_id:
            clauses.append("category_id = ?")
            params.append(query.category_id)
        if query.account_id:
            clauses.append("account_id = ?")
            params.append(query.account_id)
        if query.user_id:
            clauses.append("user_id = ?")
            params.append(query.user_id)

        sql = (
            "SELECT * FROM transactions WHERE "
            + " AND ".join(clauses)
            + " ORDER BY occurred_at DESC, created_at DESC"
        )
        if query.limit:
            sql += " LIMIT ?"
            params.append(query.limit)

        rows = await self._db.fetchall(sql, tuple(params))
        return [_row_to_transaction(row) for row in rows]

    # ------------------------------------------------------------------
    # Planned operations
    # ------------------------------------------------------------------

    async def create_planned_operation(self, plan: PlannedOperation) -> PlannedOperation:
        async with self._db.unit_of_work() as conn:
            ensure_postable_account(
                await self._read_account(conn, plan.account_id),
                plan.family_id,
            )
            await conn.execute(
                """
                INSERT INTO planned_operations (id, family_id, user_id, account_id, category_id,
                                                type, title, amount_minor, currency, comment,
                                                due_at, recurrence, is_completed,
                                                last_completed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    plan.id,
                    plan.family_id,
                    plan.user_id,
                    plan.account_id,
                    plan.category_id,
                    plan.type.value,
                    plan.title,
                    plan.amount_minor,
                    plan.currency,
                    plan.comment,
                    _to_db_ts(plan.due_at),
                    plan.recurrence.value,
                    int(plan.is_completed),
                    _to_db_ts(plan.last_completed_at) if plan.last_completed_at else None,
                    _to_db_ts(plan.created_at),
                    _to_db_ts(plan.updated_at),
                ),
            )
        return plan

    async def get_planned_operation(self, plan_id: str) -> Optional[PlannedOperation]:
        row = await self._db.fetchone(
            "SELECT * FROM planned_operations WHERE id = ?", (plan_id,)
        )
        return _row_to_plan(row) if row else None

    async def list_planned_operations(
        self,
        family_id: str,
        completed: bool,
    ) -> list[PlannedOperation]:
        if completed:
            order = "COALESCE(last_completed_at, updated_at) DESC"
        else:
            order = "due_at ASC"
        rows = await self._db.fetchall(
            f"SELECT * FROM planned_operations WHERE family_id = ? AND is_completed = ? "
            f"ORDER BY {order}",
            (family_id, int(completed)),
        )
        return [_row_to_plan(row) for row in rows]

    async def complete_planned_operation(
        self,
        plan_id: str,
        family_id: str,
        build_transaction: TransactionBuilder,
        advance_plan: PlanAdvancer,
    ) -> tuple[PlannedOperation, Transaction, Account]:
        async with self._db.unit_of_work() as conn:
            cursor = await conn.execute(
                "SELECT * FROM planned_operations WHERE id = ?", (plan_id,)
            )
            row = await cursor.fetchone()
            plan = _row_to_plan(row) if row else None
            if plan is None or plan.family_id != family_id:
                raise PlannedOperationNotFoundError()
            if plan.is_terminal:
                raise AlreadyTerminalError()

            transaction = build_transaction(plan)
            account = await self._post_within(conn, transaction)
            updated = advance_plan(plan, transaction)

            await conn.execute(
                """
                UPDATE planned_operations
                   SET due_at = ?, is_completed = ?, last_completed_at = ?, updated_at = ?
                 WHERE id = ?
                """,
                (
                    _to_db_ts(updated.due_at),
                    int(updated.is_completed),
                    _to_db_ts(updated.last_completed_at) if updated.last_completed_at else None,
                    _to_db_ts(updated.updated_at),
                    plan_id,
                ),
            )
        return updated, transaction, account


class SQLiteAuditStorage(AuditStorageInterface):
    """
    SQLite implementation of audit log storage.

    Audit events are append-only and live in the same file as the ledger,
    but are written outside the ledger's units of work.
    """

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase.from_settings()

    def _row_to_event(self, row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row["event_id"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            event_type=AuditEventType(row["event_type"]),
            severity=AuditSeverity(row["severity"]),
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            family_id=row["family_id"],
            user_id=row["user_id"],
            correlation_id=UUID(row["correlation_id"]) if row["correlation_id"] else None,
            description=row["description"],
            details=json.loads(row["details_json"]) if row["details_json"] else {},
            error_code=row["error_code"],
            error_message=row["error_message"],
            is_user_action=bool(row["is_user_action"]),
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            async with self._db.connect() as conn:
                await conn.execute(
                    """
                    INSERT INTO audit_events (event_id, timestamp, event_type, severity,
                                              entity_type, entity_id, family_id, user_id,
                                              correlation_id, description, details_json,
                                              error_code, error_message, is_user_action)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    event.to_row(),
                )
            return True
        except (sqlite3.Error, StorageError) as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        rows = await self._db.fetchall(
            "SELECT * FROM audit_events WHERE correlation_id = ? ORDER BY rowid",
            (str(correlation_id),),
        )
        events = [self._row_to_event(row) for row in rows]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        rows = await self._db.fetchall(
            "SELECT * FROM audit_events WHERE entity_type = ? AND entity_id = ? ORDER BY rowid",
            (entity_type, entity_id),
        )
        events = [self._row_to_event(row) for row in rows]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        rows = await self._db.fetchall(
            "SELECT * FROM audit_events ORDER BY rowid DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_event(row) for row in rows]
