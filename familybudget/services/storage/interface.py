"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Run the ledger on SQLite in production
2. Use in-memory storage for fast tests
3. Keep business rules decoupled from the storage implementation

The interface is intentionally narrow - we're not building a full ORM.

CRITICAL: the two money-moving operations, post_transaction and
complete_planned_operation, are each ONE unit of work. An implementation
must re-check the account inside that unit and either commit every write
or none of them. Balances are changed only there.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from familybudget.errors import (
    DuplicateError,
    NotFoundError,
    StorageError,
    StorageFatalError,
    StorageTransientError,
)
from familybudget.models.audit import AuditEvent
from familybudget.models.ledger import (
    Account,
    Category,
    PlannedOperation,
    Transaction,
    TransactionType,
)

# Builds the transaction for a completion from the plan as re-read inside
# the unit of work.
TransactionBuilder = Callable[[PlannedOperation], Transaction]

# Computes the updated plan once its transaction has been posted.
PlanAdvancer = Callable[[PlannedOperation, Transaction], PlannedOperation]


class TransactionQuery:
    """Storage-level filter for listing transactions."""

    def __init__(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        type: Optional[TransactionType] = None,
        category_id: Optional[str] = None,
        account_id: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ):
        self.start = start
        self.end = end
        self.type = type
        self.category_id = category_id
        self.account_id = account_id
        self.user_id = user_id
        self.limit = limit

    def matches(self, txn: Transaction) -> bool:
        if self.start and txn.occurred_at < self.start:
            return False
        if self.end and txn.occurred_at > self.end:
            return False
        if self.type and txn.type != self.type:
            return False
        if self.category_id and txn.category_id != self.category_id:
            return False
        if self.account_id and txn.account_id != self.account_id:
            return False
        if self.user_id and txn.user_id != self.user_id:
            return False
        return True


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (SQLite, in-memory, PostgreSQL, ...)
    must implement these methods.
    """

    async def initialize(self) -> None:
        """Prepare the backend (create schema, open pools)."""

    async def close(self) -> None:
        """Release backend resources."""

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Insert a new account, including its opening balance.

        Raises:
            DuplicateError: if the id already exists
        """

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Return the account or None."""

    @abstractmethod
    async def list_accounts(self, family_id: str) -> list[Account]:
        """Accounts of a family, active first, then by name."""

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """
        Persist name, type, currency, shared and archived flags.

        The stored balance is left as it is, whatever `account` carries.

        Raises:
            AccountNotFoundError: if no such account exists in that family
        """

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_category(self, category: Category) -> Category:
        """Insert a new category."""

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        """Return the category or None."""

    @abstractmethod
    async def list_categories(self, family_id: str) -> list[Category]:
        """Categories of a family, active first, then by name."""

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        """
        Persist every editable field of a category.

        Raises:
            CategoryNotFoundError: if no such category exists in that family
        """

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    async def post_transaction(self, transaction: Transaction) -> Account:
        """
        Atomically apply the balance delta and insert the transaction.

        Inside one unit of work:
        1. Re-read the account's and the category's family and archived flag
        2. Apply +amount (income) or -amount (expense) to the balance
        3. Insert the immutable transaction row

        Returns:
            The account as updated by this posting

        Raises:
            AccountNotFoundError: no account, or it belongs to another family
            AccountArchivedError: the account is archived
            CategoryNotFoundError: no category, or it belongs to another family
            CategoryArchivedError: the category is archived
            CurrencyMismatchError: transaction currency differs from the account's
            DuplicateError: the transaction id already exists
            StorageTransientError: retryable backend failure (nothing written)
        """

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Return the transaction or None."""

    @abstractmethod
    async def list_transactions(
        self,
        family_id: str,
        query: Optional[TransactionQuery] = None,
    ) -> list[Transaction]:
        """Transactions of a family, newest occurred_at first."""

    # ------------------------------------------------------------------
    # Planned operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_planned_operation(self, plan: PlannedOperation) -> PlannedOperation:
        """
        Insert a plan after re-checking its account inside the write.

        Raises:
            AccountNotFoundError: no account, or it belongs to another family
            AccountArchivedError: the account is archived
        """

    @abstractmethod
    async def get_planned_operation(self, plan_id: str) -> Optional[PlannedOperation]:
        """Return the plan or None."""

    @abstractmethod
    async def list_planned_operations(
        self,
        family_id: str,
        completed: bool,
    ) -> list[PlannedOperation]:
        """
        Pending plans by due_at ascending, or completed plans by
        last_completed_at descending.
        """

    @abstractmethod
    async def complete_planned_operation(
        self,
        plan_id: str,
        family_id: str,
        build_transaction: TransactionBuilder,
        advance_plan: PlanAdvancer,
    ) -> tuple[PlannedOperation, Transaction, Account]:
        """
        Complete a plan in ONE unit of work.

        Re-reads the plan, builds its transaction, posts it with the same
        account and category checks as post_transaction, computes the
        updated plan and persists it. Either all of it commits or none
        of it does.

        Raises:
            PlannedOperationNotFoundError: no plan, or another family's
            AlreadyTerminalError: one-off plan already completed
            plus everything post_transaction raises, and whatever the two
            callbacks raise
        """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one request, in chronological order."""

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """All events for a specific entity, in chronological order."""

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""


__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "LedgerStorageInterface",
    "NotFoundError",
    "PlanAdvancer",
    "StorageError",
    "StorageFatalError",
    "StorageTransientError",
    "TransactionBuilder",
    "TransactionQuery",
]
