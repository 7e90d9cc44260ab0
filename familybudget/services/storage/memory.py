"""
In-Memory Storage Implementation

Keeps the whole ledger in dictionaries. Used by the test suite and for
throwaway sessions; nothing survives the process.

Concurrency: one asyncio.Lock per account guards the balance
read-modify-write, and one per planned operation guards completion.
Locks are always taken plan first, then account. Postings against
different accounts never wait for each other.
"""

import asyncio
from typing import Optional
from uuid import UUID

from familybudget.errors import (
    AccountNotFoundError,
    AlreadyTerminalError,
    CategoryNotFoundError,
    DuplicateError,
    PlannedOperationNotFoundError,
)
from familybudget.models.audit import AuditEvent
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


class MemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage with per-account locking."""

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._categories: dict[str, Category] = {}
        self._transactions: dict[str, Transaction] = {}
        self._plans: dict[str, PlannedOperation] = {}
        self._account_locks: dict[str, asyncio.Lock] = {}
        self._plan_locks: dict[str, asyncio.Lock] = {}

    def _account_lock(self, account_id: str) -> asyncio.Lock:
        return self._account_locks.setdefault(account_id, asyncio.Lock())

    def _plan_lock(self, plan_id: str) -> asyncio.Lock:
        return self._plan_locks.setdefault(plan_id, asyncio.Lock())

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def create_account(self, account: Account) -> Account:
        if account.id in self._accounts:
            raise DuplicateError(f"Account already exists: {account.id}")
        self._accounts[account.id] = account.model_copy()
        return account.model_copy()

    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def list_accounts(self, family_id: str) -> list[Account]:
        accounts = [a for a in self._accounts.values() if a.family_id == family_id]
        accounts.sort(key=lambda a: (a.is_archived, a.name))
        return [a.model_copy() for a in accounts]

    async def update_account(self, account: Account) -> Account:
        async with self._account_lock(account.id):
            existing = self._accounts.get(account.id)
            if existing is None or existing.family_id != account.family_id:
                raise AccountNotFoundError()
            stored = account.model_copy(update={
                "balance_minor": existing.balance_minor,
                "created_at": existing.created_at,
                "updated_at": utcnow(),
            })
            self._accounts[account.id] = stored
            return stored.model_copy()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def create_category(self, category: Category) -> Category:
        if category.id in self._categories:
            raise DuplicateError(f"Category already exists: {category.id}")
        self._categories[category.id] = category.model_copy()
        return category.model_copy()

    async def get_category(self, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy() if category else None

    async def list_categories(self, family_id: str) -> list[Category]:
        categories = [c for c in self._categories.values() if c.family_id == family_id]
        categories.sort(key=lambda c: (c.is_archived, c.name))
        return [c.model_copy() for c in categories]

    async def update_category(self, category: Category) -> Category:
        existing = self._categories.get(category.id)
        if existing is None or existing.family_id != category.family_id:
            raise CategoryNotFoundError()
        stored = category.model_copy(update={
            "created_at": existing.created_at,
            "updated_at": utcnow(),
        })
        self._categories[category.id] = stored
        return stored.model_copy()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _prepare_posting(self, transaction: Transaction) -> Account:
        """
        Check a posting and return the account as it will be afterwards.

        The account and the category must both be active and in the
        transaction's family.

        Caller must hold the account lock. Nothing is written here.
        """
        account = ensure_postable_account(
            self._accounts.get(transaction.account_id),
            transaction.family_id,
        )
        ensure_not_archived(ensure_same_family(
            self._categories.get(transaction.category_id),
            transaction.family_id,
            CategoryNotFoundError,
        ))
        ensure_currency_matches(transaction.currency, account.currency)
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        return account.model_copy(update={
            "balance_minor": account.balance_minor + transaction.signed_amount,
            "updated_at": utcnow(),
        })

    def _commit_posting(self, transaction: Transaction, account: Account) -> None:
        self._accounts[account.id] = account
        self._transactions[transaction.id] = transaction

    async def post_transaction(self, transaction: Transaction) -> Account:
        async with self._account_lock(transaction.account_id):
            updated = self._prepare_posting(transaction)
            self._commit_posting(transaction, updated)
            return updated.model_copy()

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def list_transactions(
        self,
        family_id: str,
        query: Optional[TransactionQuery] = None,
    ) -> list[Transaction]:
        query = query or TransactionQuery()
        txns = [
            t for t in self._transactions.values()
            if t.family_id == family_id and query.matches(t)
        ]
        txns.sort(key=lambda t: (t.occurred_at, t.created_at), reverse=True)
        if query.limit:
            txns = txns[:query.limit]
        return txns

    # ------------------------------------------------------------------
    # Planned operations
    # ------------------------------------------------------------------

    async def create_planned_operation(self, plan: PlannedOperation) -> PlannedOperation:
        async with self._account_lock(plan.account_id):
            ensure_postable_account(self._accounts.get(plan.account_id), plan.family_id)
            if plan.id in self._plans:
                raise DuplicateError(f"Planned operation already exists: {plan.id}")
            self._plans[plan.id] = plan.model_copy()
            return plan.model_copy()

    async def get_planned_operation(self, plan_id: str) -> Optional[PlannedOperation]:
        plan = self._plans.get(plan_id)
        return plan.model_copy() if plan else None

    async def list_planned_operations(
        self,
        family_id: str,
        completed: bool,
    ) -> list[PlannedOperation]:
        plans = [
            p for p in self._plans.values()
            if p.family_id == family_id and p.is_completed == completed
        ]
        if completed:
            plans.sort(key=lambda p: p.last_completed_at or p.updated_at, reverse=True)
        else:
            plans.sort(key=lambda p: p.due_at)
        return [p.model_copy() for p in plans]

    async def complete_planned_operation(
        self,
        plan_id: str,
        family_id: str,
        build_transaction: TransactionBuilder,
        advance_plan: PlanAdvancer,
    ) -> tuple[PlannedOperation, Transaction, Account]:
        async with self._plan_lock(plan_id):
            plan = self._plans.get(plan_id)
            if plan is None or plan.family_id != family_id:
                raise PlannedOperationNotFoundError()
            if plan.is_terminal:
                raise AlreadyTerminalError()

            transaction = build_transaction(plan.model_copy())
            async with self._account_lock(transaction.account_id):
                account = self._prepare_posting(transaction)
                updated_plan = advance_plan(plan.model_copy(), transaction)
                # Every check and callback has run; commit all three together.
                self._commit_posting(transaction, account)
                self._plans[plan_id] = updated_plan.model_copy()
                return updated_plan, transaction, account.model_copy()


class MemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
