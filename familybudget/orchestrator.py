"""
Main Orchestrator for Family Budget

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (validate → atomic posting → audit)
2. Planned operations (create, list, complete with recurrence advance)
3. Accounts and categories (record management, never balance edits)
4. Family bootstrap (default categories and accounts)
5. Reports (per-currency aggregation)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every cross-reference is checked against the acting family first
- Balances move only through the storage layer's atomic posting
- Every mutation and every refusal is audited

The caller resolves who is acting; the resulting Identity is passed to
every flow method explicitly.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar, Union
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from familybudget.audit import AuditLogger, configure_logging, create_correlation_id
from familybudget.config import LedgerSettings, get_settings
from familybudget.errors import (
    AccountNotFoundError,
    AlreadyTerminalError,
    CategoryCycleError,
    CategoryNotFoundError,
    CurrencyDriftError,
    CurrencyMismatchError,
    LedgerError,
    PlannedOperationNotFoundError,
    StorageTransientError,
)
from familybudget.models.audit import AuditEventType
from familybudget.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryType,
    Identity,
    PlannedOperation,
    Transaction,
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
    CompletionResult,
    PlannedOperationListing,
    PostedTransaction,
    ReportsOverview,
)
from familybudget.recurrence import next_due_after_completion, normalize_recurrence
from familybudget.reports import ReportBuilder
from familybudget.services.storage import (
    LedgerStorageInterface,
    MemoryAuditStorage,
    MemoryLedgerStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
    TransactionQuery,
)
from familybudget.validation import (
    ensure_category_type_matches,
    ensure_no_category_cycle,
    ensure_no_currency_drift,
    ensure_not_archived,
    ensure_ordered_window,
    ensure_parent_category_valid,
    ensure_postable_account,
    ensure_same_family,
    ensure_supported_currency,
    normalize_account_type,
    normalize_category_type,
    normalize_hex_color,
    parse_optional_timestamp,
    parse_timestamp,
    resolve_currency,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Seeded for a family that has no categories yet.
DEFAULT_CATEGORIES = [
    {
        "name": "Household income",
        "type": CategoryType.INCOME,
        "color": "#22c55e",
        "description": "Regular income (salaries, grants)",
    },
    {
        "name": "Extra income",
        "type": CategoryType.INCOME,
        "color": "#16a34a",
        "description": "Side jobs, gifts, repaid debts",
    },
    {
        "name": "Groceries",
        "type": CategoryType.EXPENSE,
        "color": "#ef4444",
        "description": "Everyday food spending",
    },
    {
        "name": "Transport",
        "type": CategoryType.EXPENSE,
        "color": "#f97316",
        "description": "Passes, taxis, car upkeep",
    },
    {
        "name": "Leisure and family activities",
        "type": CategoryType.EXPENSE,
        "color": "#6366f1",
        "description": "Entertainment, travel, events",
    },
]

# Seeded for a family that has no accounts yet.
DEFAULT_ACCOUNTS = [
    ("Cash", AccountType.CASH),
    ("Main card", AccountType.CARD),
]


class LedgerFlow:
    """
    Shared plumbing for the ledger flows.

    Holds the storage backend, the audit logger and the ledger settings,
    and runs storage writes under the transient-error retry policy.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    def _retrying(self, operation: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "storage_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        return AsyncRetrying(
            retry=retry_if_exception_type(StorageTransientError),
            stop=stop_after_attempt(self._settings.storage_retry_attempts),
            wait=wait_exponential(
                multiplier=0.05,
                max=self._settings.storage_retry_max_wait_seconds,
            ),
            before_sleep=log_retry,
            reraise=True,
        )

    async def _write(
        self,
        operation: str,
        action: Callable[[], Awaitable[T]],
        correlation_id: Optional[UUID] = None,
    ) -> T:
        """
        Run a storage write, retrying transient failures.

        `action` is called afresh on every attempt, so anything it
        generates (ids in particular) is new each time.
        """
        last_error: Optional[StorageTransientError] = None
        async for attempt in self._retrying(operation):
            with attempt:
                if last_error is not None:
                    await self._audit_logger.log_storage_retry(
                        operation=operation,
                        attempt=attempt.retry_state.attempt_number,
                        error_message=str(last_error),
                        correlation_id=correlation_id,
                    )
                try:
                    return await action()
                except StorageTransientError as e:
                    last_error = e
                    raise

    async def _log_unexpected(
        self,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Audit a failure outside the ledger taxonomy. The caller re-raises."""
        await self._audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
            correlation_id=correlation_id,
        )

    async def _require_account(self, identity: Identity, account_id: str) -> Account:
        return ensure_same_family(
            await self._storage.get_account(account_id),
            identity.family_id,
            AccountNotFoundError,
        )

    async def _require_category(self, identity: Identity, category_id: str) -> Category:
        return ensure_same_family(
            await self._storage.get_category(category_id),
            identity.family_id,
            CategoryNotFoundError,
        )


class TransactionFlow(LedgerFlow):
    """
    Orchestrates transaction posting and listing.

    Flow:
    1. Parse → occurred_at into UTC
    2. Check → category and account in the family, not archived
    3. Currency → default to the account's, otherwise must match it
    4. Post → atomic balance delta + immutable row (retried on transient errors)
    5. Audit

    Every check runs before storage is touched.
    """

    async def create(
        self,
        identity: Identity,
        request: TransactionRequest,
        correlation_id: Optional[UUID] = None,
    ) -> PostedTransaction:
        correlation_id = correlation_id or create_correlation_id()

        try:
            occurred_at = parse_timestamp(request.occurred_at, "occurred_at")

            category = await self._require_category(identity, request.category_id)
            ensure_not_archived(category)

            account = ensure_postable_account(
                await self._storage.get_account(request.account_id),
                identity.family_id,
            )
            currency = resolve_currency(request.currency, account)

            async def post() -> tuple[Transaction, Account]:
                transaction = Transaction(
                    id=new_id(),
                    family_id=identity.family_id,
                    user_id=identity.user_id,
                    account_id=account.id,
                    category_id=category.id,
                    type=request.type,
                    amount_minor=request.amount_minor,
                    currency=currency,
                    comment=request.comment,
                    occurred_at=occurred_at,
                )
                return transaction, await self._storage.post_transaction(transaction)

            transaction, updated = await self._write("post_transaction", post, correlation_id)

        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.TRANSACTION_REJECTED,
                e,
                identity=identity,
                entity_type="account",
                entity_id=request.account_id,
                details={
                    "category_id": request.category_id,
                    "type": request.type.value,
                    "amount_minor": request.amount_minor,
                },
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("post_transaction", e, correlation_id)
            raise

        await self._audit_logger.log_transaction_posted(transaction, updated, correlation_id)
        return PostedTransaction(transaction=transaction, account=updated)

    async def list(
        self,
        identity: Identity,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        """List the family's transactions, newest first."""
        filters = filters or TransactionFilters()

        start = parse_optional_timestamp(filters.start, "start_date")
        end = parse_optional_timestamp(filters.end, "end_date")
        ensure_ordered_window(start, end)

        if filters.category_id:
            await self._require_category(identity, filters.category_id)
        if filters.account_id:
            await self._require_account(identity, filters.account_id)

        return await self._storage.list_transactions(
            identity.family_id,
            TransactionQuery(
                start=start,
                end=end,
                type=filters.type,
                category_id=filters.category_id,
                account_id=filters.account_id,
                user_id=filters.user_id,
                limit=filters.limit,
            ),
        )


class PlannedOperationFlow(LedgerFlow):
    """
    Orchestrates the planned operation lifecycle.

    Lifecycle:
    - create → pending
    - complete → posts one transaction; one-off plans become terminal,
      recurring plans move due_at past the completion instant
    - completing a terminal plan is refused

    A completion is ONE storage unit of work: the transaction, the balance
    delta and the updated plan commit together or not at all.
    """

    async def create(
        self,
        identity: Identity,
        request: PlannedOperationRequest,
        correlation_id: Optional[UUID] = None,
    ) -> PlannedOperation:
        correlation_id = correlation_id or create_correlation_id()

        try:
            recurrence = normalize_recurrence(request.recurrence)
            due_at = parse_timestamp(request.due_at, "due_at")

            account = ensure_postable_account(
                await self._storage.get_account(request.account_id),
                identity.family_id,
            )
            category = await self._require_category(identity, request.category_id)
            ensure_not_archived(category)
            ensure_category_type_matches(category, request.type)
            currency = resolve_currency(request.currency, account)

            plan = PlannedOperation(
                family_id=identity.family_id,
                user_id=identity.user_id,
                account_id=account.id,
                category_id=category.id,
                type=request.type,
                title=request.title,
                amount_minor=request.amount_minor,
                currency=currency,
                comment=request.comment,
                due_at=due_at,
                recurrence=recurrence,
            )
            stored = await self._write(
                "create_planned_operation",
                lambda: self._storage.create_planned_operation(plan),
                correlation_id,
            )

        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.PLANNED_OPERATION_REJECTED,
                e,
                identity=identity,
                entity_type="account",
                entity_id=request.account_id,
                details={"title": request.title},
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("create_planned_operation", e, correlation_id)
            raise

        await self._audit_logger.log_planned_operation_created(stored, correlation_id)
        return stored

    async def list(self, identity: Identity) -> PlannedOperationListing:
        return PlannedOperationListing(
            pending=await self._storage.list_planned_operations(identity.family_id, completed=False),
            completed=await self._storage.list_planned_operations(identity.family_id, completed=True),
        )

    async def complete(
        self,
        identity: Identity,
        operation_id: str,
        occurred_at: Union[datetime, str, None] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CompletionResult:
        """
        Complete a planned operation on behalf of the acting user.

        Args:
            occurred_at: when the money actually moved; defaults to now

        Raises:
            PlannedOperationNotFoundError, AlreadyTerminalError,
            AccountNotFoundError, AccountArchivedError, CurrencyDriftError,
            CategoryNotFoundError, CategoryArchivedError, InvalidInputError,
            RecurrenceLimitExceededError, StorageError
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            effective_at = parse_optional_timestamp(occurred_at, "occurred_at") or utcnow()

            plan = ensure_same_family(
                await self._storage.get_planned_operation(operation_id),
                identity.family_id,
                PlannedOperationNotFoundError,
            )
            if plan.is_terminal:
                raise AlreadyTerminalError()

            account = ensure_postable_account(
                await self._storage.get_account(plan.account_id),
                identity.family_id,
            )
            ensure_no_currency_drift(plan.currency, account.currency)

            category = await self._require_category(identity, plan.category_id)
            ensure_not_archived(category)

            def build_transaction(fresh: PlannedOperation) -> Transaction:
                return Transaction(
                    id=new_id(),
                    family_id=fresh.family_id,
                    user_id=identity.user_id,
                    account_id=fresh.account_id,
                    category_id=fresh.category_id,
                    type=fresh.type,
                    amount_minor=fresh.amount_minor,
                    currency=fresh.currency,
                    comment=fresh.comment or fresh.title,
                    occurred_at=effective_at,
                )

            def advance_plan(fresh: PlannedOperation, transaction: Transaction) -> PlannedOperation:
                now = utcnow()
                update = {"last_completed_at": now, "updated_at": now}
                if fresh.is_recurring:
                    update["due_at"] = next_due_after_completion(
                        fresh.due_at,
                        fresh.recurrence,
                        transaction.occurred_at,
                        max_iterations=self._settings.max_catch_up_iterations,
                    )
                else:
                    update["is_completed"] = True
                return fresh.model_copy(update=update)

            try:
                updated_plan, transaction, updated_account = await self._write(
                    "complete_planned_operation",
                    lambda: self._storage.complete_planned_operation(
                        operation_id,
                        identity.family_id,
                        build_transaction,
                        advance_plan,
                    ),
                    correlation_id,
                )
            except CurrencyMismatchError as e:
                # The plan's currency is frozen; a mismatch at posting time
                # means the account currency moved underneath it.
                raise CurrencyDriftError(str(e)) from e

        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.PLANNED_OPERATION_COMPLETION_REJECTED,
                e,
                identity=identity,
                entity_type="planned_operation",
                entity_id=operation_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("complete_planned_operation", e, correlation_id)
            raise

        await self._audit_logger.log_transaction_posted(transaction, updated_account, correlation_id)
        await self._audit_logger.log_planned_operation_completed(
            updated_plan, transaction, correlation_id
        )
        return CompletionResult(
            planned_operation=updated_plan,
            transaction=transaction,
            account=updated_account,
        )


class AccountFlow(LedgerFlow):
    """
    Account record management.

    The balance is set once, at creation, from the opening balance.
    After that only postings move it.
    """

    async def create(
        self,
        identity: Identity,
        request: AccountRequest,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()
        try:
            currency = ensure_supported_currency(
                request.currency or self._settings.default_currency,
                self._settings.supported_currencies_list,
            )
            account = Account(
                family_id=identity.family_id,
                name=request.name,
                type=normalize_account_type(request.type),
                currency=currency,
                balance_minor=request.initial_balance_minor,
                is_shared=True if request.shared is None else request.shared,
            )
            stored = await self._write(
                "create_account",
                lambda: self._storage.create_account(account),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.ACCOUNT_REJECTED, e, identity=identity,
                entity_type="account", correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("create_account", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.ACCOUNT_CREATED,
            "account",
            stored.id,
            identity,
            f"Account created: {stored.name}",
            details={
                "currency": stored.currency,
                "opening_balance_minor": stored.balance_minor,
            },
            correlation_id=correlation_id,
        )
        return stored

    async def update(
        self,
        identity: Identity,
        account_id: str,
        request: AccountRequest,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """Edit name, type, currency and shared flag. The balance is ignored."""
        correlation_id = correlation_id or create_correlation_id()
        try:
            existing = await self._require_account(identity, account_id)
            currency = ensure_supported_currency(
                request.currency or existing.currency,
                self._settings.supported_currencies_list,
            )
            edited = existing.model_copy(update={
                "name": request.name,
                "type": normalize_account_type(request.type),
                "currency": currency,
                "is_shared": existing.is_shared if request.shared is None else request.shared,
            })
            stored = await self._write(
                "update_account",
                lambda: self._storage.update_account(edited),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.ACCOUNT_REJECTED, e, identity=identity,
                entity_type="account", entity_id=account_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("update_account", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.ACCOUNT_UPDATED,
            "account",
            stored.id,
            identity,
            f"Account updated: {stored.name}",
            details={"currency": stored.currency, "type": stored.type.value},
            correlation_id=correlation_id,
        )
        return stored

    async def set_archived(
        self,
        identity: Identity,
        account_id: str,
        archived: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()
        try:
            existing = await self._require_account(identity, account_id)
            edited = existing.model_copy(update={"is_archived": archived})
            stored = await self._write(
                "update_account",
                lambda: self._storage.update_account(edited),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.ACCOUNT_REJECTED, e, identity=identity,
                entity_type="account", entity_id=account_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("archive_account", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.ACCOUNT_ARCHIVE_TOGGLED,
            "account",
            stored.id,
            identity,
            f"Account {'archived' if archived else 'restored'}: {stored.name}",
            details={"is_archived": archived},
            correlation_id=correlation_id,
        )
        return stored

    async def list(self, identity: Identity) -> list[Account]:
        return await self._storage.list_accounts(identity.family_id)


class CategoryFlow(LedgerFlow):
    """Category record management, including parent checks."""

    async def create(
        self,
        identity: Identity,
        request: CategoryRequest,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        correlation_id = correlation_id or create_correlation_id()
        try:
            category_type = normalize_category_type(request.type)
            color = normalize_hex_color(request.color)
            if request.parent_id:
                ensure_parent_category_valid(
                    await self._storage.get_category(request.parent_id),
                    identity.family_id,
                )
            category = Category(
                family_id=identity.family_id,
                parent_id=request.parent_id or None,
                name=request.name,
                type=category_type,
                color=color,
                description=request.description,
            )
            stored = await self._write(
                "create_category",
                lambda: self._storage.create_category(category),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.CATEGORY_REJECTED, e, identity=identity,
                entity_type="category", correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("create_category", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_CREATED,
            "category",
            stored.id,
            identity,
            f"Category created: {stored.name}",
            details={"type": stored.type.value, "parent_id": stored.parent_id},
            correlation_id=correlation_id,
        )
        return stored

    async def update(
        self,
        identity: Identity,
        category_id: str,
        request: CategoryRequest,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        correlation_id = correlation_id or create_correlation_id()
        try:
            existing = await self._require_category(identity, category_id)
            category_type = normalize_category_type(request.type)
            color = normalize_hex_color(request.color)

            parent_id = request.parent_id or None
            if parent_id:
                if parent_id == category_id:
                    raise CategoryCycleError("category cannot be its own parent")
                ensure_parent_category_valid(
                    await self._storage.get_category(parent_id),
                    identity.family_id,
                )
                ensure_no_category_cycle(
                    category_id,
                    parent_id,
                    await self._storage.list_categories(identity.family_id),
                )

            edited = existing.model_copy(update={
                "parent_id": parent_id,
                "name": request.name,
                "type": category_type,
                "color": color,
                "description": request.description,
            })
            stored = await self._write(
                "update_category",
                lambda: self._storage.update_category(edited),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.CATEGORY_REJECTED, e, identity=identity,
                entity_type="category", entity_id=category_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("update_category", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_UPDATED,
            "category",
            stored.id,
            identity,
            f"Category updated: {stored.name}",
            details={"type": stored.type.value, "parent_id": stored.parent_id},
            correlation_id=correlation_id,
        )
        return stored

    async def set_archived(
        self,
        identity: Identity,
        category_id: str,
        archived: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        correlation_id = correlation_id or create_correlation_id()
        try:
            existing = await self._require_category(identity, category_id)
            edited = existing.model_copy(update={"is_archived": archived})
            stored = await self._write(
                "update_category",
                lambda: self._storage.update_category(edited),
                correlation_id,
            )
        except LedgerError as e:
            await self._audit_logger.log_rejected(
                AuditEventType.CATEGORY_REJECTED, e, identity=identity,
                entity_type="category", entity_id=category_id,
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_unexpected("archive_category", e, correlation_id)
            raise

        await self._audit_logger.log_entity_changed(
            AuditEventType.CATEGORY_ARCHIVE_TOGGLED,
            "category",
            stored.id,
            identity,
            f"Category {'archived' if archived else 'restored'}: {stored.name}",
            details={"is_archived": archived},
            correlation_id=correlation_id,
        )
        return stored

    async def list(self, identity: Identity) -> list[Category]:
        return await self._storage.list_categories(identity.family_id)


class FamilyBootstrap(LedgerFlow):
    """Seeds a new family with default categories and accounts."""

    async def ensure_defaults(
        self,
        identity: Identity,
        currency: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BootstrapResult:
        """
        Create whatever defaults are missing.

        Categories are seeded only when the family has none at all, and
        likewise for accounts, so running this twice creates nothing new.
        """
        correlation_id = correlation_id or create_correlation_id()
        currency = ensure_supported_currency(
            currency or self._settings.default_currency,
            self._settings.supported_currencies_list,
        )
        result = BootstrapResult()

        if not await self._storage.list_categories(identity.family_id):
            for defaults in DEFAULT_CATEGORIES:
                category = Category(family_id=identity.family_id, is_system=True, **defaults)
                await self._write(
                    "create_category",
                    lambda: self._storage.create_category(category),
                    correlation_id,
                )
                result.categories_created += 1

        if not await self._storage.list_accounts(identity.family_id):
            for name, account_type in DEFAULT_ACCOUNTS:
                account = Account(
                    family_id=identity.family_id,
                    name=name,
                    type=account_type,
                    currency=currency,
                )
                await self._write(
                    "create_account",
                    lambda: self._storage.create_account(account),
                    correlation_id,
                )
                result.accounts_created += 1

        if result.categories_created or result.accounts_created:
            await self._audit_logger.log_family_bootstrapped(
                identity,
                categories_created=result.categories_created,
                accounts_created=result.accounts_created,
                correlation_id=correlation_id,
            )
        return result


class ReportFlow(LedgerFlow):
    """Read-only aggregate views of a family's ledger."""

    async def overview(
        self,
        identity: Identity,
        start: Union[datetime, str, None] = None,
        end: Union[datetime, str, None] = None,
    ) -> ReportsOverview:
        start_at = parse_optional_timestamp(start, "start_date")
        end_at = parse_optional_timestamp(end, "end_date")
        ensure_ordered_window(start_at, end_at)
        return await ReportBuilder(self._storage).overview(
            identity.family_id,
            start=start_at,
            end=end_at,
        )


class LedgerComponents:
    """Every flow of the ledger, wired to one storage backend."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: AuditLogger,
        settings: Optional[LedgerSettings] = None,
    ):
        self.storage = storage
        self.audit_logger = audit_logger
        self.transactions = TransactionFlow(storage, audit_logger, settings)
        self.planned_operations = PlannedOperationFlow(storage, audit_logger, settings)
        self.accounts = AccountFlow(storage, audit_logger, settings)
        self.categories = CategoryFlow(storage, audit_logger, settings)
        self.bootstrap = FamilyBootstrap(storage, audit_logger, settings)
        self.reports = ReportFlow(storage, audit_logger, settings)

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        await self.storage.close()


def create_app_components(
    use_sqlite: bool = True,
    database_path: Optional[str] = None,
) -> LedgerComponents:
    """
    Factory function to create all application components.

    Args:
        use_sqlite: Whether to use the SQLite backend.
                    Set to False for in-memory storage (tests, demos).
        database_path: Overrides the configured database file.

    Call `await components.initialize()` before first use.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if use_sqlite:
        db_settings = settings.database
        database = SQLiteDatabase(
            path=database_path or db_settings.path,
            busy_timeout_ms=db_settings.busy_timeout_ms,
            journal_mode=db_settings.journal_mode,
            retry_attempts=settings.ledger.storage_retry_attempts,
            retry_max_wait_seconds=settings.ledger.storage_retry_max_wait_seconds,
        )
        storage: LedgerStorageInterface = SQLiteLedgerStorage(database)
        audit_logger = AuditLogger(SQLiteAuditStorage(database))
    else:
        storage = MemoryLedgerStorage()
        audit_logger = AuditLogger(MemoryAuditStorage())

    logger.info("ledger_components_created", backend="sqlite" if use_sqlite else "memory")
    return LedgerComponents(storage, audit_logger, settings.ledger)
