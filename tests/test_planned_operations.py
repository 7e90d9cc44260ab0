"""Tests for the planned operation lifecycle."""

import asyncio

import pytest
from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from familybudget.errors import (
    AccountArchivedError,
    AlreadyTerminalError,
    CategoryArchivedError,
    CategoryTypeMismatchError,
    CurrencyDriftError,
    CurrencyMismatchError,
    InvalidInputError,
    InvalidRecurrenceError,
    PlannedOperationNotFoundError,
    RecurrenceLimitExceededError,
)
from familybudget.config import LedgerSettings
from familybudget.models.audit import AuditEventType
from familybudget.models.ledger import Recurrence, utcnow
from familybudget.models.requests import AccountRequest, PlannedOperationRequest
from familybudget.models.results import CompletionResult
from familybudget.orchestrator import LedgerComponents


def plan_request(account, category, **overrides) -> PlannedOperationRequest:
    data = dict(
        account_id=account.id,
        category_id=category.id,
        type="expense",
        title="Internet",
        amount_minor=700,
        due_at="2024-01-15T09:00:00Z",
    )
    data.update(overrides)
    return PlannedOperationRequest(**data)


class TestCreatePlannedOperation:

    async def test_defaults(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        assert plan.recurrence == Recurrence.NONE
        assert plan.currency == "RUB"
        assert plan.user_id == identity.user_id
        assert plan.is_completed is False
        assert plan.due_at == datetime(2024, 1, 15, 9, tzinfo=timezone.utc)

    async def test_recurrence_normalized(self, components, identity, seed):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence=" Monthly ")
        )
        assert plan.recurrence == Recurrence.MONTHLY

    async def test_unknown_recurrence(self, components, identity, seed):
        with pytest.raises(InvalidRecurrenceError):
            await components.planned_operations.create(
                identity, plan_request(seed.wallet, seed.groceries, recurrence="daily")
            )

    async def test_category_type_must_match(self, components, identity, seed):
        with pytest.raises(CategoryTypeMismatchError):
            await components.planned_operations.create(
                identity, plan_request(seed.wallet, seed.salary, type="expense")
            )

    async def test_currency_must_match(self, components, identity, seed):
        with pytest.raises(CurrencyMismatchError):
            await components.planned_operations.create(
                identity, plan_request(seed.wallet, seed.groceries, currency="EUR")
            )

    async def test_archived_account(self, components, identity, seed):
        with pytest.raises(AccountArchivedError):
            await components.planned_operations.create(identity, plan_request(seed.archived, seed.groceries))

    async def test_bad_due_date(self, components, identity, seed):
        with pytest.raises(InvalidInputError):
            await components.planned_operations.create(
                identity, plan_request(seed.wallet, seed.groceries, due_at="next tuesday")
            )

    async def test_creation_is_audited(self, components, identity, seed, audit_storage):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        events = await audit_storage.get_events_by_entity("planned_operation", plan.id)
        assert [e.event_type for e in events] == [AuditEventType.PLANNED_OPERATION_CREATED]


class TestListPlannedOperations:

    async def test_pending_and_completed(self, components, identity, seed):
        flow = components.planned_operations
        later = await flow.create(identity, plan_request(seed.wallet, seed.groceries, due_at="2024-05-01T00:00:00Z"))
        sooner = await flow.create(identity, plan_request(seed.wallet, seed.groceries, due_at="2024-04-01T00:00:00Z"))
        done = await flow.create(identity, plan_request(seed.wallet, seed.groceries, title="Gift"))
        await flow.complete(identity, done.id)

        listing = await flow.list(identity)
        assert [p.id for p in listing.pending] == [sooner.id, later.id]
        assert [p.id for p in listing.completed] == [done.id]

    async def test_due_dates_before_year_1000(self, components, identity, seed):
        """Early years keep their order and survive a round trip through storage."""
        flow = components.planned_operations
        modern = await flow.create(identity, plan_request(seed.wallet, seed.groceries, due_at="2024-01-01T00:00:00Z"))
        ancient = await flow.create(identity, plan_request(seed.wallet, seed.groceries, due_at="0999-06-01T00:00:00Z"))

        listing = await flow.list(identity)
        assert [p.id for p in listing.pending] == [ancient.id, modern.id]
        assert listing.pending[0].due_at == datetime(999, 6, 1, tzinfo=timezone.utc)

    async def test_other_family_sees_nothing(self, components, identity, outsider, seed):
        await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        listing = await components.planned_operations.list(outsider)
        assert listing.pending == []
        assert listing.completed == []


class TestCompletePlannedOperation:

    async def test_one_off_becomes_terminal(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        result = await components.planned_operations.complete(identity, plan.id, "2024-01-16T10:00:00Z")

        assert result.planned_operation.is_completed is True
        assert result.planned_operation.is_terminal is True
        assert result.planned_operation.last_completed_at is not None
        assert result.transaction.amount_minor == 700
        assert result.transaction.comment == "Internet"
        assert result.account.balance_minor == 9_300

    async def test_completing_twice(self, components, identity, seed):
        """The second completion fails and the first one's effects stay."""
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        await components.planned_operations.complete(identity, plan.id)

        with pytest.raises(AlreadyTerminalError):
            await components.planned_operations.complete(identity, plan.id)

        assert (await components.storage.get_account(seed.wallet.id)).balance_minor == 9_300
        assert len(await components.transactions.list(identity)) == 1
        assert (await components.storage.get_planned_operation(plan.id)).is_completed is True

    async def test_monthly_three_months_overdue(self, components, identity, seed):
        """One transaction, and the next boundary strictly after the completion."""
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="monthly")
        )
        result = await components.planned_operations.complete(identity, plan.id, "2024-04-20T12:00:00Z")

        assert result.planned_operation.due_at == datetime(2024, 5, 15, 9, tzinfo=timezone.utc)
        assert result.planned_operation.is_completed is False
        assert len(await components.transactions.list(identity)) == 1

    async def test_overdue_monthly_completed_now(self, components, identity, seed):
        due = utcnow() - timedelta(days=95)
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="monthly", due_at=due)
        )
        before = utcnow()
        result = await components.planned_operations.complete(identity, plan.id)

        assert result.transaction.occurred_at >= before
        assert result.planned_operation.due_at > result.transaction.occurred_at
        assert result.planned_operation.due_at <= result.transaction.occurred_at + relativedelta(months=1)

    async def test_recurring_can_complete_again(self, components, identity, seed):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="weekly")
        )
        flow = components.planned_operations
        first = await flow.complete(identity, plan.id, "2024-01-15T10:00:00Z")
        second = await flow.complete(identity, plan.id, "2024-01-22T10:00:00Z")

        assert first.planned_operation.due_at == datetime(2024, 1, 22, 9, tzinfo=timezone.utc)
        assert second.planned_operation.due_at == datetime(2024, 1, 29, 9, tzinfo=timezone.utc)
        assert second.account.balance_minor == 10_000 - 2 * 700

    async def test_early_completion_advances_one_period(self, components, identity, seed):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="monthly")
        )
        result = await components.planned_operations.complete(identity, plan.id, "2024-01-10T00:00:00Z")
        assert result.planned_operation.due_at == datetime(2024, 2, 15, 9, tzinfo=timezone.utc)

    async def test_completion_author_is_actor(self, components, identity, partner, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        result = await components.planned_operations.complete(partner, plan.id)
        assert result.transaction.user_id == partner.user_id
        assert result.planned_operation.user_id == identity.user_id

    async def test_comment_preferred_over_title(self, components, identity, seed):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, comment="fiber 500")
        )
        result = await components.planned_operations.complete(identity, plan.id)
        assert result.transaction.comment == "fiber 500"

    async def test_currency_drift(self, components, identity, seed):
        """Changing the account currency after planning blocks completion."""
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        await components.accounts.update(
            identity, seed.wallet.id, AccountRequest(name="Wallet", type="cash", currency="USD")
        )

        with pytest.raises(CurrencyDriftError):
            await components.planned_operations.complete(identity, plan.id)

        assert (await components.storage.get_account(seed.wallet.id)).balance_minor == 10_000
        assert (await components.storage.get_planned_operation(plan.id)).is_completed is False

    async def test_archived_account(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        await components.accounts.set_archived(identity, seed.wallet.id, True)
        with pytest.raises(AccountArchivedError):
            await components.planned_operations.complete(identity, plan.id)

    async def test_archived_category(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        await components.categories.set_archived(identity, seed.groceries.id, True)
        with pytest.raises(CategoryArchivedError):
            await components.planned_operations.complete(identity, plan.id)
        assert (await components.storage.get_account(seed.wallet.id)).balance_minor == 10_000

    async def test_other_family(self, components, identity, outsider, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        with pytest.raises(PlannedOperationNotFoundError):
            await components.planned_operations.complete(outsider, plan.id)

    async def test_unknown_plan(self, components, identity, seed):
        with pytest.raises(PlannedOperationNotFoundError):
            await components.planned_operations.complete(identity, "missing")

    async def test_malformed_occurred_at(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        with pytest.raises(InvalidInputError):
            await components.planned_operations.complete(identity, plan.id, "not a date")

    async def test_catch_up_limit_rolls_back(self, storage, audit_logger, identity, seed):
        """Hitting the catch-up cap leaves the ledger untouched."""
        settings = LedgerSettings(max_catch_up_iterations=2, storage_retry_max_wait_seconds=0.0)
        components = LedgerComponents(storage, audit_logger, settings)
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="weekly")
        )

        with pytest.raises(RecurrenceLimitExceededError):
            await components.planned_operations.complete(identity, plan.id, "2024-06-01T00:00:00Z")

        assert (await storage.get_account(seed.wallet.id)).balance_minor == 10_000
        assert await storage.list_transactions(identity.family_id) == []

    async def test_completion_is_audited(self, components, identity, seed, audit_storage):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="monthly")
        )
        result = await components.planned_operations.complete(identity, plan.id, "2024-01-20T00:00:00Z")

        events = await audit_storage.get_events_by_entity("planned_operation", plan.id)
        completed = [e for e in events if e.event_type == AuditEventType.PLANNED_OPERATION_COMPLETED]
        assert len(completed) == 1
        assert completed[0].details["transaction_id"] == result.transaction.id
        assert completed[0].details["next_due_at"] == "2024-02-15T09:00:00+00:00"

    async def test_rejected_completion_is_audited(self, components, identity, seed, audit_storage):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        await components.planned_operations.complete(identity, plan.id)
        with pytest.raises(AlreadyTerminalError):
            await components.planned_operations.complete(identity, plan.id)

        events = await audit_storage.get_events_by_entity("planned_operation", plan.id)
        assert events[-1].event_type == AuditEventType.PLANNED_OPERATION_COMPLETION_REJECTED
        assert events[-1].error_code == "already_terminal"


class TestConcurrentCompletion:
    """Completions racing on one plan are serialized by the storage."""

    async def test_one_off_completes_once(self, components, identity, seed):
        plan = await components.planned_operations.create(identity, plan_request(seed.wallet, seed.groceries))
        outcomes = await asyncio.gather(
            *[components.planned_operations.complete(identity, plan.id) for _ in range(5)],
            return_exceptions=True,
        )

        successes = [o for o in outcomes if isinstance(o, CompletionResult)]
        refusals = [o for o in outcomes if isinstance(o, AlreadyTerminalError)]
        assert len(successes) == 1
        assert len(refusals) == 4
        assert (await components.storage.get_account(seed.wallet.id)).balance_minor == 9_300
        assert len(await components.transactions.list(identity)) == 1

    async def test_weekly_advances_once_per_completion(self, components, identity, seed):
        plan = await components.planned_operations.create(
            identity, plan_request(seed.wallet, seed.groceries, recurrence="weekly")
        )
        outcomes = await asyncio.gather(*[
            components.planned_operations.complete(identity, plan.id, "2024-01-10T00:00:00Z")
            for _ in range(5)
        ])

        assert all(isinstance(o, CompletionResult) for o in outcomes)
        stored = await components.storage.get_planned_operation(plan.id)
        assert stored.due_at == datetime(2024, 2, 19, 9, tzinfo=timezone.utc)
        assert (await components.storage.get_account(seed.wallet.id)).balance_minor == 10_000 - 5 * 700
        assert len(await components.transactions.list(identity)) == 5
