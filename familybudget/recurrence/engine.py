"""
Recurrence Engine

Pure, deterministic due-date arithmetic for planned operations.

MONTH-END POLICY: monthly and yearly steps clamp to the last day of the
target month (Jan 31 + 1 month = Feb 28/29, Feb 29 + 1 year = Feb 28).
Steps are applied to the previous result, so a schedule that was clamped
once stays on the clamped day afterwards (Jan 31 -> Feb 28 -> Mar 28).

Nothing here touches storage or the clock; the caller supplies every
instant.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from familybudget.errors import InvalidRecurrenceError, RecurrenceLimitExceededError
from familybudget.models.ledger import Recurrence

DEFAULT_MAX_ITERATIONS = 10_000

_STEPS = {
    Recurrence.WEEKLY: timedelta(days=7),
    Recurrence.MONTHLY: relativedelta(months=1),
    Recurrence.YEARLY: relativedelta(years=1),
}


def normalize_recurrence(value: Union[Recurrence, str, None]) -> Recurrence:
    """
    Normalize user input to a Recurrence.

    Empty input and "none" mean a one-off operation.
    """
    if isinstance(value, Recurrence):
        return value
    trimmed = (value or "").strip().lower()
    if trimmed == "":
        return Recurrence.NONE
    try:
        return Recurrence(trimmed)
    except ValueError:
        raise InvalidRecurrenceError(
            "recurrence must be one of weekly, monthly, yearly or none"
        )


def advance_due_date(
    current: datetime,
    recurrence: Union[Recurrence, str],
) -> datetime:
    """
    Move a due instant forward by exactly one period.

    Raises:
        InvalidRecurrenceError: for NONE or an unknown rule
    """
    rule = normalize_recurrence(recurrence)
    step = _STEPS.get(rule)
    if step is None:
        raise InvalidRecurrenceError(f"unknown recurrence: {rule.value}")
    return current + step


def catch_up_due_date(
    due: datetime,
    recurrence: Union[Recurrence, str],
    reference: datetime,
    max_iterations: Optional[int] = None,
) -> datetime:
    """
    Advance `due` period by period until it is strictly after `reference`.

    Returns `due` unchanged when it is already after the reference, so
    applying it twice gives the same answer as applying it once.

    Raises:
        InvalidRecurrenceError: for NONE or an unknown rule
        RecurrenceLimitExceededError: if the cap is hit before converging
    """
    rule = normalize_recurrence(recurrence)
    if rule not in _STEPS:
        raise InvalidRecurrenceError(f"unknown recurrence: {rule.value}")

    limit = max_iterations or DEFAULT_MAX_ITERATIONS
    result = due
    iterations = 0
    while result <= reference:
        if iterations >= limit:
            raise RecurrenceLimitExceededError(
                f"due date {due.isoformat()} did not pass {reference.isoformat()} "
                f"within {limit} {rule.value} periods"
            )
        result = advance_due_date(result, rule)
        iterations += 1
    return result


def next_due_after_completion(
    due: datetime,
    recurrence: Union[Recurrence, str],
    occurred_at: datetime,
    max_iterations: Optional[int] = None,
) -> datetime:
    """
    Due date of a recurring plan after one completion.

    A completion always consumes the current period, then skips any
    periods the completion instant has already overtaken. The result is
    strictly after both `due` and `occurred_at`.
    """
    return catch_up_due_date(
        advance_due_date(due, recurrence),
        recurrence,
        occurred_at,
        max_iterations=max_iterations,
    )
