"""Recurrence engine package."""

from familybudget.recurrence.engine import (
    DEFAULT_MAX_ITERATIONS,
    advance_due_date,
    catch_up_due_date,
    next_due_after_completion,
    normalize_recurrence,
)

__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "advance_due_date",
    "catch_up_due_date",
    "next_due_after_completion",
    "normalize_recurrence",
]
