"""Tests for due-date arithmetic."""

import pytest
from datetime import datetime, timedelta, timezone

from familybudget.errors import InvalidRecurrenceError, RecurrenceLimitExceededError
from familybudget.models.ledger import Recurrence
from familybudget.recurrence import (
    advance_due_date,
    catch_up_due_date,
    next_due_after_completion,
    normalize_recurrence,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestNormalizeRecurrence:

    @pytest.mark.parametrize("value", [None, "", "   ", "none", "NONE"])
    def test_empty_and_none_mean_one_off(self, value):
        assert normalize_recurrence(value) == Recurrence.NONE

    def test_trims_and_lowercases(self):
        assert normalize_recurrence(" Monthly ") == Recurrence.MONTHLY

    def test_unknown_rule_rejected(self):
        with pytest.raises(InvalidRecurrenceError):
            normalize_recurrence("daily")


class TestAdvanceDueDate:

    def test_weekly_adds_seven_days(self):
        assert advance_due_date(utc(2024, 3, 10, 9), "weekly") == utc(2024, 3, 17, 9)

    def test_monthly_keeps_day_and_time(self):
        assert advance_due_date(utc(2024, 1, 15, 8, 30), Recurrence.MONTHLY) == utc(2024, 2, 15, 8, 30)

    def test_monthly_clamps_to_end_of_month(self):
        """Jan 31 + 1 month lands on the last day of February."""
        assert advance_due_date(utc(2024, 1, 31), Recurrence.MONTHLY) == utc(2024, 2, 29)
        assert advance_due_date(utc(2023, 1, 31), Recurrence.MONTHLY) == utc(2023, 2, 28)

    def test_yearly_from_leap_day(self):
        assert advance_due_date(utc(2024, 2, 29), Recurrence.YEARLY) == utc(2025, 2, 28)

    def test_december_rolls_into_next_year(self):
        assert advance_due_date(utc(2024, 12, 20), Recurrence.MONTHLY) == utc(2025, 1, 20)

    def test_none_cannot_advance(self):
        with pytest.raises(InvalidRecurrenceError):
            advance_due_date(utc(2024, 1, 1), Recurrence.NONE)


class TestCatchUp:

    def test_result_strictly_after_reference(self):
        due = utc(2024, 1, 15)
        reference = utc(2024, 4, 20)
        result = catch_up_due_date(due, Recurrence.MONTHLY, reference)
        assert result == utc(2024, 5, 15)
        assert result > reference

    def test_due_equal_to_reference_advances(self):
        due = utc(2024, 1, 15)
        assert catch_up_due_date(due, Recurrence.WEEKLY, due) == utc(2024, 1, 22)

    def test_future_due_is_unchanged(self):
        due = utc(2024, 6, 1)
        assert catch_up_due_date(due, Recurrence.MONTHLY, utc(2024, 5, 1)) == due

    def test_idempotent(self):
        """Applying catch-up to its own result changes nothing."""
        reference = utc(2024, 4, 20)
        once = catch_up_due_date(utc(2023, 11, 30), Recurrence.MONTHLY, reference)
        twice = catch_up_due_date(once, Recurrence.MONTHLY, reference)
        assert once == twice

    def test_iteration_cap(self):
        with pytest.raises(RecurrenceLimitExceededError):
            catch_up_due_date(utc(2000, 1, 1), Recurrence.WEEKLY, utc(2024, 1, 1), max_iterations=10)

    def test_none_rejected(self):
        with pytest.raises(InvalidRecurrenceError):
            catch_up_due_date(utc(2024, 1, 1), "none", utc(2024, 2, 1))


class TestNextDueAfterCompletion:

    def test_overdue_skips_missed_periods(self):
        """Three months overdue: one completion, next boundary after the completion."""
        result = next_due_after_completion(
            utc(2024, 1, 15, 9), Recurrence.MONTHLY, utc(2024, 4, 20, 12)
        )
        assert result == utc(2024, 5, 15, 9)

    def test_early_completion_consumes_current_period(self):
        due = utc(2024, 6, 1)
        result = next_due_after_completion(due, Recurrence.MONTHLY, utc(2024, 5, 25))
        assert result == utc(2024, 7, 1)

    def test_always_after_due_and_completion(self):
        due = utc(2024, 3, 1)
        occurred = due + timedelta(days=3)
        result = next_due_after_completion(due, Recurrence.WEEKLY, occurred)
        assert result > due
        assert result > occurred
        assert result == utc(2024, 3, 8)

    def test_month_end_clamp_carries_forward(self):
        """Once clamped to Feb 29 the plan stays on the 29th, it does not snap back to the 31st."""
        result = next_due_after_completion(
            utc(2024, 1, 31), Recurrence.MONTHLY, utc(2024, 4, 15)
        )
        assert result == utc(2024, 4, 29)
