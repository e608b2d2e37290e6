"""Tests for recurring schedule arithmetic and the due check."""

from datetime import datetime

import pytest

from welth.models.transaction import RecurringInterval, Transaction
from welth.services.recurrence import calculate_next_recurring_date, is_transaction_due


class TestCalculateNextRecurringDate:

    def test_daily_adds_one_day(self):
        assert calculate_next_recurring_date(datetime(2024, 2, 28), RecurringInterval.DAILY) == datetime(2024, 2, 29)

    def test_weekly_adds_seven_days(self):
        assert calculate_next_recurring_date(datetime(2024, 12, 28, 9, 30), "WEEKLY") == datetime(2025, 1, 4, 9, 30)

    def test_monthly_from_jan_31_clamps_to_leap_day(self):
        """2024 is a leap year: Jan 31 + 1 month is Feb 29, not March."""
        assert calculate_next_recurring_date(datetime(2024, 1, 31), "MONTHLY") == datetime(2024, 2, 29)

    def test_monthly_from_jan_31_clamps_in_common_year(self):
        assert calculate_next_recurring_date(datetime(2023, 1, 31), "MONTHLY") == datetime(2023, 2, 28)

    def test_monthly_keeps_time_of_day(self):
        assert calculate_next_recurring_date(datetime(2024, 3, 15, 8, 45), "MONTHLY") == datetime(2024, 4, 15, 8, 45)

    def test_yearly_from_leap_day_clamps(self):
        assert calculate_next_recurring_date(datetime(2024, 2, 29), "YEARLY") == datetime(2025, 2, 28)

    def test_unknown_interval_fails_fast(self):
        with pytest.raises(ValueError):
            calculate_next_recurring_date(datetime(2024, 1, 1), "FORTNIGHTLY")


class TestIsTransactionDue:

    NOW = datetime(2024, 6, 1, 12, 0)

    def _template(self, **overrides) -> Transaction:
        fields = dict(
            is_recurring=True,
            recurring_interval=RecurringInterval.MONTHLY,
            last_processed=datetime(2024, 5, 1),
            next_recurring_date=datetime(2024, 6, 1),
        )
        fields.update(overrides)
        return Transaction(**fields)

    def test_never_processed_is_always_due(self):
        tx = self._template(last_processed=None, next_recurring_date=datetime(2030, 1, 1))
        assert is_transaction_due(tx, self.NOW)

    def test_future_next_date_is_not_due(self):
        tx = self._template(next_recurring_date=datetime(2024, 6, 1, 12, 0, 1))
        assert not is_transaction_due(tx, self.NOW)

    def test_next_date_equal_to_now_is_due(self):
        tx = self._template(next_recurring_date=self.NOW)
        assert is_transaction_due(tx, self.NOW)

    def test_past_next_date_is_due(self):
        tx = self._template(next_recurring_date=datetime(2024, 5, 20))
        assert is_transaction_due(tx, self.NOW)

    def test_stopped_template_is_never_due(self):
        tx = self._template(is_recurring=False, last_processed=None)
        assert not is_transaction_due(tx, self.NOW)
