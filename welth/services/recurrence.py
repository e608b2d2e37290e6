"""
Recurring schedule arithmetic.

Month and year steps are calendar-aware and clamp to the last valid day of
the target month (2024-01-31 + MONTHLY = 2024-02-29), which is how
``dateutil.relativedelta`` normalizes overflow.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from welth.models.transaction import RecurringInterval, Transaction


_STEPS = {
    RecurringInterval.DAILY: timedelta(days=1),
    RecurringInterval.WEEKLY: timedelta(days=7),
    RecurringInterval.MONTHLY: relativedelta(months=1),
    RecurringInterval.YEARLY: relativedelta(years=1),
}


def calculate_next_recurring_date(
    start_date: datetime,
    interval: Union[RecurringInterval, str],
) -> datetime:
    """Next occurrence one interval after ``start_date``.

    Raises ValueError for an interval outside DAILY/WEEKLY/MONTHLY/YEARLY.
    """
    step = _STEPS.get(RecurringInterval(interval))
    if step is None:
        raise ValueError(f"Unsupported recurring interval: {interval!r}")
    return start_date + step


def is_transaction_due(transaction: Transaction, now: Optional[datetime] = None) -> bool:
    """A recurring template is due if never processed or its next date has arrived."""
    if not transaction.is_recurring:
        return False
    if transaction.last_processed is None:
        return True
    if transaction.next_recurring_date is None:
        return False
    return transaction.next_recurring_date <= (now or datetime.utcnow())
