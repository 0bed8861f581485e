from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from overtime_ledger.models.enums import LeaveType

if TYPE_CHECKING:
    from overtime_ledger.schemas.policy import LeavePolicy


def count_working_days(start_date: date, end_date: date) -> int:
    """Count Mon-Fri days between start_date and end_date inclusive."""
    total = 0
    current = start_date
    one_day = timedelta(days=1)

    while current <= end_date:
        if current.weekday() < 5:
            total += 1
        current += one_day

    return total


def resolve_leave_dates(
    leave_type: LeaveType,
    start_date: date,
    end_date: date,
    policy: LeavePolicy,
) -> tuple[date, int]:
    """Return the effective end date and total days for a leave request.

    Maternity leave runs a fixed number of calendar days from the start;
    menstrual leave is always the single start day. Every other type counts
    working days in the requested range.
    """
    if leave_type == LeaveType.MATERNITY_LEAVE:
        return start_date + timedelta(days=policy.maternity_days - 1), policy.maternity_days
    if leave_type == LeaveType.MENSTRUAL_LEAVE:
        return start_date, 1
    return end_date, count_working_days(start_date, end_date)
