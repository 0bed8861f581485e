"""Tests for the leave ledger, working-day counting and directory helpers."""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING

import pytest

from overtime_ledger.exceptions import LedgerInvariantError, NotFoundError, PolicyUnavailable
from overtime_ledger.models.enums import BalanceBucket, LedgerEntryType, LedgerSourceType, LeaveType
from overtime_ledger.models.leave import LeaveBalance
from overtime_ledger.schemas.policy import LeavePolicy
from overtime_ledger.services.employee import EmployeeInfo, approval_chain_for, fetch_employee
from overtime_ledger.services.ledger import (
    annual_quota_for,
    apply_balance_mutation,
    check_balance_invariants,
    get_or_create_balance_for_update,
)
from overtime_ledger.services.working_days import count_working_days, resolve_leave_dates
from tests.factories import EMPLOYEE_ID, NEW_HIRE_ID, SUPERVISOR_ID

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.models.ledger import LeaveLedgerEntry
    from overtime_ledger.services.employee import InMemoryEmployeeDirectory

POLICY = LeavePolicy()


# ---------------------------------------------------------------------------
# Working days
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("start", "end", "expected"),
    [
        (date(2025, 3, 17), date(2025, 3, 21), 5),  # Mon-Fri
        (date(2025, 3, 15), date(2025, 3, 16), 0),  # weekend only
        (date(2025, 3, 14), date(2025, 3, 17), 2),  # Fri-Mon
        (date(2025, 3, 17), date(2025, 3, 17), 1),
        (date(2025, 3, 19), date(2025, 3, 17), 0),  # inverted
    ],
)
def test_count_working_days(start: date, end: date, expected: int) -> None:
    assert count_working_days(start, end) == expected


def test_resolve_leave_dates_by_type() -> None:
    start = date(2025, 3, 17)
    end = date(2025, 3, 25)

    assert resolve_leave_dates(LeaveType.ANNUAL_LEAVE, start, end, POLICY) == (end, 7)
    assert resolve_leave_dates(LeaveType.MENSTRUAL_LEAVE, start, end, POLICY) == (start, 1)
    assert resolve_leave_dates(LeaveType.MATERNITY_LEAVE, start, start, POLICY) == (date(2025, 6, 14), 90)


# ---------------------------------------------------------------------------
# Quota and invariants
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("hire_date", "expected"),
    [
        (None, 14),
        (date(2020, 1, 6), 14),
        (date(2024, 3, 1), 14),  # exactly twelve months
        (date(2024, 4, 1), 10),
        (date(2025, 3, 1), 10),
    ],
)
def test_annual_quota_for(hire_date: date | None, expected: int) -> None:
    assert annual_quota_for(hire_date, date(2025, 3, 14), POLICY) == expected


def _balance(**overrides: int) -> LeaveBalance:
    values = {"annual_quota": 14, "annual_used": 0, "annual_remaining": 14}
    values.update(overrides)
    return LeaveBalance(employee_id=EMPLOYEE_ID, year=2025, **values)


def test_consistent_balance_passes() -> None:
    check_balance_invariants(_balance(annual_used=4, annual_remaining=10, toil_balance=2))


def test_drifted_remaining_is_rejected() -> None:
    with pytest.raises(LedgerInvariantError, match="annual_remaining"):
        check_balance_invariants(_balance(annual_used=4, annual_remaining=14))


def test_negative_fields_are_rejected() -> None:
    with pytest.raises(LedgerInvariantError, match="toil_balance, toil_used"):
        check_balance_invariants(_balance(toil_balance=-1, toil_used=-1))


# ---------------------------------------------------------------------------
# apply_balance_mutation
# ---------------------------------------------------------------------------


async def _locked_balance(session: AsyncSession) -> LeaveBalance:
    return await get_or_create_balance_for_update(session, EMPLOYEE_ID, 2025, annual_quota=14)


async def test_get_or_create_uses_quota_only_on_create(db_session: AsyncSession) -> None:
    created = await _locked_balance(db_session)
    await db_session.commit()

    again = await get_or_create_balance_for_update(db_session, EMPLOYEE_ID, 2025, annual_quota=10)

    assert again is created
    assert (again.annual_quota, again.annual_remaining, again.version) == (14, 14, 1)


async def test_usage_and_reversal_move_the_bucket(db_session: AsyncSession) -> None:
    balance = await _locked_balance(db_session)

    entry = await apply_balance_mutation(
        db_session,
        balance,
        bucket=BalanceBucket.ANNUAL,
        entry_type=LedgerEntryType.USAGE,
        days=3,
        source_type=LedgerSourceType.LEAVE_REQUEST,
        source_id="leave-1",
    )
    assert entry is not None
    assert entry.amount_days == -3
    assert (balance.annual_used, balance.annual_remaining, balance.version) == (3, 11, 2)

    await apply_balance_mutation(
        db_session,
        balance,
        bucket=BalanceBucket.ANNUAL,
        entry_type=LedgerEntryType.USAGE_REVERSAL,
        days=3,
        source_type=LedgerSourceType.LEAVE_REQUEST,
        source_id="leave-1",
    )
    assert (balance.annual_used, balance.annual_remaining, balance.version) == (0, 14, 3)


async def test_toil_credit_usage_and_expiry(db_session: AsyncSession) -> None:
    balance = await _locked_balance(db_session)

    await apply_balance_mutation(
        db_session,
        balance,
        bucket=BalanceBucket.TOIL,
        entry_type=LedgerEntryType.TOIL_CREDIT,
        days=3,
        source_type=LedgerSourceType.RECAP,
        source_id="recap-1",
    )
    await apply_balance_mutation(
        db_session,
        balance,
        bucket=BalanceBucket.TOIL,
        entry_type=LedgerEntryType.USAGE,
        days=1,
        source_type=LedgerSourceType.LEAVE_REQUEST,
        source_id="leave-1",
    )
    await apply_balance_mutation(
        db_session,
        balance,
        bucket=BalanceBucket.TOIL,
        entry_type=LedgerEntryType.TOIL_EXPIRATION,
        days=2,
        source_type=LedgerSourceType.TOIL_GRANT,
        source_id="grant-1",
    )

    assert (balance.toil_balance, balance.toil_used, balance.toil_expired) == (0, 1, 2)
    assert balance.annual_remaining == 14


async def test_duplicate_entry_is_a_no_op(db_session: AsyncSession) -> None:
    balance = await _locked_balance(db_session)

    async def credit() -> LeaveLedgerEntry | None:
        return await apply_balance_mutation(
            db_session,
            balance,
            bucket=BalanceBucket.TOIL,
            entry_type=LedgerEntryType.TOIL_CREDIT,
            days=1,
            source_type=LedgerSourceType.RECAP,
            source_id="recap-1",
        )

    first = await credit()
    second = await credit()

    assert first is not None
    assert second is None
    assert balance.toil_balance == 1


@pytest.mark.parametrize("days", [0, -2])
async def test_non_positive_days_are_rejected(db_session: AsyncSession, days: int) -> None:
    balance = await _locked_balance(db_session)

    with pytest.raises(LedgerInvariantError, match="positive"):
        await apply_balance_mutation(
            db_session,
            balance,
            bucket=BalanceBucket.SICK,
            entry_type=LedgerEntryType.USAGE,
            days=days,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id="leave-1",
        )


async def test_overdrawing_toil_is_rejected(db_session: AsyncSession) -> None:
    balance = await _locked_balance(db_session)

    with pytest.raises(LedgerInvariantError, match="toil_balance"):
        await apply_balance_mutation(
            db_session,
            balance,
            bucket=BalanceBucket.TOIL,
            entry_type=LedgerEntryType.USAGE,
            days=1,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id="leave-1",
        )


# ---------------------------------------------------------------------------
# Employee directory helpers
# ---------------------------------------------------------------------------


async def test_fetch_employee(directory: InMemoryEmployeeDirectory) -> None:
    employee = await fetch_employee(directory, EMPLOYEE_ID)
    assert employee.supervisor_id == SUPERVISOR_ID

    with pytest.raises(NotFoundError):
        await fetch_employee(directory, uuid.uuid4())


async def test_directory_outage_is_retryable() -> None:
    class _DownDirectory:
        async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
            raise ConnectionError("directory unreachable")

        async def list_employees(self) -> list[EmployeeInfo]:
            return []

    with pytest.raises(PolicyUnavailable, match="directory unreachable"):
        await fetch_employee(_DownDirectory(), NEW_HIRE_ID)


def test_approval_chain_skips_self_and_duplicates() -> None:
    head = uuid.uuid4()
    employee = EmployeeInfo(id=EMPLOYEE_ID, name="E", email="e@example.com", supervisor_id=head, division_head_id=head)
    assert approval_chain_for(employee) == [head]

    boss = EmployeeInfo(id=head, name="H", email="h@example.com", supervisor_id=head, division_head_id=None)
    assert approval_chain_for(boss) == []
