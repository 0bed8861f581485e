"""Leave balance ledger.

Every balance change goes through :func:`apply_balance_mutation`, which
appends an idempotent ledger entry and updates the locked balance row in the
caller's transaction.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from overtime_ledger.exceptions import LedgerInvariantError
from overtime_ledger.models.enums import BalanceBucket, LedgerEntryType, LedgerSourceType
from overtime_ledger.models.leave import LeaveBalance
from overtime_ledger.models.ledger import LeaveLedgerEntry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.policy import LeavePolicy

# Column incremented by a USAGE entry on each bucket.
_USED_FIELDS: dict[BalanceBucket, str] = {
    BalanceBucket.ANNUAL: "annual_used",
    BalanceBucket.SICK: "sick_used",
    BalanceBucket.MENSTRUAL: "menstrual_used",
    BalanceBucket.UNPAID: "unpaid_used",
    BalanceBucket.TOIL: "toil_used",
}


def annual_quota_for(hire_date: date | None, on: date, policy: LeavePolicy) -> int:
    """Annual quota by tenure: full quota after twelve months of service."""
    if hire_date is None:
        return policy.annual_quota_days
    months = (on.year - hire_date.year) * 12 + (on.month - hire_date.month)
    return policy.annual_quota_days if months >= 12 else policy.annual_quota_days_first_year


def check_balance_invariants(balance: LeaveBalance) -> None:
    """Raise if the balance row is internally inconsistent."""
    if balance.annual_remaining != balance.annual_quota - balance.annual_used:
        raise LedgerInvariantError(
            f"annual_remaining {balance.annual_remaining} != quota {balance.annual_quota} - used {balance.annual_used}"
        )
    negatives = [
        name
        for name in ("annual_used", "sick_used", "menstrual_used", "unpaid_used", "toil_balance", "toil_used")
        if getattr(balance, name) < 0
    ]
    if negatives:
        raise LedgerInvariantError(f"Negative leave balance fields: {', '.join(negatives)}")


async def get_or_create_balance_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    *,
    annual_quota: int,
) -> LeaveBalance:
    """Get the leave balance row with a FOR UPDATE lock, creating it if absent.

    ``annual_quota`` is only used when the row is created.
    """
    result = await session.execute(
        select(LeaveBalance)
        .where(
            col(LeaveBalance.employee_id) == employee_id,
            col(LeaveBalance.year) == year,
        )
        .with_for_update()
    )
    balance = result.scalar_one_or_none()

    if balance is None:
        balance = LeaveBalance(
            employee_id=employee_id,
            year=year,
            annual_quota=annual_quota,
            annual_used=0,
            annual_remaining=annual_quota,
            version=1,
        )
        session.add(balance)
        await session.flush()

    return balance


def _apply_to_balance(balance: LeaveBalance, bucket: BalanceBucket, entry_type: LedgerEntryType, days: int) -> None:
    if entry_type in (LedgerEntryType.USAGE, LedgerEntryType.USAGE_REVERSAL):
        delta = days if entry_type == LedgerEntryType.USAGE else -days
        used_field = _USED_FIELDS[bucket]
        setattr(balance, used_field, getattr(balance, used_field) + delta)
        if bucket == BalanceBucket.TOIL:
            balance.toil_balance -= delta
    elif entry_type == LedgerEntryType.TOIL_CREDIT:
        balance.toil_balance += days
    elif entry_type == LedgerEntryType.TOIL_EXPIRATION:
        balance.toil_balance -= days
        balance.toil_expired += days

    balance.annual_remaining = balance.annual_quota - balance.annual_used
    balance.version += 1


async def apply_balance_mutation(
    session: AsyncSession,
    balance: LeaveBalance,
    *,
    bucket: BalanceBucket,
    entry_type: LedgerEntryType,
    days: int,
    source_type: LedgerSourceType,
    source_id: str,
    metadata_json: dict[str, Any] | None = None,
) -> LeaveLedgerEntry | None:
    """Post a ledger entry and move the balance. Returns None if duplicate.

    ``days`` is the unsigned magnitude; the ledger stores it signed from the
    employee's point of view (debits negative). The balance row must already
    be locked by the caller.
    """
    if days <= 0:
        raise LedgerInvariantError(f"Ledger mutation must move a positive number of days, got {days}")

    signed = -days if entry_type in (LedgerEntryType.USAGE, LedgerEntryType.TOIL_EXPIRATION) else days
    entry = LeaveLedgerEntry(
        employee_id=balance.employee_id,
        year=balance.year,
        bucket=bucket.value,
        entry_type=entry_type.value,
        amount_days=signed,
        source_type=source_type.value,
        source_id=source_id,
        metadata_json=metadata_json,
    )

    try:
        async with session.begin_nested():
            session.add(entry)
            await session.flush()
    except IntegrityError:
        return None  # Idempotent: already applied

    _apply_to_balance(balance, bucket, entry_type, days)
    check_balance_invariants(balance)
    await session.flush()
    return entry
