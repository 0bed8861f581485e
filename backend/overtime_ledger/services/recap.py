"""Monthly overtime recap.

Closes a period for one employee: sums approved overtime, splits it with
:func:`compute_recap`, records the recap and its TOIL grant, credits the TOIL
days to the leave ledger and resets the running overtime balance. All of it
commits in one transaction or not at all.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from overtime_ledger.exceptions import ConflictError, NotFoundError
from overtime_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    BalanceBucket,
    LedgerEntryType,
    LedgerSourceType,
    OvertimeStatus,
    ToilStatus,
)
from overtime_ledger.models.overtime import OvertimeEntry, OvertimeRequest
from overtime_ledger.models.recap import OvertimeRecap, ToilGrant
from overtime_ledger.schemas.policy import get_leave_policy, minutes_to_hours
from overtime_ledger.schemas.recap import RecapListResponse, RecapResponse
from overtime_ledger.services.audit import model_to_audit_dict, write_audit_log
from overtime_ledger.services.calculator import compute_payment, compute_recap
from overtime_ledger.services.employee import fetch_employee
from overtime_ledger.services.ledger import (
    annual_quota_for,
    apply_balance_mutation,
    get_or_create_balance_for_update,
)
from overtime_ledger.services.overtime import get_or_create_overtime_balance_for_update
from overtime_ledger.services.system import period_end

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.policy import LeavePolicy, OvertimePolicy
    from overtime_ledger.services.clock import Clock
    from overtime_ledger.services.employee import EmployeeDirectory

logger = logging.getLogger(__name__)


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """Shift a (year, month) pair by a number of months."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def previous_period(year: int, month: int) -> tuple[int, int]:
    return add_months(year, month, -1)


def build_recap_response(recap: OvertimeRecap) -> RecapResponse:
    """Map a recap model to its response schema."""
    return RecapResponse(
        id=recap.id,
        employee_id=recap.employee_id,
        year=recap.year,
        month=recap.month,
        total_hours=minutes_to_hours(recap.total_minutes),
        paid_hours=minutes_to_hours(recap.paid_minutes),
        excess_hours=minutes_to_hours(recap.excess_minutes),
        carryover_hours=minutes_to_hours(recap.carryover_minutes),
        total_toil_hours=minutes_to_hours(recap.total_toil_minutes),
        toil_days_created=recap.toil_days_created,
        remaining_hours=minutes_to_hours(recap.remaining_minutes),
        payment_amount=recap.payment_amount,
        recapped_at=recap.recapped_at,
        recapped_by=recap.recapped_by,
    )


# ---------------------------------------------------------------------------
# Collaborator lookups
# ---------------------------------------------------------------------------


def _period_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), period_end(year, month)


async def get_recap_for_period(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    month: int,
) -> OvertimeRecap | None:
    result = await session.execute(
        select(OvertimeRecap).where(
            col(OvertimeRecap.employee_id) == employee_id,
            col(OvertimeRecap.year) == year,
            col(OvertimeRecap.month) == month,
        )
    )
    return result.scalar_one_or_none()


async def get_approved_overtime_minutes(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    month: int,
) -> tuple[int, list[uuid.UUID]]:
    """Unrecapped approved minutes dated inside the month, and the entries holding them.

    Entries are attributed by their own date, so a request spanning a month
    boundary contributes to each month separately and each entry carries the
    recap that closed it.
    """
    start, end = _period_bounds(year, month)
    result = await session.execute(
        select(col(OvertimeEntry.id), col(OvertimeEntry.minutes))
        .join(OvertimeRequest, col(OvertimeRequest.id) == col(OvertimeEntry.request_id))
        .where(
            col(OvertimeRequest.employee_id) == employee_id,
            col(OvertimeRequest.status) == OvertimeStatus.APPROVED.value,
            col(OvertimeEntry.recap_id).is_(None),
            col(OvertimeEntry.date) >= start,
            col(OvertimeEntry.date) <= end,
        )
        .order_by(col(OvertimeEntry.date))
    )
    rows = result.all()
    return sum(row[1] for row in rows), [row[0] for row in rows]


async def get_employees_with_unrecapped_overtime(session: AsyncSession, year: int, month: int) -> list[uuid.UUID]:
    """Employees with approved overtime in the month and no recap for it yet."""
    start, end = _period_bounds(year, month)
    recapped = select(col(OvertimeRecap.employee_id)).where(
        col(OvertimeRecap.year) == year,
        col(OvertimeRecap.month) == month,
    )
    result = await session.execute(
        select(col(OvertimeRequest.employee_id))
        .join(OvertimeEntry, col(OvertimeEntry.request_id) == col(OvertimeRequest.id))
        .where(
            col(OvertimeRequest.status) == OvertimeStatus.APPROVED.value,
            col(OvertimeEntry.recap_id).is_(None),
            col(OvertimeEntry.date) >= start,
            col(OvertimeEntry.date) <= end,
            col(OvertimeRequest.employee_id).not_in(recapped),
        )
        .distinct()
        .order_by(col(OvertimeRequest.employee_id))
    )
    return [row[0] for row in result.all()]


async def _get_carryover_minutes(session: AsyncSession, employee_id: uuid.UUID, year: int, month: int) -> int:
    prev_year, prev_month = previous_period(year, month)
    previous = await get_recap_for_period(session, employee_id, prev_year, prev_month)
    return previous.remaining_minutes if previous is not None else 0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def create_recap(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    month: int,
    *,
    actor_id: uuid.UUID,
    policy: OvertimePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
    leave_policy: LeavePolicy | None = None,
) -> OvertimeRecap:
    """Recap one employee's month.

    Flow:
    1. Reject if a recap already exists for the period
    2. Sum approved minutes in the month; nothing approved is a conflict
    3. Carry over the previous month's remaining minutes
    4. Split with compute_recap, price with compute_payment
    5. Insert the recap (unique key serialises concurrent attempts)
    6. Link entries, grant TOIL days and credit them through the ledger
    7. Reset the running overtime balance
    8. Audit and commit
    """
    if leave_policy is None:
        leave_policy = get_leave_policy()

    employee = await fetch_employee(directory, employee_id)

    # 1. Existing recap.
    if await get_recap_for_period(session, employee_id, year, month) is not None:
        raise ConflictError(f"Recap already exists for {year}-{month:02d}")

    # 2. Approved overtime.
    approved_minutes, entry_ids = await get_approved_overtime_minutes(session, employee_id, year, month)
    if approved_minutes == 0:
        raise ConflictError(f"No approved overtime for {year}-{month:02d}")

    # 3-4. Split and price.
    carryover_minutes = await _get_carryover_minutes(session, employee_id, year, month)
    split = compute_recap(
        approved_minutes,
        carryover_minutes,
        payable_cap_minutes=policy.payable_cap_minutes,
        toil_day_minutes=policy.toil_day_minutes,
    )
    payment = compute_payment(split.paid_minutes, employee.overtime_rate, employee.access_tier, policy)

    # 5. Insert.
    now = clock.now()
    recap = OvertimeRecap(
        employee_id=employee_id,
        year=year,
        month=month,
        total_minutes=split.total_minutes,
        paid_minutes=split.paid_minutes,
        excess_minutes=split.excess_minutes,
        carryover_minutes=split.carryover_minutes,
        total_toil_minutes=split.total_toil_minutes,
        toil_days_created=split.toil_days_created,
        remaining_minutes=split.remaining_minutes,
        payment_amount=payment,
        recapped_at=now,
        recapped_by=actor_id,
    )
    session.add(recap)

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError(f"Recap already exists for {year}-{month:02d}") from None

    # 6. Link entries and grant TOIL.
    result = await session.execute(select(OvertimeEntry).where(col(OvertimeEntry.id).in_(entry_ids)))
    for entry in result.scalars().all():
        entry.recap_id = recap.id

    if split.toil_days_created > 0:
        expiry_year, expiry_month = add_months(year, month, policy.toil_expiry_months)
        grant = ToilGrant(
            employee_id=employee_id,
            recap_id=recap.id,
            days=split.toil_days_created,
            source_minutes=split.total_toil_minutes,
            earned_year=year,
            earned_month=month,
            expiry_year=expiry_year,
            expiry_month=expiry_month,
            status=ToilStatus.AVAILABLE.value,
        )
        session.add(grant)
        await session.flush()

        leave_balance = await get_or_create_balance_for_update(
            session,
            employee_id,
            year,
            annual_quota=annual_quota_for(employee.hire_date, clock.today(), leave_policy),
        )
        await apply_balance_mutation(
            session,
            leave_balance,
            bucket=BalanceBucket.TOIL,
            entry_type=LedgerEntryType.TOIL_CREDIT,
            days=split.toil_days_created,
            source_type=LedgerSourceType.RECAP,
            source_id=str(recap.id),
            metadata_json={"year": year, "month": month, "toil_grant_id": str(grant.id)},
        )

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.TOIL_GRANT,
            entity_id=grant.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(grant),
        )

    # 7. Reset the running balance.
    overtime_balance = await get_or_create_overtime_balance_for_update(session, employee_id)
    overtime_balance.current_minutes = 0
    overtime_balance.total_paid_minutes += split.paid_minutes
    overtime_balance.last_reset_at = now
    overtime_balance.version += 1
    await session.flush()

    # 8. Audit.
    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.OVERTIME_RECAP,
        entity_id=recap.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(recap),
    )

    await session.commit()
    await session.refresh(recap)

    logger.info(
        "Recap %s-%02d for employee=%s: total=%d paid=%d toil_days=%d remaining=%d",
        year,
        month,
        employee_id,
        split.total_minutes,
        split.paid_minutes,
        split.toil_days_created,
        split.remaining_minutes,
    )
    return recap


async def get_recap(session: AsyncSession, recap_id: uuid.UUID) -> RecapResponse:
    recap = await session.get(OvertimeRecap, recap_id)
    if recap is None:
        raise NotFoundError("Recap not found")
    return build_recap_response(recap)


async def list_recaps(
    session: AsyncSession,
    employee_id: uuid.UUID | None = None,
    year: int | None = None,
    month: int | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RecapListResponse:
    """List recaps with optional filters, newest period first."""
    filters = []
    if employee_id is not None:
        filters.append(col(OvertimeRecap.employee_id) == employee_id)
    if year is not None:
        filters.append(col(OvertimeRecap.year) == year)
    if month is not None:
        filters.append(col(OvertimeRecap.month) == month)

    count_result = await session.execute(select(func.count()).select_from(OvertimeRecap).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(OvertimeRecap)
        .where(*filters)
        .order_by(col(OvertimeRecap.year).desc(), col(OvertimeRecap.month).desc(), col(OvertimeRecap.recapped_at))
        .offset(offset)
        .limit(limit)
    )
    return RecapListResponse(
        items=[build_recap_response(r) for r in result.scalars().all()],
        total=total,
    )
