"""TOIL grants: drawing, expiration and summaries.

TOIL leave draws on unexpired grants oldest expiry first, debiting the balance
row of the year each grant was earned in. Grants expire once the calendar has
moved past their expiry month; the days still unused are debited from that
same row. Idempotent via the ledger's (source_type, source_id, entry_type) key.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import and_, or_, select
from sqlmodel import col

from overtime_ledger.exceptions import ConflictError, LedgerInvariantError
from overtime_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    BalanceBucket,
    LedgerEntryType,
    LedgerSourceType,
    ToilStatus,
)
from overtime_ledger.models.ledger import LeaveLedgerEntry
from overtime_ledger.models.recap import ToilGrant
from overtime_ledger.schemas.policy import minutes_to_hours
from overtime_ledger.schemas.recap import ToilExpirationResponse, ToilGrantResponse, ToilSummaryResponse
from overtime_ledger.services.audit import model_to_audit_dict, write_audit_log
from overtime_ledger.services.ledger import apply_balance_mutation, get_or_create_balance_for_update

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.policy import LeavePolicy
    from overtime_ledger.services.clock import Clock

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = uuid.UUID(int=0)


@dataclass
class ToilExpirationRunResult:
    """Result of a TOIL expiration run."""

    target_date: date
    processed: int = 0
    expired_days: int = 0
    skipped: int = 0

    def to_response(self) -> ToilExpirationResponse:
        return ToilExpirationResponse(processed=self.processed, expired_days=self.expired_days, skipped=self.skipped)


def _build_grant_response(grant: ToilGrant) -> ToilGrantResponse:
    return ToilGrantResponse(
        id=grant.id,
        recap_id=grant.recap_id,
        days=grant.days,
        used_days=grant.used_days,
        source_hours=minutes_to_hours(grant.source_minutes),
        earned_year=grant.earned_year,
        earned_month=grant.earned_month,
        expiry_year=grant.expiry_year,
        expiry_month=grant.expiry_month,
        status=grant.status,
    )


def _usage_source_id(request_id: uuid.UUID, grant_id: uuid.UUID) -> str:
    return f"{request_id}:{grant_id}"


async def usable_toil_grants(
    session: AsyncSession,
    employee_id: uuid.UUID,
    on: date,
    *,
    for_update: bool = False,
) -> list[ToilGrant]:
    """AVAILABLE grants with days left that are still valid in the month of ``on``.

    Ordered oldest expiry first, the order TOIL leave draws them in.
    """
    query = (
        select(ToilGrant)
        .where(
            col(ToilGrant.employee_id) == employee_id,
            col(ToilGrant.status) == ToilStatus.AVAILABLE.value,
            col(ToilGrant.used_days) < col(ToilGrant.days),
            or_(
                col(ToilGrant.expiry_year) > on.year,
                and_(col(ToilGrant.expiry_year) == on.year, col(ToilGrant.expiry_month) >= on.month),
            ),
        )
        .order_by(col(ToilGrant.expiry_year), col(ToilGrant.expiry_month), col(ToilGrant.created_at))
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return list(result.scalars().all())


async def draw_toil(
    session: AsyncSession,
    employee_id: uuid.UUID,
    request_id: uuid.UUID,
    days: int,
    *,
    on: date,
    policy: LeavePolicy,
) -> None:
    """Debit ``days`` of TOIL for an approved leave request.

    Each grant drawn from gets its own USAGE entry on the balance of the
    grant's earned year, so a December grant stays usable in January.
    Raises ConflictError when the usable grants hold fewer than ``days``.
    """
    grants = await usable_toil_grants(session, employee_id, on, for_update=True)
    available = sum(grant.days - grant.used_days for grant in grants)
    if available < days:
        raise ConflictError(f"Insufficient balance: {available} days left, {days} requested")

    remaining = days
    for grant in grants:
        if remaining == 0:
            break
        take = min(grant.days - grant.used_days, remaining)
        balance = await get_or_create_balance_for_update(
            session, employee_id, grant.earned_year, annual_quota=policy.annual_quota_days
        )
        entry = await apply_balance_mutation(
            session,
            balance,
            bucket=BalanceBucket.TOIL,
            entry_type=LedgerEntryType.USAGE,
            days=take,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id=_usage_source_id(request_id, grant.id),
            metadata_json={"toil_grant_id": str(grant.id), "leave_start": on.isoformat()},
        )
        if entry is not None:
            grant.used_days += take
        remaining -= take

    await session.flush()


async def restore_toil(session: AsyncSession, request_id: uuid.UUID, *, policy: LeavePolicy) -> int:
    """Reverse every TOIL USAGE a leave request posted. Returns the days restored.

    Each reversal goes back to the grant and balance row it was drawn from.
    """
    result = await session.execute(
        select(LeaveLedgerEntry)
        .where(
            col(LeaveLedgerEntry.source_type) == LedgerSourceType.LEAVE_REQUEST.value,
            col(LeaveLedgerEntry.entry_type) == LedgerEntryType.USAGE.value,
            col(LeaveLedgerEntry.bucket) == BalanceBucket.TOIL.value,
            col(LeaveLedgerEntry.source_id).startswith(f"{request_id}:"),
        )
        .order_by(col(LeaveLedgerEntry.created_at))
    )
    usages = list(result.scalars().all())

    restored = 0
    for usage in usages:
        days = -usage.amount_days
        grant_id = uuid.UUID((usage.metadata_json or {})["toil_grant_id"])
        grant = (
            await session.execute(select(ToilGrant).where(col(ToilGrant.id) == grant_id).with_for_update())
        ).scalar_one_or_none()
        if grant is None:
            raise LedgerInvariantError(f"TOIL grant {grant_id} drawn by leave request {request_id} is missing")

        balance = await get_or_create_balance_for_update(
            session, usage.employee_id, usage.year, annual_quota=policy.annual_quota_days
        )
        entry = await apply_balance_mutation(
            session,
            balance,
            bucket=BalanceBucket.TOIL,
            entry_type=LedgerEntryType.USAGE_REVERSAL,
            days=days,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id=usage.source_id,
            metadata_json={"toil_grant_id": str(grant.id)},
        )
        if entry is not None:
            grant.used_days -= days
            restored += days

    await session.flush()
    return restored


async def run_toil_expiration(
    session: AsyncSession,
    *,
    clock: Clock,
    policy: LeavePolicy,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> ToilExpirationRunResult:
    """Expire every AVAILABLE grant whose expiry month is before today's month.

    For each grant:
    1. Lock the balance of the grant's earned year
    2. Debit the unused part (days not drawn by leave, capped at the TOIL left)
    3. Mark the grant EXPIRED and audit it
    """
    today = clock.today()
    result = ToilExpirationRunResult(target_date=today)

    grants_result = await session.execute(
        select(ToilGrant)
        .where(
            col(ToilGrant.status) == ToilStatus.AVAILABLE.value,
            or_(
                col(ToilGrant.expiry_year) < today.year,
                and_(col(ToilGrant.expiry_year) == today.year, col(ToilGrant.expiry_month) < today.month),
            ),
        )
        .order_by(col(ToilGrant.expiry_year), col(ToilGrant.expiry_month), col(ToilGrant.created_at))
        .with_for_update()
    )
    grants = list(grants_result.scalars().all())

    for grant in grants:
        before = model_to_audit_dict(grant)
        balance = await get_or_create_balance_for_update(
            session, grant.employee_id, grant.earned_year, annual_quota=policy.annual_quota_days
        )

        expire_days = min(grant.days - grant.used_days, max(balance.toil_balance, 0))
        if expire_days > 0:
            entry = await apply_balance_mutation(
                session,
                balance,
                bucket=BalanceBucket.TOIL,
                entry_type=LedgerEntryType.TOIL_EXPIRATION,
                days=expire_days,
                source_type=LedgerSourceType.TOIL_GRANT,
                source_id=str(grant.id),
                metadata_json={
                    "granted_days": grant.days,
                    "expiry_year": grant.expiry_year,
                    "expiry_month": grant.expiry_month,
                },
            )
            if entry is None:
                result.skipped += 1  # Debit already posted
            else:
                result.expired_days += expire_days

        grant.status = ToilStatus.EXPIRED.value
        grant.expired_at = clock.now()
        await session.flush()

        await write_audit_log(
            session,
            actor_id=actor_id,
            entity_type=AuditEntityType.TOIL_GRANT,
            entity_id=grant.id,
            action=AuditAction.EXPIRE,
            before_json=before,
            after_json=model_to_audit_dict(grant),
        )
        result.processed += 1

    await session.commit()

    if result.processed or result.skipped:
        logger.info(
            "TOIL expiration for %s: processed=%d expired_days=%d skipped=%d",
            today,
            result.processed,
            result.expired_days,
            result.skipped,
        )
    return result


async def get_toil_summary(session: AsyncSession, employee_id: uuid.UUID) -> ToilSummaryResponse:
    """Available TOIL grants for an employee, oldest expiry first."""
    result = await session.execute(
        select(ToilGrant)
        .where(
            col(ToilGrant.employee_id) == employee_id,
            col(ToilGrant.status) == ToilStatus.AVAILABLE.value,
        )
        .order_by(col(ToilGrant.expiry_year), col(ToilGrant.expiry_month))
    )
    grants = list(result.scalars().all())
    return ToilSummaryResponse(
        employee_id=employee_id,
        total_days=sum(grant.days - grant.used_days for grant in grants),
        grants=[_build_grant_response(grant) for grant in grants],
    )
