"""Leave request state machine.

PENDING -> APPROVED | REJECTED, APPROVED -> CANCELLED. Submission holds
nothing: quota is checked against what remains after other pending requests.
Approval debits and cancellation credits back through the leave ledger, with
the balance row locked for the whole transition.
"""

# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlmodel import col

from overtime_ledger.exceptions import ConflictError, NotFoundError, PermissionDenied, StateError, ValidationFailed
from overtime_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    BalanceBucket,
    LeaveAction,
    LeaveStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    TimelineEvent,
)
from overtime_ledger.models.leave import LeaveBalance, LeaveRequest
from overtime_ledger.schemas.leave import (
    LeaveBalanceResponse,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    TimelineEntryResponse,
    TimelineResponse,
)
from overtime_ledger.services.audit import model_to_audit_dict, write_audit_log
from overtime_ledger.services.employee import approval_chain_for, fetch_employee
from overtime_ledger.services.ledger import (
    annual_quota_for,
    apply_balance_mutation,
    get_or_create_balance_for_update,
)
from overtime_ledger.services.toil import draw_toil, restore_toil, usable_toil_grants
from overtime_ledger.services.working_days import resolve_leave_dates

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.auth import AuthContext
    from overtime_ledger.schemas.leave import SubmitLeavePayload
    from overtime_ledger.schemas.policy import LeavePolicy
    from overtime_ledger.services.clock import Clock
    from overtime_ledger.services.employee import EmployeeDirectory

logger = logging.getLogger(__name__)

# Balance bucket each leave type moves; None means no balance effect.
LEAVE_BUCKETS: dict[LeaveType, BalanceBucket | None] = {
    LeaveType.ANNUAL_LEAVE: BalanceBucket.ANNUAL,
    LeaveType.SICK_LEAVE: BalanceBucket.SICK,
    LeaveType.MATERNITY_LEAVE: None,
    LeaveType.MENSTRUAL_LEAVE: BalanceBucket.MENSTRUAL,
    LeaveType.MARRIAGE_LEAVE: None,
    LeaveType.UNPAID_LEAVE: BalanceBucket.UNPAID,
    LeaveType.TOIL_LEAVE: BalanceBucket.TOIL,
}

# Buckets drawn from a finite allowance.
_QUOTA_BUCKETS = (BalanceBucket.ANNUAL, BalanceBucket.TOIL)

# Types exempt from the per-request working-day cap.
_UNCAPPED_TYPES = (LeaveType.MATERNITY_LEAVE, LeaveType.UNPAID_LEAVE)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from the database."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _build_request_response(request: LeaveRequest) -> LeaveRequestResponse:
    """Map a leave request model to its response schema."""
    return LeaveRequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type=LeaveType(request.leave_type),
        start_date=request.start_date,
        end_date=request.end_date,
        total_days=request.total_days,
        reason=request.reason,
        status=LeaveStatus(request.status),
        approver_id=request.approver_id,
        created_at=request.created_at,
        approved_at=request.approved_at,
        rejected_at=request.rejected_at,
        cancelled_at=request.cancelled_at,
        decided_by=request.decided_by,
        decision_note=request.decision_note,
        cancellation_reason=request.cancellation_reason,
    )


def _field_error(field: str, reason: str) -> dict[str, Any]:
    return {"entry_index": None, "field": field, "reason": reason}


async def _available_days(session: AsyncSession, balance: LeaveBalance, bucket: BalanceBucket, on: date) -> int:
    """Days a quota bucket can still give to leave starting on ``on``.

    Annual leave comes from the start year's row; TOIL from the unexpired grants.
    """
    if bucket == BalanceBucket.ANNUAL:
        return balance.annual_remaining
    grants = await usable_toil_grants(session, balance.employee_id, on)
    return sum(grant.days - grant.used_days for grant in grants)


async def _get_request_or_404(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    request = await session.get(LeaveRequest, request_id)
    if request is None:
        raise NotFoundError("Leave request not found")
    return request


async def _get_request_for_update(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    """Fetch a leave request with a FOR UPDATE lock. Raises 404 if not found."""
    result = await session.execute(
        select(LeaveRequest).where(col(LeaveRequest.id) == request_id).with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Leave request not found")
    return request


async def _pending_days(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int | None,
    bucket: BalanceBucket,
) -> int:
    """Days held by the employee's PENDING requests drawing on a bucket.

    ``year`` limits the sum to requests starting that year; None counts all.
    """
    leave_types = [t.value for t, b in LEAVE_BUCKETS.items() if b == bucket]
    filters = [
        col(LeaveRequest.employee_id) == employee_id,
        col(LeaveRequest.status) == LeaveStatus.PENDING.value,
        col(LeaveRequest.leave_type).in_(leave_types),
    ]
    if year is not None:
        filters.append(col(LeaveRequest.start_date) >= date(year, 1, 1))
        filters.append(col(LeaveRequest.start_date) <= date(year, 12, 31))
    query = select(func.coalesce(func.sum(col(LeaveRequest.total_days)), 0)).where(*filters)
    result = await session.execute(query)
    return int(result.scalar_one())


async def _has_overlap(session: AsyncSession, employee_id: uuid.UUID, start_date: date, end_date: date) -> bool:
    """True when a PENDING or APPROVED request of the employee intersects the range."""
    result = await session.execute(
        select(col(LeaveRequest.id))
        .where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.status).in_([LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]),
            col(LeaveRequest.start_date) <= end_date,
            col(LeaveRequest.end_date) >= start_date,
        )
        .limit(1)
    )
    return result.first() is not None


def _ensure_can_decide(auth: AuthContext, request: LeaveRequest) -> None:
    """The assigned approver decides; requests without one go to an admin."""
    if auth.user_id == request.employee_id:
        raise PermissionDenied("Employees cannot decide their own leave requests")
    if auth.is_admin:
        return
    if not auth.can_approve:
        raise PermissionDenied("Approver role required")
    if request.approver_id is None or auth.user_id != request.approver_id:
        raise PermissionDenied("Not the approver for this leave request")


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def submit_leave_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitLeavePayload,
    *,
    policy: LeavePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
) -> LeaveRequestResponse:
    """Submit a leave request for the authenticated employee.

    Every violation is collected and raised together as ValidationFailed.
    The balance row is locked so concurrent submissions see each other's
    pending days.
    """
    employee = await fetch_employee(directory, auth.user_id)
    leave_type = payload.leave_type
    requested_end = payload.end_date or payload.start_date
    today = clock.today()

    end_date, total_days = resolve_leave_dates(leave_type, payload.start_date, requested_end, policy)
    year = payload.start_date.year
    errors: list[dict[str, Any]] = []

    if payload.start_date > requested_end:
        errors.append(_field_error("end_date", "Start date must not be after end date"))
    if leave_type == LeaveType.MENSTRUAL_LEAVE and requested_end != payload.start_date:
        errors.append(_field_error("end_date", "Menstrual leave covers a single day"))
    if payload.start_date < today:
        errors.append(_field_error("start_date", "Cannot request leave for past dates"))
    if payload.start_date <= requested_end and total_days <= 0:
        errors.append(_field_error("end_date", "Request covers no working days"))
    if leave_type not in _UNCAPPED_TYPES and total_days > policy.max_days_per_request:
        errors.append(
            _field_error("end_date", f"At most {policy.max_days_per_request} working days per request")
        )

    if await _has_overlap(session, employee.id, payload.start_date, end_date):
        errors.append(_field_error("start_date", "You already have a leave request for these dates"))

    balance = await get_or_create_balance_for_update(
        session, employee.id, year, annual_quota=annual_quota_for(employee.hire_date, today, policy)
    )
    bucket = LEAVE_BUCKETS[leave_type]

    if bucket in _QUOTA_BUCKETS and total_days > 0:
        # TOIL grants span years, so every pending TOIL request competes for them.
        pending_year = year if bucket == BalanceBucket.ANNUAL else None
        pending = await _pending_days(session, employee.id, pending_year, bucket)
        available = await _available_days(session, balance, bucket, payload.start_date) - pending
        if available < total_days:
            label = "annual leave" if bucket == BalanceBucket.ANNUAL else "TOIL"
            errors.append(
                _field_error("leave_type", f"Insufficient {label} balance. You have {max(available, 0)} days available")
            )

    if leave_type == LeaveType.UNPAID_LEAVE:
        pending = await _pending_days(session, employee.id, year, BalanceBucket.UNPAID)
        committed = balance.unpaid_used + pending
        if committed + total_days > policy.unpaid_max_days_per_year:
            errors.append(
                _field_error(
                    "leave_type",
                    f"Unpaid leave exceeds annual limit. You have used {committed} of "
                    f"{policy.unpaid_max_days_per_year} days",
                )
            )
        if total_days > policy.unpaid_max_consecutive_days:
            errors.append(
                _field_error(
                    "end_date", f"Unpaid leave cannot exceed {policy.unpaid_max_consecutive_days} consecutive days"
                )
            )

    if errors:
        raise ValidationFailed("Leave request failed validation", errors)

    chain = approval_chain_for(employee)
    request = LeaveRequest(
        employee_id=employee.id,
        leave_type=leave_type.value,
        start_date=payload.start_date,
        end_date=end_date,
        total_days=total_days,
        reason=payload.reason,
        status=LeaveStatus.PENDING.value,
        approver_id=chain[0] if chain else None,
        created_at=clock.now(),
    )
    session.add(request)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        action=AuditAction.SUBMIT,
        after_json=model_to_audit_dict(request),
    )

    await session.commit()
    await session.refresh(request)
    logger.info("Leave request %s submitted by %s (%s, %d days)", request.id, employee.id, leave_type, total_days)
    return _build_request_response(request)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def _approve(
    session: AsyncSession,
    request: LeaveRequest,
    auth: AuthContext,
    comment: str | None,
    *,
    clock: Clock,
    directory: EmployeeDirectory,
    policy: LeavePolicy,
) -> None:
    _ensure_can_decide(auth, request)
    if request.status != LeaveStatus.PENDING:
        raise StateError(f"Cannot approve leave request in status {request.status}")

    bucket = LEAVE_BUCKETS[LeaveType(request.leave_type)]

    if bucket == BalanceBucket.TOIL:
        await draw_toil(
            session, request.employee_id, request.id, request.total_days, on=request.start_date, policy=policy
        )
    elif bucket is not None:
        employee = await fetch_employee(directory, request.employee_id)
        balance = await get_or_create_balance_for_update(
            session,
            request.employee_id,
            request.start_date.year,
            annual_quota=annual_quota_for(employee.hire_date, clock.today(), policy),
        )
        if bucket == BalanceBucket.ANNUAL and balance.annual_remaining < request.total_days:
            raise ConflictError(
                f"Insufficient balance: {balance.annual_remaining} days left, {request.total_days} requested"
            )
        if (
            bucket == BalanceBucket.UNPAID
            and balance.unpaid_used + request.total_days > policy.unpaid_max_days_per_year
        ):
            raise ConflictError(f"Unpaid leave would exceed {policy.unpaid_max_days_per_year} days this year")

        await apply_balance_mutation(
            session,
            balance,
            bucket=bucket,
            entry_type=LedgerEntryType.USAGE,
            days=request.total_days,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id=str(request.id),
            metadata_json={"leave_type": request.leave_type, "start_date": request.start_date.isoformat()},
        )

    request.status = LeaveStatus.APPROVED.value
    request.approved_at = clock.now()
    request.decided_by = auth.user_id
    request.decision_note = comment


def _reject(request: LeaveRequest, auth: AuthContext, comment: str | None, *, clock: Clock) -> None:
    _ensure_can_decide(auth, request)
    if request.status != LeaveStatus.PENDING:
        raise StateError(f"Cannot reject leave request in status {request.status}")
    if comment is None or not comment.strip():
        raise ValidationFailed("A comment is required to reject", [_field_error("comment", "Comment is required")])

    request.status = LeaveStatus.REJECTED.value
    request.rejected_at = clock.now()
    request.decided_by = auth.user_id
    request.decision_note = comment.strip()


async def _cancel(
    session: AsyncSession,
    request: LeaveRequest,
    auth: AuthContext,
    comment: str | None,
    *,
    clock: Clock,
    policy: LeavePolicy,
) -> None:
    if auth.user_id != request.employee_id:
        raise PermissionDenied("Only the owner can cancel a leave request")
    if request.status != LeaveStatus.APPROVED:
        raise StateError(f"Cannot cancel leave request in status {request.status}")
    if request.start_date <= clock.today():
        raise StateError("Leave that has already started cannot be cancelled")

    bucket = LEAVE_BUCKETS[LeaveType(request.leave_type)]
    if bucket == BalanceBucket.TOIL:
        await restore_toil(session, request.id, policy=policy)
    elif bucket is not None:
        balance = await get_or_create_balance_for_update(
            session, request.employee_id, request.start_date.year, annual_quota=policy.annual_quota_days
        )
        await apply_balance_mutation(
            session,
            balance,
            bucket=bucket,
            entry_type=LedgerEntryType.USAGE_REVERSAL,
            days=request.total_days,
            source_type=LedgerSourceType.LEAVE_REQUEST,
            source_id=str(request.id),
            metadata_json={"leave_type": request.leave_type, "reason": comment},
        )

    request.status = LeaveStatus.CANCELLED.value
    request.cancelled_at = clock.now()
    request.cancellation_reason = comment.strip() if comment else None


_AUDIT_ACTIONS = {
    LeaveAction.APPROVE: AuditAction.APPROVE,
    LeaveAction.REJECT: AuditAction.REJECT,
    LeaveAction.CANCEL: AuditAction.CANCEL,
}


async def transition_leave_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    action: LeaveAction,
    actor: AuthContext,
    comment: str | None = None,
    *,
    clock: Clock,
    directory: EmployeeDirectory,
    policy: LeavePolicy,
) -> LeaveRequestResponse:
    """Apply APPROVE, REJECT or CANCEL to a leave request.

    The request row and, for balance-moving actions, the balance row stay
    locked until commit; any failure leaves both untouched.
    """
    request = await _get_request_for_update(session, request_id)
    before = model_to_audit_dict(request)

    if action == LeaveAction.APPROVE:
        await _approve(session, request, actor, comment, clock=clock, directory=directory, policy=policy)
    elif action == LeaveAction.REJECT:
        _reject(request, actor, comment, clock=clock)
    elif action == LeaveAction.CANCEL:
        await _cancel(session, request, actor, comment, clock=clock, policy=policy)
    else:
        raise StateError(f"Unknown leave action {action}")

    await session.flush()

    await write_audit_log(
        session,
        actor_id=actor.user_id,
        entity_type=AuditEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        action=_AUDIT_ACTIONS[action],
        before_json=before,
        after_json=model_to_audit_dict(request),
    )

    await session.commit()
    await session.refresh(request)
    logger.info("Leave request %s %s by %s", request.id, request.status, actor.user_id)
    return _build_request_response(request)


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def build_leave_timeline(request: LeaveRequest) -> list[TimelineEntryResponse]:
    """Lifecycle events derived from the request's timestamps.

    Submission always comes first; the rest follow in timestamp order.
    """
    submitted = TimelineEntryResponse(event=TimelineEvent.SUBMITTED, at=_as_utc(request.created_at), note=request.reason)

    later: list[TimelineEntryResponse] = []
    if request.approved_at is not None:
        later.append(
            TimelineEntryResponse(event=TimelineEvent.APPROVED, at=_as_utc(request.approved_at), note=request.decision_note)
        )
    if request.rejected_at is not None:
        later.append(
            TimelineEntryResponse(event=TimelineEvent.REJECTED, at=_as_utc(request.rejected_at), note=request.decision_note)
        )
    if request.cancelled_at is not None:
        later.append(
            TimelineEntryResponse(
                event=TimelineEvent.CANCELLED, at=_as_utc(request.cancelled_at), note=request.cancellation_reason
            )
        )

    later.sort(key=lambda entry: entry.at)
    return [submitted, *later]


async def get_leave_timeline(session: AsyncSession, auth: AuthContext, request_id: uuid.UUID) -> TimelineResponse:
    request = await _get_request_or_404(session, request_id)
    if not auth.can_approve and request.employee_id != auth.user_id:
        raise NotFoundError("Leave request not found")
    return TimelineResponse(request_id=request.id, events=build_leave_timeline(request))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_leave_request(session: AsyncSession, auth: AuthContext, request_id: uuid.UUID) -> LeaveRequestResponse:
    """Get one leave request; employees only see their own."""
    request = await _get_request_or_404(session, request_id)
    if not auth.can_approve and request.employee_id != auth.user_id:
        raise NotFoundError("Leave request not found")
    return _build_request_response(request)


async def list_leave_requests(
    session: AsyncSession,
    employee_id: uuid.UUID | None = None,
    status_filter: str | None = None,
    leave_type: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LeaveRequestListResponse:
    """List leave requests with optional filters, ordered by created_at DESC."""
    filters = []
    if employee_id is not None:
        filters.append(col(LeaveRequest.employee_id) == employee_id)
    if status_filter is not None:
        filters.append(col(LeaveRequest.status) == status_filter)
    if leave_type is not None:
        filters.append(col(LeaveRequest.leave_type) == leave_type)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*filters)
        .order_by(col(LeaveRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    return LeaveRequestListResponse(
        items=[_build_request_response(r) for r in result.scalars().all()],
        total=total,
    )


async def get_leave_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
    *,
    policy: LeavePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
) -> LeaveBalanceResponse:
    """Balance for one employee and year, created with the tenure quota if absent."""
    employee = await fetch_employee(directory, employee_id)
    balance = await get_or_create_balance_for_update(
        session, employee_id, year, annual_quota=annual_quota_for(employee.hire_date, clock.today(), policy)
    )
    annual_pending = await _pending_days(session, employee_id, year, BalanceBucket.ANNUAL)
    toil_grants = await usable_toil_grants(session, employee_id, clock.today())
    await session.commit()

    return LeaveBalanceResponse(
        employee_id=employee_id,
        year=year,
        annual_quota=balance.annual_quota,
        annual_used=balance.annual_used,
        annual_remaining=balance.annual_remaining,
        annual_pending=annual_pending,
        sick_used=balance.sick_used,
        menstrual_used=balance.menstrual_used,
        unpaid_used=balance.unpaid_used,
        toil_balance=balance.toil_balance,
        toil_used=balance.toil_used,
        toil_expired=balance.toil_expired,
        toil_available=sum(grant.days - grant.used_days for grant in toil_grants),
    )
