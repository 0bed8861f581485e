# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlmodel import col

from overtime_ledger.exceptions import NotFoundError, PermissionDenied, StateError, ValidationFailed
from overtime_ledger.models.enums import AuditAction, AuditEntityType, OvertimeStatus
from overtime_ledger.models.overtime import OvertimeBalance, OvertimeEntry, OvertimeRequest
from overtime_ledger.schemas.overtime import (
    FieldWarningResponse,
    OvertimeBalanceResponse,
    OvertimeEntryResponse,
    OvertimeRequestListResponse,
    OvertimeRequestResponse,
)
from overtime_ledger.schemas.policy import minutes_to_hours
from overtime_ledger.services.audit import model_to_audit_dict, write_audit_log
from overtime_ledger.services.calculator import compute_payment
from overtime_ledger.services.employee import approval_chain_for, fetch_employee
from overtime_ledger.services.system import ensure_approvals_unlocked
from overtime_ledger.services.validation import ValidationResult, hours_to_minutes, validate_entries_for_employee

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.auth import AuthContext
    from overtime_ledger.schemas.overtime import OvertimeDecisionPayload, OvertimeEntryInput, SubmitOvertimePayload
    from overtime_ledger.schemas.policy import OvertimePolicy
    from overtime_ledger.services.clock import Clock
    from overtime_ledger.services.employee import EmployeeDirectory

logger = logging.getLogger(__name__)

# Statuses whose minutes are counted in OvertimeBalance.pending_minutes.
_UNDECIDED = (OvertimeStatus.PENDING, OvertimeStatus.REVISION_REQUESTED)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_request_response(
    request: OvertimeRequest,
    entries: Sequence[OvertimeEntry],
    warnings: list[FieldWarningResponse] | None = None,
) -> OvertimeRequestResponse:
    """Map a request model and its entries to the response schema."""
    return OvertimeRequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        status=OvertimeStatus(request.status),
        entries=[
            OvertimeEntryResponse(
                id=entry.id,
                date=entry.date,
                hours=minutes_to_hours(entry.minutes),
                description=entry.description,
                recap_id=entry.recap_id,
            )
            for entry in sorted(entries, key=lambda e: e.date)
        ],
        total_hours=minutes_to_hours(request.total_minutes),
        estimated_amount=request.estimated_amount,
        approver_id=request.approver_id,
        approval_chain=[uuid.UUID(a) for a in request.approval_chain],
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
        decided_by=request.decided_by,
        decision_note=request.decision_note,
        recap_ids=sorted({entry.recap_id for entry in entries if entry.recap_id is not None}),
        warnings=warnings or [],
    )


async def _get_request_or_404(session: AsyncSession, request_id: uuid.UUID) -> OvertimeRequest:
    request = await session.get(OvertimeRequest, request_id)
    if request is None:
        raise NotFoundError("Overtime request not found")
    return request


async def _load_entries(session: AsyncSession, request_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, list[OvertimeEntry]]:
    grouped: dict[uuid.UUID, list[OvertimeEntry]] = {request_id: [] for request_id in request_ids}
    if not request_ids:
        return grouped
    result = await session.execute(
        select(OvertimeEntry)
        .where(col(OvertimeEntry.request_id).in_(request_ids))
        .order_by(col(OvertimeEntry.date))
    )
    for entry in result.scalars().all():
        grouped[entry.request_id].append(entry)
    return grouped


async def get_or_create_overtime_balance_for_update(session: AsyncSession, employee_id: uuid.UUID) -> OvertimeBalance:
    """Get the employee's overtime balance with a FOR UPDATE lock, creating it if absent.

    Taking this lock first serialises every overtime write for one employee.
    """
    result = await session.execute(
        select(OvertimeBalance).where(col(OvertimeBalance.employee_id) == employee_id).with_for_update()
    )
    balance = result.scalar_one_or_none()

    if balance is None:
        balance = OvertimeBalance(employee_id=employee_id)
        session.add(balance)
        await session.flush()

    return balance


def _raise_for_validation(result: ValidationResult, confirm_weekdays: bool) -> list[FieldWarningResponse]:
    """Raise ValidationFailed for errors or unconfirmed weekday warnings."""
    if not result.ok:
        raise ValidationFailed("Overtime entries failed validation", result.errors_as_dicts())

    warnings = [FieldWarningResponse(entry_index=w.entry_index, reason=w.reason) for w in result.warnings]
    if warnings and not confirm_weekdays:
        raise ValidationFailed(
            "Weekday entries must be confirmed",
            [{"entry_index": w.entry_index, "field": "date", "reason": w.reason} for w in warnings],
        )
    return warnings


def _build_entries(request_id: uuid.UUID, entries: Sequence[OvertimeEntryInput]) -> list[OvertimeEntry]:
    return [
        OvertimeEntry(
            request_id=request_id,
            date=entry.date,
            minutes=hours_to_minutes(entry.hours),
            description=entry.description.strip(),
        )
        for entry in entries
    ]


def _require_comment(comment: str | None, action: str) -> str:
    if comment is None or not comment.strip():
        raise ValidationFailed(
            f"A comment is required to {action}",
            [{"entry_index": None, "field": "comment", "reason": "Comment is required"}],
        )
    return comment.strip()


def _ensure_can_decide(auth: AuthContext, request: OvertimeRequest) -> None:
    """Only the assigned approver (or anyone in the chain) or an admin may decide."""
    if auth.user_id == request.employee_id:
        raise PermissionDenied("Employees cannot decide their own overtime requests")
    if auth.is_admin:
        return
    if not auth.can_approve:
        raise PermissionDenied("Approver role required")
    if auth.user_id != request.approver_id and str(auth.user_id) not in request.approval_chain:
        raise PermissionDenied("Not an approver for this overtime request")


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def submit_overtime_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitOvertimePayload,
    *,
    policy: OvertimePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
) -> OvertimeRequestResponse:
    """Submit overtime entries for the authenticated employee.

    Flow:
    1. Lock the employee's overtime balance (serialises concurrent submits)
    2. Run the entry validator; every violation is reported together
    3. Require confirmation when weekday warnings exist
    4. Route to supervisor, then division head, else any admin
    5. Store request and entries, move minutes into pending
    6. Audit and commit
    """
    employee = await fetch_employee(directory, auth.user_id)
    balance = await get_or_create_overtime_balance_for_update(session, employee.id)

    result = await validate_entries_for_employee(
        session, employee.id, payload.entries, policy=policy, today=clock.today()
    )
    warnings = _raise_for_validation(result, payload.confirm_weekdays)

    chain = approval_chain_for(employee)
    total_minutes = sum(hours_to_minutes(entry.hours) for entry in payload.entries)
    request = OvertimeRequest(
        employee_id=employee.id,
        status=OvertimeStatus.PENDING.value,
        total_minutes=total_minutes,
        estimated_amount=compute_payment(total_minutes, employee.overtime_rate, employee.access_tier, policy),
        approver_id=chain[0] if chain else None,
        approval_chain=[str(approver_id) for approver_id in chain],
        submitted_at=clock.now(),
    )
    session.add(request)
    await session.flush()

    entries = _build_entries(request.id, payload.entries)
    session.add_all(entries)

    balance.pending_minutes += total_minutes
    balance.version += 1
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.OVERTIME_REQUEST,
        entity_id=request.id,
        action=AuditAction.SUBMIT,
        after_json=model_to_audit_dict(request),
    )

    await session.commit()
    await session.refresh(request)
    logger.info("Overtime request %s submitted by %s (%d minutes)", request.id, employee.id, total_minutes)
    return _build_request_response(request, entries, warnings)


async def resubmit_overtime_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: SubmitOvertimePayload,
    *,
    policy: OvertimePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
) -> OvertimeRequestResponse:
    """Replace the entries of a PENDING or REVISION_REQUESTED request.

    The request's own dates are excluded from the duplicate check, so an
    unchanged date may be resubmitted.
    """
    request = await _get_request_or_404(session, request_id)
    if request.employee_id != auth.user_id:
        raise PermissionDenied("Only the owner can resubmit an overtime request")

    employee = await fetch_employee(directory, request.employee_id)
    balance = await get_or_create_overtime_balance_for_update(session, employee.id)
    await session.refresh(request)

    if request.status not in _UNDECIDED:
        raise StateError(f"Cannot resubmit overtime request in status {request.status}")

    result = await validate_entries_for_employee(
        session,
        employee.id,
        payload.entries,
        policy=policy,
        today=clock.today(),
        exclude_request_id=request.id,
    )
    warnings = _raise_for_validation(result, payload.confirm_weekdays)

    before = model_to_audit_dict(request)
    old_minutes = request.total_minutes

    await session.execute(delete(OvertimeEntry).where(col(OvertimeEntry.request_id) == request.id))
    entries = _build_entries(request.id, payload.entries)
    session.add_all(entries)

    request.total_minutes = sum(entry.minutes for entry in entries)
    request.estimated_amount = compute_payment(
        request.total_minutes, employee.overtime_rate, employee.access_tier, policy
    )
    request.status = OvertimeStatus.PENDING.value
    request.submitted_at = clock.now()
    request.decided_at = None
    request.decided_by = None
    request.decision_note = None

    balance.pending_minutes += request.total_minutes - old_minutes
    balance.version += 1
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.OVERTIME_REQUEST,
        entity_id=request.id,
        action=AuditAction.RESUBMIT,
        before_json=before,
        after_json=model_to_audit_dict(request),
    )

    await session.commit()
    await session.refresh(request)
    return _build_request_response(request, entries, warnings)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


async def _decide(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    *,
    new_status: OvertimeStatus,
    action: AuditAction,
    note: str | None,
    clock: Clock,
) -> OvertimeRequestResponse:
    await ensure_approvals_unlocked(session)

    request = await _get_request_or_404(session, request_id)
    _ensure_can_decide(auth, request)

    balance = await get_or_create_overtime_balance_for_update(session, request.employee_id)
    await session.refresh(request)
    if request.status != OvertimeStatus.PENDING:
        raise StateError(f"Cannot {action.value.lower()} overtime request in status {request.status}")

    before = model_to_audit_dict(request)

    if new_status == OvertimeStatus.APPROVED:
        balance.pending_minutes -= request.total_minutes
        balance.current_minutes += request.total_minutes
    elif new_status == OvertimeStatus.REJECTED:
        balance.pending_minutes -= request.total_minutes
    balance.version += 1

    request.status = new_status.value
    request.decided_at = clock.now()
    request.decided_by = auth.user_id
    request.decision_note = note
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.OVERTIME_REQUEST,
        entity_id=request.id,
        action=action,
        before_json=before,
        after_json=model_to_audit_dict(request),
    )

    await session.commit()
    await session.refresh(request)
    entries = await _load_entries(session, [request.id])
    return _build_request_response(request, entries[request.id])


async def approve_overtime_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: OvertimeDecisionPayload | None,
    *,
    clock: Clock,
) -> OvertimeRequestResponse:
    """Approve a PENDING request; its minutes move from pending to current."""
    note = payload.comment if payload is not None else None
    return await _decide(
        session, auth, request_id, new_status=OvertimeStatus.APPROVED, action=AuditAction.APPROVE, note=note, clock=clock
    )


async def reject_overtime_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: OvertimeDecisionPayload | None,
    *,
    clock: Clock,
) -> OvertimeRequestResponse:
    """Reject a PENDING request. A comment is required."""
    note = _require_comment(payload.comment if payload is not None else None, "reject")
    return await _decide(
        session, auth, request_id, new_status=OvertimeStatus.REJECTED, action=AuditAction.REJECT, note=note, clock=clock
    )


async def request_overtime_revision(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: OvertimeDecisionPayload | None,
    *,
    clock: Clock,
) -> OvertimeRequestResponse:
    """Send a PENDING request back to the employee. A comment is required."""
    note = _require_comment(payload.comment if payload is not None else None, "request a revision")
    return await _decide(
        session,
        auth,
        request_id,
        new_status=OvertimeStatus.REVISION_REQUESTED,
        action=AuditAction.REQUEST_REVISION,
        note=note,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_overtime_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> OvertimeRequestResponse:
    """Get one request; employees only see their own."""
    request = await _get_request_or_404(session, request_id)
    if not auth.can_approve and request.employee_id != auth.user_id:
        raise NotFoundError("Overtime request not found")
    entries = await _load_entries(session, [request.id])
    return _build_request_response(request, entries[request.id])


async def list_overtime_requests(
    session: AsyncSession,
    employee_id: uuid.UUID | None = None,
    status_filter: str | None = None,
    approver_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> OvertimeRequestListResponse:
    """List requests with optional filters, newest submission first."""
    filters = []
    if employee_id is not None:
        filters.append(col(OvertimeRequest.employee_id) == employee_id)
    if status_filter is not None:
        filters.append(col(OvertimeRequest.status) == status_filter)
    if approver_id is not None:
        filters.append(col(OvertimeRequest.approver_id) == approver_id)

    count_result = await session.execute(select(func.count()).select_from(OvertimeRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(OvertimeRequest)
        .where(*filters)
        .order_by(col(OvertimeRequest.submitted_at).desc())
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())
    entries = await _load_entries(session, [r.id for r in requests])

    return OvertimeRequestListResponse(
        items=[_build_request_response(r, entries[r.id]) for r in requests],
        total=total,
    )


async def get_overtime_balance(session: AsyncSession, employee_id: uuid.UUID) -> OvertimeBalanceResponse:
    """Unrecapped overtime totals; zeros when the employee has none yet."""
    balance = await session.get(OvertimeBalance, employee_id)
    if balance is None:
        return OvertimeBalanceResponse(
            employee_id=employee_id,
            current_hours=0,
            pending_hours=0,
            total_paid_hours=0,
            last_reset_at=None,
        )
    return OvertimeBalanceResponse(
        employee_id=employee_id,
        current_hours=minutes_to_hours(balance.current_minutes),
        pending_hours=minutes_to_hours(balance.pending_minutes),
        total_paid_hours=minutes_to_hours(balance.total_paid_minutes),
        last_reset_at=balance.last_reset_at,
    )
