# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from overtime_ledger.api.deps import (
    ApproverDep,
    AuthDep,
    ClockDep,
    DirectoryDep,
    OvertimePolicyDep,
    ensure_self_or_approver,
)
from overtime_ledger.db import SessionDep
from overtime_ledger.schemas.overtime import (
    FieldErrorResponse,
    FieldWarningResponse,
    OvertimeBalanceResponse,
    OvertimeDecisionPayload,
    OvertimeRequestListResponse,
    OvertimeRequestResponse,
    SubmitOvertimePayload,
    ValidateOvertimePayload,
    ValidationResponse,
)
from overtime_ledger.services import overtime as overtime_service
from overtime_ledger.services.validation import validate_entries_for_employee

overtime_router = APIRouter(prefix="/overtime", tags=["overtime"])


@overtime_router.post("/validate", response_model=ValidationResponse)
async def validate_entries(
    payload: ValidateOvertimePayload,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    policy: OvertimePolicyDep,
) -> ValidationResponse:
    """Dry-run the entry validator and report every violation and warning."""
    ensure_self_or_approver(auth, payload.employee_id)
    result = await validate_entries_for_employee(
        session,
        payload.employee_id,
        payload.entries,
        policy=policy,
        today=clock.today(),
        exclude_request_id=payload.exclude_request_id,
    )
    return ValidationResponse(
        ok=result.ok,
        min_date=result.min_date,
        max_date=result.max_date,
        errors=[FieldErrorResponse(entry_index=e.entry_index, field=e.field, reason=e.reason) for e in result.errors],
        warnings=[FieldWarningResponse(entry_index=w.entry_index, reason=w.reason) for w in result.warnings],
    )


@overtime_router.post("/requests", response_model=OvertimeRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitOvertimePayload,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: OvertimePolicyDep,
) -> OvertimeRequestResponse:
    """Submit overtime entries for approval."""
    return await overtime_service.submit_overtime_request(
        session, auth, payload, policy=policy, clock=clock, directory=directory
    )


@overtime_router.get("/requests", response_model=OvertimeRequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: str | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    approver_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> OvertimeRequestListResponse:
    """List overtime requests. Employees only see their own."""
    if not auth.can_approve:
        employee_id = auth.user_id
    return await overtime_service.list_overtime_requests(
        session, employee_id, status_filter, approver_id, offset, limit
    )


@overtime_router.get("/requests/{request_id}", response_model=OvertimeRequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> OvertimeRequestResponse:
    """Get a single overtime request."""
    return await overtime_service.get_overtime_request(session, auth, request_id)


@overtime_router.put("/requests/{request_id}", response_model=OvertimeRequestResponse)
async def resubmit_request(
    request_id: uuid.UUID,
    payload: SubmitOvertimePayload,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: OvertimePolicyDep,
) -> OvertimeRequestResponse:
    """Replace the entries of a pending or revision-requested request."""
    return await overtime_service.resubmit_overtime_request(
        session, auth, request_id, payload, policy=policy, clock=clock, directory=directory
    )


@overtime_router.post("/requests/{request_id}/approve", response_model=OvertimeRequestResponse)
async def approve_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: ApproverDep,
    clock: ClockDep,
    payload: OvertimeDecisionPayload | None = None,
) -> OvertimeRequestResponse:
    """Approve a pending overtime request."""
    return await overtime_service.approve_overtime_request(session, auth, request_id, payload, clock=clock)


@overtime_router.post("/requests/{request_id}/reject", response_model=OvertimeRequestResponse)
async def reject_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: ApproverDep,
    clock: ClockDep,
    payload: OvertimeDecisionPayload | None = None,
) -> OvertimeRequestResponse:
    """Reject a pending overtime request (comment required)."""
    return await overtime_service.reject_overtime_request(session, auth, request_id, payload, clock=clock)


@overtime_router.post("/requests/{request_id}/revision", response_model=OvertimeRequestResponse)
async def request_revision(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: ApproverDep,
    clock: ClockDep,
    payload: OvertimeDecisionPayload | None = None,
) -> OvertimeRequestResponse:
    """Send a pending overtime request back for revision (comment required)."""
    return await overtime_service.request_overtime_revision(session, auth, request_id, payload, clock=clock)


@overtime_router.get("/balances/{employee_id}", response_model=OvertimeBalanceResponse)
async def get_balance(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> OvertimeBalanceResponse:
    """Get the unrecapped overtime totals for an employee."""
    ensure_self_or_approver(auth, employee_id)
    return await overtime_service.get_overtime_balance(session, employee_id)
