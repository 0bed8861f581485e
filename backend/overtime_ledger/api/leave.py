# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from overtime_ledger.api.deps import AuthDep, ClockDep, DirectoryDep, LeavePolicyDep, ensure_self_or_approver
from overtime_ledger.db import SessionDep
from overtime_ledger.schemas.leave import (
    LeaveBalanceResponse,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    SubmitLeavePayload,
    TimelineResponse,
    TransitionPayload,
)
from overtime_ledger.services import leave as leave_service

leave_router = APIRouter(prefix="/leave", tags=["leave"])


@leave_router.post("/requests", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitLeavePayload,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: LeavePolicyDep,
) -> LeaveRequestResponse:
    """Submit a leave request."""
    return await leave_service.submit_leave_request(
        session, auth, payload, policy=policy, clock=clock, directory=directory
    )


@leave_router.get("/requests", response_model=LeaveRequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: str | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    leave_type: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveRequestListResponse:
    """List leave requests. Employees only see their own."""
    if not auth.can_approve:
        employee_id = auth.user_id
    return await leave_service.list_leave_requests(session, employee_id, status_filter, leave_type, offset, limit)


@leave_router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    """Get a single leave request."""
    return await leave_service.get_leave_request(session, auth, request_id)


@leave_router.get("/requests/{request_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> TimelineResponse:
    """Lifecycle events of a leave request, submission first."""
    return await leave_service.get_leave_timeline(session, auth, request_id)


@leave_router.post("/requests/{request_id}/transition", response_model=LeaveRequestResponse)
async def transition_request(
    request_id: uuid.UUID,
    payload: TransitionPayload,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: LeavePolicyDep,
) -> LeaveRequestResponse:
    """Approve, reject or cancel a leave request."""
    return await leave_service.transition_leave_request(
        session,
        request_id,
        payload.action,
        auth,
        payload.comment,
        clock=clock,
        directory=directory,
        policy=policy,
    )


@leave_router.get("/balances/{employee_id}/{year}", response_model=LeaveBalanceResponse)
async def get_balance(
    employee_id: uuid.UUID,
    year: int,
    session: SessionDep,
    auth: AuthDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: LeavePolicyDep,
) -> LeaveBalanceResponse:
    """Get an employee's leave balance for a year."""
    ensure_self_or_approver(auth, employee_id)
    return await leave_service.get_leave_balance(
        session, employee_id, year, policy=policy, clock=clock, directory=directory
    )
