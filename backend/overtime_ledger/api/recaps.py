# ruff: noqa: B008, TC001, TC003
"""API endpoints for monthly recaps and TOIL."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from overtime_ledger.api.deps import (
    AdminDep,
    AuthDep,
    ClockDep,
    DirectoryDep,
    LeavePolicyDep,
    OvertimePolicyDep,
    ensure_self_or_approver,
)
from overtime_ledger.config import get_settings
from overtime_ledger.db import SessionDep, SessionFactoryDep
from overtime_ledger.schemas.recap import (
    BulkRecapPayload,
    BulkRecapResponse,
    CreateRecapPayload,
    RecapListResponse,
    RecapResponse,
    ToilExpirationResponse,
    ToilSummaryResponse,
)
from overtime_ledger.services import recap as recap_service
from overtime_ledger.services.bulk import run_bulk_recap
from overtime_ledger.services.toil import get_toil_summary, run_toil_expiration

# ---------------------------------------------------------------------------
# Recaps: /overtime/recaps
# ---------------------------------------------------------------------------

recaps_router = APIRouter(prefix="/overtime/recaps", tags=["recaps"])


@recaps_router.post("", response_model=RecapResponse, status_code=status.HTTP_201_CREATED)
async def create_recap(
    payload: CreateRecapPayload,
    session: SessionDep,
    auth: AdminDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: OvertimePolicyDep,
    leave_policy: LeavePolicyDep,
) -> RecapResponse:
    """Recap one employee's month (admin only)."""
    recap = await recap_service.create_recap(
        session,
        payload.employee_id,
        payload.year,
        payload.month,
        actor_id=auth.user_id,
        policy=policy,
        clock=clock,
        directory=directory,
        leave_policy=leave_policy,
    )
    return recap_service.build_recap_response(recap)


@recaps_router.post("/bulk", response_model=BulkRecapResponse)
async def bulk_recap(
    payload: BulkRecapPayload,
    session_factory: SessionFactoryDep,
    auth: AdminDep,
    clock: ClockDep,
    directory: DirectoryDep,
    policy: OvertimePolicyDep,
    leave_policy: LeavePolicyDep,
) -> BulkRecapResponse:
    """Recap a month for many employees (admin only).

    Each employee is recapped independently; failures are reported in
    ``failed`` alongside the successes.
    """
    result = await run_bulk_recap(
        session_factory,
        payload.year,
        payload.month,
        payload.employee_ids,
        actor_id=auth.user_id,
        policy=policy,
        clock=clock,
        directory=directory,
        concurrency=get_settings().bulk_recap_concurrency,
        leave_policy=leave_policy,
    )
    return result.to_response()


@recaps_router.get("", response_model=RecapListResponse)
async def list_recaps(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID | None = Query(default=None),
    year: int | None = Query(default=None),
    month: int | None = Query(default=None, ge=1, le=12),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RecapListResponse:
    """List recaps. Employees only see their own."""
    if not auth.can_approve:
        employee_id = auth.user_id
    return await recap_service.list_recaps(session, employee_id, year, month, offset, limit)


@recaps_router.get("/{recap_id}", response_model=RecapResponse)
async def get_recap(
    recap_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RecapResponse:
    """Get a single recap."""
    recap = await recap_service.get_recap(session, recap_id)
    ensure_self_or_approver(auth, recap.employee_id)
    return recap


# ---------------------------------------------------------------------------
# TOIL: /toil
# ---------------------------------------------------------------------------

toil_router = APIRouter(prefix="/toil", tags=["toil"])


@toil_router.post("/expire", response_model=ToilExpirationResponse)
async def expire_toil(
    session: SessionDep,
    auth: AdminDep,
    clock: ClockDep,
    policy: LeavePolicyDep,
) -> ToilExpirationResponse:
    """Expire TOIL grants past their expiry month (admin only).

    The worker runs this daily; the endpoint is for backfills and testing.
    """
    result = await run_toil_expiration(session, clock=clock, policy=policy, actor_id=auth.user_id)
    return result.to_response()


@toil_router.get("/{employee_id}", response_model=ToilSummaryResponse)
async def get_toil(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> ToilSummaryResponse:
    """List an employee's available TOIL grants."""
    ensure_self_or_approver(auth, employee_id)
    return await get_toil_summary(session, employee_id)
