# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

from fastapi import APIRouter

from overtime_ledger.api.deps import AdminDep, AuthDep
from overtime_ledger.db import SessionDep
from overtime_ledger.schemas.system import SystemSettingsResponse, UpdateSystemSettingsPayload
from overtime_ledger.services import system as system_service

system_router = APIRouter(prefix="/system", tags=["system"])


@system_router.get("/settings", response_model=SystemSettingsResponse)
async def get_settings(
    session: SessionDep,
    auth: AuthDep,
) -> SystemSettingsResponse:
    """Get the recap cut-off date and approval lock."""
    return await system_service.get_system_settings(session)


@system_router.put("/settings", response_model=SystemSettingsResponse)
async def update_settings(
    payload: UpdateSystemSettingsPayload,
    session: SessionDep,
    auth: AdminDep,
) -> SystemSettingsResponse:
    """Update the recap cut-off date or approval lock (admin only)."""
    return await system_service.update_system_settings(session, auth.user_id, payload)
