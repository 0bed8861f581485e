from __future__ import annotations

import uuid
from calendar import monthrange
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from overtime_ledger.exceptions import ApprovalLocked
from overtime_ledger.models.base import utc_now
from overtime_ledger.models.enums import AuditAction, AuditEntityType
from overtime_ledger.models.recap import OvertimeRecap
from overtime_ledger.models.system import SYSTEM_SETTINGS_ID, SystemSettings
from overtime_ledger.schemas.system import SystemSettingsResponse
from overtime_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.system import UpdateSystemSettingsPayload


def period_end(year: int, month: int) -> date:
    """Last calendar day of a recap period."""
    _, days_in_month = monthrange(year, month)
    return date(year, month, days_in_month)


def _build_settings_response(settings: SystemSettings) -> SystemSettingsResponse:
    return SystemSettingsResponse(
        last_recap_date=settings.last_recap_date,
        is_approval_locked=settings.is_approval_locked,
        updated_at=settings.updated_at,
        updated_by=settings.updated_by,
    )


async def _get_or_create_settings(session: AsyncSession) -> SystemSettings:
    settings = await session.get(SystemSettings, SYSTEM_SETTINGS_ID)
    if settings is None:
        settings = SystemSettings(id=SYSTEM_SETTINGS_ID)
        session.add(settings)
        await session.flush()
    return settings


async def get_last_recap_date(session: AsyncSession, employee_id: uuid.UUID | None = None) -> date | None:
    """Return the most recent closed recap date for an employee.

    The later of the global cut-off in system settings and the last day of
    the employee's latest recapped month. None when nothing was recapped.
    """
    settings = await session.get(SystemSettings, SYSTEM_SETTINGS_ID)
    candidates: list[date] = []
    if settings is not None and settings.last_recap_date is not None:
        candidates.append(settings.last_recap_date)

    if employee_id is not None:
        result = await session.execute(
            select(col(OvertimeRecap.year), col(OvertimeRecap.month))
            .where(col(OvertimeRecap.employee_id) == employee_id)
            .order_by(col(OvertimeRecap.year).desc(), col(OvertimeRecap.month).desc())
            .limit(1)
        )
        latest = result.first()
        if latest is not None:
            candidates.append(period_end(latest[0], latest[1]))

    return max(candidates) if candidates else None


async def ensure_approvals_unlocked(session: AsyncSession) -> None:
    """Raise 423 while the recap lock is on."""
    settings = await session.get(SystemSettings, SYSTEM_SETTINGS_ID)
    if settings is not None and settings.is_approval_locked:
        raise ApprovalLocked


async def get_system_settings(session: AsyncSession) -> SystemSettingsResponse:
    settings = await _get_or_create_settings(session)
    await session.commit()
    return _build_settings_response(settings)


async def update_system_settings(
    session: AsyncSession,
    actor_id: uuid.UUID,
    payload: UpdateSystemSettingsPayload,
) -> SystemSettingsResponse:
    """Apply the fields present in the payload; explicit nulls clear them."""
    settings = await _get_or_create_settings(session)
    before_dict = model_to_audit_dict(settings)

    if "last_recap_date" in payload.model_fields_set:
        settings.last_recap_date = payload.last_recap_date
    if "is_approval_locked" in payload.model_fields_set and payload.is_approval_locked is not None:
        settings.is_approval_locked = payload.is_approval_locked
    settings.updated_at = utc_now()
    settings.updated_by = actor_id

    await session.flush()

    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.SYSTEM_SETTINGS,
        entity_id=uuid.UUID(int=SYSTEM_SETTINGS_ID),
        action=AuditAction.UPDATE,
        before_json=before_dict,
        after_json=model_to_audit_dict(settings),
    )

    await session.commit()
    return _build_settings_response(settings)
