import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from overtime_ledger.config import get_settings
from overtime_ledger.db import SessionDep
from overtime_ledger.models.system import SYSTEM_SETTINGS_ID, SystemSettings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded", "error"]
    version: str
    environment: str
    approvals_locked: bool | None = None


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    """Return the health status of the API service and the recap lock state."""
    settings = get_settings()
    status: Literal["ok", "degraded", "error"] = "ok"
    approvals_locked: bool | None = None

    try:
        await session.execute(text("SELECT 1"))
        system_settings = await session.get(SystemSettings, SYSTEM_SETTINGS_ID)
        approvals_locked = system_settings.is_approval_locked if system_settings is not None else False
    except Exception:
        logger.exception("Health check: database connectivity failed")
        status = "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        environment=settings.environment,
        approvals_locked=approvals_locked,
    )
