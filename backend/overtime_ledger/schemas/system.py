# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel


class SystemSettingsResponse(BaseModel):
    """Global recap cut-off and approval lock."""

    last_recap_date: date | None
    is_approval_locked: bool
    updated_at: datetime
    updated_by: uuid.UUID | None


class UpdateSystemSettingsPayload(BaseModel):
    """Partial update of the system settings; omitted fields are kept."""

    last_recap_date: date | None = None
    is_approval_locked: bool | None = None
