# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from overtime_ledger.models.base import utc_now

SYSTEM_SETTINGS_ID = 1


class SystemSettings(SQLModel, table=True):
    """Singleton row holding the global recap cut-off and the approval lock."""

    __tablename__ = "system_settings"

    id: int = Field(default=SYSTEM_SETTINGS_ID, primary_key=True)
    last_recap_date: date | None = None
    is_approval_locked: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    updated_by: uuid.UUID | None = None
