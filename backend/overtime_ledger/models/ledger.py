# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from overtime_ledger.models.base import UUIDBase, utc_now


class LeaveLedgerEntry(UUIDBase, table=True):
    """Append-only entry recording every leave balance debit or credit."""

    __tablename__ = "leave_ledger_entry"
    __table_args__ = (
        sa.Index("ix_leave_ledger_employee_year", "employee_id", "year"),
        sa.UniqueConstraint("source_type", "source_id", "entry_type", name="uq_leave_ledger_idempotency"),
    )

    employee_id: uuid.UUID = Field(index=True)
    year: int
    bucket: str = Field(max_length=50)
    entry_type: str = Field(max_length=50)
    amount_days: int
    source_type: str = Field(max_length=50)
    source_id: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
