# ruff: noqa: TC003
from __future__ import annotations

import datetime
import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from overtime_ledger.models.base import TimestampMixin, UUIDBase, utc_now
from overtime_ledger.models.enums import OvertimeStatus


class OvertimeRequest(UUIDBase, TimestampMixin, table=True):
    """A batch of overtime entries submitted for approval."""

    __tablename__ = "overtime_request"
    __table_args__ = (sa.Index("ix_overtime_request_employee_status", "employee_id", "status"),)

    employee_id: uuid.UUID = Field(index=True)
    status: str = Field(
        default=OvertimeStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "PENDING"}
    )
    total_minutes: int
    estimated_amount: Decimal = Field(default=Decimal(0), sa_type=sa.Numeric(14, 2))
    approver_id: uuid.UUID | None = None
    approval_chain: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    submitted_at: datetime.datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    decided_at: datetime.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: uuid.UUID | None = None
    decision_note: str | None = None


class OvertimeEntry(UUIDBase, table=True):
    """One day of overtime inside a request, linked to the recap that closed its month."""

    __tablename__ = "overtime_entry"
    __table_args__ = (sa.UniqueConstraint("request_id", "date", name="uq_overtime_entry_request_date"),)

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("overtime_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    date: datetime.date = Field(index=True)
    minutes: int
    description: str = Field(max_length=1000)
    recap_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("overtime_recap.id", ondelete="SET NULL"), nullable=True, index=True),
    )


class OvertimeBalance(SQLModel, table=True):
    """Running overtime total per employee since the last recap."""

    __tablename__ = "overtime_balance"

    employee_id: uuid.UUID = Field(primary_key=True, sa_type=sa.Uuid)
    current_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    pending_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    total_paid_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    last_reset_at: datetime.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
