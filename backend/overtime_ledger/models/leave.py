# ruff: noqa: TC003
from __future__ import annotations

import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from overtime_ledger.models.base import TimestampMixin, UUIDBase, utc_now
from overtime_ledger.models.enums import LeaveStatus


class LeaveRequest(UUIDBase, TimestampMixin, table=True):
    """An employee's leave request with its lifecycle timestamps."""

    __tablename__ = "leave_request"
    __table_args__ = (sa.Index("ix_leave_request_employee_status", "employee_id", "status"),)

    employee_id: uuid.UUID = Field(index=True)
    leave_type: str = Field(max_length=50)
    start_date: datetime.date
    end_date: datetime.date
    total_days: int
    reason: str | None = Field(default=None, max_length=1000)
    status: str = Field(
        default=LeaveStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "PENDING"}
    )
    approver_id: uuid.UUID | None = None
    approved_at: datetime.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    rejected_at: datetime.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    cancelled_at: datetime.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: uuid.UUID | None = None
    decision_note: str | None = None
    cancellation_reason: str | None = None


class LeaveBalance(SQLModel, table=True):
    """Per employee and year leave balance, mutated only by ledger writes.

    ``annual_remaining`` is stored for reads but must always equal
    ``annual_quota - annual_used``.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (sa.PrimaryKeyConstraint("employee_id", "year"),)

    employee_id: uuid.UUID = Field(sa_type=sa.Uuid)
    year: int
    annual_quota: int
    annual_used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    annual_remaining: int
    sick_used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    menstrual_used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    unpaid_used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    toil_balance: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    toil_used: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    toil_expired: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    updated_at: datetime.datetime = Field(  # type: ignore[call-overload]
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
