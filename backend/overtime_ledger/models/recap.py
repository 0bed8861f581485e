# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from overtime_ledger.models.base import TimestampMixin, UUIDBase, utc_now
from overtime_ledger.models.enums import ToilStatus


class OvertimeRecap(UUIDBase, table=True):
    """Finalised monthly reconciliation of an employee's overtime.

    The unique key serialises concurrent recaps of the same period: only one
    insert can commit.
    """

    __tablename__ = "overtime_recap"
    __table_args__ = (sa.UniqueConstraint("employee_id", "year", "month", name="uq_recap_employee_period"),)

    employee_id: uuid.UUID = Field(index=True)
    year: int
    month: int
    total_minutes: int
    paid_minutes: int
    excess_minutes: int
    carryover_minutes: int
    total_toil_minutes: int
    toil_days_created: int
    remaining_minutes: int
    payment_amount: Decimal = Field(default=Decimal(0), sa_type=sa.Numeric(14, 2))
    recapped_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    recapped_by: uuid.UUID


class ToilGrant(UUIDBase, TimestampMixin, table=True):
    """Time-off-in-lieu days earned by a recap, expiring after a few months.

    ``used_days`` counts the days approved TOIL leave has drawn from this grant.
    """

    __tablename__ = "toil_grant"
    __table_args__ = (sa.UniqueConstraint("recap_id", name="uq_toil_grant_recap"),)

    employee_id: uuid.UUID = Field(index=True)
    recap_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("overtime_recap.id", ondelete="CASCADE"), nullable=False),
    )
    days: int
    used_days: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    source_minutes: int
    earned_year: int
    earned_month: int
    expiry_year: int
    expiry_month: int
    status: str = Field(default=ToilStatus.AVAILABLE, max_length=50, index=True)
    expired_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
