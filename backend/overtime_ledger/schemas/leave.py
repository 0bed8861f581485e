# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from overtime_ledger.models.enums import LeaveAction, LeaveStatus, LeaveType, TimelineEvent

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitLeavePayload(BaseModel):
    """Request body for submitting a leave request."""

    leave_type: LeaveType
    start_date: date
    end_date: date | None = None
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _default_end_date(self) -> Self:
        if self.end_date is None:
            self.end_date = self.start_date
        return self


class TransitionPayload(BaseModel):
    """Request body for a leave request transition."""

    action: LeaveAction
    comment: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveRequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: int
    reason: str | None
    status: LeaveStatus
    approver_id: uuid.UUID | None
    created_at: datetime
    approved_at: datetime | None
    rejected_at: datetime | None
    cancelled_at: datetime | None
    decided_by: uuid.UUID | None
    decision_note: str | None
    cancellation_reason: str | None


class LeaveRequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[LeaveRequestResponse]
    total: int


class TimelineEntryResponse(BaseModel):
    event: TimelineEvent
    at: datetime
    note: str | None = None


class TimelineResponse(BaseModel):
    """Lifecycle events of a leave request, oldest first."""

    request_id: uuid.UUID
    events: list[TimelineEntryResponse]


class LeaveBalanceResponse(BaseModel):
    """Leave balance for one employee and year."""

    employee_id: uuid.UUID
    year: int
    annual_quota: int
    annual_used: int
    annual_remaining: int
    annual_pending: int
    sick_used: int
    menstrual_used: int
    unpaid_used: int
    toil_balance: int
    toil_used: int
    toil_expired: int
    toil_available: int = 0  # Unexpired grant days usable today, whatever year earned them
