# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from overtime_ledger.models.enums import OvertimeStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class OvertimeEntryInput(BaseModel):
    """One proposed overtime day.

    Range and granularity are deliberately left to the entry validator so
    every violation in a batch is reported together.
    """

    date: date
    hours: float
    description: str = ""


class ValidateOvertimePayload(BaseModel):
    """Request body for a dry-run validation of overtime entries."""

    employee_id: uuid.UUID
    entries: list[OvertimeEntryInput]
    exclude_request_id: uuid.UUID | None = None


class SubmitOvertimePayload(BaseModel):
    """Request body for submitting or resubmitting overtime entries."""

    entries: list[OvertimeEntryInput]
    confirm_weekdays: bool = False


class OvertimeDecisionPayload(BaseModel):
    """Request body for approve, reject and revision actions."""

    comment: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class FieldErrorResponse(BaseModel):
    """A single violation found by the entry validator."""

    entry_index: int | None
    field: str
    reason: str


class FieldWarningResponse(BaseModel):
    """A non-fatal advisory found by the entry validator."""

    entry_index: int
    reason: str


class ValidationResponse(BaseModel):
    """Result of validating a batch of overtime entries."""

    ok: bool
    min_date: date
    max_date: date
    errors: list[FieldErrorResponse]
    warnings: list[FieldWarningResponse]


class OvertimeEntryResponse(BaseModel):
    """A stored overtime entry."""

    id: uuid.UUID
    date: date
    hours: float
    description: str
    recap_id: uuid.UUID | None = None


class OvertimeRequestResponse(BaseModel):
    """Response schema for a single overtime request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    status: OvertimeStatus
    entries: list[OvertimeEntryResponse]
    total_hours: float
    estimated_amount: Decimal
    approver_id: uuid.UUID | None
    approval_chain: list[uuid.UUID]
    submitted_at: datetime
    decided_at: datetime | None
    decided_by: uuid.UUID | None
    decision_note: str | None
    recap_ids: list[uuid.UUID] = Field(default_factory=list)
    warnings: list[FieldWarningResponse] = Field(default_factory=list)


class OvertimeRequestListResponse(BaseModel):
    """Paginated list of overtime requests."""

    items: list[OvertimeRequestResponse]
    total: int


class OvertimeBalanceResponse(BaseModel):
    """Unrecapped overtime totals for an employee."""

    employee_id: uuid.UUID
    current_hours: float
    pending_hours: float
    total_paid_hours: float
    last_reset_at: datetime | None
