# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class CreateRecapPayload(BaseModel):
    """Request body for recapping one employee's month."""

    employee_id: uuid.UUID
    year: int = Field(ge=2000, le=9999)
    month: int = Field(ge=1, le=12)


class BulkRecapPayload(BaseModel):
    """Request body for recapping many employees' month.

    Omitting ``employee_ids`` targets every employee with approved,
    unrecapped overtime in the month.
    """

    year: int = Field(ge=2000, le=9999)
    month: int = Field(ge=1, le=12)
    employee_ids: list[uuid.UUID] | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RecapResponse(BaseModel):
    """A finalised monthly recap."""

    id: uuid.UUID
    employee_id: uuid.UUID
    year: int
    month: int
    total_hours: float
    paid_hours: float
    excess_hours: float
    carryover_hours: float
    total_toil_hours: float
    toil_days_created: int
    remaining_hours: float
    payment_amount: Decimal
    recapped_at: datetime
    recapped_by: uuid.UUID


class RecapListResponse(BaseModel):
    """List of recaps."""

    items: list[RecapResponse]
    total: int


class BulkRecapSuccessResponse(BaseModel):
    employee_id: uuid.UUID
    recap_id: uuid.UUID
    toil_days_created: int


class BulkRecapFailureResponse(BaseModel):
    employee_id: uuid.UUID
    reason: str


class BulkRecapResponse(BaseModel):
    """Per-employee outcome of a bulk recap; partial failure is data."""

    year: int
    month: int
    succeeded: list[BulkRecapSuccessResponse]
    failed: list[BulkRecapFailureResponse]


class ToilGrantResponse(BaseModel):
    id: uuid.UUID
    recap_id: uuid.UUID
    days: int
    used_days: int
    source_hours: float
    earned_year: int
    earned_month: int
    expiry_year: int
    expiry_month: int
    status: str


class ToilSummaryResponse(BaseModel):
    """Available TOIL grants for an employee."""

    employee_id: uuid.UUID
    total_days: int
    grants: list[ToilGrantResponse]


class ToilExpirationResponse(BaseModel):
    """Response from the TOIL expiration trigger."""

    processed: int
    expired_days: int
    skipped: int
