"""Overtime entry validator.

The pure check (:func:`validate_overtime_entries`) is the single authoritative
implementation of the submission rules; :func:`validate_entries_for_employee`
only gathers its inputs from the database.
"""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import select
from sqlmodel import col

from overtime_ledger.models.enums import OvertimeStatus
from overtime_ledger.models.overtime import OvertimeEntry, OvertimeRequest
from overtime_ledger.schemas.policy import MINUTES_PER_HOUR
from overtime_ledger.services.system import get_last_recap_date

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from overtime_ledger.schemas.policy import OvertimePolicy


class EntryLike(Protocol):
    date: date
    hours: float
    description: str


@dataclass(frozen=True)
class FieldError:
    """A blocking violation. ``entry_index`` is None for batch-level errors."""

    entry_index: int | None
    field: str
    reason: str


@dataclass(frozen=True)
class FieldWarning:
    """A non-blocking advisory the caller must confirm."""

    entry_index: int
    reason: str


@dataclass
class ValidationResult:
    """All violations and advisories found in a batch."""

    min_date: date
    max_date: date
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[FieldWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def errors_as_dicts(self) -> list[dict[str, object]]:
        return [{"entry_index": e.entry_index, "field": e.field, "reason": e.reason} for e in self.errors]


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def hours_to_minutes(hours: float) -> int:
    """Convert submitted hours to stored integer minutes."""
    return round(hours * MINUTES_PER_HOUR)


def submission_window(today: date, last_recap_date: date | None, window_days: int) -> tuple[date, date]:
    """Return the inclusive ``(min_date, max_date)`` an entry may fall in.

    The lower bound is the later of the rolling window and the day after the
    last closed recap period, so reconciled days cannot receive new entries.
    """
    min_date = today - timedelta(days=window_days)
    if last_recap_date is not None:
        min_date = max(min_date, last_recap_date + timedelta(days=1))
    return min_date, today


def _check_hours(index: int, hours: float, policy: OvertimePolicy) -> FieldError | None:
    minutes = hours * MINUTES_PER_HOUR
    low = policy.min_entry_minutes / MINUTES_PER_HOUR
    high = policy.max_entry_minutes / MINUTES_PER_HOUR
    if not policy.min_entry_minutes <= minutes <= policy.max_entry_minutes:
        return FieldError(index, "hours", f"Hours must be between {low:g} and {high:g}")
    if not (minutes / policy.entry_granularity_minutes).is_integer():
        step = policy.entry_granularity_minutes / MINUTES_PER_HOUR
        return FieldError(index, "hours", f"Hours must be in {step:g}-hour increments")
    return None


def validate_overtime_entries(
    entries: Sequence[EntryLike],
    *,
    existing_dates: Collection[date],
    last_recap_date: date | None,
    policy: OvertimePolicy,
    today: date,
) -> ValidationResult:
    """Check a batch of proposed overtime entries. Pure; never raises.

    Every rule is evaluated and every violation collected:
    1. batch size within ``1..max_entries_per_request``
    2. hours within range and on the half-hour grid
    3. description not blank
    4. date inside the submission window (not future, not reconciled)
    5. no repeated date inside the batch
    6. no date already held by a PENDING or APPROVED request
    Weekday dates only produce warnings.
    """
    min_date, max_date = submission_window(today, last_recap_date, policy.submission_window_days)
    result = ValidationResult(min_date=min_date, max_date=max_date)

    if len(entries) == 0:
        result.errors.append(FieldError(None, "entries", "At least one overtime entry is required"))
    elif len(entries) > policy.max_entries_per_request:
        result.errors.append(
            FieldError(None, "entries", f"At most {policy.max_entries_per_request} entries per request")
        )

    seen: set[date] = set()
    for index, entry in enumerate(entries):
        hours_error = _check_hours(index, entry.hours, policy)
        if hours_error is not None:
            result.errors.append(hours_error)

        if not (entry.description or "").strip():
            result.errors.append(FieldError(index, "description", "Description is required"))

        if entry.date > max_date:
            result.errors.append(FieldError(index, "date", f"Date {entry.date} is in the future"))
        elif entry.date < min_date:
            if last_recap_date is not None and entry.date <= last_recap_date:
                reason = f"Date {entry.date} falls in an already recapped period"
            else:
                reason = f"Date {entry.date} is more than {policy.submission_window_days} days ago"
            result.errors.append(FieldError(index, "date", reason))

        if entry.date in seen:
            result.errors.append(FieldError(index, "date", f"Date {entry.date} appears more than once"))
        seen.add(entry.date)

        if entry.date in existing_dates:
            result.errors.append(
                FieldError(index, "date", f"Date {entry.date} already exists in a pending or approved request")
            )

        if entry.date.weekday() < 5:
            result.warnings.append(FieldWarning(index, f"{entry.date:%A} {entry.date} is a weekday"))

    return result


# ---------------------------------------------------------------------------
# Collaborator lookups
# ---------------------------------------------------------------------------


async def get_pending_or_approved_dates(
    session: AsyncSession,
    employee_id: uuid.UUID,
    exclude_request_id: uuid.UUID | None = None,
) -> set[date]:
    """Dates already claimed by the employee's PENDING or APPROVED requests."""
    query = (
        select(col(OvertimeEntry.date))
        .join(OvertimeRequest, col(OvertimeRequest.id) == col(OvertimeEntry.request_id))
        .where(
            col(OvertimeRequest.employee_id) == employee_id,
            col(OvertimeRequest.status).in_([OvertimeStatus.PENDING.value, OvertimeStatus.APPROVED.value]),
        )
    )
    if exclude_request_id is not None:
        query = query.where(col(OvertimeRequest.id) != exclude_request_id)

    result = await session.execute(query)
    return {row[0] for row in result.all()}


async def validate_entries_for_employee(
    session: AsyncSession,
    employee_id: uuid.UUID,
    entries: Sequence[EntryLike],
    *,
    policy: OvertimePolicy,
    today: date,
    exclude_request_id: uuid.UUID | None = None,
) -> ValidationResult:
    """Gather existing dates and the recap cut-off, then run the pure check."""
    existing_dates = await get_pending_or_approved_dates(session, employee_id, exclude_request_id)
    last_recap_date = await get_last_recap_date(session, employee_id)
    return validate_overtime_entries(
        entries,
        existing_dates=existing_dates,
        last_recap_date=last_recap_date,
        policy=policy,
        today=today,
    )
