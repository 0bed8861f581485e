"""Tests for the overtime entry validator, pure and database-backed."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from overtime_ledger.schemas.overtime import OvertimeEntryInput
from overtime_ledger.schemas.policy import OvertimePolicy
from overtime_ledger.services.validation import (
    ValidationResult,
    get_pending_or_approved_dates,
    hours_to_minutes,
    submission_window,
    validate_entries_for_employee,
    validate_overtime_entries,
)
from tests.factories import EMPLOYEE_HEADERS, EMPLOYEE_ID, daily_entries, seed_approved_overtime

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

POLICY = OvertimePolicy()
TODAY = date(2025, 3, 14)  # Friday
SATURDAY = date(2025, 3, 8)
SUNDAY = date(2025, 3, 9)
MONDAY = date(2025, 3, 10)


def _entry(day: date, hours: float = 4, description: str = "Deployment") -> OvertimeEntryInput:
    return OvertimeEntryInput(date=day, hours=hours, description=description)


def _validate(entries: list[OvertimeEntryInput], **kwargs: object) -> ValidationResult:
    kwargs.setdefault("existing_dates", set())
    kwargs.setdefault("last_recap_date", None)
    return validate_overtime_entries(entries, policy=POLICY, today=TODAY, **kwargs)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def test_hours_to_minutes() -> None:
    assert hours_to_minutes(0.5) == 30
    assert hours_to_minutes(7.5) == 450
    assert hours_to_minutes(12) == 720


def test_window_is_rolling_without_recap() -> None:
    assert submission_window(TODAY, None, 7) == (date(2025, 3, 7), TODAY)


def test_window_starts_after_recap_cutoff() -> None:
    assert submission_window(TODAY, date(2025, 3, 9), 7) == (date(2025, 3, 10), TODAY)


def test_window_ignores_old_recap_cutoff() -> None:
    assert submission_window(TODAY, date(2025, 2, 28), 7) == (date(2025, 3, 7), TODAY)


# ---------------------------------------------------------------------------
# validate_overtime_entries
# ---------------------------------------------------------------------------


def test_weekend_entries_are_clean() -> None:
    result = _validate([_entry(SATURDAY, 8), _entry(SUNDAY, 0.5)])
    assert result.ok
    assert result.errors == []
    assert result.warnings == []


def test_weekday_produces_warning_only() -> None:
    result = _validate([_entry(SATURDAY), _entry(MONDAY)])
    assert result.ok
    assert len(result.warnings) == 1
    assert result.warnings[0].entry_index == 1
    assert "Monday" in result.warnings[0].reason


def test_empty_batch_is_batch_level_error() -> None:
    result = _validate([])
    assert not result.ok
    assert result.errors[0].entry_index is None
    assert result.errors[0].field == "entries"


def test_too_many_entries() -> None:
    days = [date(2025, 3, d) for d in range(8, 14)]
    result = _validate([_entry(d) for d in days])
    assert [e.field for e in result.errors if e.entry_index is None] == ["entries"]


def test_hours_range_and_granularity() -> None:
    result = _validate(
        [
            _entry(SATURDAY, 0.25),
            _entry(SUNDAY, 12.5),
            _entry(date(2025, 3, 10), 1.25),
        ]
    )
    hour_errors = [(e.entry_index, e.reason) for e in result.errors if e.field == "hours"]
    assert [index for index, _ in hour_errors] == [0, 1, 2]
    assert "between 0.5 and 12" in hour_errors[0][1]
    assert "increments" in hour_errors[2][1]


def test_blank_description_rejected() -> None:
    result = _validate([_entry(SATURDAY, description="   ")])
    assert [(e.entry_index, e.field) for e in result.errors] == [(0, "description")]


def test_future_date_rejected() -> None:
    result = _validate([_entry(date(2025, 3, 15))])
    assert [e.field for e in result.errors] == ["date"]
    assert "future" in result.errors[0].reason


def test_date_before_window_rejected() -> None:
    result = _validate([_entry(date(2025, 3, 1))])
    assert "more than 7 days ago" in result.errors[0].reason


def test_date_in_recapped_period_rejected() -> None:
    result = _validate([_entry(SATURDAY), _entry(date(2025, 3, 10))], last_recap_date=SUNDAY)
    assert len(result.errors) == 1
    assert result.errors[0].entry_index == 0
    assert "already recapped" in result.errors[0].reason
    assert result.min_date == date(2025, 3, 10)


def test_duplicate_date_in_batch_flags_the_repeat() -> None:
    result = _validate([_entry(SATURDAY, 2), _entry(SATURDAY, 3)])
    assert [(e.entry_index, e.field) for e in result.errors] == [(1, "date")]


def test_existing_date_rejected() -> None:
    result = _validate([_entry(SATURDAY), _entry(SUNDAY)], existing_dates={SUNDAY})
    assert [(e.entry_index, e.field) for e in result.errors] == [(1, "date")]
    assert "already exists" in result.errors[0].reason


def test_all_violations_are_collected() -> None:
    result = _validate(
        [
            _entry(date(2025, 3, 20), 0, ""),
            _entry(date(2025, 3, 1), 13),
        ]
    )
    assert len(result.errors) == 5
    assert {e.entry_index for e in result.errors} == {0, 1}


# ---------------------------------------------------------------------------
# Database-backed lookups
# ---------------------------------------------------------------------------


async def test_pending_and_approved_dates(db_session: AsyncSession) -> None:
    request = await seed_approved_overtime(db_session, EMPLOYEE_ID, daily_entries(2025, 3, 2, first_day=8))

    assert await get_pending_or_approved_dates(db_session, EMPLOYEE_ID) == {SATURDAY, SUNDAY}
    assert await get_pending_or_approved_dates(db_session, EMPLOYEE_ID, exclude_request_id=request.id) == set()


async def test_validate_for_employee_sees_existing_dates(db_session: AsyncSession) -> None:
    await seed_approved_overtime(db_session, EMPLOYEE_ID, [(SATURDAY, 240)])

    result = await validate_entries_for_employee(
        db_session, EMPLOYEE_ID, [_entry(SATURDAY), _entry(SUNDAY)], policy=POLICY, today=TODAY
    )
    assert [(e.entry_index, e.field) for e in result.errors] == [(0, "date")]


async def test_validate_endpoint_reports_everything(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/overtime/validate",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "entries": [
                {"date": "2025-03-08", "hours": 4, "description": "Patch rollout"},
                {"date": "2025-03-10", "hours": 0.25, "description": "Hotfix"},
            ],
        },
        headers=EMPLOYEE_HEADERS,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["min_date"] == "2025-03-07"
    assert data["max_date"] == "2025-03-14"
    assert [e["entry_index"] for e in data["errors"]] == [1]
    assert [w["entry_index"] for w in data["warnings"]] == [1]
