"""Tests for the bulk recap orchestrator: isolation, partial failure, targeting."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from overtime_ledger.config import get_settings
from overtime_ledger.models.recap import OvertimeRecap
from overtime_ledger.schemas.policy import LeavePolicy, OvertimePolicy
from overtime_ledger.services.bulk import run_bulk_recap
from overtime_ledger.services.employee import EmployeeInfo
from overtime_ledger.services.recap import create_recap
from tests.factories import (
    ADMIN_HEADERS,
    ADMIN_ID,
    EMPLOYEE_ID,
    FIXED_TIER_ID,
    NEW_HIRE_ID,
    daily_entries,
    seed_approved_overtime,
)

if TYPE_CHECKING:
    import pytest
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from overtime_ledger.services.clock import FixedClock
    from overtime_ledger.services.employee import InMemoryEmployeeDirectory

POLICY = OvertimePolicy()
LEAVE_POLICY = LeavePolicy()


async def _seed_three(session: AsyncSession) -> None:
    await seed_approved_overtime(session, EMPLOYEE_ID, daily_entries(2025, 2, 10))
    await seed_approved_overtime(session, NEW_HIRE_ID, daily_entries(2025, 2, 3))
    await seed_approved_overtime(session, FIXED_TIER_ID, daily_entries(2025, 2, 4))


async def _recaps_for_february(session: AsyncSession) -> dict[uuid.UUID, OvertimeRecap]:
    result = await session.execute(
        select(OvertimeRecap).where(col(OvertimeRecap.year) == 2025, col(OvertimeRecap.month) == 2)
    )
    return {recap.employee_id: recap for recap in result.scalars().all()}


async def test_partial_failure_keeps_successes(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    await _seed_three(db_session)
    existing = await create_recap(
        db_session,
        FIXED_TIER_ID,
        2025,
        2,
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        leave_policy=LEAVE_POLICY,
    )

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        [EMPLOYEE_ID, NEW_HIRE_ID, FIXED_TIER_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=1,
        leave_policy=LEAVE_POLICY,
    )

    assert [s.employee_id for s in result.succeeded] == [EMPLOYEE_ID, NEW_HIRE_ID]
    assert [s.toil_days_created for s in result.succeeded] == [1, 0]
    assert [f.employee_id for f in result.failed] == [FIXED_TIER_ID]
    assert "already exists" in result.failed[0].reason

    recaps = await _recaps_for_february(db_session)
    assert set(recaps) == {EMPLOYEE_ID, NEW_HIRE_ID, FIXED_TIER_ID}
    assert recaps[FIXED_TIER_ID].id == existing.id
    assert recaps[EMPLOYEE_ID].id == result.succeeded[0].recap_id


async def test_unknown_employee_is_reported_not_raised(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    await seed_approved_overtime(db_session, EMPLOYEE_ID, daily_entries(2025, 2, 2))
    stranger = uuid.uuid4()

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        [stranger, EMPLOYEE_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=1,
    )

    assert [s.employee_id for s in result.succeeded] == [EMPLOYEE_ID]
    assert [(f.employee_id, f.reason) for f in result.failed] == [(stranger, f"Employee {stranger} not found")]


async def test_nothing_approved_is_a_failure(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    await seed_approved_overtime(db_session, EMPLOYEE_ID, daily_entries(2025, 2, 2))

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        [EMPLOYEE_ID, NEW_HIRE_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=1,
    )

    assert [s.employee_id for s in result.succeeded] == [EMPLOYEE_ID]
    assert result.failed[0].employee_id == NEW_HIRE_ID
    assert "No approved overtime" in result.failed[0].reason


async def test_default_targets_are_unrecapped_employees(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    await _seed_three(db_session)
    await create_recap(
        db_session,
        EMPLOYEE_ID,
        2025,
        2,
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
    )

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=1,
    )

    assert {s.employee_id for s in result.succeeded} == {NEW_HIRE_ID, FIXED_TIER_ID}
    assert result.failed == []


async def test_duplicate_ids_are_processed_once(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    await seed_approved_overtime(db_session, EMPLOYEE_ID, daily_entries(2025, 2, 2))

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        [EMPLOYEE_ID, EMPLOYEE_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=1,
    )

    assert len(result.succeeded) == 1
    assert result.failed == []


async def test_unexpected_error_is_captured(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    class _BrokenDirectory:
        async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
            if employee_id == NEW_HIRE_ID:
                raise RuntimeError("directory bug")
            return await directory.get_employee(employee_id)

        async def list_employees(self) -> list[EmployeeInfo]:
            return await directory.list_employees()

    await seed_approved_overtime(db_session, EMPLOYEE_ID, daily_entries(2025, 2, 2))
    await seed_approved_overtime(db_session, NEW_HIRE_ID, daily_entries(2025, 2, 2))

    result = await run_bulk_recap(
        session_factory,
        2025,
        2,
        [NEW_HIRE_ID, EMPLOYEE_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=_BrokenDirectory(),
        concurrency=1,
    )

    assert [s.employee_id for s in result.succeeded] == [EMPLOYEE_ID]
    assert result.failed[0].reason == "Unexpected error: directory bug"


async def test_bulk_endpoint(
    async_client: AsyncClient,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(get_settings(), "bulk_recap_concurrency", 1)
    await _seed_three(db_session)

    response = await async_client.post(
        "/overtime/recaps/bulk",
        json={"year": 2025, "month": 2, "employee_ids": [str(EMPLOYEE_ID), str(uuid.UUID(int=99))]},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["year"] == 2025
    assert [s["employee_id"] for s in data["succeeded"]] == [str(EMPLOYEE_ID)]
    assert [f["employee_id"] for f in data["failed"]] == [str(uuid.UUID(int=99))]


async def test_parallel_workers_each_use_their_own_connection(
    file_session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
    directory: InMemoryEmployeeDirectory,
) -> None:
    async with file_session_factory() as session:
        await _seed_three(session)

    result = await run_bulk_recap(
        file_session_factory,
        2025,
        2,
        [EMPLOYEE_ID, NEW_HIRE_ID, FIXED_TIER_ID],
        actor_id=ADMIN_ID,
        policy=POLICY,
        clock=clock,
        directory=directory,
        concurrency=3,
        leave_policy=LEAVE_POLICY,
    )

    assert result.failed == []
    assert [s.employee_id for s in result.succeeded] == [EMPLOYEE_ID, NEW_HIRE_ID, FIXED_TIER_ID]

    async with file_session_factory() as session:
        recaps = await _recaps_for_february(session)
    assert {employee_id: recap.id for employee_id, recap in recaps.items()} == {
        s.employee_id: s.recap_id for s in result.succeeded
    }
