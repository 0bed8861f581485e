"""Bulk recap orchestrator.

Runs :func:`create_recap` for many employees, each in its own session and
transaction. A failure for one employee is recorded and never aborts or rolls
back the others.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from overtime_ledger.exceptions import AppError
from overtime_ledger.schemas.recap import BulkRecapFailureResponse, BulkRecapResponse, BulkRecapSuccessResponse
from overtime_ledger.services.recap import create_recap, get_employees_with_unrecapped_overtime

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from overtime_ledger.schemas.policy import LeavePolicy, OvertimePolicy
    from overtime_ledger.services.clock import Clock
    from overtime_ledger.services.employee import EmployeeDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkRecapSuccess:
    employee_id: uuid.UUID
    recap_id: uuid.UUID
    toil_days_created: int


@dataclass(frozen=True)
class BulkRecapFailure:
    employee_id: uuid.UUID
    reason: str


@dataclass
class BulkRecapResult:
    """Per-employee outcome of a bulk run, in target order."""

    year: int
    month: int
    succeeded: list[BulkRecapSuccess] = field(default_factory=list)
    failed: list[BulkRecapFailure] = field(default_factory=list)

    def to_response(self) -> BulkRecapResponse:
        return BulkRecapResponse(
            year=self.year,
            month=self.month,
            succeeded=[
                BulkRecapSuccessResponse(
                    employee_id=s.employee_id, recap_id=s.recap_id, toil_days_created=s.toil_days_created
                )
                for s in self.succeeded
            ],
            failed=[BulkRecapFailureResponse(employee_id=f.employee_id, reason=f.reason) for f in self.failed],
        )


def _dedupe(employee_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(employee_ids))


async def run_bulk_recap(
    session_factory: async_sessionmaker[AsyncSession],
    year: int,
    month: int,
    employee_ids: Sequence[uuid.UUID] | None = None,
    *,
    actor_id: uuid.UUID,
    policy: OvertimePolicy,
    clock: Clock,
    directory: EmployeeDirectory,
    concurrency: int = 4,
    leave_policy: LeavePolicy | None = None,
) -> BulkRecapResult:
    """Recap a month for many employees with a bounded worker pool.

    When ``employee_ids`` is None the targets are all employees with approved,
    unrecapped overtime in the month. Duplicate ids are processed once.
    Partial failure is returned as data, never raised.
    """
    if employee_ids is None:
        async with session_factory() as session:
            targets = await get_employees_with_unrecapped_overtime(session, year, month)
    else:
        targets = _dedupe(employee_ids)

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _recap_one(employee_id: uuid.UUID) -> BulkRecapSuccess | BulkRecapFailure:
        async with semaphore, session_factory() as session:
            try:
                recap = await create_recap(
                    session,
                    employee_id,
                    year,
                    month,
                    actor_id=actor_id,
                    policy=policy,
                    clock=clock,
                    directory=directory,
                    leave_policy=leave_policy,
                )
            except AppError as exc:
                await session.rollback()
                logger.info("Bulk recap %s-%02d skipped employee=%s: %s", year, month, employee_id, exc.message)
                return BulkRecapFailure(employee_id=employee_id, reason=exc.message)
            except Exception as exc:
                await session.rollback()
                logger.exception("Bulk recap %s-%02d failed for employee=%s", year, month, employee_id)
                return BulkRecapFailure(employee_id=employee_id, reason=f"Unexpected error: {exc}")
            return BulkRecapSuccess(
                employee_id=employee_id,
                recap_id=recap.id,
                toil_days_created=recap.toil_days_created,
            )

    outcomes = await asyncio.gather(*(_recap_one(employee_id) for employee_id in targets))

    result = BulkRecapResult(year=year, month=month)
    for outcome in outcomes:
        if isinstance(outcome, BulkRecapSuccess):
            result.succeeded.append(outcome)
        else:
            result.failed.append(outcome)

    logger.info(
        "Bulk recap %s-%02d complete: targets=%d succeeded=%d failed=%d",
        year,
        month,
        len(targets),
        len(result.succeeded),
        len(result.failed),
    )
    return result
