# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from overtime_ledger.exceptions import NotFoundError, PolicyUnavailable


class EmployeeInfo(BaseModel):
    """Employee metadata from the Employee Directory."""

    id: uuid.UUID
    name: str
    email: str
    overtime_rate: Decimal | None = None  # daily overtime base; hourly = rate / 8
    access_tier: int = 3  # 1 = admin ... 5 = fixed-rate tier
    hire_date: date | None = None  # for annual quota tenure
    supervisor_id: uuid.UUID | None = None
    division_head_id: uuid.UUID | None = None
    is_active: bool = True


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Interface for the Employee Directory."""

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        ...


class InMemoryEmployeeDirectory:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(employee_id)

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        return list(self._employees.values())


_employee_directory: EmployeeDirectory = InMemoryEmployeeDirectory()


def get_employee_directory() -> EmployeeDirectory:
    """FastAPI dependency for the Employee Directory."""
    return _employee_directory


def set_employee_directory(directory: EmployeeDirectory) -> None:
    """Override the directory (for testing or production wiring)."""
    global _employee_directory
    _employee_directory = directory


async def fetch_employee(directory: EmployeeDirectory, employee_id: uuid.UUID) -> EmployeeInfo:
    """Look up an employee, translating directory failures into typed errors.

    A directory outage surfaces as ``PolicyUnavailable`` (transient, safe to
    retry); an unknown id as ``NotFoundError``.
    """
    try:
        employee = await directory.get_employee(employee_id)
    except (OSError, TimeoutError) as exc:
        raise PolicyUnavailable(f"Employee directory unavailable: {exc}") from exc
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    return employee


def approval_chain_for(employee: EmployeeInfo) -> list[uuid.UUID]:
    """Approvers in order: direct supervisor, then division head.

    An empty chain means the request goes to any admin.
    """
    chain: list[uuid.UUID] = []
    for approver_id in (employee.supervisor_id, employee.division_head_id):
        if approver_id is not None and approver_id != employee.id and approver_id not in chain:
            chain.append(approver_id)
    return chain
