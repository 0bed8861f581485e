# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header

from overtime_ledger.exceptions import PermissionDenied
from overtime_ledger.models.enums import Role
from overtime_ledger.schemas.auth import AuthContext
from overtime_ledger.schemas.policy import LeavePolicy, OvertimePolicy, get_leave_policy, get_overtime_policy
from overtime_ledger.services.clock import Clock, get_clock
from overtime_ledger.services.employee import EmployeeDirectory, get_employee_directory


async def get_auth_context(
    x_user_id: uuid.UUID = Header(),
    x_role: Role = Header(default=Role.EMPLOYEE),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_approver(
    auth: AuthDep,
) -> AuthContext:
    """Require approver or admin role for the request."""
    if not auth.can_approve:
        raise PermissionDenied("Approver access required")
    return auth


ApproverDep = Annotated[AuthContext, Depends(require_approver)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise PermissionDenied("Admin access required")
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]

ClockDep = Annotated[Clock, Depends(get_clock)]
DirectoryDep = Annotated[EmployeeDirectory, Depends(get_employee_directory)]
OvertimePolicyDep = Annotated[OvertimePolicy, Depends(get_overtime_policy)]
LeavePolicyDep = Annotated[LeavePolicy, Depends(get_leave_policy)]


def ensure_self_or_approver(auth: AuthContext, employee_id: uuid.UUID) -> None:
    """Employees may only read their own records."""
    if not auth.can_approve and auth.user_id != employee_id:
        raise PermissionDenied("Cannot access another employee's records")
