from sqlmodel import SQLModel

from overtime_ledger.models.audit import AuditLog
from overtime_ledger.models.base import TimestampMixin, UUIDBase
from overtime_ledger.models.enums import (
    AuditAction,
    AuditEntityType,
    BalanceBucket,
    LeaveAction,
    LeaveStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    OvertimeStatus,
    Role,
    TimelineEvent,
    ToilStatus,
)
from overtime_ledger.models.leave import LeaveBalance, LeaveRequest
from overtime_ledger.models.ledger import LeaveLedgerEntry
from overtime_ledger.models.overtime import OvertimeBalance, OvertimeEntry, OvertimeRequest
from overtime_ledger.models.recap import OvertimeRecap, ToilGrant
from overtime_ledger.models.system import SystemSettings

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "BalanceBucket",
    "LeaveAction",
    "LeaveBalance",
    "LeaveLedgerEntry",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "LedgerEntryType",
    "LedgerSourceType",
    "OvertimeBalance",
    "OvertimeEntry",
    "OvertimeRecap",
    "OvertimeRequest",
    "OvertimeStatus",
    "Role",
    "SQLModel",
    "SystemSettings",
    "TimelineEvent",
    "TimestampMixin",
    "ToilGrant",
    "UUIDBase",
]
