from __future__ import annotations

import enum


class Role(enum.StrEnum):
    """Role carried by the dev auth context."""

    EMPLOYEE = "employee"
    APPROVER = "approver"
    ADMIN = "admin"


class OvertimeStatus(enum.StrEnum):
    """State machine for overtime requests."""

    PENDING = "PENDING"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LeaveStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class LeaveAction(enum.StrEnum):
    """Transition requested on a leave request."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"


class LeaveType(enum.StrEnum):
    """Kinds of leave an employee can request."""

    ANNUAL_LEAVE = "ANNUAL_LEAVE"
    SICK_LEAVE = "SICK_LEAVE"
    MATERNITY_LEAVE = "MATERNITY_LEAVE"
    MENSTRUAL_LEAVE = "MENSTRUAL_LEAVE"
    MARRIAGE_LEAVE = "MARRIAGE_LEAVE"
    UNPAID_LEAVE = "UNPAID_LEAVE"
    TOIL_LEAVE = "TOIL_LEAVE"


class BalanceBucket(enum.StrEnum):
    """Column group of a leave balance that a ledger entry moves."""

    ANNUAL = "ANNUAL"
    SICK = "SICK"
    MENSTRUAL = "MENSTRUAL"
    UNPAID = "UNPAID"
    TOIL = "TOIL"


class LedgerEntryType(enum.StrEnum):
    """Type of leave ledger entry."""

    USAGE = "USAGE"
    USAGE_REVERSAL = "USAGE_REVERSAL"
    TOIL_CREDIT = "TOIL_CREDIT"
    TOIL_EXPIRATION = "TOIL_EXPIRATION"


class LedgerSourceType(enum.StrEnum):
    """Origin of a leave ledger entry."""

    LEAVE_REQUEST = "LEAVE_REQUEST"
    RECAP = "RECAP"
    TOIL_GRANT = "TOIL_GRANT"


class ToilStatus(enum.StrEnum):
    """Lifecycle of a TOIL grant."""

    AVAILABLE = "AVAILABLE"
    EXPIRED = "EXPIRED"


class TimelineEvent(enum.StrEnum):
    """Lifecycle events shown on a leave request timeline."""

    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    OVERTIME_REQUEST = "OVERTIME_REQUEST"
    OVERTIME_RECAP = "OVERTIME_RECAP"
    LEAVE_REQUEST = "LEAVE_REQUEST"
    TOIL_GRANT = "TOIL_GRANT"
    SYSTEM_SETTINGS = "SYSTEM_SETTINGS"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SUBMIT = "SUBMIT"
    RESUBMIT = "RESUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_REVISION = "REQUEST_REVISION"
    CANCEL = "CANCEL"
    EXPIRE = "EXPIRE"
