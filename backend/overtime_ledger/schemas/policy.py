"""Immutable policy values handed to the pure engine functions.

Built from :class:`overtime_ledger.config.Settings` so every constant has one
source, and passed explicitly into every calculation.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from overtime_ledger.config import get_settings

MINUTES_PER_HOUR = 60


class OvertimePolicy(BaseModel):
    """Overtime submission and recap constants."""

    model_config = ConfigDict(frozen=True)

    max_entries_per_request: int = 5
    min_entry_minutes: int = 30
    max_entry_minutes: int = 720
    entry_granularity_minutes: int = 30
    submission_window_days: int = 7
    payable_cap_minutes: int = 72 * MINUTES_PER_HOUR
    toil_day_minutes: int = 8 * MINUTES_PER_HOUR
    toil_expiry_months: int = 3
    default_overtime_rate: Decimal = Decimal(300_000)
    fixed_rate_access_tier: int = 5
    fixed_tier_daily_rate: Decimal = Decimal(150_000)


class LeavePolicy(BaseModel):
    """Leave quota and cap constants."""

    model_config = ConfigDict(frozen=True)

    annual_quota_days: int = 14
    annual_quota_days_first_year: int = 10
    max_days_per_request: int = 5
    unpaid_max_days_per_year: int = 14
    unpaid_max_consecutive_days: int = 10
    maternity_days: int = 90


def get_overtime_policy() -> OvertimePolicy:
    """FastAPI dependency building the overtime policy from settings."""
    settings = get_settings()
    return OvertimePolicy(
        max_entries_per_request=settings.overtime_max_entries,
        min_entry_minutes=round(settings.overtime_min_hours * MINUTES_PER_HOUR),
        max_entry_minutes=round(settings.overtime_max_hours * MINUTES_PER_HOUR),
        submission_window_days=settings.overtime_submission_window_days,
        payable_cap_minutes=settings.payable_cap_hours * MINUTES_PER_HOUR,
        toil_day_minutes=settings.toil_hour_ratio * MINUTES_PER_HOUR,
        toil_expiry_months=settings.toil_expiry_months,
        default_overtime_rate=Decimal(settings.default_overtime_rate),
        fixed_rate_access_tier=settings.fixed_rate_access_tier,
        fixed_tier_daily_rate=Decimal(settings.fixed_tier_daily_rate),
    )


def get_leave_policy() -> LeavePolicy:
    """FastAPI dependency building the leave policy from settings."""
    settings = get_settings()
    return LeavePolicy(
        annual_quota_days=settings.annual_quota_days,
        annual_quota_days_first_year=settings.annual_quota_days_first_year,
        max_days_per_request=settings.max_leave_days_per_request,
        unpaid_max_days_per_year=settings.unpaid_leave_max_days_per_year,
        unpaid_max_consecutive_days=settings.unpaid_leave_max_consecutive_days,
        maternity_days=settings.maternity_leave_days,
    )


def minutes_to_hours(minutes: int) -> float:
    """Convert stored minutes to display hours (exact for half-hour multiples)."""
    return minutes / MINUTES_PER_HOUR
