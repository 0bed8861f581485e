"""Overtime recap calculator.

Pure functions over integer minutes. Working in minutes keeps the split exact:
``paid + excess == total`` and ``toil + remaining == excess`` always hold.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from overtime_ledger.exceptions import ConflictError
from overtime_ledger.schemas.policy import MINUTES_PER_HOUR, minutes_to_hours

if TYPE_CHECKING:
    from overtime_ledger.schemas.policy import OvertimePolicy

HOURS_PER_DAY = 8
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RecapResult:
    """The paid / excess / TOIL / carryover split of one period."""

    total_minutes: int
    paid_minutes: int
    excess_minutes: int
    carryover_minutes: int
    toil_days_created: int
    total_toil_minutes: int
    remaining_minutes: int

    @property
    def total_hours(self) -> float:
        return minutes_to_hours(self.total_minutes)

    @property
    def paid_hours(self) -> float:
        return minutes_to_hours(self.paid_minutes)

    @property
    def excess_hours(self) -> float:
        return minutes_to_hours(self.excess_minutes)

    @property
    def carryover_hours(self) -> float:
        return minutes_to_hours(self.carryover_minutes)

    @property
    def total_toil_hours(self) -> float:
        return minutes_to_hours(self.total_toil_minutes)

    @property
    def remaining_hours(self) -> float:
        return minutes_to_hours(self.remaining_minutes)


def compute_recap(
    approved_minutes: int,
    carryover_minutes: int,
    payable_cap_minutes: int = 72 * MINUTES_PER_HOUR,
    toil_day_minutes: int = HOURS_PER_DAY * MINUTES_PER_HOUR,
) -> RecapResult:
    """Split a period's approved overtime plus carryover.

    1. total = approved + carryover
    2. paid = min(total, cap)
    3. excess = max(0, total - cap)
    4. toil_days = floor(excess / toil_day)
    5. total_toil = toil_days * toil_day
    6. remaining = excess - total_toil (rolled to the next period)
    """
    if approved_minutes < 0:
        raise ConflictError(f"Approved overtime cannot be negative: {approved_minutes} minutes")
    if carryover_minutes < 0:
        raise ConflictError(f"Carryover cannot be negative: {carryover_minutes} minutes")
    if payable_cap_minutes < 0 or toil_day_minutes <= 0:
        raise ValueError("payable_cap_minutes must be >= 0 and toil_day_minutes > 0")

    total = approved_minutes + carryover_minutes
    paid = min(total, payable_cap_minutes)
    excess = max(0, total - payable_cap_minutes)
    toil_days = excess // toil_day_minutes
    total_toil = toil_days * toil_day_minutes

    return RecapResult(
        total_minutes=total,
        paid_minutes=paid,
        excess_minutes=excess,
        carryover_minutes=carryover_minutes,
        toil_days_created=toil_days,
        total_toil_minutes=total_toil,
        remaining_minutes=excess - total_toil,
    )


def resolve_overtime_rate(overtime_rate: Decimal | None, access_tier: int, policy: OvertimePolicy) -> Decimal:
    """Daily overtime base for an employee; the fixed-rate tier overrides it."""
    if access_tier == policy.fixed_rate_access_tier:
        return policy.fixed_tier_daily_rate
    if overtime_rate is None:
        return policy.default_overtime_rate
    return Decimal(overtime_rate)


def compute_payment(
    paid_minutes: int,
    overtime_rate: Decimal | None,
    access_tier: int,
    policy: OvertimePolicy,
) -> Decimal:
    """Payment for the paid hours: ``paid_hours * rate / 8``, rounded half-up to cents."""
    rate = resolve_overtime_rate(overtime_rate, access_tier, policy)
    paid_hours = Decimal(paid_minutes) / MINUTES_PER_HOUR
    return (paid_hours * rate / HOURS_PER_DAY).quantize(_CENTS, rounding=ROUND_HALF_UP)
