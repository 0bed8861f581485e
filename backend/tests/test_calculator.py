"""Tests for the pure recap split and payment calculation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from overtime_ledger.exceptions import ConflictError
from overtime_ledger.schemas.policy import OvertimePolicy
from overtime_ledger.services.calculator import compute_payment, compute_recap, resolve_overtime_rate

POLICY = OvertimePolicy()


def _hours(hours: float) -> int:
    return round(hours * 60)


# ---------------------------------------------------------------------------
# compute_recap
# ---------------------------------------------------------------------------


def test_eighty_hours_creates_one_toil_day() -> None:
    result = compute_recap(_hours(80), 0)
    assert result.total_hours == 80
    assert result.paid_hours == 72
    assert result.excess_hours == 8
    assert result.toil_days_created == 1
    assert result.total_toil_hours == 8
    assert result.remaining_hours == 0


def test_seventy_five_hours_carries_the_remainder() -> None:
    result = compute_recap(_hours(75), 0)
    assert result.paid_hours == 72
    assert result.excess_hours == 3
    assert result.toil_days_created == 0
    assert result.total_toil_hours == 0
    assert result.remaining_hours == 3


def test_under_cap_is_fully_paid() -> None:
    result = compute_recap(_hours(40.5), 0)
    assert result.paid_hours == 40.5
    assert result.excess_minutes == 0
    assert result.remaining_minutes == 0


def test_carryover_is_added_before_the_cap() -> None:
    result = compute_recap(_hours(70), _hours(3))
    assert result.total_hours == 73
    assert result.carryover_hours == 3
    assert result.paid_hours == 72
    assert result.remaining_hours == 1


def test_large_excess_creates_several_days() -> None:
    result = compute_recap(_hours(100), _hours(7.5))
    # 107.5 total: 35.5 excess = 4 days (32h) + 3.5h remaining
    assert result.toil_days_created == 4
    assert result.total_toil_hours == 32
    assert result.remaining_hours == 3.5


@pytest.mark.parametrize(("approved", "carryover"), [(0, 0), (4320, 0), (4321, 479), (9999, 1234), (30, 4800)])
def test_split_is_exact(approved: int, carryover: int) -> None:
    result = compute_recap(approved, carryover)
    assert result.paid_minutes + result.excess_minutes == result.total_minutes
    assert result.total_toil_minutes + result.remaining_minutes == result.excess_minutes
    assert result.paid_minutes <= 4320
    assert 0 <= result.remaining_minutes < 480


def test_custom_cap_and_toil_day() -> None:
    result = compute_recap(600, 0, payable_cap_minutes=120, toil_day_minutes=240)
    assert result.paid_minutes == 120
    assert result.toil_days_created == 2
    assert result.remaining_minutes == 0


def test_negative_approved_is_a_conflict() -> None:
    with pytest.raises(ConflictError):
        compute_recap(-60, 0)


def test_negative_carryover_is_a_conflict() -> None:
    with pytest.raises(ConflictError):
        compute_recap(60, -1)


def test_zero_toil_day_is_rejected() -> None:
    with pytest.raises(ValueError):
        compute_recap(60, 0, toil_day_minutes=0)


@pytest.mark.parametrize(
    ("approved", "carryover", "cap", "toil_day"),
    [
        (4800, 0, 4320, 480),
        (4500, 180, 4320, 480),
        (6000, 450, 3600, 420),  # custom cap and ratio
        (100, 4700, 120, 240),
    ],
)
def test_recap_is_deterministic(approved: int, carryover: int, cap: int, toil_day: int) -> None:
    first = compute_recap(approved, carryover, payable_cap_minutes=cap, toil_day_minutes=toil_day)
    second = compute_recap(approved, carryover, payable_cap_minutes=cap, toil_day_minutes=toil_day)
    assert first == second


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def test_default_rate_when_employee_has_none() -> None:
    assert resolve_overtime_rate(None, 3, POLICY) == Decimal(300_000)


def test_employee_rate_is_used() -> None:
    assert resolve_overtime_rate(Decimal(400_000), 2, POLICY) == Decimal(400_000)


def test_fixed_rate_tier_overrides_employee_rate() -> None:
    assert resolve_overtime_rate(Decimal(400_000), 5, POLICY) == Decimal(150_000)


def test_payment_for_full_cap_at_default_rate() -> None:
    # 72h * 300000 / 8
    assert compute_payment(_hours(72), None, 3, POLICY) == Decimal("2700000.00")


def test_payment_for_fixed_rate_tier() -> None:
    assert compute_payment(_hours(72), Decimal(400_000), 5, POLICY) == Decimal("1350000.00")


def test_payment_rounds_half_up_to_cents() -> None:
    # 0.5h * 1001 / 8 = 62.5625
    assert compute_payment(30, Decimal(1001), 3, POLICY) == Decimal("62.56")
    # 0.5h * 1003 / 8 = 62.6875
    assert compute_payment(30, Decimal(1003), 3, POLICY) == Decimal("62.69")
    # 0.5h * 0.08 / 8 = 0.005 exactly
    assert compute_payment(30, Decimal("0.08"), 3, POLICY) == Decimal("0.01")


def test_zero_paid_minutes_pays_nothing() -> None:
    assert compute_payment(0, None, 3, POLICY) == Decimal("0.00")


@pytest.mark.parametrize(
    ("paid", "rate", "tier"),
    [
        (4320, None, 3),
        (30, Decimal(1003), 2),
        (2970, Decimal("412345.67"), 4),
        (4320, Decimal(400_000), 5),  # fixed-rate tier
    ],
)
def test_payment_is_deterministic(paid: int, rate: Decimal | None, tier: int) -> None:
    custom = OvertimePolicy(default_overtime_rate=Decimal(275_000), fixed_tier_daily_rate=Decimal(125_000))
    for policy in (POLICY, custom):
        assert compute_payment(paid, rate, tier, policy) == compute_payment(paid, rate, tier, policy)
