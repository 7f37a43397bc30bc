"""
Commission calculation for payment plans.

All money is Decimal; results are rounded once, at the end, to 2 places with ROUND_HALF_UP.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")
GST_DIVISOR = Decimal("1.1")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_money(value: Decimal) -> Decimal:
    """Truncate to 2 decimal places (used for even installment splits)."""
    return value.quantize(CENT, rounding=ROUND_DOWN)


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


@dataclass(frozen=True)
class CommissionResult:
    commissionable_value: Decimal
    expected_commission: Decimal


def _require_non_negative(value: Decimal, field: str) -> None:
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)


def calculate_commission(
    total_course_value,
    materials_cost,
    admin_fees,
    other_fees,
    commission_rate_percent,
    gst_inclusive: bool,
) -> CommissionResult:
    """
    commissionable_value = total - materials - admin - other.

    GST inclusive: commission = commissionable * rate / 100.
    GST exclusive: the 10% GST is removed from the commissionable value first,
    commission = (commissionable / 1.1) * rate / 100.
    """
    total = to_decimal(total_course_value)
    materials = to_decimal(materials_cost)
    admin = to_decimal(admin_fees)
    other = to_decimal(other_fees)
    rate = to_decimal(commission_rate_percent)

    _require_non_negative(total, "total_course_value")
    _require_non_negative(materials, "materials_cost")
    _require_non_negative(admin, "admin_fees")
    _require_non_negative(other, "other_fees")
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(
            "commission_rate_percent must be between 0 and 100",
            field="commission_rate_percent",
        )

    commissionable = total - materials - admin - other
    if commissionable < 0:
        raise ValidationError(
            f"Fees ({materials + admin + other}) exceed total_course_value ({total})",
            field="total_course_value",
        )

    base = commissionable if gst_inclusive else commissionable / GST_DIVISOR
    expected = base * rate / HUNDRED

    return CommissionResult(
        commissionable_value=quantize_money(commissionable),
        expected_commission=quantize_money(expected),
    )


def calculate_earned_commission(
    paid_commissionable_amount,
    commissionable_installments_total,
    expected_commission,
) -> Decimal:
    """Share of expected commission earned so far by paid commission-generating installments."""
    paid = to_decimal(paid_commissionable_amount)
    total = to_decimal(commissionable_installments_total)
    expected = to_decimal(expected_commission)
    if total <= 0 or paid <= 0:
        return Decimal("0.00")
    if paid >= total:
        return quantize_money(expected)
    return quantize_money(paid / total * expected)
