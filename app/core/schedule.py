"""
Installment schedule generation.

Builds installment #0 (initial payment) plus N periodically spaced installments.
The final installment absorbs the rounding remainder so the schedule always sums
to the total course value.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import FrozenSet, List, Optional

from dateutil.relativedelta import relativedelta

from app.core.commission import floor_money, to_decimal
from app.core.enums import InstallmentStatus, PaymentFrequency
from app.core.exceptions import ValidationError
from app.core.installment_status import assert_transition

MAX_INSTALLMENTS = 60


@dataclass(frozen=True)
class ScheduleInput:
    total_course_value: Decimal
    initial_payment_amount: Decimal
    initial_payment_due_date: Optional[date]
    number_of_installments: int
    payment_frequency: PaymentFrequency
    first_college_due_date: Optional[date]
    student_lead_time_days: int = 0
    initial_payment_paid: bool = False
    course_start_date: Optional[date] = None
    course_end_date: Optional[date] = None
    non_commission_installments: FrozenSet[int] = frozenset()


@dataclass
class InstallmentDraft:
    installment_number: int
    amount: Decimal
    student_due_date: date
    college_due_date: date
    is_initial_payment: bool
    generates_commission: bool = True
    status: InstallmentStatus = InstallmentStatus.draft
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None


@dataclass
class ScheduleResult:
    installments: List[InstallmentDraft]
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((i.amount for i in self.installments), Decimal("0"))


def add_period(start: date, frequency: PaymentFrequency, periods: int) -> date:
    """
    Date `periods` steps after `start`. Months are always counted from `start`,
    so Jan 31 gives Feb 28/29, Mar 31, Apr 30 rather than drifting to the 28th.
    """
    frequency = PaymentFrequency(frequency)
    if frequency == PaymentFrequency.weekly:
        return start + timedelta(weeks=periods)
    if frequency == PaymentFrequency.monthly:
        return start + relativedelta(months=periods)
    return start + relativedelta(months=3 * periods)


def _validate(inputs: ScheduleInput, total: Decimal, initial: Decimal) -> Decimal:
    if total <= 0:
        raise ValidationError("total_course_value must be greater than 0", field="total_course_value")
    if initial < 0:
        raise ValidationError("initial_payment_amount cannot be negative", field="initial_payment_amount")
    if inputs.student_lead_time_days < 0:
        raise ValidationError("student_lead_time_days cannot be negative", field="student_lead_time_days")

    n = inputs.number_of_installments
    if n < 0:
        raise ValidationError("number_of_installments cannot be negative", field="number_of_installments")
    if n > MAX_INSTALLMENTS:
        raise ValidationError(
            f"number_of_installments cannot exceed {MAX_INSTALLMENTS}",
            field="number_of_installments",
        )

    remaining = total - initial
    if remaining < 0:
        raise ValidationError(
            f"initial_payment_amount ({initial}) exceeds total_course_value ({total})",
            field="initial_payment_amount",
        )
    if remaining > 0 and n < 1:
        raise ValidationError(
            f"number_of_installments must be at least 1 to schedule the remaining {remaining}",
            field="number_of_installments",
        )
    if remaining == 0 and n > 0:
        raise ValidationError(
            "number_of_installments must be 0 when the initial payment covers the total",
            field="number_of_installments",
        )
    if initial > 0 and inputs.initial_payment_due_date is None:
        raise ValidationError("initial_payment_due_date is required", field="initial_payment_due_date")
    if n > 0 and inputs.first_college_due_date is None:
        raise ValidationError("first_college_due_date is required", field="first_college_due_date")
    if inputs.course_start_date and inputs.course_end_date and inputs.course_end_date < inputs.course_start_date:
        raise ValidationError("course_end_date cannot be before course_start_date", field="course_end_date")
    return remaining


def generate_installment_schedule(inputs: ScheduleInput, today: Optional[date] = None) -> ScheduleResult:
    """Return the ordered installment drafts for a payment plan. Raises ValidationError on bad input."""
    today = today or date.today()
    total = to_decimal(inputs.total_course_value)
    initial = to_decimal(inputs.initial_payment_amount)
    remaining = _validate(inputs, total, initial)

    lead = timedelta(days=inputs.student_lead_time_days)
    installments: List[InstallmentDraft] = []
    warnings: List[str] = []

    if initial > 0:
        due = inputs.initial_payment_due_date
        college_due = due - lead
        if inputs.initial_payment_paid and college_due < today:
            college_due = today
        draft = InstallmentDraft(
            installment_number=0,
            amount=initial,
            student_due_date=due,
            college_due_date=college_due,
            is_initial_payment=True,
            generates_commission=0 not in inputs.non_commission_installments,
        )
        if inputs.initial_payment_paid:
            draft.status = InstallmentStatus.paid
            draft.paid_amount = initial
            draft.paid_date = min(due, today)
        installments.append(draft)

    n = inputs.number_of_installments
    if n > 0:
        base = floor_money(remaining / n)
        if base <= 0:
            raise ValidationError(
                f"Remaining amount {remaining} is too small to split into {n} installments",
                field="number_of_installments",
            )
        last = remaining - base * (n - 1)
        for number in range(1, n + 1):
            college_due = add_period(inputs.first_college_due_date, inputs.payment_frequency, number - 1)
            installments.append(
                InstallmentDraft(
                    installment_number=number,
                    amount=last if number == n else base,
                    student_due_date=college_due + lead,
                    college_due_date=college_due,
                    is_initial_payment=False,
                    generates_commission=number not in inputs.non_commission_installments,
                )
            )

    if inputs.course_end_date:
        for inst in installments:
            if inst.student_due_date > inputs.course_end_date:
                warnings.append(
                    f"Installment #{inst.installment_number} is due {inst.student_due_date.isoformat()}, "
                    f"after the course ends on {inputs.course_end_date.isoformat()}"
                )

    return ScheduleResult(installments=installments, warnings=warnings)


def confirm_schedule(installments: List[InstallmentDraft]) -> List[InstallmentDraft]:
    """Flip every draft to pending when the plan is saved. Already-paid rows are kept."""
    for inst in installments:
        if inst.status == InstallmentStatus.draft:
            inst.status = assert_transition(inst.status, InstallmentStatus.pending)
    return installments


def build_schedule_summary(result: ScheduleResult, commissionable_value: Decimal, expected_commission: Decimal) -> dict:
    regular = [i for i in result.installments if not i.is_initial_payment]
    initial = next((i.amount for i in result.installments if i.is_initial_payment), Decimal("0.00"))
    return {
        "total_course_value": result.total,
        "commissionable_value": commissionable_value,
        "expected_commission": expected_commission,
        "initial_payment": initial,
        "total_installments": len(result.installments),
        "amount_per_installment": regular[0].amount if regular else Decimal("0.00"),
    }
