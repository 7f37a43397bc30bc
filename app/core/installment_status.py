"""
Installment status lifecycle.

Every status write goes through ALLOWED_TRANSITIONS. The time-based ladder
(pending -> due_soon -> overdue) only moves forward; payments move an installment
to partial or paid; paid and cancelled are terminal.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, FrozenSet, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.enums import InstallmentStatus
from app.core.exceptions import InvalidStatusTransition, ValidationError

S = InstallmentStatus

ALLOWED_TRANSITIONS: Dict[InstallmentStatus, FrozenSet[InstallmentStatus]] = {
    S.draft: frozenset({S.pending, S.cancelled}),
    S.pending: frozenset({S.due_soon, S.overdue, S.partial, S.paid, S.cancelled}),
    S.due_soon: frozenset({S.overdue, S.partial, S.paid, S.cancelled}),
    S.overdue: frozenset({S.partial, S.paid, S.cancelled}),
    # partial -> partial: further part payments
    S.partial: frozenset({S.partial, S.paid, S.cancelled}),
    S.paid: frozenset(),
    S.cancelled: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.paid, S.cancelled})
PAYABLE_STATUSES = frozenset({S.pending, S.due_soon, S.overdue, S.partial})
SWEEPABLE_STATUSES = frozenset({S.pending, S.due_soon})

DEFAULT_TIMEZONE = "Australia/Brisbane"
DEFAULT_OVERDUE_CUTOFF = time(17, 0)
DEFAULT_DUE_SOON_THRESHOLD_DAYS = 4


def can_transition(current, target) -> bool:
    return S(target) in ALLOWED_TRANSITIONS[S(current)]


def assert_transition(current, target) -> InstallmentStatus:
    """Return the target status, or raise InvalidStatusTransition if the table forbids it."""
    current, target = S(current), S(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, target.value)
    return target


def resolve_zone(name: str) -> ZoneInfo:
    if not name or not name.strip():
        raise ValidationError("Agency timezone is empty", field="timezone")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone '{name}'", field="timezone")


@dataclass(frozen=True)
class AgencyStatusConfig:
    """Per-agency sweep settings. Passed explicitly so each agency is evaluated independently."""

    timezone: str = DEFAULT_TIMEZONE
    overdue_cutoff_time: time = DEFAULT_OVERDUE_CUTOFF
    due_soon_threshold_days: int = DEFAULT_DUE_SOON_THRESHOLD_DAYS

    def __post_init__(self) -> None:
        resolve_zone(self.timezone)
        if self.due_soon_threshold_days < 0:
            raise ValidationError("due_soon_threshold_days cannot be negative", field="due_soon_threshold_days")

    @classmethod
    def from_agency(cls, agency) -> "AgencyStatusConfig":
        return cls(
            timezone=agency.timezone if agency.timezone is not None else DEFAULT_TIMEZONE,
            overdue_cutoff_time=(
                agency.overdue_cutoff_time if agency.overdue_cutoff_time is not None else DEFAULT_OVERDUE_CUTOFF
            ),
            due_soon_threshold_days=(
                agency.due_soon_threshold_days
                if agency.due_soon_threshold_days is not None
                else DEFAULT_DUE_SOON_THRESHOLD_DAYS
            ),
        )

    @property
    def zone(self) -> ZoneInfo:
        return resolve_zone(self.timezone)

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.zone)

    def local_today(self, now: Optional[datetime] = None) -> date:
        return self.local_now(now).date()


def evaluate_time_based_status(
    current,
    student_due_date: date,
    now: datetime,
    config: AgencyStatusConfig,
) -> Optional[InstallmentStatus]:
    """
    Status the daily sweep should move this installment to, or None to leave it.

    Only pending and due_soon installments are considered. Nothing here ever
    returns an earlier rung of the ladder.
    """
    current = S(current)
    if current not in SWEEPABLE_STATUSES:
        return None

    local_now = config.local_now(now)
    today = local_now.date()

    if student_due_date < today:
        return S.overdue
    if student_due_date == today and local_now.time() > config.overdue_cutoff_time:
        return S.overdue

    days_until_due = (student_due_date - today).days
    if days_until_due <= config.due_soon_threshold_days:
        return None if current == S.due_soon else S.due_soon
    return None
