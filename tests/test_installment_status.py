"""Unit tests for the installment status lifecycle and time-based evaluation."""

from datetime import date, datetime, time, timezone

import pytest

from app.core.enums import InstallmentStatus as S
from app.core.exceptions import InvalidStatusTransition, ValidationError
from app.core.installment_status import (
    AgencyStatusConfig,
    assert_transition,
    can_transition,
    evaluate_time_based_status,
)
from app.core.models import Agency

BRISBANE = AgencyStatusConfig(timezone="Australia/Brisbane", overdue_cutoff_time=time(17, 0), due_soon_threshold_days=4)

# Brisbane is UTC+10 all year
BRISBANE_18_00 = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
BRISBANE_09_00 = datetime(2025, 3, 9, 23, 0, tzinfo=timezone.utc)
LOCAL_TODAY = date(2025, 3, 10)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.draft, S.pending),
        (S.pending, S.due_soon),
        (S.pending, S.overdue),
        (S.due_soon, S.overdue),
        (S.pending, S.paid),
        (S.due_soon, S.paid),
        (S.overdue, S.partial),
        (S.overdue, S.paid),
        (S.partial, S.partial),
        (S.partial, S.paid),
        (S.overdue, S.cancelled),
    ],
)
def test_allowed_transitions(current: S, target: S) -> None:
    assert can_transition(current, target)
    assert assert_transition(current, target) == target


@pytest.mark.parametrize(
    "current,target",
    [
        (S.overdue, S.due_soon),
        (S.overdue, S.pending),
        (S.due_soon, S.pending),
        (S.paid, S.pending),
        (S.paid, S.partial),
        (S.cancelled, S.pending),
        (S.partial, S.overdue),
        (S.draft, S.paid),
    ],
)
def test_forbidden_transitions(current: S, target: S) -> None:
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransition) as exc:
        assert_transition(current, target)
    assert exc.value.field == "status"


def test_transitions_accept_plain_strings() -> None:
    assert can_transition("pending", "due_soon")
    assert not can_transition("paid", "pending")


def test_due_today_after_cutoff_is_overdue() -> None:
    assert evaluate_time_based_status(S.pending, LOCAL_TODAY, BRISBANE_18_00, BRISBANE) == S.overdue
    assert evaluate_time_based_status(S.due_soon, LOCAL_TODAY, BRISBANE_18_00, BRISBANE) == S.overdue


def test_due_today_before_cutoff_is_due_soon() -> None:
    assert evaluate_time_based_status(S.pending, LOCAL_TODAY, BRISBANE_09_00, BRISBANE) == S.due_soon


def test_exactly_at_cutoff_is_not_overdue() -> None:
    at_cutoff = datetime(2025, 3, 10, 7, 0, tzinfo=timezone.utc)
    assert evaluate_time_based_status(S.pending, LOCAL_TODAY, at_cutoff, BRISBANE) == S.due_soon


def test_past_due_is_overdue() -> None:
    assert evaluate_time_based_status(S.pending, date(2025, 3, 9), BRISBANE_09_00, BRISBANE) == S.overdue


def test_due_soon_window() -> None:
    # threshold is 4 days, inclusive
    assert evaluate_time_based_status(S.pending, date(2025, 3, 14), BRISBANE_09_00, BRISBANE) == S.due_soon
    assert evaluate_time_based_status(S.pending, date(2025, 3, 15), BRISBANE_09_00, BRISBANE) is None


def test_already_due_soon_is_left_alone() -> None:
    assert evaluate_time_based_status(S.due_soon, date(2025, 3, 12), BRISBANE_09_00, BRISBANE) is None


@pytest.mark.parametrize("current", [S.overdue, S.partial, S.paid, S.cancelled, S.draft])
def test_only_pending_and_due_soon_are_evaluated(current: S) -> None:
    assert evaluate_time_based_status(current, date(2025, 1, 1), BRISBANE_18_00, BRISBANE) is None


def test_overdue_never_regresses_when_threshold_widens() -> None:
    wide = AgencyStatusConfig(timezone="Australia/Brisbane", due_soon_threshold_days=30)
    assert evaluate_time_based_status(S.overdue, date(2025, 3, 20), BRISBANE_09_00, wide) is None


def test_local_date_not_utc_date() -> None:
    # 03:00 UTC on the 10th is still the evening of the 9th in New York
    new_york = AgencyStatusConfig(timezone="America/New_York", overdue_cutoff_time=time(17, 0), due_soon_threshold_days=1)
    now = datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc)
    assert new_york.local_today(now) == date(2025, 3, 9)
    assert evaluate_time_based_status(S.pending, date(2025, 3, 10), now, new_york) == S.due_soon


def test_naive_now_is_treated_as_utc() -> None:
    naive = datetime(2025, 3, 10, 8, 0)
    assert BRISBANE.local_now(naive).hour == 18
    assert evaluate_time_based_status(S.pending, LOCAL_TODAY, naive, BRISBANE) == S.overdue


def test_unknown_timezone_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        AgencyStatusConfig(timezone="Mars/Olympus_Mons")
    assert exc.value.field == "timezone"


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_timezone_rejected(name: str) -> None:
    with pytest.raises(ValidationError) as exc:
        AgencyStatusConfig(timezone=name)
    assert exc.value.field == "timezone"


def test_agency_with_blank_timezone_does_not_fall_back_to_default() -> None:
    with pytest.raises(ValidationError):
        AgencyStatusConfig.from_agency(Agency(name="Blank TZ", timezone="", overdue_cutoff_time=None))


def test_agency_without_settings_uses_defaults() -> None:
    config = AgencyStatusConfig.from_agency(Agency(name="Defaults"))
    assert config.timezone == "Australia/Brisbane"
    assert config.overdue_cutoff_time == time(17, 0)
    assert config.due_soon_threshold_days == 4


def test_negative_threshold_rejected() -> None:
    with pytest.raises(ValidationError):
        AgencyStatusConfig(due_soon_threshold_days=-1)
