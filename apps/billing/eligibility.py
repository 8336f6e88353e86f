"""
Eligibility & paid-until calculation for the Dojo billing platform.

Two pure-ish functions:

- eligibility(): is this enrollment in good standing right now?
- compute_paid_until(): where does paid_until land after a tuition payment?

Rules for compute_paid_until, first match wins:

1. on_time            paid_until >= payment_date             anchor = paid_until
2. grace_period       days late <= grace period              anchor = paid_until
3. attendance_credit  attended after paid_until (lookback)   anchor = paid_until
4. default            long overdue and not attending         anchor = payment_date

Everything works on calendar dates (datetime.date); datetimes are converted
with timezone.localdate() at the boundary so month ends never drift a day.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from apps.students.models import Enrollment
from apps.students.services import attendance_after

from . import config

logger = logging.getLogger(__name__)

AttendanceLookup = Callable[[Any, date, date], list[date]]


# ===============================================================================
# ELIGIBILITY STATUS
# ===============================================================================


class EligibilityStatus(enum.Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    NOT_ENROLLED = "not_enrolled"

    @property
    def is_eligible(self) -> bool:
        """May the student check in to class?"""
        return self in (EligibilityStatus.ACTIVE, EligibilityStatus.TRIAL)


# Ordering used when a student holds several enrollments
_STATUS_PRIORITY = {
    EligibilityStatus.ACTIVE: 0,
    EligibilityStatus.TRIAL: 1,
    EligibilityStatus.EXPIRED: 2,
    EligibilityStatus.NOT_ENROLLED: 3,
}


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value


def eligibility(enrollment: Enrollment | None, today: date | None = None) -> EligibilityStatus:
    """Current standing of one enrollment. No side effects."""
    if enrollment is None or enrollment.status not in Enrollment.ELIGIBLE_STATUSES:
        return EligibilityStatus.NOT_ENROLLED
    if enrollment.status == "trial":
        return EligibilityStatus.TRIAL

    today = _as_date(today) if today else timezone.localdate()
    if enrollment.paid_until is not None and enrollment.paid_until >= today:
        return EligibilityStatus.ACTIVE
    return EligibilityStatus.EXPIRED


def best_eligibility(enrollments: Iterable[Enrollment], today: date | None = None) -> EligibilityStatus:
    """Best standing across several enrollments (Active > Trial > Expired > NotEnrolled)."""
    statuses = [eligibility(enrollment, today) for enrollment in enrollments]
    if not statuses:
        return EligibilityStatus.NOT_ENROLLED
    return min(statuses, key=_STATUS_PRIORITY.__getitem__)


def student_eligibility(student: Any, today: date | None = None) -> EligibilityStatus:
    return best_eligibility(Enrollment.objects.filter(student=student), today)


# ===============================================================================
# PAID-UNTIL CALCULATION
# ===============================================================================

RULE_ON_TIME = "on_time"
RULE_GRACE_PERIOD = "grace_period"
RULE_ATTENDANCE_CREDIT = "attendance_credit"
RULE_DEFAULT = "default"
RULE_NO_ADVANCE = "no_advance"


@dataclass(frozen=True)
class PaidUntilResult:
    """
    Outcome of compute_paid_until.

    Attributes:
        new_paid_until: Date the caller should persist (None only when there
            was no paid_until and the payment type does not advance it).
        rule_applied: One of on_time, grace_period, attendance_credit, default, no_advance.
        reason: Human-readable explanation for audit logs.
    """

    new_paid_until: date | None
    rule_applied: str
    reason: str

    @property
    def advances(self) -> bool:
        return self.rule_applied != RULE_NO_ADVANCE


def _default_attendance_lookup(student_id: Any, after: date, until: date) -> list[date]:
    return attendance_after(student_id, after, until)


def extend_by_payment_type(anchor: date, payment_type: str) -> date | None:
    """anchor + tuition duration, or None for payment types that buy no coverage."""
    duration = config.TUITION_DURATIONS.get(payment_type)
    if duration is None:
        return None
    return anchor + relativedelta(**duration)


def compute_paid_until(
    enrollment: Enrollment,
    payment_date: date | datetime,
    payment_type: str,
    *,
    grace_period_days: int | None = None,
    attendance_lookback_days: int | None = None,
    attendance_lookup: AttendanceLookup | None = None,
) -> PaidUntilResult:
    """
    Compute where paid_until lands after a payment. Does not persist anything.

    Args:
        enrollment: Enrollment being paid for (only student_id and paid_until are read)
        payment_date: Day the payment was received
        payment_type: Payment.type value (monthly, yearly, per_session, ...)
        grace_period_days: Override of BILLING_GRACE_PERIOD_DAYS
        attendance_lookback_days: Override of BILLING_ATTENDANCE_LOOKBACK_DAYS
        attendance_lookup: (student_id, after, until) -> present dates; defaults to the attendance table

    Returns:
        PaidUntilResult with the new date, the rule tag and an audit reason
    """
    payment_day = _as_date(payment_date)
    paid_until = enrollment.paid_until

    if payment_type not in config.TUITION_DURATIONS:
        return PaidUntilResult(
            new_paid_until=paid_until,
            rule_applied=RULE_NO_ADVANCE,
            reason=f"Payment type '{payment_type}' does not extend tuition coverage",
        )

    if paid_until is None:
        return PaidUntilResult(
            new_paid_until=extend_by_payment_type(payment_day, payment_type),
            rule_applied=RULE_DEFAULT,
            reason="No previous paid_until, extending from payment date",
        )

    if paid_until >= payment_day:
        return PaidUntilResult(
            new_paid_until=extend_by_payment_type(paid_until, payment_type),
            rule_applied=RULE_ON_TIME,
            reason=f"Renewed on or before expiry ({paid_until.isoformat()})",
        )

    grace_days = config.get_grace_period_days() if grace_period_days is None else grace_period_days
    days_late = (payment_day - paid_until).days

    if days_late <= grace_days:
        return PaidUntilResult(
            new_paid_until=extend_by_payment_type(paid_until, payment_type),
            rule_applied=RULE_GRACE_PERIOD,
            reason=f"Within {grace_days}-day grace period ({days_late} days after expiration)",
        )

    lookback_days = (
        config.get_attendance_lookback_days() if attendance_lookback_days is None else attendance_lookback_days
    )
    window_start = max(paid_until, payment_day - timedelta(days=lookback_days) - timedelta(days=1))
    lookup = attendance_lookup or _default_attendance_lookup
    attended = lookup(enrollment.student_id, window_start, payment_day)
    if attended:
        first_attended = min(attended)
        return PaidUntilResult(
            new_paid_until=extend_by_payment_type(paid_until, payment_type),
            rule_applied=RULE_ATTENDANCE_CREDIT,
            reason=(
                f"Student attended on {first_attended.isoformat()} after expiration on {paid_until.isoformat()}"
            ),
        )

    return PaidUntilResult(
        new_paid_until=extend_by_payment_type(payment_day, payment_type),
        rule_applied=RULE_DEFAULT,
        reason=f"Payment {days_late} days after expiration, outside grace period, no attendance recorded",
    )
