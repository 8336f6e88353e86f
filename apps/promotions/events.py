"""
Convenience recorders for discount events.

Called from business flows (enrollment, payments, grading, attendance).
A recorder never raises: discount automation must not break the flow that
produced the event, so failures are logged and None is returned.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from django.utils import timezone

from apps.billing.payment_models import Payment

from .automation import AutoDiscountService
from .models import DiscountEvent

logger = logging.getLogger(__name__)

ATTENDANCE_MILESTONE_INTERVAL = 5


def _record(
    event_type: str,
    student_id: Any | None,
    family_id: Any | None,
    payload: dict[str, Any],
    process: bool = True,
) -> DiscountEvent | None:
    try:
        return AutoDiscountService.record_event(
            event_type,
            student_id=student_id,
            family_id=family_id,
            payload=payload,
            process=process,
        )
    except Exception as e:
        logger.error(
            f"🔥 [AutoDiscount] Failed to record {event_type} event (student={student_id} family={family_id}): {e}"
        )
        return None


def record_enrollment_event(
    student_id: Any, family_id: Any, program_id: Any | None = None, process: bool = True
) -> DiscountEvent | None:
    payload: dict[str, Any] = {"enrollment_date": timezone.localdate().isoformat()}
    if program_id is not None:
        payload["program_id"] = str(program_id)
    return _record("enrollment", student_id, family_id, payload, process)


def record_first_payment_event(
    family_id: Any, payment_amount_cents: int, process: bool = True
) -> DiscountEvent | None:
    """Only fires when the family has exactly one succeeded payment."""
    succeeded = Payment.objects.filter(family_id=family_id, status=Payment.STATUS_SUCCEEDED).count()
    if succeeded != 1:
        logger.debug("⏭️ [AutoDiscount] Family %s has %d succeeded payments, no first_payment event", family_id, succeeded)
        return None
    payload = {"payment_amount_cents": payment_amount_cents, "payment_date": timezone.now().isoformat()}
    return _record("first_payment", None, family_id, payload, process)


def record_belt_promotion_event(
    student_id: Any, family_id: Any, new_belt_rank: str, process: bool = True
) -> DiscountEvent | None:
    payload = {"new_belt_rank": new_belt_rank, "promotion_date": timezone.localdate().isoformat()}
    return _record("belt_promotion", student_id, family_id, payload, process)


def record_attendance_milestone_event(
    student_id: Any, family_id: Any, attendance_count: int, process: bool = True
) -> DiscountEvent | None:
    """Only fires on every 5th present attendance."""
    if attendance_count <= 0 or attendance_count % ATTENDANCE_MILESTONE_INTERVAL != 0:
        return None
    payload = {"attendance_count": attendance_count, "milestone_date": timezone.localdate().isoformat()}
    return _record("attendance_milestone", student_id, family_id, payload, process)


def record_referral_event(
    referring_family_id: Any, referred_family_id: Any, process: bool = True
) -> DiscountEvent | None:
    payload = {"referred_family_id": str(referred_family_id), "referral_date": timezone.localdate().isoformat()}
    return _record("referral", None, referring_family_id, payload, process)


def record_birthday_event(
    student_id: Any, family_id: Any, birth_date: date | None = None, process: bool = True
) -> DiscountEvent | None:
    payload: dict[str, Any] = {"birthday": timezone.localdate().isoformat()}
    if birth_date is not None:
        payload["birth_date"] = birth_date.isoformat()
    return _record("birthday", student_id, family_id, payload, process)


def record_seasonal_event(
    family_id: Any, season: str, student_id: Any | None = None, process: bool = True
) -> DiscountEvent | None:
    payload = {"season": season, "event_date": timezone.localdate().isoformat()}
    return _record("seasonal", student_id, family_id, payload, process)
