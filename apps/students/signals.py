"""
Signal handlers for the Students app.

Turn enrollments, belt awards and attendance into discount events. With
DISCOUNT_EVENTS_ASYNC enabled the event is only stored here and processed by
a Django-Q2 worker after the surrounding transaction commits.
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.common.queue import queue_on_commit
from apps.promotions import events
from apps.promotions.models import DiscountEvent

from .models import AttendanceRecord, BeltAward, Enrollment
from .services import PRESENT_STATUS, attendance_count

logger = logging.getLogger(__name__)


def _process_inline() -> bool:
    return not getattr(settings, "DISCOUNT_EVENTS_ASYNC", False)


def _queue_if_deferred(event: DiscountEvent | None) -> None:
    if event is not None and event.processed_at is None and not _process_inline():
        queue_on_commit("apps.promotions.tasks.process_discount_event", str(event.pk))


@receiver(post_save, sender=Enrollment)
def enrollment_created(sender: type[Enrollment], instance: Enrollment, created: bool, **kwargs: Any) -> None:
    if not created or kwargs.get("raw"):
        return
    family_id = instance.student.family_id
    event = events.record_enrollment_event(
        instance.student_id, family_id, program_id=instance.program_id, process=_process_inline()
    )
    _queue_if_deferred(event)


@receiver(post_save, sender=BeltAward)
def belt_awarded(sender: type[BeltAward], instance: BeltAward, created: bool, **kwargs: Any) -> None:
    if not created or kwargs.get("raw"):
        return
    event = events.record_belt_promotion_event(
        instance.student_id, instance.student.family_id, instance.belt_rank, process=_process_inline()
    )
    _queue_if_deferred(event)


@receiver(post_save, sender=AttendanceRecord)
def attendance_recorded(
    sender: type[AttendanceRecord], instance: AttendanceRecord, created: bool, **kwargs: Any
) -> None:
    if not created or kwargs.get("raw") or instance.status != PRESENT_STATUS:
        return
    count = attendance_count(instance.student_id)
    event = events.record_attendance_milestone_event(
        instance.student_id, instance.student.family_id, count, process=_process_inline()
    )
    if event is not None:
        logger.info(f"🥋 [Attendance] Student {instance.student_id} reached {count} classes")
    _queue_if_deferred(event)
