"""
Student services for the Dojo billing platform.

Read-side lookups the billing core needs (attendance, belt rank, family size,
program membership) plus the two write paths on Enrollment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from django.db.models import Q
from django.utils import timezone

from .models import AttendanceRecord, BeltAward, Enrollment, Family, Student

logger = logging.getLogger(__name__)

PRESENT_STATUS = "present"


# ===============================================================================
# Attendance lookup
# ===============================================================================


def attendance_after(student_id: Any, after: date, until: date | None = None) -> list[date]:
    """
    Dates the student was present strictly after ``after`` (and up to ``until`` inclusive).

    Returned in ascending order.
    """
    filters = Q(student_id=student_id, status=PRESENT_STATUS, session_date__gt=after)
    if until is not None:
        filters &= Q(session_date__lte=until)
    return list(
        AttendanceRecord.objects.filter(filters).order_by("session_date").values_list("session_date", flat=True)
    )


def attendance_count(student_id: Any) -> int:
    return AttendanceRecord.objects.filter(student_id=student_id, status=PRESENT_STATUS).count()


# ===============================================================================
# Attribute snapshot for rule evaluation
# ===============================================================================


@dataclass
class StudentAttributes:
    """
    Attributes of a student/family that discount rule conditions may reference.

    Attributes:
        age: Whole years on the evaluation day (None without a birth date).
        belt_rank: Latest awarded belt (None if never graded).
        family_size: Number of students in the family.
        attendance_count: Total present attendance records.
        programs: IDs (as strings) of programs with an active or trial enrollment.
    """

    age: int | None = None
    belt_rank: str | None = None
    family_size: int | None = None
    attendance_count: int | None = None
    programs: set[str] = field(default_factory=set)

    def as_dict(self) -> dict[str, Any]:
        return {
            "age": self.age,
            "belt_rank": self.belt_rank,
            "family_size": self.family_size,
            "attendance_count": self.attendance_count,
            "programs": set(self.programs),
        }


class StudentAttributeService:
    """Builds StudentAttributes for the automatic discount engine."""

    @staticmethod
    def current_belt_rank(student_id: Any) -> str | None:
        award = BeltAward.objects.filter(student_id=student_id).order_by("-awarded_on", "-created_at").first()
        return award.belt_rank if award else None

    @staticmethod
    def active_program_ids(student_id: Any) -> set[str]:
        return {
            str(program_id)
            for program_id in Enrollment.objects.filter(
                student_id=student_id, status__in=Enrollment.ELIGIBLE_STATUSES
            ).values_list("program_id", flat=True)
        }

    @classmethod
    def build(cls, student: Student | None, family: Family | None, on: date | None = None) -> StudentAttributes:
        on = on or timezone.localdate()
        family = family or (student.family if student else None)

        attributes = StudentAttributes()
        if family is not None:
            attributes.family_size = family.students.count()  # type: ignore[attr-defined]
        if student is not None:
            attributes.age = student.age_on(on)
            attributes.belt_rank = cls.current_belt_rank(student.pk)
            attributes.attendance_count = attendance_count(student.pk)
            attributes.programs = cls.active_program_ids(student.pk)
        return attributes


# ===============================================================================
# Enrollment writes
# ===============================================================================


class EnrollmentService:
    """The only code paths that modify Enrollment.paid_until."""

    @staticmethod
    def advance_paid_until(enrollment: Enrollment, new_paid_until: date, activate: bool = True) -> bool:
        """
        Move paid_until forward to ``new_paid_until``.

        Single conditional UPDATE so a concurrent advance that already went
        further is never pulled back. Returns True if this call moved the date.
        """
        updates: dict[str, Any] = {"paid_until": new_paid_until, "updated_at": timezone.now()}
        rows = Enrollment.objects.filter(
            Q(paid_until__isnull=True) | Q(paid_until__lt=new_paid_until),
            pk=enrollment.pk,
        ).update(**updates)

        if activate:
            Enrollment.objects.filter(pk=enrollment.pk, status="trial").update(status="active")

        enrollment.refresh_from_db(fields=["paid_until", "status"])
        if rows == 0:
            logger.info(
                "⏭️ [Enrollment] paid_until for %s already at %s, not moving to %s",
                enrollment.pk,
                enrollment.paid_until,
                new_paid_until,
            )
        return rows == 1

    @staticmethod
    def override_paid_until(enrollment: Enrollment, paid_until: date | None, reason: str) -> None:
        """Admin override - the only way paid_until may move backwards."""
        previous = enrollment.paid_until
        Enrollment.objects.filter(pk=enrollment.pk).update(paid_until=paid_until, updated_at=timezone.now())
        enrollment.refresh_from_db(fields=["paid_until"])
        logger.warning(
            "⚠️ [Enrollment] Admin override of paid_until for %s: %s -> %s (%s)",
            enrollment.pk,
            previous,
            paid_until,
            reason,
            extra={"enrollment_id": str(enrollment.pk), "reason": reason},
        )
