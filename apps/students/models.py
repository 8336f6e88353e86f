"""
Student models for the Dojo billing platform.

These tables are owned by the surrounding school-management product (enrollment
forms, class rosters, attendance sheets). The billing core reads them and only
ever writes Enrollment.paid_until / Enrollment.status.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

# ===============================================================================
# Family & Student
# ===============================================================================


class Family(models.Model):
    """Billing unit - payments and family-scoped discounts attach here."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "families"
        verbose_name = _("Family")
        verbose_name_plural = _("Families")
        ordering: ClassVar[tuple[str, ...]] = ("name",)

    def __str__(self) -> str:
        return self.name

    @property
    def size(self) -> int:
        return self.students.count()  # type: ignore[attr-defined]


class Student(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family = models.ForeignKey(Family, on_delete=models.CASCADE, related_name="students")
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    birth_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "students"
        verbose_name = _("Student")
        verbose_name_plural = _("Students")
        ordering: ClassVar[tuple[str, ...]] = ("last_name", "first_name")
        indexes: ClassVar[tuple[models.Index, ...]] = (models.Index(fields=["family"], name="students_family_idx"),)

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def age_on(self, on: date) -> int | None:
        """Whole years of age on the given day, or None without a birth date."""
        if self.birth_date is None:
            return None
        had_birthday = (on.month, on.day) >= (self.birth_date.month, self.birth_date.day)
        return on.year - self.birth_date.year - (0 if had_birthday else 1)


# ===============================================================================
# Programs & Enrollments
# ===============================================================================


class Program(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    monthly_fee_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    yearly_fee_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "programs"
        verbose_name = _("Program")
        verbose_name_plural = _("Programs")
        ordering: ClassVar[tuple[str, ...]] = ("name",)

    def __str__(self) -> str:
        return self.name


class Enrollment(models.Model):
    """
    A student's place in a program/class.

    paid_until only moves forward; the single backwards path is an explicit
    admin override through EnrollmentService.override_paid_until.
    """

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("trial", _("Trial")),
        ("active", _("Active")),
        ("inactive", _("Inactive")),
        ("dropped", _("Dropped")),
    )
    ELIGIBLE_STATUSES: ClassVar[tuple[str, ...]] = ("trial", "active")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="enrollments")
    program = models.ForeignKey(Program, on_delete=models.PROTECT, related_name="enrollments")
    class_name = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="trial")
    paid_until = models.DateField(null=True, blank=True, help_text=_("Date through which tuition is current"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "enrollments"
        verbose_name = _("Enrollment")
        verbose_name_plural = _("Enrollments")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["student", "status"], name="enrollment_student_status_idx"),
            models.Index(fields=["status", "paid_until"], name="enrollment_status_paid_idx"),
        )

    def __str__(self) -> str:
        return f"{self.student} - {self.program} ({self.status})"

    @property
    def is_eligible_status(self) -> bool:
        return self.status in self.ELIGIBLE_STATUSES


# ===============================================================================
# Attendance & Belt progression
# ===============================================================================


class AttendanceRecord(models.Model):
    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("present", _("Present")),
        ("absent", _("Absent")),
        ("excused", _("Excused")),
        ("late", _("Late")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="attendance_records")
    session_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="present")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "attendance_records"
        verbose_name = _("Attendance Record")
        verbose_name_plural = _("Attendance Records")
        ordering: ClassVar[tuple[str, ...]] = ("-session_date",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["student", "status", "session_date"], name="attendance_student_date_idx"),
        )

    def __str__(self) -> str:
        return f"{self.student} {self.session_date} {self.status}"


class BeltAward(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="belt_awards")
    belt_rank = models.CharField(max_length=50)
    awarded_on = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "belt_awards"
        verbose_name = _("Belt Award")
        verbose_name_plural = _("Belt Awards")
        ordering: ClassVar[tuple[str, ...]] = ("-awarded_on", "-created_at")

    def __str__(self) -> str:
        return f"{self.student} - {self.belt_rank}"
