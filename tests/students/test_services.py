"""
Tests for student lookups and the Enrollment write paths.
"""

from datetime import date

from django.test import TestCase

from apps.students.models import Enrollment
from apps.students.services import (
    EnrollmentService,
    StudentAttributeService,
    attendance_after,
    attendance_count,
)
from tests.factories import (
    EnrollmentCreationRequest,
    create_attendance,
    create_belt_award,
    create_enrollment,
    create_family,
    create_program,
    create_student,
)


class AttendanceLookupTests(TestCase):
    def setUp(self):
        self.student = create_student(create_family())
        create_attendance(self.student, date(2024, 10, 3))
        create_attendance(self.student, date(2024, 10, 1))
        create_attendance(self.student, date(2024, 10, 2), status="absent")
        create_attendance(self.student, date(2024, 10, 9))

    def test_attendance_after_is_exclusive_and_ordered(self):
        self.assertEqual(
            attendance_after(self.student.pk, date(2024, 10, 1)),
            [date(2024, 10, 3), date(2024, 10, 9)],
        )

    def test_attendance_after_with_upper_bound(self):
        self.assertEqual(
            attendance_after(self.student.pk, date(2024, 9, 30), until=date(2024, 10, 3)),
            [date(2024, 10, 1), date(2024, 10, 3)],
        )

    def test_attendance_count_only_counts_present(self):
        self.assertEqual(attendance_count(self.student.pk), 3)


class StudentAttributeTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.student = create_student(self.family, birth_date=date(2015, 6, 1))
        create_student(self.family, first_name="Yuki")

    def test_build_attributes(self):
        active = create_enrollment(EnrollmentCreationRequest(student=self.student, program=create_program("Karate")))
        create_enrollment(
            EnrollmentCreationRequest(student=self.student, program=create_program("Judo"), status="dropped")
        )
        create_belt_award(self.student, "yellow", date(2024, 1, 15))
        create_belt_award(self.student, "orange", date(2024, 6, 15))
        create_attendance(self.student, date(2024, 6, 1))

        attributes = StudentAttributeService.build(self.student, None, on=date(2024, 6, 1))

        self.assertEqual(attributes.age, 9)
        self.assertEqual(attributes.belt_rank, "orange")
        self.assertEqual(attributes.family_size, 2)
        self.assertEqual(attributes.attendance_count, 1)
        self.assertEqual(attributes.programs, {str(active.program_id)})

    def test_age_before_birthday(self):
        attributes = StudentAttributeService.build(self.student, None, on=date(2024, 5, 31))

        self.assertEqual(attributes.age, 8)

    def test_family_only_attributes(self):
        attributes = StudentAttributeService.build(None, self.family).as_dict()

        self.assertEqual(attributes["family_size"], 2)
        self.assertIsNone(attributes["age"])
        self.assertIsNone(attributes["belt_rank"])
        self.assertEqual(attributes["programs"], set())


class EnrollmentServiceTests(TestCase):
    def setUp(self):
        student = create_student(create_family())
        self.enrollment = create_enrollment(
            EnrollmentCreationRequest(student=student, status="trial", paid_until=date(2024, 10, 1))
        )

    def test_advance_moves_forward_and_activates(self):
        moved = EnrollmentService.advance_paid_until(self.enrollment, date(2024, 11, 1))

        self.assertTrue(moved)
        self.assertEqual(self.enrollment.paid_until, date(2024, 11, 1))
        self.assertEqual(self.enrollment.status, "active")

    def test_advance_never_moves_backwards(self):
        moved = EnrollmentService.advance_paid_until(self.enrollment, date(2024, 9, 1))

        self.assertFalse(moved)
        self.assertEqual(self.enrollment.paid_until, date(2024, 10, 1))

    def test_stale_instance_cannot_pull_date_back(self):
        stale = Enrollment.objects.get(pk=self.enrollment.pk)
        EnrollmentService.advance_paid_until(self.enrollment, date(2025, 10, 1))

        moved = EnrollmentService.advance_paid_until(stale, date(2024, 11, 1))

        self.assertFalse(moved)
        self.assertEqual(stale.paid_until, date(2025, 10, 1))

    def test_advance_from_null(self):
        Enrollment.objects.filter(pk=self.enrollment.pk).update(paid_until=None)

        self.assertTrue(EnrollmentService.advance_paid_until(self.enrollment, date(2024, 11, 1)))

    def test_advance_without_activation(self):
        EnrollmentService.advance_paid_until(self.enrollment, date(2024, 11, 1), activate=False)

        self.assertEqual(self.enrollment.status, "trial")

    def test_dropped_enrollment_is_not_reactivated(self):
        Enrollment.objects.filter(pk=self.enrollment.pk).update(status="dropped")

        EnrollmentService.advance_paid_until(self.enrollment, date(2024, 11, 1))

        self.assertEqual(self.enrollment.status, "dropped")

    def test_admin_override_can_move_backwards(self):
        with self.assertLogs("apps.students.services", level="WARNING") as logs:
            EnrollmentService.override_paid_until(self.enrollment, date(2024, 9, 1), reason="refund")

        self.assertEqual(self.enrollment.paid_until, date(2024, 9, 1))
        self.assertIn("refund", logs.output[0])
