# ===============================================================================
# TEST FACTORIES FOR STUDENTS
# ===============================================================================

from dataclasses import dataclass
from datetime import date

from apps.students.models import AttendanceRecord, BeltAward, Enrollment, Family, Program, Student


def create_family(name: str = "Tanaka Family", email: str = "tanaka@example.com") -> Family:
    """Create a family with sensible defaults."""
    return Family.objects.create(name=name, email=email)


def create_student(
    family: Family | None = None,
    first_name: str = "Kenji",
    last_name: str = "Tanaka",
    birth_date: date | None = None,
) -> Student:
    """Create a student, creating a family when none is given."""
    if family is None:
        family = create_family()
    return Student.objects.create(family=family, first_name=first_name, last_name=last_name, birth_date=birth_date)


def create_program(name: str = "Kids Karate", monthly_fee_cents: int = 12000) -> Program:
    return Program.objects.create(name=name, monthly_fee_cents=monthly_fee_cents, yearly_fee_cents=monthly_fee_cents * 10)


# ===============================================================================
# ENROLLMENT FACTORY PARAMETER OBJECTS
# ===============================================================================


@dataclass
class EnrollmentCreationRequest:
    """Parameter object for enrollment creation"""

    student: Student
    program: Program | None = None
    status: str = "active"
    paid_until: date | None = None
    class_name: str = "Tuesday 5pm"


def create_enrollment(request: EnrollmentCreationRequest) -> Enrollment:
    """Create an Enrollment; creates a program when none is given."""
    if request.program is None:
        request.program = create_program()

    return Enrollment.objects.create(
        student=request.student,
        program=request.program,
        status=request.status,
        paid_until=request.paid_until,
        class_name=request.class_name,
    )


def create_attendance(student: Student, session_date: date, status: str = "present") -> AttendanceRecord:
    return AttendanceRecord.objects.create(student=student, session_date=session_date, status=status)


def create_belt_award(student: Student, belt_rank: str = "yellow", awarded_on: date | None = None) -> BeltAward:
    return BeltAward.objects.create(student=student, belt_rank=belt_rank, awarded_on=awarded_on or date(2024, 1, 15))
