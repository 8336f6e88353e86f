# ===============================================================================
# PYTEST CONFIGURATION FOR THE DOJO BILLING PLATFORM
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Shared test data builders live in tests/factories/

Test Discovery:
- Run specific app tests: pytest tests/billing/
- Run all tests: pytest tests/
"""

import os
from datetime import date

import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")


# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================


@pytest.fixture
def family(db):
    from tests.factories import create_family  # noqa: PLC0415

    return create_family()


@pytest.fixture
def student(family):
    from tests.factories import create_student  # noqa: PLC0415

    return create_student(family, birth_date=date(2015, 6, 1))


@pytest.fixture
def program(db):
    from tests.factories import create_program  # noqa: PLC0415

    return create_program()


@pytest.fixture
def enrollment(student, program):
    from tests.factories import EnrollmentCreationRequest, create_enrollment  # noqa: PLC0415

    return create_enrollment(EnrollmentCreationRequest(student=student, program=program, paid_until=date(2024, 10, 1)))
