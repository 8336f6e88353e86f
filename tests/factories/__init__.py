# ===============================================================================
# TEST FACTORIES - CENTRALIZED TEST DATA GENERATION
# ===============================================================================
"""
Factory module for generating test data across the Dojo billing platform.

Usage:
    from tests.factories import create_family, create_student, create_payment

    family = create_family()
    student = create_student(family)
    payment = create_payment(PaymentCreationRequest(family=family))
"""

from tests.factories.billing_factories import (
    PaymentCreationRequest,
    create_invoice,
    create_payment,
    create_stale_payment,
)
from tests.factories.promotion_factories import create_discount_code, create_rule, create_template
from tests.factories.student_factories import (
    EnrollmentCreationRequest,
    create_attendance,
    create_belt_award,
    create_enrollment,
    create_family,
    create_program,
    create_student,
)

__all__ = [
    # Billing factories
    "PaymentCreationRequest",
    "create_invoice",
    "create_payment",
    "create_stale_payment",
    # Promotion factories
    "create_discount_code",
    "create_rule",
    "create_template",
    # Student factories
    "EnrollmentCreationRequest",
    "create_attendance",
    "create_belt_award",
    "create_enrollment",
    "create_family",
    "create_program",
    "create_student",
]
