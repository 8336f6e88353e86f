"""
Tests for the Promotions app services.
"""

from datetime import timedelta
from unittest.mock import patch

from django.core.exceptions import ValidationError as DjangoValidationError
from django.test import TestCase
from django.utils import timezone

from apps.common.types import DiscountUsageExceeded, Money, ValidationError
from apps.promotions.models import DiscountCode, DiscountUsage
from apps.promotions.services import DiscountCodeService
from tests.factories import (
    PaymentCreationRequest,
    create_discount_code,
    create_family,
    create_payment,
    create_student,
)


class DiscountCalculationTests(TestCase):
    """Calculation is pure; unsaved codes are enough."""

    def _code(self, kind, value):
        return DiscountCode(code="CALC", name="calc", kind=kind, value=value)

    def test_twenty_percent_of_fifty_dollars(self):
        discount = DiscountCodeService.calculate_discount(self._code("percentage", 20), Money(5000))
        self.assertEqual(discount, Money(1000))

    def test_percentage_rounding(self):
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("percentage", 33), Money(100)).amount, 33)
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("percentage", 50), Money(101)).amount, 51)

    def test_fixed_amount_capped_at_subtotal(self):
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("fixed_amount", 2500), Money(1000)).amount, 1000)
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("fixed_amount", 2500), Money(9000)).amount, 2500)

    def test_hundred_percent_and_zero_subtotal(self):
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("percentage", 100), Money(777)).amount, 777)
        self.assertEqual(DiscountCodeService.calculate_discount(self._code("percentage", 50), Money(0)).amount, 0)


class DiscountValidationTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.other_family = create_family(name="Other Family", email="other@example.com")
        self.student = create_student(self.family)

    def test_normalize_code(self):
        self.assertEqual(DiscountCodeService.normalize_code("  save20 "), "SAVE20")

    def test_valid_code(self):
        code = create_discount_code("SAVE20")

        result = DiscountCodeService.validate("save20", self.family.pk, amount=5000)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.discount_amount_cents, 1000)
        self.assertEqual(result.discount_code_id, str(code.pk))

    def test_validation_is_idempotent_and_read_only(self):
        code = create_discount_code("SAVE20", max_uses=3)

        first = DiscountCodeService.validate("SAVE20", self.family.pk, amount=5000)
        second = DiscountCodeService.validate("SAVE20", self.family.pk, amount=5000)

        self.assertEqual(first, second)
        code.refresh_from_db()
        self.assertEqual(code.current_uses, 0)
        self.assertEqual(DiscountUsage.objects.count(), 0)

    def test_invalid_code(self):
        self.assertEqual(DiscountCodeService.validate("MISSING", self.family.pk).error_code, "INVALID_CODE")

    def test_inactive(self):
        create_discount_code("OFF", is_active=False)
        self.assertEqual(DiscountCodeService.validate("OFF", self.family.pk).error_code, "INACTIVE")

    def test_not_yet_valid(self):
        create_discount_code("SOON", valid_from=timezone.now() + timedelta(days=2))
        self.assertEqual(DiscountCodeService.validate("SOON", self.family.pk).error_code, "NOT_YET_VALID")

    def test_expired(self):
        create_discount_code("OLD", valid_from=timezone.now() - timedelta(days=10), valid_until=timezone.now() - timedelta(days=1))
        self.assertEqual(DiscountCodeService.validate("OLD", self.family.pk).error_code, "EXPIRED")

    def test_inactive_checked_before_expiry(self):
        create_discount_code(
            "BOTH",
            is_active=False,
            valid_from=timezone.now() - timedelta(days=10),
            valid_until=timezone.now() - timedelta(days=1),
        )
        self.assertEqual(DiscountCodeService.validate("BOTH", self.family.pk).error_code, "INACTIVE")

    def test_not_applicable(self):
        create_discount_code("GEAR", applicable_to="store")

        self.assertEqual(
            DiscountCodeService.validate("GEAR", self.family.pk, applicable_to="training").error_code, "NOT_APPLICABLE"
        )
        self.assertTrue(DiscountCodeService.validate("GEAR", self.family.pk, applicable_to="store").is_valid)

    def test_both_applies_everywhere(self):
        create_discount_code("ANY", applicable_to="both")

        self.assertTrue(DiscountCodeService.validate("ANY", self.family.pk, applicable_to="store").is_valid)
        self.assertTrue(DiscountCodeService.validate("ANY", self.family.pk, applicable_to="training").is_valid)

    def test_wrong_family(self):
        create_discount_code("MINE", family=self.family)

        self.assertEqual(DiscountCodeService.validate("MINE", self.other_family.pk).error_code, "WRONG_RECIPIENT")
        self.assertTrue(DiscountCodeService.validate("MINE", self.family.pk).is_valid)

    def test_wrong_student(self):
        create_discount_code("KID", scope="per_student", student=self.student)

        result = DiscountCodeService.validate("KID", self.family.pk, student_id=None)

        self.assertEqual(result.error_code, "WRONG_RECIPIENT")
        self.assertTrue(DiscountCodeService.validate("KID", self.family.pk, student_id=self.student.pk).is_valid)

    def test_global_limit_reached(self):
        create_discount_code("FULL", usage_type="ongoing", max_uses=2, current_uses=2)
        self.assertEqual(DiscountCodeService.validate("FULL", self.family.pk).error_code, "USAGE_EXCEEDED")

    def test_ongoing_code_without_limit(self):
        code = create_discount_code("LOYAL", usage_type="ongoing", max_uses=None)
        for _ in range(3):
            payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=1000))
            self.assertTrue(DiscountCodeService.apply(payment.pk, "LOYAL").success)

        code.refresh_from_db()
        self.assertEqual(code.current_uses, 3)
        self.assertIsNone(code.remaining_uses)


class DiscountApplyTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=5000, tax_cents=250))

    def test_apply_snapshot_and_totals(self):
        code = create_discount_code("SAVE20")

        result = DiscountCodeService.apply(self.payment.pk, "SAVE20")

        self.assertTrue(result.success)
        self.assertEqual(result.discount_amount_cents, 1000)
        self.assertEqual(result.final_amount_cents, 4000)
        usage = DiscountUsage.objects.get(pk=result.usage_id)
        self.assertEqual(
            (usage.original_amount_cents, usage.discount_amount_cents, usage.final_amount_cents), (5000, 1000, 4000)
        )
        self.payment.refresh_from_db()
        code.refresh_from_db()
        self.assertEqual(self.payment.discount_code_id, code.pk)
        self.assertEqual(self.payment.total_cents, 4250)
        self.assertEqual(code.current_uses, 1)

    def test_one_time_per_family_double_apply(self):
        create_discount_code("ONCE", usage_type="one_time", scope="per_family")
        second_payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=5000))

        first = DiscountCodeService.apply(self.payment.pk, "ONCE")
        second = DiscountCodeService.apply(second_payment.pk, "ONCE")

        self.assertTrue(first.success)
        self.assertFalse(second.success)
        self.assertEqual(second.error_code, "USAGE_EXCEEDED")
        self.assertEqual(DiscountUsage.objects.filter(discount_code__code="ONCE").count(), 1)

    def test_one_time_per_student_counts_per_student(self):
        create_discount_code("SIBLING", usage_type="one_time", scope="per_student")
        first_child = create_student(self.family, first_name="Aiko")
        second_child = create_student(self.family, first_name="Ren")
        second_payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=5000))
        third_payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=5000))

        self.assertTrue(DiscountCodeService.apply(self.payment.pk, "SIBLING", student_id=first_child.pk).success)
        self.assertTrue(DiscountCodeService.apply(second_payment.pk, "SIBLING", student_id=second_child.pk).success)
        repeat = DiscountCodeService.apply(third_payment.pk, "SIBLING", student_id=first_child.pk)

        self.assertEqual(repeat.error_code, "USAGE_EXCEEDED")

    def test_already_applied(self):
        create_discount_code("A10", usage_type="ongoing")
        create_discount_code("B10", usage_type="ongoing")
        DiscountCodeService.apply(self.payment.pk, "A10")

        result = DiscountCodeService.apply(self.payment.pk, "B10")

        self.assertEqual(result.error_code, "ALREADY_APPLIED")

    def test_payment_not_pending(self):
        create_discount_code("LATE")
        Payment = type(self.payment)
        Payment.objects.filter(pk=self.payment.pk).update(status="succeeded")

        self.assertEqual(DiscountCodeService.apply(self.payment.pk, "LATE").error_code, "PAYMENT_NOT_PENDING")

    def test_payment_not_found(self):
        result = DiscountCodeService.apply("00000000-0000-0000-0000-000000000000", "ANY")
        self.assertEqual(result.error_code, "PAYMENT_NOT_FOUND")

    def test_store_payment_uses_store_category(self):
        create_discount_code("TRAIN", applicable_to="training")
        store = create_payment(PaymentCreationRequest(family=self.family, payment_type="store", subtotal_cents=3000))

        self.assertEqual(DiscountCodeService.apply(store.pk, "TRAIN").error_code, "NOT_APPLICABLE")

    def test_lost_race_for_last_use_rolls_back(self):
        create_discount_code("LAST", usage_type="ongoing", max_uses=1)

        with patch.object(DiscountCodeService, "_increment_usage", side_effect=DiscountUsageExceeded()):
            result = DiscountCodeService.apply(self.payment.pk, "LAST")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "USAGE_EXCEEDED")
        self.assertEqual(DiscountUsage.objects.count(), 0)
        self.payment.refresh_from_db()
        self.assertIsNone(self.payment.discount_code_id)
        self.assertEqual(self.payment.total_cents, 5250)

    def test_stale_validation_cannot_reuse_one_time_code(self):
        # Both checkouts validate before either writes a usage
        code = create_discount_code("ONCE", usage_type="one_time", scope="per_family")
        second_payment = create_payment(PaymentCreationRequest(family=self.family, subtotal_cents=5000))

        with patch.object(DiscountCodeService, "_scoped_usage_count", return_value=0):
            first = DiscountCodeService.apply(self.payment.pk, "ONCE")
            second = DiscountCodeService.apply(second_payment.pk, "ONCE")

        self.assertTrue(first.success)
        self.assertFalse(second.success)
        self.assertEqual(second.error_code, "USAGE_EXCEEDED")
        self.assertEqual(DiscountUsage.objects.filter(discount_code=code).count(), 1)
        code.refresh_from_db()
        self.assertEqual(code.current_uses, 1)
        second_payment.refresh_from_db()
        self.assertIsNone(second_payment.discount_code_id)
        self.assertEqual(second_payment.discount_amount_cents, 0)

    def test_apply_locks_code_row(self):
        code = create_discount_code("LOCKED")

        manager = DiscountCode.objects
        with patch.object(manager, "select_for_update", wraps=manager.select_for_update) as lock:
            self.assertTrue(DiscountCodeService.apply(self.payment.pk, "LOCKED").success)

        lock.assert_called_once_with()
        self.assertEqual(DiscountUsage.objects.get().discount_code, code)

    def test_increment_respects_max_uses(self):
        code = create_discount_code("CAP", usage_type="ongoing", max_uses=1, current_uses=1)

        with self.assertRaises(DiscountUsageExceeded):
            DiscountCodeService._increment_usage(code)

    def test_usage_is_append_only(self):
        create_discount_code("SAVE20")
        result = DiscountCodeService.apply(self.payment.pk, "SAVE20")
        usage = DiscountUsage.objects.get(pk=result.usage_id)
        usage.discount_amount_cents = 1

        with self.assertRaises(DjangoValidationError):
            usage.save()

    def test_usage_history(self):
        create_discount_code("SAVE20")
        DiscountCodeService.apply(self.payment.pk, "SAVE20")

        self.assertEqual(len(DiscountCodeService.usage_history_for_family(self.family.pk)), 1)

    def test_usage_history_for_student(self):
        student = create_student(self.family)
        create_discount_code("SAVE20")
        DiscountCodeService.apply(self.payment.pk, "SAVE20", student_id=student.pk)

        history = DiscountCodeService.usage_history_for_student(student.pk)

        self.assertEqual([usage.payment_id for usage in history], [self.payment.pk])


class DiscountLifecycleTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.student = create_student(self.family)

    def test_create_code_generates_unique_code(self):
        code = DiscountCodeService.create_code(
            name="Spring", kind="percentage", value=15, family=self.family, prefix="SPR"
        )

        self.assertTrue(code.code.startswith("SPR"))
        self.assertEqual(len(code.code), 11)
        self.assertEqual(code.family, self.family)

    def test_create_code_normalizes_explicit_code(self):
        code = DiscountCodeService.create_code(
            name="Kid", kind="fixed_amount", value=500, scope="per_student", student=self.student, code="kid5 "
        )
        self.assertEqual(code.code, "KID5")

    def test_association_rules(self):
        with self.assertRaises(ValidationError):
            DiscountCodeService.create_code(name="x", kind="percentage", value=10, scope="per_family")
        with self.assertRaises(ValidationError):
            DiscountCodeService.create_code(name="x", kind="percentage", value=10, scope="per_student")
        with self.assertRaises(ValidationError):
            DiscountCodeService.create_code(
                name="x", kind="percentage", value=10, family=self.family, student=self.student
            )

    def test_percentage_over_hundred_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            DiscountCodeService.create_code(name="x", kind="percentage", value=150, family=self.family)
        self.assertEqual(ctx.exception.field, "value")

    def test_generate_code_gives_up(self):
        with patch("apps.promotions.models.secrets.choice", return_value="A"):
            DiscountCodeService.create_code(name="x", kind="percentage", value=5, family=self.family, prefix="Z")
            with self.assertRaises(ValueError):
                DiscountCodeService.generate_unique_code(prefix="Z", max_attempts=3)

    def test_deactivate_and_activate(self):
        code = create_discount_code("TOGGLE")

        DiscountCodeService.deactivate(code)
        self.assertFalse(code.is_active)
        self.assertEqual(DiscountCodeService.validate("TOGGLE", self.family.pk).error_code, "INACTIVE")

        DiscountCodeService.activate(code)
        self.assertTrue(code.is_active)

    def test_available_codes(self):
        mine = create_discount_code("MINE", family=self.family)
        create_discount_code("THEIRS", family=create_family(name="Other"))
        create_discount_code("DEAD", family=self.family, is_active=False)
        create_discount_code("STORE", family=self.family, applicable_to="store")

        available = DiscountCodeService.available_codes_for(self.family.pk)

        self.assertEqual(available, [mine])
