"""
Tests for the automatic discount engine.
Rules are created after the enrollment fixtures so the enrollment signal
does not fire them.
"""

from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from django.test import TestCase
from django.utils import timezone

from apps.common.types import ValidationError
from apps.promotions.automation import AutoDiscountService
from apps.promotions.conditions import ConditionError
from apps.promotions.models import AutomationRule, DiscountAssignment, DiscountCode, DiscountEvent
from apps.promotions.services import DiscountCodeService
from apps.promotions.signals import discount_assigned
from tests.factories import (
    EnrollmentCreationRequest,
    create_enrollment,
    create_family,
    create_program,
    create_rule,
    create_student,
    create_template,
)


def _years_ago(years: int) -> date:
    return date(timezone.localdate().year - years, 1, 1)


class AutoDiscountGrantTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.student = create_student(self.family, birth_date=_years_ago(8))

    def test_event_grants_personal_code(self):
        template = create_template("Welcome 10%", validity_days=30)
        create_rule("enrollment", templates=[template])

        event = AutoDiscountService.record_event("enrollment", student_id=self.student.pk)

        self.assertTrue(event.is_processed)
        assignment = DiscountAssignment.objects.get()
        code = assignment.discount_code
        self.assertEqual(assignment.student, self.student)
        self.assertEqual(assignment.family, self.family)
        self.assertEqual(assignment.sequence, 1)
        self.assertTrue(code.code.startswith("AUTO"))
        self.assertEqual(len(code.code), 12)
        self.assertEqual(code.name, "Welcome 10% - Auto Assigned")
        self.assertEqual(code.scope, "per_student")
        self.assertEqual(code.student, self.student)
        self.assertIsNone(code.family)
        self.assertTrue(code.created_automatically)
        self.assertAlmostEqual(code.valid_until, timezone.now() + timedelta(days=30), delta=timedelta(minutes=1))

    def test_granted_code_is_redeemable_by_the_student(self):
        create_rule("enrollment")
        AutoDiscountService.record_event("enrollment", student_id=self.student.pk)
        code = DiscountAssignment.objects.get().discount_code

        result = DiscountCodeService.validate(code.code, self.family.pk, student_id=self.student.pk, amount=10000)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.discount_amount_cents, 1000)

    def test_template_without_validity_days_uses_rule_expiry(self):
        valid_until = timezone.now() + timedelta(days=90)
        create_rule("enrollment", templates=[create_template(validity_days=None)], valid_until=valid_until)

        AutoDiscountService.record_event("enrollment", student_id=self.student.pk)

        self.assertEqual(DiscountAssignment.objects.get().discount_code.valid_until, valid_until)

    def test_duplicate_events_grant_once(self):
        create_rule("enrollment")

        AutoDiscountService.record_event("enrollment", student_id=self.student.pk)
        second = AutoDiscountService.record_event("enrollment", student_id=self.student.pk)

        self.assertTrue(second.is_processed)
        self.assertEqual(DiscountAssignment.objects.count(), 1)

    def test_reprocessing_an_event_is_a_no_op(self):
        create_rule("enrollment")
        event = AutoDiscountService.record_event("enrollment", student_id=self.student.pk)
        processed_at = event.processed_at

        outcome = AutoDiscountService.process_event(event.pk)

        self.assertTrue(outcome.already_processed)
        event.refresh_from_db()
        self.assertEqual(event.processed_at, processed_at)
        self.assertEqual(DiscountAssignment.objects.count(), 1)

    def test_event_marked_by_another_worker_rolls_back_grants(self):
        create_rule("enrollment")
        event = AutoDiscountService.record_event("enrollment", student_id=self.student.pk, process=False)
        real_grant = AutoDiscountService._grant

        def grant_then_lose_marker(rule, event, student, family):
            granted = real_grant(rule, event, student, family)
            DiscountEvent.objects.filter(pk=event.pk).update(processed_at=timezone.now())
            return granted

        with patch.object(AutoDiscountService, "_grant", side_effect=grant_then_lose_marker):
            outcome = AutoDiscountService.process_event(event.pk)

        self.assertTrue(outcome.already_processed)
        self.assertEqual(outcome.assignments, [])
        self.assertFalse(DiscountAssignment.objects.exists())
        self.assertFalse(DiscountCode.objects.exists())

    def test_max_uses_per_student(self):
        create_rule("attendance_milestone", max_uses_per_student=2)

        for count in (5, 10, 15):
            AutoDiscountService.record_event(
                "attendance_milestone", student_id=self.student.pk, payload={"attendance_count": count}
            )

        sequences = sorted(DiscountAssignment.objects.values_list("sequence", flat=True))
        self.assertEqual(sequences, [1, 2])

    def test_multi_template_rule(self):
        first = create_template("Uniform 15%", applicable_to="store", value=15)
        second = create_template("Tuition 5%", value=5)
        rule = create_rule("belt_promotion", templates=[first, second])

        AutoDiscountService.record_event("belt_promotion", student_id=self.student.pk, payload={"new_belt_rank": "yellow"})
        AutoDiscountService.record_event("belt_promotion", student_id=self.student.pk, payload={"new_belt_rank": "orange"})

        assignments = DiscountAssignment.objects.filter(rule=rule)
        self.assertEqual(assignments.count(), 2)
        self.assertEqual({a.sequence for a in assignments}, {1})
        self.assertEqual({a.template for a in assignments}, {first, second})
        self.assertEqual(rule.template, first)

    def test_inactive_template_is_skipped(self):
        create_rule("enrollment", templates=[create_template(is_active=False)])

        event = AutoDiscountService.record_event("enrollment", student_id=self.student.pk)

        self.assertTrue(event.is_processed)
        self.assertFalse(DiscountAssignment.objects.exists())

    def test_family_event_mints_family_code(self):
        create_rule("first_payment")

        AutoDiscountService.record_event("first_payment", family_id=self.family.pk, payload={"payment_amount_cents": 12000})

        code = DiscountAssignment.objects.get().discount_code
        self.assertEqual(code.scope, "per_family")
        self.assertEqual(code.family, self.family)

    def test_assignments_for_student_and_family(self):
        rule = create_rule("enrollment")
        AutoDiscountService.record_event("enrollment", student_id=self.student.pk)

        by_student = AutoDiscountService.assignments_for(student_id=self.student.pk)
        by_family = AutoDiscountService.assignments_for(family_id=self.family.pk)

        self.assertEqual([a.rule for a in by_student], [rule])
        self.assertEqual(by_student, by_family)
        self.assertEqual(AutoDiscountService.assignments_for(family_id=create_family(name="Other").pk), [])


class AutoDiscountMatchingTests(TestCase):
    def setUp(self):
        self.family = create_family()
        self.student = create_student(self.family, birth_date=_years_ago(8))
        self.program = create_program("Kids Karate")
        self.other_program = create_program("Adult Jiu-Jitsu")
        create_enrollment(EnrollmentCreationRequest(student=self.student, program=self.program))

    def test_program_filter(self):
        excluded = create_rule("belt_promotion", name="adults", applicable_programs=[self.other_program])
        included = create_rule("belt_promotion", name="kids", applicable_programs=[self.program])

        AutoDiscountService.record_event("belt_promotion", student_id=self.student.pk)

        self.assertFalse(DiscountAssignment.objects.filter(rule=excluded).exists())
        self.assertTrue(DiscountAssignment.objects.filter(rule=included).exists())

    def test_age_conditions(self):
        kids = create_rule("birthday", name="kids", conditions={"min_age": 6, "max_age": 12})
        teens = create_rule("birthday", name="teens", conditions={"age": {"min": 13, "max": 17}})

        AutoDiscountService.record_event("birthday", student_id=self.student.pk)

        self.assertTrue(DiscountAssignment.objects.filter(rule=kids).exists())
        self.assertFalse(DiscountAssignment.objects.filter(rule=teens).exists())

    def test_payload_condition(self):
        create_rule("belt_promotion", conditions={"new_belt_rank": {"in": ["black"]}})

        AutoDiscountService.record_event("belt_promotion", student_id=self.student.pk, payload={"new_belt_rank": "green"})
        self.assertFalse(DiscountAssignment.objects.exists())

        AutoDiscountService.record_event("belt_promotion", student_id=self.student.pk, payload={"new_belt_rank": "black"})
        self.assertEqual(DiscountAssignment.objects.count(), 1)

    def test_event_processed_even_without_match(self):
        create_rule("birthday", conditions={"belt_rank": "black"})

        event = AutoDiscountService.record_event("birthday", student_id=self.student.pk)

        self.assertIsNotNone(event.processed_at)
        self.assertFalse(DiscountAssignment.objects.exists())

    def test_expired_and_inactive_rules_are_ignored(self):
        create_rule("birthday", name="expired", valid_until=timezone.now() - timedelta(hours=1))
        create_rule("birthday", name="off", is_active=False)
        create_rule("birthday", name="future", valid_from=timezone.now() + timedelta(days=1))

        AutoDiscountService.record_event("birthday", student_id=self.student.pk)

        self.assertFalse(DiscountAssignment.objects.exists())


class AutoDiscountBatchTests(TestCase):
    def setUp(self):
        self.student = create_student(create_family())

    def test_batch_failure_isolation(self):
        broken = create_rule("birthday", name="broken")
        AutomationRule.objects.filter(pk=broken.pk).update(conditions={"age": {"between": [1, 2]}})
        create_rule("seasonal", name="healthy")
        bad = AutoDiscountService.record_event("birthday", student_id=self.student.pk, process=False)
        good = AutoDiscountService.record_event(
            "seasonal", student_id=self.student.pk, payload={"season": "winter"}, process=False
        )

        result = AutoDiscountService.batch_process([bad.pk, good.pk])

        self.assertEqual(result.processed, 1)
        self.assertEqual(result.assignments, 1)
        self.assertIn(str(bad.pk), result.failed)
        bad.refresh_from_db()
        good.refresh_from_db()
        self.assertIsNone(bad.processed_at)
        self.assertIsNotNone(good.processed_at)
        self.assertEqual(AutoDiscountService.pending_event_ids(), [bad.pk])

    def test_batch_counts_already_processed_separately(self):
        event = AutoDiscountService.record_event("seasonal", student_id=self.student.pk)

        result = AutoDiscountService.batch_process([event.pk])

        self.assertEqual(result.processed, 0)
        self.assertEqual(result.failed, {})


class AutoDiscountSignalTests(TestCase):
    def test_discount_assigned_sent_after_commit(self):
        student = create_student(create_family())
        rule = create_rule("enrollment")
        handler = MagicMock()
        discount_assigned.connect(handler)
        self.addCleanup(discount_assigned.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            AutoDiscountService.record_event("enrollment", student_id=student.pk)

        handler.assert_called_once()
        kwargs = handler.call_args.kwargs
        self.assertEqual(kwargs["rule"], rule)
        self.assertEqual(kwargs["assignment"], DiscountAssignment.objects.get())
        self.assertTrue(kwargs["discount_code"].code.startswith("AUTO"))


class AutoDiscountValidationTests(TestCase):
    def test_record_event_rejects_unknown_type(self):
        with self.assertRaises(ValidationError):
            AutoDiscountService.record_event("graduation", family_id=create_family().pk)

    def test_record_event_needs_subject(self):
        with self.assertRaises(ValidationError):
            AutoDiscountService.record_event("seasonal")
        self.assertFalse(DiscountEvent.objects.exists())

    def test_create_rule_validation(self):
        template = create_template()

        with self.assertRaises(ValidationError):
            AutoDiscountService.create_rule(name="x", event_type="graduation", templates=[template])
        with self.assertRaises(ValidationError):
            AutoDiscountService.create_rule(name="x", event_type="birthday", templates=[])
        with self.assertRaises(ConditionError):
            AutoDiscountService.create_rule(
                name="x", event_type="birthday", templates=[template], conditions={"age": {"gte": 3}}
            )
        self.assertFalse(AutomationRule.objects.exists())

    def test_rule_template_orders_by_sequence(self):
        first = create_template("First")
        second = create_template("Second")

        rule = create_rule("birthday", templates=[first, second])

        self.assertEqual(rule.template, first)
        self.assertEqual(
            list(rule.rule_templates.values_list("template__name", "sequence_order")), [("First", 1), ("Second", 2)]
        )
