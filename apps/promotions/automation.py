"""
Automatic discount engine for the Dojo billing platform.

Business events (enrollment, first payment, belt promotion, ...) are stored
as DiscountEvent rows and matched against active AutomationRules. A matching
rule mints personal DiscountCodes from its templates and records a
DiscountAssignment per code. Each event is processed exactly once.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from django.db import IntegrityError, models, transaction
from django.db.models import Prefetch
from django.utils import timezone

from apps.common.types import ConcurrencyConflict, ValidationError
from apps.students.models import Family, Program, Student
from apps.students.services import StudentAttributeService

from .conditions import evaluate, normalize_conditions
from .models import (
    AutomationRule,
    AutomationRuleTemplate,
    DiscountAssignment,
    DiscountCode,
    DiscountEvent,
    DiscountTemplate,
)
from .services import DiscountCodeService
from .signals import discount_assigned

logger = logging.getLogger(__name__)

AUTO_CODE_PREFIX = "AUTO"
EVENT_TYPES = frozenset(value for value, _label in DiscountEvent.EVENT_TYPES)

Ruleset = dict[str, list[AutomationRule]]


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class EventProcessingResult:
    """Outcome of processing one DiscountEvent."""

    event_id: str
    assignments: list[DiscountAssignment] = field(default_factory=list)
    rules_considered: int = 0
    rules_matched: int = 0
    already_processed: bool = False


@dataclass
class BatchProcessingResult:
    """
    Outcome of a batch run.

    Attributes:
        processed: Events that reached processed state in this batch.
        failed: event id -> reason, for events left unprocessed.
        assignments: Total DiscountAssignments created.
    """

    processed: int = 0
    failed: dict[str, str] = field(default_factory=dict)
    assignments: int = 0


# ===============================================================================
# Auto Discount Service
# ===============================================================================


class AutoDiscountService:
    """
    Records discount events and turns them into discount assignments.

    Concurrency:
    - the event row is locked while it is processed, and processed_at is
      only ever set where it is still NULL
    - granting locks the rule row; the (rule, student, template, sequence)
      unique constraint backs that up
    """

    # ---------------------------------------------------------------------------
    # Events
    # ---------------------------------------------------------------------------

    @classmethod
    def record_event(
        cls,
        event_type: str,
        student_id: Any | None = None,
        family_id: Any | None = None,
        payload: dict[str, Any] | None = None,
        process: bool = True,
    ) -> DiscountEvent:
        """
        Store a business event and (by default) process it immediately.

        Raises:
            ValidationError: unknown event type or no subject
        """
        if event_type not in EVENT_TYPES:
            raise ValidationError("event_type", f"Unknown discount event type: {event_type}")
        if student_id is None and family_id is None:
            raise ValidationError("subject", "A discount event needs a student or a family")
        if family_id is None:
            family_id = Student.objects.filter(pk=student_id).values_list("family_id", flat=True).first()

        event = DiscountEvent.objects.create(
            event_type=event_type,
            student_id=student_id,
            family_id=family_id,
            payload=payload or {},
        )
        logger.info(
            "📣 [AutoDiscount] Recorded %s event %s (student=%s family=%s)",
            event_type,
            event.pk,
            student_id,
            family_id,
            extra={"event_id": str(event.pk), "event_type": event_type},
        )

        if process:
            cls.process_event(event.pk)
            event.refresh_from_db(fields=["processed_at"])
        return event

    @staticmethod
    def pending_event_ids(limit: int | None = None) -> list[Any]:
        queryset = DiscountEvent.objects.filter(processed_at__isnull=True).order_by("created_at")
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset.values_list("pk", flat=True))

    # ---------------------------------------------------------------------------
    # Rules
    # ---------------------------------------------------------------------------

    @staticmethod
    def load_ruleset(now: datetime | None = None) -> Ruleset:
        """Active rules valid at ``now``, grouped by event type, templates prefetched in sequence order."""
        now = now or timezone.now()
        rules = (
            AutomationRule.objects.filter(is_active=True, valid_from__lte=now)
            .filter(models.Q(valid_until__isnull=True) | models.Q(valid_until__gte=now))
            .prefetch_related(
                Prefetch(
                    "rule_templates",
                    queryset=AutomationRuleTemplate.objects.select_related("template").order_by("sequence_order"),
                ),
                "applicable_programs",
            )
            .order_by("created_at")
        )
        ruleset: Ruleset = defaultdict(list)
        for rule in rules:
            ruleset[rule.event_type].append(rule)
        return dict(ruleset)

    @classmethod
    @transaction.atomic
    def create_rule(  # noqa: PLR0913
        cls,
        *,
        name: str,
        event_type: str,
        templates: Iterable[DiscountTemplate],
        conditions: dict[str, Any] | None = None,
        applicable_programs: Iterable[Program] | None = None,
        max_uses_per_student: int = 1,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        is_active: bool = True,
        description: str = "",
    ) -> AutomationRule:
        """
        Create a rule with its templates linked in the given order.

        Raises:
            ConditionError: malformed conditions
            ValidationError: no templates or bad event type
        """
        if event_type not in EVENT_TYPES:
            raise ValidationError("event_type", f"Unknown discount event type: {event_type}")
        normalize_conditions(conditions)
        templates = list(templates)
        if not templates:
            raise ValidationError("templates", "An automation rule needs at least one discount template")

        rule = AutomationRule.objects.create(
            name=name,
            description=description,
            event_type=event_type,
            conditions=conditions or {},
            max_uses_per_student=max_uses_per_student,
            valid_from=valid_from or timezone.now(),
            valid_until=valid_until,
            is_active=is_active,
        )
        for sequence_order, template in enumerate(templates, start=1):
            AutomationRuleTemplate.objects.create(rule=rule, template=template, sequence_order=sequence_order)
        if applicable_programs:
            rule.applicable_programs.set(applicable_programs)

        logger.info("⚙️ [AutoDiscount] Created rule '%s' for %s events", name, event_type)
        return rule

    @staticmethod
    def _rule_programs(rule: AutomationRule) -> set[str]:
        return {str(program.pk) for program in rule.applicable_programs.all()}

    @classmethod
    def rule_matches(cls, rule: AutomationRule, attributes: dict[str, Any], payload: dict[str, Any]) -> bool:
        """
        Program filter then condition predicate.

        Raises:
            ConditionError: the rule's conditions are malformed
        """
        programs = cls._rule_programs(rule)
        if programs and not programs & set(attributes.get("programs") or ()):
            return False
        return evaluate(rule.conditions, attributes, payload)

    # ---------------------------------------------------------------------------
    # Processing
    # ---------------------------------------------------------------------------

    @classmethod
    def process_event(cls, event_id: Any, ruleset: Ruleset | None = None) -> EventProcessingResult:
        """
        Match one event against the ruleset and grant discounts.

        Grants and the processed marker commit together; any exception rolls
        both back and leaves the event unprocessed for the next run. If another
        worker marks the event first, this run's grants are rolled back and the
        event is reported as already processed.

        Raises:
            DiscountEvent.DoesNotExist: unknown event id
            ConditionError: a candidate rule has malformed conditions
        """
        try:
            with transaction.atomic():
                event = DiscountEvent.objects.select_for_update().get(pk=event_id)
                result = EventProcessingResult(event_id=str(event.pk))

                if event.processed_at is not None:
                    logger.debug("⏭️ [AutoDiscount] Event %s already processed", event.pk)
                    result.already_processed = True
                    return result

                if ruleset is None:
                    ruleset = cls.load_ruleset()
                rules = ruleset.get(event.event_type, [])
                result.rules_considered = len(rules)

                if rules:
                    student = event.student
                    family = event.family or (student.family if student else None)
                    attributes = StudentAttributeService.build(student, family).as_dict()
                    payload = event.payload if isinstance(event.payload, dict) else {}

                    for rule in rules:
                        if not cls.rule_matches(rule, attributes, payload):
                            continue
                        result.rules_matched += 1
                        result.assignments.extend(cls._grant(rule, event, student, family))

                cls._mark_processed(event)
        except ConcurrencyConflict as e:
            logger.warning(f"⚠️ [AutoDiscount] {e}; grants from this run rolled back")
            return EventProcessingResult(event_id=str(event_id), already_processed=True)

        logger.info(
            "✅ [AutoDiscount] Processed %s event %s: %d/%d rules matched, %d assignments",
            event.event_type,
            event.pk,
            result.rules_matched,
            result.rules_considered,
            len(result.assignments),
            extra={"event_id": str(event.pk), "assignments": len(result.assignments)},
        )
        return result

    @staticmethod
    def _mark_processed(event: DiscountEvent) -> None:
        """Set processed_at once.

        Raises:
            ConcurrencyConflict: the event was marked processed by someone else
        """
        rows = DiscountEvent.objects.filter(pk=event.pk, processed_at__isnull=True).update(processed_at=timezone.now())
        if rows == 0:
            raise ConcurrencyConflict(f"Event {event.pk} was processed concurrently")

    @classmethod
    def batch_process(cls, event_ids: Iterable[Any]) -> BatchProcessingResult:
        """
        Process events independently with one shared ruleset snapshot.
        A failing event is logged and left unprocessed; the batch continues.
        """
        result = BatchProcessingResult()
        ruleset = cls.load_ruleset()

        for event_id in event_ids:
            try:
                outcome = cls.process_event(event_id, ruleset=ruleset)
            except Exception as e:
                logger.error(f"🔥 [AutoDiscount] Failed to process event {event_id}: {e}")
                result.failed[str(event_id)] = str(e)
                continue

            if not outcome.already_processed:
                result.processed += 1
            result.assignments += len(outcome.assignments)

        return result

    # ---------------------------------------------------------------------------
    # Granting
    # ---------------------------------------------------------------------------

    @staticmethod
    def _existing_assignments(
        rule: AutomationRule, student: Student | None, family: Family | None
    ) -> models.QuerySet[DiscountAssignment]:
        assignments = DiscountAssignment.objects.filter(rule=rule)
        if student is not None:
            return assignments.filter(student=student)
        return assignments.filter(student__isnull=True, family=family)

    @classmethod
    def _grant(
        cls,
        rule: AutomationRule,
        event: DiscountEvent,
        student: Student | None,
        family: Family | None,
    ) -> list[DiscountAssignment]:
        links = [link for link in rule.rule_templates.all() if link.template.is_active]
        if not links:
            logger.warning("⚠️ [AutoDiscount] Rule '%s' has no active templates, nothing granted", rule.name)
            return []

        try:
            with transaction.atomic():
                AutomationRule.objects.select_for_update().filter(pk=rule.pk).first()

                grants = cls._existing_assignments(rule, student, family).values("sequence").distinct().count()
                if grants >= rule.max_uses_per_student:
                    logger.info(
                        "⏭️ [AutoDiscount] Rule '%s' already granted %d/%d times to student=%s family=%s",
                        rule.name,
                        grants,
                        rule.max_uses_per_student,
                        student.pk if student else None,
                        family.pk if family else None,
                    )
                    return []

                sequence = grants + 1
                assignments = []
                for link in links:
                    discount_code = cls._materialize(link.template, rule, student, family)
                    assignment = DiscountAssignment.objects.create(
                        rule=rule,
                        event=event,
                        student=student,
                        family=family,
                        discount_code=discount_code,
                        template=link.template,
                        sequence=sequence,
                    )
                    assignments.append(assignment)
        except IntegrityError:
            logger.info(
                "⏭️ [AutoDiscount] Rule '%s' already granted to student=%s (concurrent grant)",
                rule.name,
                student.pk if student else None,
            )
            return []

        for assignment in assignments:
            transaction.on_commit(
                lambda a=assignment: discount_assigned.send(
                    sender=AutoDiscountService,
                    assignment=a,
                    discount_code=a.discount_code,
                    rule=rule,
                    event=event,
                )
            )
        return assignments

    @staticmethod
    def _materialize(
        template: DiscountTemplate,
        rule: AutomationRule,
        student: Student | None,
        family: Family | None,
    ) -> DiscountCode:
        """Mint a personal code from a template (student for per_student templates, else family)."""
        now = timezone.now()
        if template.validity_days is not None:
            valid_until = now + timedelta(days=template.validity_days)
        else:
            valid_until = rule.valid_until

        if template.scope == "per_student" and student is not None:
            recipient: dict[str, Any] = {"scope": "per_student", "student": student}
        elif family is not None:
            recipient = {"scope": "per_family", "family": family}
        else:
            raise ValidationError("subject", f"Rule '{rule.name}' fired for an event without a student or family")

        return DiscountCodeService.create_code(
            name=f"{template.name} - Auto Assigned",
            description=f"Automatically assigned: {template.description or template.name}",
            kind=template.kind,
            value=template.value,
            usage_type=template.usage_type,
            max_uses=template.max_uses,
            applicable_to=template.applicable_to,
            valid_from=now,
            valid_until=valid_until,
            prefix=AUTO_CODE_PREFIX,
            created_automatically=True,
            **recipient,
        )

    # ---------------------------------------------------------------------------
    # Reporting
    # ---------------------------------------------------------------------------

    @staticmethod
    def assignments_for(student_id: Any | None = None, family_id: Any | None = None) -> list[DiscountAssignment]:
        assignments = DiscountAssignment.objects.select_related("rule", "discount_code", "event")
        if student_id is not None:
            assignments = assignments.filter(student_id=student_id)
        if family_id is not None:
            assignments = assignments.filter(family_id=family_id)
        return list(assignments)
