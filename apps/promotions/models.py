"""
Discount models for the Dojo billing platform.

Supports:
- Discount codes (fixed amount or percentage, one-time or ongoing)
- Per-family and per-student usage scopes
- Training/store applicability
- Append-only usage audit trail
- Automatic discounts: templates, automation rules, business events and assignments
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from typing import Any, ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger(__name__)

# ===============================================================================
# Constants
# ===============================================================================

DISCOUNT_CODE_LENGTH = 8
DISCOUNT_CODE_CHARS = string.ascii_uppercase + string.digits
MAX_CODE_GENERATION_ATTEMPTS = 10
MAX_PERCENTAGE = 100

KIND_CHOICES: tuple[tuple[str, Any], ...] = (
    ("fixed_amount", _("Fixed Amount")),
    ("percentage", _("Percentage")),
)
USAGE_TYPE_CHOICES: tuple[tuple[str, Any], ...] = (
    ("one_time", _("One Time")),
    ("ongoing", _("Ongoing")),
)
APPLICABLE_TO_CHOICES: tuple[tuple[str, Any], ...] = (
    ("training", _("Training")),
    ("store", _("Store")),
    ("both", _("Training & Store")),
)
SCOPE_CHOICES: tuple[tuple[str, Any], ...] = (
    ("per_student", _("Per Student")),
    ("per_family", _("Per Family")),
)


def validate_kind_value(kind: str, value: int) -> None:
    if value is None or value < 0:
        raise ValidationError("Discount value cannot be negative")
    if kind == "percentage" and value > MAX_PERCENTAGE:
        raise ValidationError("Percentage must be between 0 and 100")


# ===============================================================================
# Discount Code
# ===============================================================================


class DiscountCode(models.Model):
    """
    A redeemable discount code, created by an admin or by the automation engine.
    Never deleted; deactivate instead.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    code = models.CharField(max_length=50, unique=True, help_text=_("Code entered at checkout"))
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default="percentage")
    value = models.PositiveIntegerField(
        help_text=_("Cents for fixed_amount, whole percent (0-100) for percentage"),
    )

    usage_type = models.CharField(max_length=20, choices=USAGE_TYPE_CHOICES, default="one_time")
    max_uses = models.PositiveIntegerField(null=True, blank=True, help_text=_("Total uses allowed (null = unlimited)"))
    current_uses = models.PositiveIntegerField(default=0)

    applicable_to = models.CharField(max_length=20, choices=APPLICABLE_TO_CHOICES, default="training")
    scope = models.CharField(max_length=20, choices=SCOPE_CHOICES, default="per_family")

    # Personal codes (automatic discounts are always personal)
    family = models.ForeignKey(
        "students.Family", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_codes"
    )
    student = models.ForeignKey(
        "students.Student", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_codes"
    )

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True, help_text=_("When code expires (null = never)"))
    is_active = models.BooleanField(default=True, help_text=_("Master switch for code"))
    created_automatically = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "discount_codes"
        verbose_name = _("Discount Code")
        verbose_name_plural = _("Discount Codes")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "valid_from", "valid_until"], name="idx_discount_validity"),
            models.Index(fields=["family"], name="discount_code_family_idx"),
            models.Index(fields=["student"], name="discount_code_student_idx"),
        )

    def __str__(self) -> str:
        return f"{self.code} - {self.name}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize code to uppercase before saving."""
        if self.code:
            self.code = self.code.upper().strip()
        super().save(*args, **kwargs)

    def clean(self) -> None:
        """Validate code configuration."""
        super().clean()
        validate_kind_value(self.kind, self.value)
        if self.valid_until and self.valid_from and self.valid_until < self.valid_from:
            raise ValidationError("valid_until must be after valid_from")
        if self.family_id and self.student_id:
            raise ValidationError("A discount code is restricted to a family or a student, not both")

    @property
    def is_expired(self) -> bool:
        if self.valid_until is None:
            return False
        return timezone.now() > self.valid_until

    @property
    def is_not_yet_valid(self) -> bool:
        return timezone.now() < self.valid_from

    @property
    def is_depleted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    @property
    def remaining_uses(self) -> int | None:
        """Get remaining uses, or None if unlimited."""
        if self.max_uses is None:
            return None
        return max(0, self.max_uses - self.current_uses)

    def covers(self, applicable_to: str) -> bool:
        return self.applicable_to == "both" or self.applicable_to == applicable_to

    @classmethod
    def generate_code(
        cls,
        prefix: str = "",
        length: int = DISCOUNT_CODE_LENGTH,
        max_attempts: int = MAX_CODE_GENERATION_ATTEMPTS,
    ) -> str:
        """
        Generate a unique discount code.

        Raises:
            ValueError: If a unique code cannot be generated within max_attempts.
        """
        for _attempt in range(max_attempts):
            random_part = "".join(secrets.choice(DISCOUNT_CODE_CHARS) for _ in range(length))
            code = f"{prefix.upper()}{random_part}"
            if not cls.objects.filter(code=code).exists():
                return code

        raise ValueError(f"Could not generate unique discount code after {max_attempts} attempts")


class DiscountUsage(models.Model):
    """
    Append-only record of a code applied to a payment.
    Amounts are snapshots taken at application time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    discount_code = models.ForeignKey(DiscountCode, on_delete=models.PROTECT, related_name="usages")
    payment = models.ForeignKey("billing.Payment", on_delete=models.CASCADE, related_name="discount_usages")
    family = models.ForeignKey("students.Family", on_delete=models.CASCADE, related_name="discount_usages")
    student = models.ForeignKey(
        "students.Student", on_delete=models.SET_NULL, null=True, blank=True, related_name="discount_usages"
    )

    original_amount_cents = models.BigIntegerField(validators=[MinValueValidator(0)])
    discount_amount_cents = models.BigIntegerField(validators=[MinValueValidator(0)])
    final_amount_cents = models.BigIntegerField(validators=[MinValueValidator(0)])
    used_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "discount_code_usage"
        verbose_name = _("Discount Usage")
        verbose_name_plural = _("Discount Usages")
        ordering: ClassVar[tuple[str, ...]] = ("-used_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["discount_code", "family"], name="discount_usage_code_fam_idx"),
            models.Index(fields=["discount_code", "student"], name="discount_usage_code_stu_idx"),
            models.Index(fields=["payment"], name="discount_usage_payment_idx"),
        )
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            models.UniqueConstraint(fields=["discount_code", "payment"], name="unique_discount_per_payment"),
        )

    def __str__(self) -> str:
        return f"{self.discount_code_id} on payment {self.payment_id}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Discount usage records are append-only")
        super().save(*args, **kwargs)


# ===============================================================================
# Automatic discounts
# ===============================================================================


class DiscountTemplate(models.Model):
    """Blueprint copied into a fresh DiscountCode whenever a rule fires."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default="percentage")
    value = models.PositiveIntegerField()
    usage_type = models.CharField(max_length=20, choices=USAGE_TYPE_CHOICES, default="one_time")
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    applicable_to = models.CharField(max_length=20, choices=APPLICABLE_TO_CHOICES, default="training")
    scope = models.CharField(max_length=20, choices=SCOPE_CHOICES, default="per_student")
    validity_days = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Generated codes expire this many days after grant (null = never)")
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "discount_templates"
        verbose_name = _("Discount Template")
        verbose_name_plural = _("Discount Templates")
        ordering: ClassVar[tuple[str, ...]] = ("name",)

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        super().clean()
        validate_kind_value(self.kind, self.value)


class DiscountEvent(models.Model):
    """
    A business occurrence that may earn an automatic discount.
    processed_at is set exactly once, even when no rule matched.
    """

    EVENT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("enrollment", _("New Enrollment")),
        ("first_payment", _("First Payment")),
        ("belt_promotion", _("Belt Promotion")),
        ("attendance_milestone", _("Attendance Milestone")),
        ("referral", _("Family Referral")),
        ("birthday", _("Birthday")),
        ("seasonal", _("Seasonal Promotion")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.CharField(max_length=30, choices=EVENT_TYPES)
    student = models.ForeignKey(
        "students.Student", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_events"
    )
    family = models.ForeignKey(
        "students.Family", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_events"
    )
    payload = models.JSONField(default=dict, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "discount_events"
        verbose_name = _("Discount Event")
        verbose_name_plural = _("Discount Events")
        ordering: ClassVar[tuple[str, ...]] = ("created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["processed_at", "created_at"], name="discount_event_pending_idx"),
            models.Index(fields=["event_type", "student"], name="discount_event_type_stu_idx"),
        )

    def __str__(self) -> str:
        return f"{self.event_type} ({'processed' if self.processed_at else 'pending'})"

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None


class AutomationRule(models.Model):
    """Maps an event type plus conditions to one or more discount templates."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    event_type = models.CharField(max_length=30, choices=DiscountEvent.EVENT_TYPES)
    conditions = models.JSONField(default=dict, blank=True, help_text=_("Rule conditions as JSON"))
    templates = models.ManyToManyField(
        DiscountTemplate, through="AutomationRuleTemplate", related_name="automation_rules"
    )
    applicable_programs = models.ManyToManyField(
        "students.Program",
        blank=True,
        related_name="automation_rules",
        help_text=_("Only students enrolled in one of these programs qualify (empty = all)"),
    )
    max_uses_per_student = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "discount_automation_rules"
        verbose_name = _("Automation Rule")
        verbose_name_plural = _("Automation Rules")
        ordering: ClassVar[tuple[str, ...]] = ("created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["event_type", "is_active"], name="automation_rule_event_idx"),
            models.Index(fields=["valid_from", "valid_until"], name="automation_rule_validity_idx"),
        )

    def __str__(self) -> str:
        return self.name

    @property
    def template(self) -> DiscountTemplate | None:
        """Primary template: the first one in sequence order."""
        link = self.rule_templates.order_by("sequence_order").select_related("template").first()  # type: ignore[attr-defined]
        return link.template if link else None

    @property
    def is_valid(self) -> bool:
        """Check if rule is currently valid."""
        if not self.is_active:
            return False
        now = timezone.now()
        if self.valid_from > now:
            return False
        if self.valid_until and self.valid_until < now:
            return False
        return True


class AutomationRuleTemplate(models.Model):
    rule = models.ForeignKey(AutomationRule, on_delete=models.CASCADE, related_name="rule_templates")
    template = models.ForeignKey(DiscountTemplate, on_delete=models.PROTECT, related_name="rule_links")
    sequence_order = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "discount_automation_rule_templates"
        ordering: ClassVar[tuple[str, ...]] = ("sequence_order",)
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            models.UniqueConstraint(fields=["rule", "template"], name="unique_template_per_rule"),
        )

    def __str__(self) -> str:
        return f"{self.rule_id} #{self.sequence_order}"


class DiscountAssignment(models.Model):
    """
    Durable record that a rule granted a code to a student (or family).
    (rule, student, sequence) is unique; sequence is always 1 when
    max_uses_per_student is 1, which makes (rule, student) the dedup key.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    rule = models.ForeignKey(AutomationRule, on_delete=models.PROTECT, related_name="assignments")
    event = models.ForeignKey(DiscountEvent, on_delete=models.PROTECT, related_name="assignments")
    student = models.ForeignKey(
        "students.Student", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_assignments"
    )
    family = models.ForeignKey(
        "students.Family", on_delete=models.CASCADE, null=True, blank=True, related_name="discount_assignments"
    )
    discount_code = models.ForeignKey(DiscountCode, on_delete=models.PROTECT, related_name="assignments")
    template = models.ForeignKey(DiscountTemplate, on_delete=models.PROTECT, related_name="assignments")
    sequence = models.PositiveIntegerField(default=1)
    assigned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "discount_assignments"
        verbose_name = _("Discount Assignment")
        verbose_name_plural = _("Discount Assignments")
        ordering: ClassVar[tuple[str, ...]] = ("-assigned_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["rule", "student"], name="discount_assign_rule_stu_idx"),
            models.Index(fields=["rule", "family"], name="discount_assign_rule_fam_idx"),
        )
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            models.UniqueConstraint(
                fields=["rule", "student", "template", "sequence"], name="unique_assignment_per_rule_student"
            ),
        )

    def __str__(self) -> str:
        return f"{self.rule_id} -> {self.discount_code_id}"
