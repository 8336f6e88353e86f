"""
Discount code services for the Dojo billing platform.
Business logic for discount code validation, application, and lifecycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from apps.billing.payment_models import Payment
from apps.common.types import DiscountUsageExceeded, Money, ValidationError

from .models import (
    DISCOUNT_CODE_LENGTH,
    MAX_CODE_GENERATION_ATTEMPTS,
    DiscountCode,
    DiscountUsage,
    validate_kind_value,
)

logger = logging.getLogger(__name__)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class DiscountValidationResult:
    """
    Result of discount code validation.

    Attributes:
        is_valid: Whether the code can be applied.
        discount_amount_cents: Discount the code would produce for the given amount.
        reason: Human-readable message if validation failed.
        error_code: Machine-readable code for programmatic handling.
            Codes: INVALID_CODE, INACTIVE, NOT_YET_VALID, EXPIRED,
            NOT_APPLICABLE, WRONG_RECIPIENT, USAGE_EXCEEDED
    """

    is_valid: bool
    discount_amount_cents: int = 0
    reason: str = ""
    error_code: str = ""
    discount_code_id: str | None = None


@dataclass
class DiscountApplyResult:
    """
    Result of applying a discount code to a payment.

    Attributes:
        success: Whether the code was applied.
        discount_amount_cents: Amount taken off the subtotal.
        final_amount_cents: Subtotal after discount (before tax).
        usage_id: UUID of the DiscountUsage snapshot.
        error_code: Same vocabulary as DiscountValidationResult, plus
            PAYMENT_NOT_FOUND, PAYMENT_NOT_PENDING, ALREADY_APPLIED.
        error_message: Human-readable message if application failed.
    """

    success: bool
    discount_amount_cents: int = 0
    final_amount_cents: int = 0
    usage_id: str | None = None
    error_code: str = ""
    error_message: str = ""


def _invalid(error_code: str, reason: str) -> DiscountValidationResult:
    return DiscountValidationResult(is_valid=False, reason=reason, error_code=error_code)


def _scoped_usages(discount_code: DiscountCode, family_id: Any, student_id: Any | None) -> models.QuerySet:
    usages = DiscountUsage.objects.filter(discount_code=discount_code)
    if discount_code.scope == "per_student" and student_id is not None:
        return usages.filter(student_id=student_id)
    return usages.filter(family_id=family_id)


# ===============================================================================
# Discount Code Service
# ===============================================================================


class DiscountCodeService:
    """
    Service for discount code validation, calculation, and application.
    Validation is read-only; only apply() and the restore path in
    PaymentService mutate usage state.
    """

    @staticmethod
    def normalize_code(code: str) -> str:
        """Normalize discount code to uppercase and trimmed."""
        return (code or "").upper().strip()

    @classmethod
    def get_code(cls, code: str) -> DiscountCode | None:
        """Get discount code by code string (case-insensitive)."""
        try:
            return DiscountCode.objects.get(code=cls.normalize_code(code))
        except DiscountCode.DoesNotExist:
            return None

    # ---------------------------------------------------------------------------
    # Calculation
    # ---------------------------------------------------------------------------

    @staticmethod
    def calculate_discount(discount_code: DiscountCode, amount: Money) -> Money:
        """
        Discount for ``amount``. Never negative, never more than ``amount``.

        Percentages round half-up to whole cents.
        """
        subtotal = amount.clamp(0)
        if discount_code.kind == "percentage":
            discount = subtotal.percentage(discount_code.value)
        else:
            discount = Money(int(discount_code.value), subtotal.currency)
        return discount.clamp(0, subtotal.amount)

    # ---------------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------------

    @staticmethod
    def _scoped_usage_count(discount_code: DiscountCode, family_id: Any, student_id: Any | None) -> int:
        return _scoped_usages(discount_code, family_id, student_id).count()

    @classmethod
    def validate(  # noqa: PLR0911, PLR0913
        cls,
        code: str,
        family_id: Any,
        student_id: Any | None = None,
        applicable_to: str = "training",
        amount: Money | int = 0,
        now: datetime | None = None,
    ) -> DiscountValidationResult:
        """
        Validate a discount code for a family/student and purchase category.
        Checks run in a fixed order and stop at the first failure.

        Args:
            code: Code as entered (case-insensitive).
            family_id: Paying family.
            student_id: Student the purchase is for (per_student codes).
            applicable_to: "training" or "store".
            amount: Subtotal the discount would apply to.
        """
        now = now or timezone.now()
        money = amount if isinstance(amount, Money) else Money(int(amount))

        discount_code = cls.get_code(code)
        if discount_code is None:
            return _invalid("INVALID_CODE", "Invalid discount code")
        if not discount_code.is_active:
            return _invalid("INACTIVE", "Discount code is not active")

        if now < discount_code.valid_from:
            return _invalid("NOT_YET_VALID", "Discount code is not yet valid")
        if discount_code.valid_until is not None and now > discount_code.valid_until:
            return _invalid("EXPIRED", "Discount code has expired")

        if not discount_code.covers(applicable_to):
            return _invalid("NOT_APPLICABLE", f"Discount code does not apply to {applicable_to} purchases")

        if discount_code.family_id is not None and str(discount_code.family_id) != str(family_id):
            return _invalid("WRONG_RECIPIENT", "Discount code belongs to another family")
        if discount_code.student_id is not None and str(discount_code.student_id) != str(student_id):
            return _invalid("WRONG_RECIPIENT", "Discount code belongs to another student")

        if discount_code.is_depleted:
            return _invalid("USAGE_EXCEEDED", "Discount code usage limit reached")

        scoped_uses = cls._scoped_usage_count(discount_code, family_id, student_id)
        if discount_code.usage_type == "one_time" and scoped_uses > 0:
            return _invalid("USAGE_EXCEEDED", "Discount code has already been used")
        if (
            discount_code.usage_type == "ongoing"
            and discount_code.max_uses is not None
            and scoped_uses >= discount_code.max_uses
        ):
            return _invalid("USAGE_EXCEEDED", "Discount code usage limit reached")

        discount = cls.calculate_discount(discount_code, money)
        return DiscountValidationResult(
            is_valid=True,
            discount_amount_cents=discount.amount,
            discount_code_id=str(discount_code.id),
        )

    # ---------------------------------------------------------------------------
    # Application
    # ---------------------------------------------------------------------------

    @staticmethod
    def _lock_for_use(discount_code_id: Any, family_id: Any, student_id: Any | None) -> DiscountCode:
        """
        Lock the code row and re-check the family/student limit under the lock.

        Concurrent applies serialize here, so the later one counts the usage
        the earlier one wrote.

        Raises:
            DiscountUsageExceeded: the scoped limit is already used up
        """
        discount_code = DiscountCode.objects.select_for_update().get(pk=discount_code_id)
        usages = _scoped_usages(discount_code, family_id, student_id)
        if discount_code.usage_type == "one_time" and usages.exists():
            raise DiscountUsageExceeded("Discount code has already been used")
        if (
            discount_code.usage_type == "ongoing"
            and discount_code.max_uses is not None
            and usages.count() >= discount_code.max_uses
        ):
            raise DiscountUsageExceeded()
        return discount_code

    @staticmethod
    def _increment_usage(discount_code: DiscountCode) -> None:
        """
        Consume one use with a single conditional UPDATE.

        Raises:
            DiscountUsageExceeded: another writer took the last use
        """
        codes = DiscountCode.objects.filter(pk=discount_code.pk)
        if discount_code.max_uses is not None:
            codes = codes.filter(current_uses__lt=discount_code.max_uses)
        rows = codes.update(current_uses=F("current_uses") + 1, updated_at=timezone.now())
        if rows == 0:
            raise DiscountUsageExceeded()

    @classmethod
    def apply(cls, payment_id: Any, code: str, student_id: Any | None = None) -> DiscountApplyResult:
        """
        Apply a discount code to a pending payment.

        Re-validates against the payment, then inside one transaction locks
        the code, writes the usage snapshot, consumes a use and links the code
        to the payment. Losing a race for a use rolls all of it back.
        """
        try:
            with transaction.atomic():
                try:
                    payment = Payment.objects.select_for_update().get(pk=payment_id)
                except Payment.DoesNotExist:
                    return DiscountApplyResult(
                        success=False, error_code="PAYMENT_NOT_FOUND", error_message="Payment not found"
                    )

                if payment.status != Payment.STATUS_PENDING:
                    return DiscountApplyResult(
                        success=False,
                        error_code="PAYMENT_NOT_PENDING",
                        error_message=f"Payment is already {payment.status}",
                    )
                if payment.discount_code_id is not None:
                    return DiscountApplyResult(
                        success=False,
                        error_code="ALREADY_APPLIED",
                        error_message="A discount code is already applied to this payment",
                    )

                validation = cls.validate(
                    code,
                    family_id=payment.family_id,
                    student_id=student_id,
                    applicable_to=payment.applicable_category,
                    amount=payment.subtotal,
                )
                if not validation.is_valid:
                    logger.warning(
                        "Discount validation failed: %s for payment %s - %s",
                        code,
                        payment_id,
                        validation.reason,
                        extra={"discount_code": code, "payment_id": str(payment_id), "error": validation.error_code},
                    )
                    return DiscountApplyResult(
                        success=False, error_code=validation.error_code, error_message=validation.reason
                    )

                discount_code = cls._lock_for_use(validation.discount_code_id, payment.family_id, student_id)
                original = payment.subtotal_cents
                discount = validation.discount_amount_cents
                final = original - discount

                usage = DiscountUsage.objects.create(
                    discount_code=discount_code,
                    payment=payment,
                    family_id=payment.family_id,
                    student_id=student_id,
                    original_amount_cents=original,
                    discount_amount_cents=discount,
                    final_amount_cents=final,
                )
                cls._increment_usage(discount_code)

                Payment.objects.filter(pk=payment.pk).update(
                    discount_code=discount_code,
                    discount_amount_cents=discount,
                    total_cents=final + payment.tax_cents,
                    updated_at=timezone.now(),
                )
        except DiscountUsageExceeded as e:
            logger.warning(
                "⚠️ [Discount] Lost race for %s on payment %s: %s",
                code,
                payment_id,
                e.message,
                extra={"discount_code": code, "payment_id": str(payment_id)},
            )
            return DiscountApplyResult(success=False, error_code=e.code, error_message=e.message)

        logger.info(
            "🏷️ [Discount] Applied %s to payment %s for %d cents",
            discount_code.code,
            payment_id,
            discount,
            extra={
                "discount_code": discount_code.code,
                "payment_id": str(payment_id),
                "discount_cents": discount,
                "usage_id": str(usage.id),
            },
        )
        return DiscountApplyResult(
            success=True,
            discount_amount_cents=discount,
            final_amount_cents=final,
            usage_id=str(usage.id),
        )

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    @classmethod
    def generate_unique_code(
        cls,
        prefix: str = "",
        length: int = DISCOUNT_CODE_LENGTH,
        max_attempts: int = MAX_CODE_GENERATION_ATTEMPTS,
    ) -> str:
        return DiscountCode.generate_code(prefix=prefix, length=length, max_attempts=max_attempts)

    @classmethod
    def create_code(  # noqa: PLR0913
        cls,
        *,
        name: str,
        kind: str,
        value: int,
        scope: str = "per_family",
        family: Any | None = None,
        student: Any | None = None,
        usage_type: str = "one_time",
        max_uses: int | None = None,
        applicable_to: str = "training",
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        code: str | None = None,
        prefix: str = "",
        description: str = "",
        created_automatically: bool = False,
    ) -> DiscountCode:
        """
        Create a discount code restricted to exactly one family or student.

        Raises:
            ValidationError: association or value rules violated
        """
        if family is not None and student is not None:
            raise ValidationError("scope", "Cannot restrict a code to both a family and a student")
        if scope == "per_family" and family is None:
            raise ValidationError("family", "A family is required when scope is per_family")
        if scope == "per_student" and student is None:
            raise ValidationError("student", "A student is required when scope is per_student")
        try:
            validate_kind_value(kind, value)
        except DjangoValidationError as e:
            raise ValidationError("value", " ".join(e.messages)) from e

        discount_code = DiscountCode.objects.create(
            code=cls.normalize_code(code) if code else cls.generate_unique_code(prefix=prefix),
            name=name,
            description=description,
            kind=kind,
            value=value,
            usage_type=usage_type,
            max_uses=max_uses,
            applicable_to=applicable_to,
            scope=scope,
            family=family,
            student=student,
            valid_from=valid_from or timezone.now(),
            valid_until=valid_until,
            created_automatically=created_automatically,
        )
        logger.info(
            "🏷️ [Discount] Created code %s (%s %s)",
            discount_code.code,
            kind,
            value,
            extra={"discount_code": discount_code.code, "automatic": created_automatically},
        )
        return discount_code

    @staticmethod
    def deactivate(discount_code: DiscountCode) -> None:
        DiscountCode.objects.filter(pk=discount_code.pk).update(is_active=False, updated_at=timezone.now())
        discount_code.refresh_from_db(fields=["is_active"])
        logger.info("🏷️ [Discount] Deactivated %s", discount_code.code)

    @staticmethod
    def activate(discount_code: DiscountCode) -> None:
        DiscountCode.objects.filter(pk=discount_code.pk).update(is_active=True, updated_at=timezone.now())
        discount_code.refresh_from_db(fields=["is_active"])
        logger.info("🏷️ [Discount] Activated %s", discount_code.code)

    @staticmethod
    def usage_history_for_family(family_id: Any) -> list[DiscountUsage]:
        return list(
            DiscountUsage.objects.filter(family_id=family_id).select_related("discount_code", "payment", "student")
        )

    @staticmethod
    def usage_history_for_student(student_id: Any) -> list[DiscountUsage]:
        return list(
            DiscountUsage.objects.filter(student_id=student_id).select_related("discount_code", "payment", "family")
        )

    @classmethod
    def available_codes_for(
        cls,
        family_id: Any,
        student_id: Any | None = None,
        applicable_to: str = "training",
    ) -> list[DiscountCode]:
        """
        Codes the family (or student) could use right now.
        Used for suggesting codes at checkout.
        """
        now = timezone.now()

        recipient = models.Q(family_id=family_id)
        if student_id is not None:
            recipient |= models.Q(student_id=student_id)

        queryset = (
            DiscountCode.objects.filter(is_active=True, valid_from__lte=now)
            .filter(models.Q(valid_until__isnull=True) | models.Q(valid_until__gte=now))
            .filter(models.Q(applicable_to=applicable_to) | models.Q(applicable_to="both"))
            .filter(recipient)
            .exclude(max_uses__isnull=False, current_uses__gte=F("max_uses"))
        )

        available = []
        for discount_code in queryset:
            validation = cls.validate(
                discount_code.code,
                family_id=family_id,
                student_id=student_id,
                applicable_to=applicable_to,
                now=now,
            )
            if validation.is_valid:
                available.append(discount_code)
        return available
