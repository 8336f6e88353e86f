"""
Payment Service for the Dojo billing platform
Checkout payment lifecycle: creation, confirmation, failure and the
post-transition hooks (paid_until advance, invoice credit, discount restore).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, time
from typing import Any

from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from apps.common.types import Err, Ok, Result
from apps.promotions.events import record_first_payment_event
from apps.promotions.models import DiscountCode, DiscountUsage
from apps.promotions.services import DiscountCodeService
from apps.students.models import Enrollment, Family
from apps.students.services import EnrollmentService

from .eligibility import PaidUntilResult, compute_paid_until
from .invoice_service import InvoiceService
from .payment_models import Payment

logger = logging.getLogger(__name__)

RECEIPT_FIELDS = ("receipt_url", "payment_method", "card_last4", "gateway_reference")


def _as_datetime(value: date | datetime | None) -> datetime:
    if value is None:
        return timezone.now()
    if isinstance(value, datetime):
        return value if timezone.is_aware(value) else timezone.make_aware(value)
    return timezone.make_aware(datetime.combine(value, time.min))


def _receipt_updates(receipt: dict[str, Any] | None) -> dict[str, Any]:
    if not receipt:
        return {}
    return {key: receipt[key] for key in RECEIPT_FIELDS if receipt.get(key)}


# ===============================================================================
# PAYMENT LIFECYCLE SERVICE
# ===============================================================================


class PaymentService:
    """
    💰 Payment lifecycle service

    Status moves pending -> succeeded | failed exactly once. Every transition
    is a conditional UPDATE on status='pending', so checkout confirmation and
    the reconciliation job can race without overwriting each other.
    """

    @staticmethod
    def create_payment(  # noqa: PLR0913
        family: Family,
        payment_type: str,
        subtotal_cents: int,
        *,
        enrollments: Iterable[Enrollment] = (),
        discount_code: str | None = None,
        student_id: Any | None = None,
        tax_cents: int = 0,
        gateway_reference: str | None = None,
        currency: str = "USD",
        invoice: Any | None = None,
        notes: str = "",
    ) -> Result[Payment, str]:
        """
        Create a pending payment, applying a discount code if one was entered.

        Returns:
            Ok(payment) or Err(message) when the discount code is rejected
            (nothing is persisted in that case)
        """
        if subtotal_cents < 0 or tax_cents < 0:
            return Err("Payment amounts cannot be negative")

        with transaction.atomic():
            payment = Payment.objects.create(
                family=family,
                type=payment_type,
                status=Payment.STATUS_PENDING,
                currency=currency,
                subtotal_cents=subtotal_cents,
                tax_cents=tax_cents,
                total_cents=subtotal_cents + tax_cents,
                gateway_reference=gateway_reference,
                invoice=invoice,
                notes=notes,
            )
            enrollment_list = list(enrollments)
            if enrollment_list:
                payment.enrollments.set(enrollment_list)

            if discount_code:
                applied = DiscountCodeService.apply(payment.pk, discount_code, student_id=student_id)
                if not applied.success:
                    transaction.set_rollback(True)
                    logger.warning(
                        f"⚠️ [Payment] Discount {discount_code} rejected for family {family.pk}: "
                        f"{applied.error_code} {applied.error_message}"
                    )
                    return Err(applied.error_message)
                payment.refresh_from_db()

        logger.info(
            f"💳 [Payment] Created {payment_type} payment {payment.pk} for family {family.pk} "
            f"({payment.total})"
        )
        return Ok(payment)

    @classmethod
    def confirm_payment(
        cls,
        payment_id: Any,
        payment_date: date | datetime | None = None,
        payment_type: str | None = None,
        receipt: dict[str, Any] | None = None,
    ) -> Result[Payment, str]:
        """
        Mark a pending payment succeeded and run the success hooks.

        The status write and the hooks commit together; if a hook fails the
        payment stays pending and reconciliation picks it up later.

        Args:
            payment_id: Payment UUID
            payment_date: When the money was received (defaults to now)
            payment_type: Overrides Payment.type when checkout learned it late
            receipt: Optional receipt_url/payment_method/card_last4/gateway_reference

        Returns:
            Ok(payment) or Err(message) if not found or already resolved
        """
        updates: dict[str, Any] = {
            "status": Payment.STATUS_SUCCEEDED,
            "payment_date": _as_datetime(payment_date),
            "updated_at": timezone.now(),
            **_receipt_updates(receipt),
        }
        if payment_type:
            updates["type"] = payment_type

        with transaction.atomic():
            rows = Payment.objects.filter(pk=payment_id, status=Payment.STATUS_PENDING).update(**updates)
            if rows == 0:
                return cls._not_transitioned(payment_id)

            payment = Payment.objects.select_related("family").get(pk=payment_id)
            cls.on_payment_succeeded(payment)

        logger.info(f"✅ [Payment] Payment {payment.pk} succeeded ({payment.total})")
        return Ok(payment)

    @classmethod
    def fail_payment(
        cls, payment_id: Any, reason: str = "", receipt: dict[str, Any] | None = None
    ) -> Result[Payment, str]:
        """Mark a pending payment failed and give back any discount use it consumed."""
        updates: dict[str, Any] = {
            "status": Payment.STATUS_FAILED,
            "updated_at": timezone.now(),
            **_receipt_updates(receipt),
        }
        if reason:
            updates["notes"] = reason

        with transaction.atomic():
            rows = Payment.objects.filter(pk=payment_id, status=Payment.STATUS_PENDING).update(**updates)
            if rows == 0:
                return cls._not_transitioned(payment_id)

            payment = Payment.objects.get(pk=payment_id)
            cls.on_payment_failed(payment)

        logger.info(f"❌ [Payment] Payment {payment.pk} failed: {reason or 'no reason given'}")
        return Ok(payment)

    @staticmethod
    def _not_transitioned(payment_id: Any) -> Err:
        status = Payment.objects.filter(pk=payment_id).values_list("status", flat=True).first()
        if status is None:
            logger.error(f"❌ [Payment] Payment {payment_id} not found")
            return Err(f"Payment {payment_id} not found")
        logger.info(f"⏭️ [Payment] Payment {payment_id} already resolved as {status}")
        return Err(f"Payment {payment_id} already resolved as {status}")

    # ---------------------------------------------------------------------------
    # Post-transition hooks
    # ---------------------------------------------------------------------------

    @staticmethod
    def locked_enrollments(payment: Payment) -> models.QuerySet:
        """
        The payment's enrollments with their rows locked until the surrounding
        transaction ends, so paid_until is computed from the latest committed value.
        """
        return payment.enrollments.select_for_update(of=("self",)).order_by("pk")

    @classmethod
    def on_payment_succeeded(cls, payment: Payment) -> list[PaidUntilResult]:
        """
        Advance every covered enrollment, credit the linked invoice and
        record the family's first_payment discount event.

        Must run inside the transaction that marked the payment succeeded.
        """
        results = []
        payment_day = timezone.localdate(payment.payment_date) if payment.payment_date else timezone.localdate()

        for enrollment in cls.locked_enrollments(payment):
            result = compute_paid_until(enrollment, payment_day, payment.type)
            results.append(result)
            logger.info(
                "📅 [Payment] Enrollment %s: %s -> %s (%s: %s)",
                enrollment.pk,
                enrollment.paid_until,
                result.new_paid_until,
                result.rule_applied,
                result.reason,
                extra={
                    "payment_id": str(payment.pk),
                    "enrollment_id": str(enrollment.pk),
                    "rule_applied": result.rule_applied,
                },
            )
            if result.advances and result.new_paid_until is not None:
                EnrollmentService.advance_paid_until(enrollment, result.new_paid_until)

        if payment.invoice_id and payment.total_cents > 0:
            InvoiceService.record_invoice_payment(payment.invoice, payment.total_cents)

        record_first_payment_event(payment.family_id, payment.total_cents)
        return results

    @classmethod
    def on_payment_failed(cls, payment: Payment) -> None:
        cls.restore_discount_for_failed_payment(payment)

    @staticmethod
    def restore_discount_for_failed_payment(payment: Payment) -> int:
        """
        Give back the discount use(s) a failed payment consumed.

        Decrements current_uses (never below zero) and removes the payment's
        usage snapshots. Returns the number of usages removed.
        """
        if payment.status != Payment.STATUS_FAILED:
            logger.warning(f"⚠️ [Payment] Not restoring discount for {payment.pk} in status {payment.status}")
            return 0

        with transaction.atomic():
            usages = list(DiscountUsage.objects.filter(payment=payment).values_list("pk", "discount_code_id"))
            for _usage_id, code_id in usages:
                DiscountCode.objects.filter(pk=code_id, current_uses__gt=0).update(
                    current_uses=F("current_uses") - 1, updated_at=timezone.now()
                )
            DiscountUsage.objects.filter(pk__in=[usage_id for usage_id, _code_id in usages]).delete()

        if usages:
            logger.info(f"♻️ [Payment] Restored {len(usages)} discount use(s) from failed payment {payment.pk}")
        return len(usages)
