"""
Signals for the Promotions app.

``discount_assigned`` is sent after the automation engine's transaction
commits, once per DiscountAssignment. Notification collaborators (email,
in-app messages) connect to it; the core only logs.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from .models import DiscountCode, DiscountUsage

logger = logging.getLogger(__name__)

# Sent with: assignment, discount_code, rule, event
discount_assigned = Signal()


@receiver(discount_assigned)
def log_discount_assigned(sender: Any, assignment: Any, discount_code: DiscountCode, **kwargs: Any) -> None:
    logger.info(
        "🎁 [AutoDiscount] Assigned %s to student=%s family=%s (rule %s)",
        discount_code.code,
        assignment.student_id,
        assignment.family_id,
        assignment.rule_id,
        extra={
            "discount_code": discount_code.code,
            "assignment_id": str(assignment.pk),
            "rule_id": str(assignment.rule_id),
        },
    )


@receiver(post_save, sender=DiscountUsage)
def log_discount_usage(sender: type[DiscountUsage], instance: DiscountUsage, created: bool, **kwargs: Any) -> None:
    if not created:
        return
    logger.info(
        "🏷️ [Discount] Usage recorded: code=%s payment=%s original=%d discount=%d final=%d",
        instance.discount_code_id,
        instance.payment_id,
        instance.original_amount_cents,
        instance.discount_amount_cents,
        instance.final_amount_cents,
        extra={"payment_id": str(instance.payment_id), "family_id": str(instance.family_id)},
    )


@receiver(post_save, sender=DiscountCode)
def log_discount_code_changes(sender: type[DiscountCode], instance: DiscountCode, created: bool, **kwargs: Any) -> None:
    if created and instance.created_automatically:
        logger.debug("🏷️ [Discount] Automatic code %s minted", instance.code)
    elif not created and not instance.is_active:
        logger.info("🏷️ [Discount] Code %s saved as inactive", instance.code)
