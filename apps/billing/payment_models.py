"""
Payment models for the Dojo billing platform
Payment tracking and reconciliation run history.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.common.types import Money

# ===============================================================================
# PAYMENT MODEL
# ===============================================================================


class Payment(models.Model):
    """
    A charge against a family.

    Born pending; dies succeeded or failed and never changes again. Every
    status write goes through a conditional UPDATE ... WHERE status='pending'.
    """

    STATUS_PENDING = "pending"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        (STATUS_PENDING, _("Pending")),
        (STATUS_SUCCEEDED, _("Succeeded")),
        (STATUS_FAILED, _("Failed")),
    )
    TERMINAL_STATUSES: ClassVar[tuple[str, ...]] = (STATUS_SUCCEEDED, STATUS_FAILED)

    TYPE_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("monthly", _("Monthly Tuition")),
        ("yearly", _("Yearly Tuition")),
        ("per_session", _("Per Session")),
        ("store", _("Store Purchase")),
        ("event", _("Event Registration")),
        ("invoice", _("Invoice Payment")),
    )
    TRAINING_TYPES: ClassVar[tuple[str, ...]] = ("monthly", "yearly", "per_session", "event", "invoice")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Core relationships
    family = models.ForeignKey("students.Family", on_delete=models.RESTRICT, related_name="payments")
    enrollments = models.ManyToManyField(
        "students.Enrollment",
        blank=True,
        related_name="payments",
        help_text=_("Enrollments whose paid_until this payment advances"),
    )
    discount_code = models.ForeignKey(
        "promotions.DiscountCode",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    invoice = models.ForeignKey(
        "billing.Invoice", on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )

    # Payment details
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="monthly")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    currency = models.CharField(max_length=3, default="USD")
    subtotal_cents = models.BigIntegerField(validators=[MinValueValidator(0)], default=0)
    discount_amount_cents = models.BigIntegerField(validators=[MinValueValidator(0)], default=0)
    tax_cents = models.BigIntegerField(validators=[MinValueValidator(0)], default=0)
    total_cents = models.BigIntegerField(validators=[MinValueValidator(0)], default=0)

    # Gateway/external tracking
    gateway_reference = models.CharField(max_length=255, null=True, blank=True)
    receipt_url = models.URLField(max_length=500, blank=True)
    payment_method = models.CharField(max_length=50, blank=True)
    card_last4 = models.CharField(max_length=4, blank=True)

    # Dates
    payment_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    notes = models.TextField(blank=True)

    class Meta:
        db_table = "payment"
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["family", "-created_at"], name="payment_family_created_idx"),
            models.Index(fields=["status", "created_at"], name="payment_status_created_idx"),
            models.Index(fields=["gateway_reference"], name="payment_gateway_ref_idx"),
        )

    def __str__(self) -> str:
        return f"Payment {self.total} ({self.type}, {self.status}) for {self.family_id}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def subtotal(self) -> Money:
        return Money(self.subtotal_cents, self.currency)

    @property
    def total(self) -> Money:
        return Money(self.total_cents, self.currency)

    @property
    def applicable_category(self) -> str:
        """Which discount category (training/store) this payment falls under."""
        return "store" if self.type == "store" else "training"


# ===============================================================================
# RECONCILIATION RUN HISTORY
# ===============================================================================


class ReconciliationRun(models.Model):
    """
    One execution of the pending-payment reconciliation job.
    Feeds the operational dashboard / alerting collaborator.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    run_type = models.CharField(
        max_length=20,
        choices=[
            ("automatic", _("Automatic Scheduled")),
            ("manual", _("Manual Trigger")),
        ],
        default="automatic",
    )

    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    checked = models.PositiveIntegerField(default=0)
    updated = models.PositiveIntegerField(default=0)
    skipped = models.PositiveIntegerField(default=0)
    failed = models.PositiveIntegerField(default=0)
    already_resolved = models.PositiveIntegerField(default=0)

    status_breakdown = models.JSONField(default=dict, blank=True, help_text=_("Raw gateway statuses observed"))
    skipped_records = models.JSONField(default=list, blank=True)
    errors = models.JSONField(default=list, blank=True)

    status = models.CharField(
        max_length=20,
        choices=[
            ("running", _("Running")),
            ("completed", _("Completed")),
            ("failed", _("Failed")),
        ],
        default="running",
    )

    class Meta:
        db_table = "payment_reconciliation_runs"
        verbose_name = _("Reconciliation Run")
        verbose_name_plural = _("Reconciliation Runs")
        ordering: ClassVar[tuple[str, ...]] = ("-started_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["-started_at"], name="recon_run_started_idx"),
        )

    def __str__(self) -> str:
        return f"Reconciliation {self.started_at:%Y-%m-%d %H:%M} ({self.status})"
