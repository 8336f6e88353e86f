"""
Invoice models for the Dojo billing platform
Family invoices whose totals are recomputed explicitly by InvoiceService.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Invoice(models.Model):
    """
    Invoice issued to a family.

    The *_cents totals are derived data: never set them by hand, call
    InvoiceService.recalculate_totals() after changing lines or payments.
    """

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("draft", _("Draft")),
        ("sent", _("Sent")),
        ("paid", _("Paid")),
        ("partially_paid", _("Partially Paid")),
        ("overdue", _("Overdue")),
        ("cancelled", _("Cancelled")),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    family = models.ForeignKey("students.Family", on_delete=models.RESTRICT, related_name="invoices")
    number = models.CharField(max_length=50, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="draft")
    currency = models.CharField(max_length=3, default="USD")

    subtotal_cents = models.BigIntegerField(default=0)
    discount_cents = models.BigIntegerField(default=0)
    tax_cents = models.BigIntegerField(default=0)
    total_cents = models.BigIntegerField(default=0)
    amount_paid_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    amount_due_cents = models.BigIntegerField(default=0)

    issue_date = models.DateField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoice"
        verbose_name = _("Invoice")
        verbose_name_plural = _("Invoices")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["family", "status"], name="invoice_family_status_idx"),
            models.Index(fields=["status", "due_date"], name="invoice_status_due_idx"),
        )

    def __str__(self) -> str:
        return f"Invoice {self.number}"


class InvoiceLineItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="line_items")
    description = models.CharField(max_length=500)
    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    discount_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    tax_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "invoice_line_item"
        verbose_name = _("Invoice Line Item")
        verbose_name_plural = _("Invoice Line Items")
        ordering: ClassVar[tuple[str, ...]] = ("sort_order",)

    def __str__(self) -> str:
        return f"{self.description} x{self.quantity}"

    @property
    def line_subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents
