"""
Invoice Services for the Dojo billing platform
Explicit, testable recomputation of invoice totals.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from django.db import transaction

from .invoice_models import Invoice, InvoiceLineItem

logger = logging.getLogger(__name__)


class LineLike(Protocol):
    quantity: int
    unit_price_cents: int
    discount_cents: int
    tax_cents: int


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    amount_paid_cents: int
    amount_due_cents: int


def compute_invoice_totals(lines: Iterable[LineLike], amount_paid_cents: int = 0) -> InvoiceTotals:
    """
    Pure recomputation of invoice totals from its lines.

    total = subtotal - discount + tax; amount due never goes below zero.
    """
    subtotal = 0
    discount = 0
    tax = 0
    for line in lines:
        subtotal += int(line.quantity) * int(line.unit_price_cents)
        discount += int(line.discount_cents)
        tax += int(line.tax_cents)

    total = subtotal - discount + tax
    return InvoiceTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        tax_cents=tax,
        total_cents=total,
        amount_paid_cents=amount_paid_cents,
        amount_due_cents=max(total - amount_paid_cents, 0),
    )


# ===============================================================================
# INVOICE SERVICE
# ===============================================================================


class InvoiceService:
    """Line-item and payment mutations that keep invoice totals in sync."""

    @staticmethod
    def recalculate_totals(invoice: Invoice) -> InvoiceTotals:
        totals = compute_invoice_totals(invoice.line_items.all(), invoice.amount_paid_cents)  # type: ignore[attr-defined]
        invoice.subtotal_cents = totals.subtotal_cents
        invoice.discount_cents = totals.discount_cents
        invoice.tax_cents = totals.tax_cents
        invoice.total_cents = totals.total_cents
        invoice.amount_due_cents = totals.amount_due_cents
        if invoice.status not in ("draft", "cancelled"):
            if totals.amount_due_cents == 0 and totals.total_cents > 0:
                invoice.status = "paid"
            elif totals.amount_paid_cents > 0:
                invoice.status = "partially_paid"
        invoice.save(
            update_fields=[
                "subtotal_cents",
                "discount_cents",
                "tax_cents",
                "total_cents",
                "amount_due_cents",
                "status",
                "updated_at",
            ]
        )
        return totals

    @classmethod
    @transaction.atomic
    def add_line_item(cls, invoice: Invoice, **line_data: Any) -> InvoiceLineItem:
        line = InvoiceLineItem.objects.create(invoice=invoice, **line_data)
        cls.recalculate_totals(invoice)
        return line

    @classmethod
    @transaction.atomic
    def remove_line_item(cls, line: InvoiceLineItem) -> None:
        invoice = line.invoice
        line.delete()
        cls.recalculate_totals(invoice)

    @classmethod
    @transaction.atomic
    def record_invoice_payment(cls, invoice: Invoice, amount_cents: int) -> InvoiceTotals:
        """Add a received amount to the invoice and recompute what is still due."""
        if amount_cents <= 0:
            raise ValueError("Invoice payment amount must be positive")
        locked = Invoice.objects.select_for_update().get(pk=invoice.pk)
        locked.amount_paid_cents += amount_cents
        locked.save(update_fields=["amount_paid_cents", "updated_at"])
        totals = cls.recalculate_totals(locked)
        invoice.refresh_from_db()
        logger.info(
            f"🧾 [Invoice] Recorded {amount_cents} cents on {invoice.number}, due now {totals.amount_due_cents}"
        )
        return totals
