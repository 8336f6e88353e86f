"""
Tests for invoice total recomputation.
"""

from types import SimpleNamespace

import pytest
from django.test import TestCase

from apps.billing.invoice_service import InvoiceService, compute_invoice_totals
from tests.factories import create_family, create_invoice


def _line(quantity=1, unit_price_cents=0, discount_cents=0, tax_cents=0):
    return SimpleNamespace(
        quantity=quantity, unit_price_cents=unit_price_cents, discount_cents=discount_cents, tax_cents=tax_cents
    )


class TestComputeInvoiceTotals:
    def test_totals(self):
        totals = compute_invoice_totals(
            [_line(2, 5000, discount_cents=1000, tax_cents=450), _line(1, 2500, tax_cents=125)],
            amount_paid_cents=4000,
        )

        assert totals.subtotal_cents == 12500
        assert totals.discount_cents == 1000
        assert totals.tax_cents == 575
        assert totals.total_cents == 12075
        assert totals.amount_due_cents == 8075

    def test_amount_due_never_negative(self):
        totals = compute_invoice_totals([_line(1, 1000)], amount_paid_cents=5000)

        assert totals.amount_due_cents == 0

    def test_empty_invoice(self):
        assert compute_invoice_totals([]).total_cents == 0


class InvoiceServiceTests(TestCase):
    def setUp(self):
        self.invoice = create_invoice(create_family())

    def test_add_and_remove_lines_keep_totals_in_sync(self):
        InvoiceService.add_line_item(self.invoice, description="Tuition", quantity=1, unit_price_cents=12000)
        gear = InvoiceService.add_line_item(self.invoice, description="Sparring gear", unit_price_cents=4500, tax_cents=585)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.subtotal_cents, 16500)
        self.assertEqual(self.invoice.total_cents, 17085)
        self.assertEqual(self.invoice.amount_due_cents, 17085)

        InvoiceService.remove_line_item(gear)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.total_cents, 12000)

    def test_partial_then_full_payment(self):
        InvoiceService.add_line_item(self.invoice, description="Tuition", unit_price_cents=12000)

        InvoiceService.record_invoice_payment(self.invoice, 5000)
        self.assertEqual(self.invoice.status, "partially_paid")
        self.assertEqual(self.invoice.amount_due_cents, 7000)

        InvoiceService.record_invoice_payment(self.invoice, 7000)
        self.assertEqual(self.invoice.status, "paid")
        self.assertEqual(self.invoice.amount_due_cents, 0)

    def test_draft_status_is_preserved(self):
        draft = create_invoice(create_family(name="Other"), number="INV-DRAFT", status="draft")
        InvoiceService.add_line_item(draft, description="Tuition", unit_price_cents=1000)
        InvoiceService.record_invoice_payment(draft, 1000)

        self.assertEqual(draft.status, "draft")

    def test_non_positive_payment_rejected(self):
        with pytest.raises(ValueError):
            InvoiceService.record_invoice_payment(self.invoice, 0)
