"""
Billing models for the Dojo billing platform

This file serves as a re-export hub for the feature-based model modules.
"""

from __future__ import annotations

from .invoice_models import Invoice, InvoiceLineItem
from .payment_models import Payment, ReconciliationRun

# ===============================================================================
# MODEL RE-EXPORTS
# ===============================================================================

__all__ = [
    "Invoice",
    "InvoiceLineItem",
    "Payment",
    "ReconciliationRun",
]
