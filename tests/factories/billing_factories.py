# ===============================================================================
# TEST FACTORIES FOR BILLING
# ===============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.utils import timezone

from apps.billing.models import Invoice, Payment
from apps.students.models import Enrollment, Family

# ===============================================================================
# PAYMENT FACTORY PARAMETER OBJECTS
# ===============================================================================


@dataclass
class PaymentCreationRequest:
    """Parameter object for payment creation"""

    family: Family
    payment_type: str = "monthly"
    status: str = "pending"
    subtotal_cents: int = 12000
    tax_cents: int = 0
    gateway_reference: str | None = None
    invoice: Invoice | None = None
    enrollments: list[Enrollment] = field(default_factory=list)
    created_at: datetime | None = None


def create_payment(request: PaymentCreationRequest) -> Payment:
    """
    Create a Payment directly (bypassing PaymentService).

    created_at is auto_now_add, so a backdated value is written with a
    follow-up UPDATE.
    """
    payment = Payment.objects.create(
        family=request.family,
        type=request.payment_type,
        status=request.status,
        subtotal_cents=request.subtotal_cents,
        tax_cents=request.tax_cents,
        total_cents=request.subtotal_cents + request.tax_cents,
        gateway_reference=request.gateway_reference,
        invoice=request.invoice,
    )
    if request.enrollments:
        payment.enrollments.set(request.enrollments)
    if request.created_at is not None:
        Payment.objects.filter(pk=payment.pk).update(created_at=request.created_at)
        payment.refresh_from_db()
    return payment


def create_stale_payment(family: Family, gateway_reference: str, minutes_old: int = 60, **kwargs) -> Payment:
    """Pending payment old enough to be a reconciliation candidate."""
    return create_payment(
        PaymentCreationRequest(
            family=family,
            gateway_reference=gateway_reference,
            created_at=timezone.now() - timedelta(minutes=minutes_old),
            **kwargs,
        )
    )


def create_invoice(family: Family, number: str = "INV-TEST-001", status: str = "sent") -> Invoice:
    """Create an empty Invoice; add lines through InvoiceService."""
    return Invoice.objects.create(family=family, number=number, status=status)
