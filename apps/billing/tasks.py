"""Billing background tasks.

This module contains Django-Q2 tasks for billing operations: the periodic
pending-payment reconciliation against Stripe/Square and on-demand invoice
total recalculation.
"""

from __future__ import annotations

import logging
from typing import Any

from django_q.models import Schedule
from django_q.tasks import async_task, schedule

from apps.common.logging import job_context

from . import config
from .invoice_service import InvoiceService
from .models import Invoice
from .reconciliation import reconcile_pending_payments

logger = logging.getLogger(__name__)

# Task configuration
TASK_SOFT_TIME_LIMIT = 300  # 5 minutes
TASK_TIME_LIMIT = 600  # 10 minutes


def run_payment_reconciliation(run_type: str = "automatic") -> dict[str, Any]:
    """
    Reconcile stale pending payments with their gateways.

    Returns:
        Dictionary with the reconciliation summary
    """
    with job_context("payment_reconciliation"):
        logger.info(f"💳 [Reconciliation] Starting {run_type} reconciliation task")

        try:
            summary = reconcile_pending_payments(run_type=run_type)
            return {"success": True, "results": summary.to_dict()}

        except Exception as e:
            logger.exception(f"💥 [Reconciliation] Error in reconciliation task: {e}")
            return {"success": False, "error": str(e)}


def recalculate_invoice_totals(invoice_id: str) -> dict[str, Any]:
    """
    Recompute an invoice's totals from its line items.

    Args:
        invoice_id: Invoice UUID
    """
    logger.info(f"🧾 [Invoice] Recalculating totals for invoice {invoice_id}")

    try:
        invoice = Invoice.objects.get(id=invoice_id)
        totals = InvoiceService.recalculate_totals(invoice)
        return {
            "success": True,
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.number,
            "total_cents": totals.total_cents,
            "amount_due_cents": totals.amount_due_cents,
        }

    except Invoice.DoesNotExist:
        error_msg = f"Invoice {invoice_id} not found"
        logger.error(f"❌ [Invoice] {error_msg}")
        return {"success": False, "error": error_msg}
    except Exception as e:
        logger.exception(f"💥 [Invoice] Error recalculating invoice {invoice_id}: {e}")
        return {"success": False, "error": str(e)}


# ===============================================================================
# ASYNC WRAPPER FUNCTIONS
# ===============================================================================


def run_payment_reconciliation_async(run_type: str = "manual") -> str:
    """Queue payment reconciliation task."""
    return async_task("apps.billing.tasks.run_payment_reconciliation", run_type, timeout=TASK_TIME_LIMIT)


def recalculate_invoice_totals_async(invoice_id: str) -> str:
    """Queue invoice total recalculation task."""
    return async_task("apps.billing.tasks.recalculate_invoice_totals", invoice_id, timeout=TASK_SOFT_TIME_LIMIT)


# ===============================================================================
# SCHEDULED TASKS SETUP
# ===============================================================================


def setup_billing_scheduled_tasks() -> dict[str, str]:
    """Set up all billing scheduled tasks."""
    tasks_created = {}

    existing_tasks = list(
        Schedule.objects.filter(name__in=["billing-reconcile-pending-payments"]).values_list("name", flat=True)
    )

    # Reconcile pending payments every 15 minutes (configurable)
    if "billing-reconcile-pending-payments" not in existing_tasks:
        schedule(
            "apps.billing.tasks.run_payment_reconciliation",
            schedule_type=Schedule.MINUTES,
            minutes=config.get_reconciliation_interval_minutes(),
            name="billing-reconcile-pending-payments",
            cluster="dojo-cluster",
        )
        tasks_created["reconcile_pending_payments"] = "created"
    else:
        tasks_created["reconcile_pending_payments"] = "already_exists"

    logger.info(f"✅ [BillingTasks] Scheduled tasks setup: {tasks_created}")
    return tasks_created
