"""
Payment reconciliation for the Dojo billing platform.

Polls the owning gateway for every stale pending payment and resolves it to
succeeded or failed. Safe to run concurrently with checkout confirmation and
with itself: every resolution is a conditional UPDATE on status='pending', and
a lost race is counted as already_resolved, never as an error.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from django.db import transaction
from django.utils import timezone

from apps.common.logging import get_logger
from apps.common.types import ConfigurationError, ExternalGatewayError

from . import config
from .gateways import PaymentGatewayFactory
from .gateways.base import INTERNAL_FAILED, INTERNAL_SUCCEEDED, BasePaymentGateway, GatewayPaymentInfo
from .payment_models import Payment, ReconciliationRun
from .payment_service import PaymentService

logger = get_logger(__name__, component="reconciliation")

SKIP_UNKNOWN_PROVIDER = "unknown-provider"
SKIP_CREDENTIALS_MISSING = "credentials-missing"

# status_breakdown bucket for placeholder/unlocatable references
REFERENCE_BUCKET = "reference"
NOT_FOUND_STATUS = "not_found"


@dataclass
class ReconciliationSummary:
    """
    Outcome of one reconciliation run.

    Attributes:
        checked: Candidates examined.
        updated: Payments this run moved to a terminal status.
        skipped: Candidates not sent to any gateway (see skipped_records).
        failed: Candidates whose gateway call errored (retried next run).
        already_resolved: Candidates a concurrent writer resolved first.
        status_breakdown: gateway -> raw status -> count.
        skipped_records: [{payment_id, reference, reason}]
        errors: Human-readable error lines.
    """

    checked: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    already_resolved: int = 0
    status_breakdown: dict[str, dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: defaultdict(int)))
    skipped_records: list[dict[str, str]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def count_status(self, gateway: str, status: str) -> None:
        self.status_breakdown[gateway][status] += 1

    def skip(self, payment: Payment, reason: str) -> None:
        self.skipped += 1
        self.skipped_records.append(
            {"payment_id": str(payment.pk), "reference": payment.gateway_reference or "", "reason": reason}
        )

    def breakdown_as_dict(self) -> dict[str, dict[str, int]]:
        return {gateway: dict(statuses) for gateway, statuses in self.status_breakdown.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "already_resolved": self.already_resolved,
            "status_breakdown": self.breakdown_as_dict(),
            "skipped_records": list(self.skipped_records),
            "errors": list(self.errors),
        }


class PaymentReconciliationService:
    """
    🔄 Reconcile pending payments against their gateways

    Candidates: status=pending, non-empty gateway_reference, older than the
    staleness threshold. No transaction spans more than one payment.
    """

    def __init__(
        self,
        staleness_minutes: int | None = None,
        batch_size: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self.staleness_minutes = (
            config.get_reconciliation_staleness_minutes() if staleness_minutes is None else staleness_minutes
        )
        self.batch_size = config.get_reconciliation_batch_size() if batch_size is None else batch_size
        self.placeholder_prefix = config.get_placeholder_prefix()
        self.dry_run = dry_run
        self._gateways: dict[str, BasePaymentGateway] = {}

    # ---------------------------------------------------------------------------
    # Candidates & gateways
    # ---------------------------------------------------------------------------

    def candidates(self, now: datetime) -> list[Payment]:
        cutoff = now - timedelta(minutes=self.staleness_minutes)
        queryset = (
            Payment.objects.filter(status=Payment.STATUS_PENDING, created_at__lt=cutoff)
            .exclude(gateway_reference__isnull=True)
            .exclude(gateway_reference="")
            .order_by("created_at")
        )
        return list(queryset[: self.batch_size])

    def is_placeholder(self, reference: str) -> bool:
        return bool(self.placeholder_prefix) and reference.startswith(self.placeholder_prefix)

    def _gateway(self, name: str) -> BasePaymentGateway:
        if name not in self._gateways:
            self._gateways[name] = PaymentGatewayFactory.create_gateway(name)
        return self._gateways[name]

    # ---------------------------------------------------------------------------
    # Run
    # ---------------------------------------------------------------------------

    def run(self, now: datetime | None = None, run_type: str = "automatic") -> ReconciliationSummary:
        """
        Reconcile all current candidates.

        Per-candidate failures are recorded on the summary and never abort the run.
        """
        now = now or timezone.now()
        summary = ReconciliationSummary()
        run = None if self.dry_run else ReconciliationRun.objects.create(run_type=run_type)

        logger.info(
            f"💳 [Reconciliation] Starting {run_type} run "
            f"(staleness {self.staleness_minutes}m, batch {self.batch_size}{', dry run' if self.dry_run else ''})"
        )

        for payment in self.candidates(now):
            summary.checked += 1
            try:
                self._reconcile_one(payment, summary)
            except ExternalGatewayError as e:
                summary.failed += 1
                summary.errors.append(f"{payment.pk}: {e}")
                logger.warning(f"⚠️ [Reconciliation] Gateway error for payment {payment.pk}: {e}")
            except Exception as e:
                summary.failed += 1
                summary.errors.append(f"{payment.pk}: {e}")
                logger.exception(f"🔥 [Reconciliation] Unexpected error for payment {payment.pk}: {e}")

        if run is not None:
            self._persist_run(run, summary)

        logger.info(
            f"✅ [Reconciliation] Checked {summary.checked}, updated {summary.updated}, "
            f"skipped {summary.skipped}, failed {summary.failed}, already resolved {summary.already_resolved}",
            run_type=run_type,
            dry_run=self.dry_run,
        )
        return summary

    def _reconcile_one(self, payment: Payment, summary: ReconciliationSummary) -> None:
        reference = payment.gateway_reference or ""

        gateway_name = PaymentGatewayFactory.detect_gateway(reference)
        if gateway_name is None:
            summary.skip(payment, SKIP_UNKNOWN_PROVIDER)
            logger.info(f"⏭️ [Reconciliation] No gateway for payment {payment.pk} ({reference})")
            return

        try:
            gateway = self._gateway(gateway_name)
        except ConfigurationError:
            summary.skip(payment, SKIP_CREDENTIALS_MISSING)
            logger.warning(f"⚠️ [Reconciliation] {gateway_name} credentials missing, skipping payment {payment.pk}")
            return

        # Placeholders never reached the gateway; past the staleness threshold they are abandoned checkouts
        if self.is_placeholder(reference):
            summary.count_status(REFERENCE_BUCKET, NOT_FOUND_STATUS)
            self._resolve(payment, INTERNAL_FAILED, None, summary, reason="Checkout never reached the gateway")
            return

        info = gateway.retrieve_payment(reference)
        if not info.found:
            summary.count_status(REFERENCE_BUCKET, NOT_FOUND_STATUS)
            self._resolve(payment, INTERNAL_FAILED, None, summary, reason=f"{gateway_name} has no payment {reference}")
            return

        summary.count_status(gateway.gateway_name, info.status)
        internal_status = gateway.map_status(info.status)
        if internal_status in (INTERNAL_SUCCEEDED, INTERNAL_FAILED):
            self._resolve(payment, internal_status, info, summary, reason=f"{gateway_name} status {info.status}")
        else:
            logger.debug(f"⏳ [Reconciliation] Payment {payment.pk} still {info.status} at {gateway_name}")

    def _resolve(
        self,
        payment: Payment,
        internal_status: str,
        info: GatewayPaymentInfo | None,
        summary: ReconciliationSummary,
        reason: str,
    ) -> None:
        if self.dry_run:
            logger.info(f"🔍 [Reconciliation] Dry run: would mark {payment.pk} {internal_status} ({reason})")
            return

        receipt: dict[str, Any] = {}
        if info is not None:
            receipt = {
                "receipt_url": info.receipt_url,
                "payment_method": info.payment_method,
                "card_last4": info.card_last4,
            }
            if info.reference and info.reference != payment.gateway_reference:
                receipt["gateway_reference"] = info.reference

        if internal_status == INTERNAL_SUCCEEDED:
            result = PaymentService.confirm_payment(payment.pk, receipt=receipt)
        else:
            result = PaymentService.fail_payment(payment.pk, reason=f"Reconciliation: {reason}", receipt=receipt)

        if result.is_ok():
            summary.updated += 1
            logger.info(f"✅ [Reconciliation] Payment {payment.pk} -> {internal_status} ({reason})")
        else:
            summary.already_resolved += 1
            logger.info(f"⏭️ [Reconciliation] {result.unwrap_err()}")

    @staticmethod
    @transaction.atomic
    def _persist_run(run: ReconciliationRun, summary: ReconciliationSummary) -> None:
        run.checked = summary.checked
        run.updated = summary.updated
        run.skipped = summary.skipped
        run.failed = summary.failed
        run.already_resolved = summary.already_resolved
        run.status_breakdown = summary.breakdown_as_dict()
        run.skipped_records = summary.skipped_records
        run.errors = summary.errors
        run.status = "completed"
        run.completed_at = timezone.now()
        run.save()


def reconcile_pending_payments(
    now: datetime | None = None,
    run_type: str = "automatic",
    staleness_minutes: int | None = None,
    dry_run: bool = False,
) -> ReconciliationSummary:
    """Module-level entry point used by the task and the management command."""
    service = PaymentReconciliationService(staleness_minutes=staleness_minutes, dry_run=dry_run)
    return service.run(now=now, run_type=run_type)
