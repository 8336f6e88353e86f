"""
Management command to reconcile stale pending payments with their gateways.

Runs the same reconciliation as the scheduled Django-Q2 task, for manual
recovery after a gateway outage or to inspect what a run would do.
"""

import json
import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from apps.billing.reconciliation import PaymentReconciliationService
from apps.common.logging import job_context

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Reconcile pending payments against Stripe/Square."""

    help = "Resolve stale pending payments by polling their payment gateway"

    def add_arguments(self, parser: CommandParser) -> None:
        """Add command arguments."""
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be resolved without making changes",
        )
        parser.add_argument(
            "--staleness-minutes",
            type=int,
            help="Only consider payments older than this (default: BILLING_RECONCILIATION_STALENESS_MINUTES)",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            help="Maximum payments to check in this run",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the summary as JSON",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command."""
        dry_run = options["dry_run"]
        service = PaymentReconciliationService(
            staleness_minutes=options.get("staleness_minutes"),
            batch_size=options.get("batch_size"),
            dry_run=dry_run,
        )

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN: no payments will be modified"))

        with job_context("reconcile_pending_payments_command"):
            summary = service.run(run_type="manual")

        if options["json"]:
            self.stdout.write(json.dumps(summary.to_dict(), indent=2, sort_keys=True))
            return

        self.stdout.write(f"Checked: {summary.checked}")
        self.stdout.write(f"Updated: {summary.updated}")
        self.stdout.write(f"Already resolved: {summary.already_resolved}")
        self.stdout.write(f"Skipped: {summary.skipped}")
        for record in summary.skipped_records:
            self.stdout.write(f"  - {record['payment_id']} ({record['reference']}): {record['reason']}")

        for gateway, statuses in summary.breakdown_as_dict().items():
            counts = ", ".join(f"{status}={count}" for status, count in sorted(statuses.items()))
            self.stdout.write(f"  {gateway}: {counts}")

        if summary.failed:
            self.stdout.write(self.style.ERROR(f"Failed: {summary.failed}"))
            for error in summary.errors:
                self.stdout.write(self.style.ERROR(f"  - {error}"))
        else:
            self.stdout.write(self.style.SUCCESS("✅ Reconciliation completed"))
