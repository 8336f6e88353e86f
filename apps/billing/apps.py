"""
Django app configuration for Billing app
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class BillingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.billing"
    verbose_name = "Billing"

    def ready(self) -> None:
        """Register payment gateways and schedule billing tasks when Django starts."""
        from django.conf import settings

        from apps.billing import gateways  # noqa: F401

        # Schedule recurring tasks if enabled
        if getattr(settings, "DOJO_SCHEDULE_TASKS_ON_STARTUP", False):
            try:
                from apps.billing.tasks import setup_billing_scheduled_tasks  # noqa: PLC0415
                from apps.promotions.tasks import setup_promotion_scheduled_tasks  # noqa: PLC0415

                setup_billing_scheduled_tasks()
                setup_promotion_scheduled_tasks()
            except Exception:
                logger.warning("⚠️ [Billing] Failed to schedule billing tasks during startup")
