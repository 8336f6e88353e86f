"""Promotions background tasks.

This module contains Django-Q2 tasks for automatic discount processing:
picking up discount events that were recorded without immediate processing
(or whose processing failed) and running them through the rule engine.
"""

from __future__ import annotations

import logging
from typing import Any

from django_q.models import Schedule
from django_q.tasks import async_task, schedule

from apps.common.logging import job_context

from .automation import AutoDiscountService

logger = logging.getLogger(__name__)

# Task configuration
TASK_SOFT_TIME_LIMIT = 300  # 5 minutes
TASK_TIME_LIMIT = 600  # 10 minutes
PENDING_EVENT_BATCH_SIZE = 500


def process_pending_discount_events(limit: int = PENDING_EVENT_BATCH_SIZE) -> dict[str, Any]:
    """
    Batch-process discount events that are still unprocessed.

    Returns:
        Dictionary with processed/failed counts
    """
    with job_context("process_pending_discount_events"):
        logger.info("🎁 [AutoDiscount] Starting pending discount event processing")

        try:
            event_ids = AutoDiscountService.pending_event_ids(limit=limit)
            if not event_ids:
                logger.info("🎁 [AutoDiscount] No pending discount events")
                return {"success": True, "results": {"processed": 0, "failed": {}, "assignments": 0}}

            batch = AutoDiscountService.batch_process(event_ids)
            results = {"processed": batch.processed, "failed": batch.failed, "assignments": batch.assignments}

            logger.info(
                f"✅ [AutoDiscount] Processed {batch.processed}/{len(event_ids)} events, "
                f"{batch.assignments} assignments, {len(batch.failed)} failures"
            )
            return {"success": True, "results": results}

        except Exception as e:
            logger.exception(f"💥 [AutoDiscount] Error processing pending discount events: {e}")
            return {"success": False, "error": str(e)}


def process_discount_event(event_id: str) -> dict[str, Any]:
    """
    Process a single discount event (queued from signal handlers).

    Args:
        event_id: DiscountEvent UUID
    """
    logger.info(f"🎁 [AutoDiscount] Processing discount event {event_id}")

    try:
        outcome = AutoDiscountService.process_event(event_id)
        return {
            "success": True,
            "event_id": str(event_id),
            "already_processed": outcome.already_processed,
            "assignments": len(outcome.assignments),
        }
    except Exception as e:
        logger.exception(f"💥 [AutoDiscount] Error processing discount event {event_id}: {e}")
        return {"success": False, "error": str(e)}


# ===============================================================================
# ASYNC WRAPPER FUNCTIONS
# ===============================================================================


def process_pending_discount_events_async() -> str:
    """Queue pending discount event processing task."""
    return async_task("apps.promotions.tasks.process_pending_discount_events", timeout=TASK_TIME_LIMIT)


def process_discount_event_async(event_id: str) -> str:
    """Queue single discount event processing task."""
    return async_task("apps.promotions.tasks.process_discount_event", str(event_id), timeout=TASK_SOFT_TIME_LIMIT)


# ===============================================================================
# SCHEDULED TASKS SETUP
# ===============================================================================


def setup_promotion_scheduled_tasks() -> dict[str, str]:
    """Set up all promotion scheduled tasks."""
    tasks_created = {}

    existing_tasks = list(
        Schedule.objects.filter(name__in=["promotions-process-pending-events"]).values_list("name", flat=True)
    )

    # Sweep unprocessed discount events every 10 minutes
    if "promotions-process-pending-events" not in existing_tasks:
        schedule(
            "apps.promotions.tasks.process_pending_discount_events",
            schedule_type=Schedule.MINUTES,
            minutes=10,
            name="promotions-process-pending-events",
            cluster="dojo-cluster",
        )
        tasks_created["process_pending_events"] = "created"
    else:
        tasks_created["process_pending_events"] = "already_exists"

    logger.info(f"✅ [PromotionTasks] Scheduled tasks setup: {tasks_created}")
    return tasks_created
