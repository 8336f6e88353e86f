"""
Django-Q2 queue utilities for the Dojo billing platform
Task queueing that respects the surrounding database transaction.
"""

from __future__ import annotations

from typing import Any

from django.db import transaction
from django_q.tasks import async_task


def queue_by_name(func_path: str, *args: Any, **kwargs: Any) -> str:
    """Enqueue a task by dotted path (prevents import cycles in signals)."""
    return async_task(func_path, *args, **kwargs)


def queue_on_commit(func_path: str, *args: Any, **kwargs: Any) -> None:
    """
    Enqueue a task once the current transaction commits.

    Workers must never observe rows that a rollback later erases, so signal
    handlers enqueue through here instead of calling async_task directly.
    """
    transaction.on_commit(lambda: queue_by_name(func_path, *args, **kwargs))
