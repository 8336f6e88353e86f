"""
Logging infrastructure for the Dojo billing platform.

- RequestIDFilter: correlation id injection for request and background job logs
- SensitiveDataFilter: redaction of gateway secrets and card data
- StructuredLogAdapter: structured context logging
- job_context: binds a correlation id for the duration of a background job

Usage:
    from apps.common.logging import get_logger, job_context

    logger = get_logger(__name__, component="reconciliation")
    with job_context("reconcile"):
        logger.info("💳 [Reconciliation] Starting", candidates=12)
"""

from __future__ import annotations

import contextlib
import logging
import re
import threading
import uuid
from collections.abc import Generator
from typing import Any, ClassVar

# Thread-local storage for request context
_request_context = threading.local()

logger = logging.getLogger(__name__)

CONTEXT_ATTRIBUTES = ("request_id", "family_id", "job_name")


# =============================================================================
# REQUEST CONTEXT FUNCTIONS
# =============================================================================


def set_request_id(request_id: str) -> None:
    """Set the current request ID in thread-local storage."""
    _request_context.request_id = request_id


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    _request_context.request_id = None


def set_request_context(**kwargs: Any) -> None:
    """Set request context for the current thread"""
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


def get_request_context() -> dict[str, Any]:
    """Get request context for the current thread"""
    return {
        "request_id": getattr(_request_context, "request_id", "-"),
        "family_id": getattr(_request_context, "family_id", None),
        "job_name": getattr(_request_context, "job_name", None),
    }


def clear_request_context() -> None:
    """Clear request context for the current thread"""
    for attr in CONTEXT_ATTRIBUTES:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)


@contextlib.contextmanager
def job_context(job_name: str, request_id: str | None = None) -> Generator[str, None, None]:
    """
    Bind a correlation id to every log line emitted while a background job runs.

    Restores whatever context was active before, so nested jobs keep their parent's id afterwards.
    """
    previous = {attr: getattr(_request_context, attr, None) for attr in CONTEXT_ATTRIBUTES}
    correlation_id = request_id or f"{job_name}-{uuid.uuid4().hex[:12]}"
    set_request_context(request_id=correlation_id, job_name=job_name)
    try:
        yield correlation_id
    finally:
        clear_request_context()
        set_request_context(**{k: v for k, v in previous.items() if v is not None})


# =============================================================================
# REQUEST ID FILTER - Structured Logging with Request Correlation
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID and context to log records.

    This filter injects the request ID from thread-local storage
    into every log record, enabling request tracing across logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add request_id attribute to log record"""
        for attr, value in get_request_context().items():
            if not hasattr(record, attr):
                setattr(record, attr, value)

        if not record.request_id:  # type: ignore[attr-defined]
            record.request_id = "-"  # type: ignore[attr-defined]

        return True


class SensitiveDataFilter(logging.Filter):
    """
    Filter to redact sensitive data from log records.

    Gateway secrets and bearer tokens must never reach log storage.
    """

    SENSITIVE_PATTERNS: ClassVar[list[re.Pattern[str]]] = [
        re.compile(r"sk_(live|test)_[A-Za-z0-9]+"),
        re.compile(r"rk_(live|test)_[A-Za-z0-9]+"),
        re.compile(r"Bearer\s+[A-Za-z0-9\-_.]+", re.IGNORECASE),
        re.compile(r"\b\d{13,19}\b"),  # PAN-like digit runs
    ]

    REDACTION_TEXT = "[REDACTED]"

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from log record"""
        if isinstance(record.msg, str):
            message = record.msg
            for pattern in self.SENSITIVE_PATTERNS:
                message = pattern.sub(self.REDACTION_TEXT, message)
            record.msg = message

        return True


class StructuredLogAdapter(logging.LoggerAdapter):
    """
    Log adapter that adds structured context to all log messages.

    Usage:
        logger = StructuredLogAdapter(
            logging.getLogger(__name__),
            {"component": "billing"}
        )
        logger.info("Payment resolved", payment_id="...")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:  # type: ignore[override]
        """Process log message and add structured context"""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra or {})

        # Add any keyword arguments as extra fields
        for key, value in list(kwargs.items()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = value
                del kwargs[key]

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, **context: Any) -> StructuredLogAdapter:
    """
    Get a structured logger with context.

    Args:
        name: Logger name (usually __name__)
        **context: Additional context to include in all log messages

    Returns:
        StructuredLogAdapter with context
    """
    return StructuredLogAdapter(logging.getLogger(name), context)
