"""
Centralized billing configuration for the Dojo billing platform.

All billing-related constants and configuration should be defined here
so paid-until rules, reconciliation and gateways read one source of truth.
Values are read at call time so tests can override settings.
"""

import logging

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_positive_int(setting_name: str, default: int) -> int:
    """Get a positive integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ [BillingConfig] Invalid {setting_name}={value!r}, using default {default}")
        result = default
    return max(1, result)  # Ensure at least 1


def _get_non_negative_int(setting_name: str, default: int) -> int:
    """Get a non-negative integer from settings (0 disables the feature)."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ [BillingConfig] Invalid {setting_name}={value!r}, using default {default}")
        result = default
    return max(0, result)


def _get_str(setting_name: str, default: str = "") -> str:
    value = getattr(settings, setting_name, default)
    return str(value).strip() if value else default


# ===============================================================================
# PAID-UNTIL RULES
# ===============================================================================

DEFAULT_GRACE_PERIOD_DAYS = 7
DEFAULT_ATTENDANCE_LOOKBACK_DAYS = 30

# Payment types that extend tuition coverage, and by how much
TUITION_DURATIONS = {
    "monthly": {"months": 1},
    "yearly": {"years": 1},
}


def get_grace_period_days() -> int:
    """Days after expiry within which a late payment still extends from the old expiry."""
    return _get_non_negative_int("BILLING_GRACE_PERIOD_DAYS", DEFAULT_GRACE_PERIOD_DAYS)


def get_attendance_lookback_days() -> int:
    """Window (days before the payment date) searched for attendance credit."""
    return _get_positive_int("BILLING_ATTENDANCE_LOOKBACK_DAYS", DEFAULT_ATTENDANCE_LOOKBACK_DAYS)


# ===============================================================================
# RECONCILIATION
# ===============================================================================

DEFAULT_RECONCILIATION_STALENESS_MINUTES = 15
DEFAULT_RECONCILIATION_INTERVAL_MINUTES = 15
DEFAULT_RECONCILIATION_BATCH_SIZE = 200


def get_reconciliation_staleness_minutes() -> int:
    """Pending payments younger than this are left for webhooks/callbacks."""
    return _get_positive_int("BILLING_RECONCILIATION_STALENESS_MINUTES", DEFAULT_RECONCILIATION_STALENESS_MINUTES)


def get_reconciliation_interval_minutes() -> int:
    return _get_positive_int("BILLING_RECONCILIATION_INTERVAL_MINUTES", DEFAULT_RECONCILIATION_INTERVAL_MINUTES)


def get_reconciliation_batch_size() -> int:
    return _get_positive_int("BILLING_RECONCILIATION_BATCH_SIZE", DEFAULT_RECONCILIATION_BATCH_SIZE)


# ===============================================================================
# GATEWAY CREDENTIALS
# ===============================================================================

DEFAULT_PLACEHOLDER_PREFIX = "dojo_"
DEFAULT_SQUARE_REQUEST_TIMEOUT_SECONDS = 10
DEFAULT_STRIPE_REQUEST_TIMEOUT_SECONDS = 10
SQUARE_API_VERSION = "2024-08-15"
SQUARE_BASE_URLS = {
    "production": "https://connect.squareup.com",
    "sandbox": "https://connect.squareupsandbox.com",
}
STRIPE_API_VERSION = "2023-10-16"


def get_placeholder_prefix() -> str:
    """Prefix of client-side placeholder references minted before a gateway id exists."""
    return _get_str("DOJO_PLACEHOLDER_PREFIX", DEFAULT_PLACEHOLDER_PREFIX)


def get_stripe_secret_key() -> str:
    return _get_str("STRIPE_SECRET_KEY")


def get_stripe_request_timeout() -> int:
    return _get_positive_int("STRIPE_REQUEST_TIMEOUT_SECONDS", DEFAULT_STRIPE_REQUEST_TIMEOUT_SECONDS)


def get_square_access_token() -> str:
    return _get_str("SQUARE_ACCESS_TOKEN")


def get_square_environment() -> str:
    environment = _get_str("SQUARE_ENVIRONMENT", "sandbox").lower()
    return "production" if environment == "production" else "sandbox"


def get_square_base_url() -> str:
    return SQUARE_BASE_URLS[get_square_environment()]


def get_square_request_timeout() -> int:
    return _get_positive_int("SQUARE_REQUEST_TIMEOUT_SECONDS", DEFAULT_SQUARE_REQUEST_TIMEOUT_SECONDS)


def get_gateway_credentials() -> dict[str, str]:
    """Credentials keyed by gateway identifier; empty string means not configured."""
    return {
        "stripe": get_stripe_secret_key(),
        "square": get_square_access_token(),
    }
