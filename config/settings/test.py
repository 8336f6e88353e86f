"""
Test settings for the Dojo billing platform
Fast, isolated testing environment.
"""

from .base import *  # noqa: F403

# ===============================================================================
# TEST FLAGS
# ===============================================================================

DEBUG = False

# ===============================================================================
# TEST DATABASE (In-memory for speed)
# ===============================================================================

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "OPTIONS": {
            "timeout": 20,
        },
        "TEST": {
            "NAME": ":memory:",
            "SERIALIZE": False,
        },
    }
}

# ===============================================================================
# DISABLE MIGRATIONS FOR FASTER TESTS
# ===============================================================================


class DisableMigrations:
    def __contains__(self, item: str) -> bool:
        return True

    def __getitem__(self, item: str) -> None:
        return None


MIGRATION_MODULES = DisableMigrations()

# ===============================================================================
# PASSWORD HASHER (Fast for tests)
# ===============================================================================

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",  # Fast but insecure (test only)
]

# ===============================================================================
# LOGGING (Minimal for tests)
# ===============================================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "add_request_id": {
            "()": "apps.common.logging.RequestIDFilter",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["add_request_id"],
        },
        "null": {
            "class": "logging.NullHandler",
        },
    },
    "loggers": {
        "apps": {
            "handlers": ["null"],
            "level": "DEBUG",
            "propagate": True,
        },
    },
    "root": {
        "handlers": ["null"],
        "level": "CRITICAL",
    },
}

# ===============================================================================
# LOCALIZATION
# ===============================================================================

TIME_ZONE = "America/Toronto"
USE_TZ = True

# ===============================================================================
# SECURITY (Relaxed for tests)
# ===============================================================================

SECRET_KEY = "django-test-key-not-secure"  # noqa: S105
ALLOWED_HOSTS = ["testserver", "localhost", "127.0.0.1"]

TESTING = True

# ===============================================================================
# EXTERNAL SERVICES (Disabled in tests)
# ===============================================================================

# Fake credentials; every gateway call is mocked in tests
STRIPE_SECRET_KEY = "sk_test_fake_key"
SQUARE_ACCESS_TOKEN = "square_test_fake_token"
SQUARE_ENVIRONMENT = "sandbox"

BILLING_GRACE_PERIOD_DAYS = 7
BILLING_ATTENDANCE_LOOKBACK_DAYS = 30
BILLING_RECONCILIATION_STALENESS_MINUTES = 15
DOJO_PLACEHOLDER_PREFIX = "dojo_"

DISCOUNT_EVENTS_ASYNC = False
DOJO_SCHEDULE_TASKS_ON_STARTUP = False

# ===============================================================================
# TASK QUEUE (Synchronous for tests)
# ===============================================================================

Q_CLUSTER = {
    **Q_CLUSTER_BASE,  # noqa: F405
    "workers": 1,
    "sync": True,
}
