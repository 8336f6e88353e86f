"""
Django settings for the Dojo billing platform - Base Configuration.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

THIRD_PARTY_APPS: list[str] = [
    "django_q",  # Async task processing
]

LOCAL_APPS: list[str] = [
    "apps.students",  # 🥋 Families, students, enrollments, attendance
    "apps.billing",  # 💳 Payments, invoices, eligibility, reconciliation
    "apps.promotions",  # 🏷️ Discount codes & automatic discounts
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "dojo"),
        "USER": os.environ.get("DB_USER", "dojo"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "development_password"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": 60,  # Database connection pooling
        "OPTIONS": {
            "application_name": "dojo_billing",
        },
    }
}

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = "en"
TIME_ZONE = os.environ.get("DOJO_TIME_ZONE", "America/Toronto")
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ===============================================================================
# DJANGO-Q2 TASK QUEUE
# ===============================================================================

Q_CLUSTER_BASE = {
    "name": "dojo-cluster",
    "timeout": 300,  # 5 minutes
    "retry": 900,  # 15 minutes retry delay (must exceed the longest task timeout)
    "save_limit": 1000,  # Keep last 1000 task results
    "catch_up": False,  # Don't run missed scheduled tasks
    "orm": "default",  # Use the database as broker
    "bulk": 10,
    "queue_limit": 100,
}

# Default production configuration (overridden in environment-specific settings)
Q_CLUSTER = {
    **Q_CLUSTER_BASE,
    "workers": 2,
    "recycle": 500,
    "sync": False,
}

# Register django-q schedules from BillingConfig.ready()
DOJO_SCHEDULE_TASKS_ON_STARTUP = os.environ.get("DOJO_SCHEDULE_TASKS_ON_STARTUP", "false").lower() == "true"

# ===============================================================================
# BILLING & ELIGIBILITY
# ===============================================================================

DEFAULT_CURRENCY = "USD"

BILLING_GRACE_PERIOD_DAYS = int(os.environ.get("BILLING_GRACE_PERIOD_DAYS", "7"))
BILLING_ATTENDANCE_LOOKBACK_DAYS = int(os.environ.get("BILLING_ATTENDANCE_LOOKBACK_DAYS", "30"))
BILLING_RECONCILIATION_STALENESS_MINUTES = int(os.environ.get("BILLING_RECONCILIATION_STALENESS_MINUTES", "15"))
BILLING_RECONCILIATION_INTERVAL_MINUTES = int(os.environ.get("BILLING_RECONCILIATION_INTERVAL_MINUTES", "15"))
BILLING_RECONCILIATION_BATCH_SIZE = int(os.environ.get("BILLING_RECONCILIATION_BATCH_SIZE", "200"))

# Discount events are processed inline unless a Django-Q2 worker should pick them up
DISCOUNT_EVENTS_ASYNC = os.environ.get("DISCOUNT_EVENTS_ASYNC", "false").lower() == "true"

# ===============================================================================
# EXTERNAL INTEGRATIONS
# ===============================================================================

# Stripe settings
STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
STRIPE_REQUEST_TIMEOUT_SECONDS = int(os.environ.get("STRIPE_REQUEST_TIMEOUT_SECONDS", "10"))

# Square settings
SQUARE_ACCESS_TOKEN = os.environ.get("SQUARE_ACCESS_TOKEN", "")
SQUARE_ENVIRONMENT = os.environ.get("SQUARE_ENVIRONMENT", "sandbox")
SQUARE_REQUEST_TIMEOUT_SECONDS = int(os.environ.get("SQUARE_REQUEST_TIMEOUT_SECONDS", "10"))

# Prefix of references minted before the gateway returned a real id
DOJO_PLACEHOLDER_PREFIX = os.environ.get("DOJO_PLACEHOLDER_PREFIX", "dojo_")

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY")
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings

    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2,
    )
    SECRET_KEY = "django-insecure-dev-key-only-change-in-production-or-tests"  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith("django-insecure-"):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Generate a secure key: python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'"
        )


ALLOWED_HOSTS: list[str] = []
