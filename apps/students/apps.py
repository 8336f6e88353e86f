"""
Django app configuration for Students app
"""

from django.apps import AppConfig


class StudentsConfig(AppConfig):
    """Families, students, enrollments, attendance and belt progression."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.students"
    verbose_name = "Students & Enrollments"

    def ready(self) -> None:
        """Import signals when app is ready."""
        # Import signals to register them
        from . import signals  # noqa: F401
