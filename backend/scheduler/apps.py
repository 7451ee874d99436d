"""Django app configuration for trigger scheduling."""

from __future__ import annotations

from django.apps import AppConfig


class SchedulerConfig(AppConfig):
    """Recurring and event-driven triggers that fan out into queued jobs."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "scheduler"
    verbose_name = "Trigger Scheduler"

    def ready(self) -> None:
        from . import receivers  # noqa: F401
