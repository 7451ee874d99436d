"""Management command to delete old trigger execution history."""

from __future__ import annotations

from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from ops.app_settings import get_int_setting
from ops.settings_registry import EXECUTION_RETENTION_DAYS
from scheduler.models import TriggerExecution


class Command(BaseCommand):
    help = "Delete trigger executions older than the retention period"

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--days",
            type=int,
            help="Retention in days (default: the trigger_executions.retention_days setting)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Only count what would be deleted")

    def handle(self, *args, **options) -> None:
        days = options.get("days")
        if days is None:
            days = get_int_setting(key=EXECUTION_RETENTION_DAYS)
        if days <= 0:
            raise CommandError("--days must be positive.")

        cutoff = timezone.now() - timedelta(days=days)
        old = TriggerExecution.objects.filter(triggered_at__lt=cutoff)

        if options["dry_run"]:
            self.stdout.write(f"Would delete {old.count()} execution(s) older than {days} day(s).")
            return

        deleted, _ = old.delete()
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} execution(s) older than {days} day(s)."))
