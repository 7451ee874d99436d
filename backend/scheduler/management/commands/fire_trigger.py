"""Management command to fire a trigger immediately."""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from scheduler.dispatcher import fire_trigger_now
from scheduler.models import ExecutionSource, ExecutionStatus, Trigger


class Command(BaseCommand):
    help = "Fire a trigger now without advancing its schedule"

    def add_arguments(self, parser) -> None:
        parser.add_argument("trigger_id", type=int, help="Id of the trigger to fire")

    def handle(self, *args, **options) -> None:
        trigger = Trigger.objects.select_related("agent").filter(id=options["trigger_id"]).first()
        if trigger is None:
            raise CommandError(f"Trigger {options['trigger_id']} not found.")

        execution = fire_trigger_now(trigger, source=ExecutionSource.MANUAL)
        if execution.status != ExecutionStatus.QUEUED:
            raise CommandError(f"Trigger '{trigger.name}' failed: {execution.error_message}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Trigger '{trigger.name}' queued {execution.jobs_created} job(s) under {execution.run_prefix}."
            )
        )
