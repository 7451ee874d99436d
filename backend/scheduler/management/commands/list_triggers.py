"""Management command to list triggers and their next fire time."""

from __future__ import annotations

from django.core.management.base import BaseCommand

from scheduler.models import Trigger


class Command(BaseCommand):
    help = "List triggers with their schedule and next fire time"

    def add_arguments(self, parser) -> None:
        parser.add_argument("--project", type=int, help="Only list triggers of this project id")
        parser.add_argument("--active", action="store_true", help="Only list active triggers")

    def handle(self, *args, **options) -> None:
        triggers = Trigger.objects.select_related("project", "agent")
        if options.get("project"):
            triggers = triggers.filter(project_id=options["project"])
        if options["active"]:
            triggers = triggers.filter(is_active=True)

        if not triggers.exists():
            self.stdout.write(self.style.WARNING("No triggers found."))
            return

        for trigger in triggers:
            state = self.style.SUCCESS("active") if trigger.is_active else self.style.ERROR("inactive")
            if trigger.is_recurring:
                schedule = trigger.schedule_rule().describe()
            else:
                schedule = f"On {trigger.deployment_environment or 'any'} deployment"
            next_fire = trigger.next_fire_at.isoformat() if trigger.next_fire_at else "-"

            self.stdout.write(f"  [{trigger.id}] {trigger.name} ({trigger.project.name})")
            self.stdout.write(f"    Schedule:  {schedule}")
            self.stdout.write(f"    Target:    {trigger.target_type} #{trigger.target_id}")
            self.stdout.write(f"    Status:    {state}")
            self.stdout.write(f"    Next fire: {next_fire}")
            if trigger.agent:
                self.stdout.write(f"    Agent:     {trigger.agent.agent_id}")
            self.stdout.write("")
