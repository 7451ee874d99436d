"""Management command to mark agents with an old heartbeat as offline."""

from __future__ import annotations

from django.core.management.base import BaseCommand

from agents.lifecycle import mark_stale_agents_offline, stale_cutoff


class Command(BaseCommand):
    help = "Mark agents whose last heartbeat is older than AGENTS_STALE_AFTER_SECONDS as offline"

    def handle(self, *args, **options) -> None:
        cutoff = stale_cutoff()
        count = mark_stale_agents_offline()
        if count:
            self.stdout.write(self.style.WARNING(f"Marked {count} agent(s) offline (no heartbeat since {cutoff.isoformat()})."))
        else:
            self.stdout.write(self.style.SUCCESS("All agents are current."))
