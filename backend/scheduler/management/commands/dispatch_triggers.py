"""Management command to fire due triggers; run it from cron or with --loop."""

from __future__ import annotations

import logging
import signal
import threading

from django.core.management.base import BaseCommand, CommandError
from django.db import close_old_connections

from scheduler.dispatcher import DispatchResult, dispatch_due_triggers

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Fire every due scheduled trigger once, or keep ticking with --loop"

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Keep dispatching until interrupted",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=60,
            help="Seconds between passes with --loop (default: 60)",
        )

    def handle(self, *args, **options) -> None:
        interval = options["interval"]
        if interval <= 0:
            raise CommandError("--interval must be a positive number of seconds.")

        if not options["loop"]:
            self._report(dispatch_due_triggers())
            return

        stop_event = threading.Event()

        def _request_stop(signum, frame) -> None:
            stop_event.set()

        previous_int = signal.signal(signal.SIGINT, _request_stop)
        previous_term = signal.signal(signal.SIGTERM, _request_stop)

        self.stdout.write(f"Dispatching due triggers every {interval}s; Ctrl+C to stop.")
        try:
            while not stop_event.is_set():
                close_old_connections()
                try:
                    self._report(dispatch_due_triggers())
                except Exception:
                    logger.exception("Dispatch pass failed; retrying in %ss", interval)
                    self.stderr.write(self.style.ERROR("Dispatch pass failed; see log for details."))
                stop_event.wait(timeout=interval)
        finally:
            signal.signal(signal.SIGINT, previous_int)
            signal.signal(signal.SIGTERM, previous_term)
        self.stdout.write("Stopped.")

    def _report(self, result: DispatchResult) -> None:
        if not result.acquired:
            self.stdout.write(self.style.WARNING("Another dispatcher holds the lock; skipped."))
        elif not result.enabled:
            self.stdout.write(self.style.WARNING("Scheduled trigger dispatch is disabled."))
        elif result.failed:
            self.stdout.write(
                self.style.ERROR(
                    f"Fired {result.processed} trigger(s): {result.queued} queued, "
                    f"{result.failed} failed, {result.jobs_created} job(s) created."
                )
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Fired {result.processed} trigger(s), {result.jobs_created} job(s) created."
                )
            )
