from __future__ import annotations

import logging

from django.dispatch import receiver

from agents.signals import job_finished

from .outcomes import finish_run_if_complete

logger = logging.getLogger(__name__)


@receiver(job_finished)
def record_run_outcome(sender, *, job, **kwargs) -> None:
    """Finish the trigger execution's run outcome when its last job ends."""
    try:
        finish_run_if_complete(job)
    except Exception:
        # The job transition is already committed; never fail the report over the rollup.
        logger.exception("Failed to record run outcome for job %s (%s)", job.id, job.run_id)
