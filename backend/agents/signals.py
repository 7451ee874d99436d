from __future__ import annotations

from django.dispatch import Signal

# Sent after a job reaches completed, failed or cancelled. Not sent for re-queues.
# Args: job (Job)
job_finished = Signal()
