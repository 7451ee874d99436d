"""Job queue claim protocol.

Every status change is a conditional UPDATE on the job's current status (and
holder, where one exists), so two callers racing on the same row cannot both
win. The loser sees zero affected rows and gets a conflict error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from catalog.models import TestDefinition
from config.domain_exceptions import NotFoundError, ValidationError
from ops.activity import log_activity
from ops.models import ActivityEventType

from .errors import AgentCapacityExceeded, JobClaimConflict, JobOwnershipError, JobTransitionError
from .models import (
    ACTIVE_JOB_STATUSES,
    AgentStatus,
    Job,
    JobResult,
    JobStatus,
    WorkerRegistration,
)
from .signals import job_finished

logger = logging.getLogger(__name__)

REPORTABLE_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(frozen=True)
class JobOutcome:
    status: str
    summary: dict | None = None
    results_log_base64: str = ""
    report_base64: str = ""
    error_message: str = ""
    duration_seconds: float | None = None


def enqueue_job(
    *,
    test: TestDefinition,
    run_id: str,
    priority: int = 0,
    requested_agent: WorkerRegistration | None = None,
    max_retries: int | None = None,
) -> Job:
    """Create a pending job for `test`."""
    fields = {
        "project_id": test.project_id,
        "test": test,
        "run_id": run_id,
        "job_type": test.kind,
        "payload": test.build_job_payload(),
        "priority": priority,
        "requested_agent": requested_agent,
    }
    if max_retries is not None:
        fields["max_retries"] = max_retries
    return Job.objects.create(**fields)


def _held_jobs(agent: WorkerRegistration) -> QuerySet[Job]:
    return Job.objects.filter(agent=agent, status__in=ACTIVE_JOB_STATUSES)


def sync_agent_load(agent: WorkerRegistration) -> WorkerRegistration:
    """
    Recompute `running_jobs` from the jobs the agent actually holds.

    Status flips between online and busy; offline agents stay offline until
    they heartbeat again.
    """
    held = _held_jobs(agent).count()
    running_jobs = min(held, agent.capacity)
    changes: dict[str, object] = {"running_jobs": running_jobs}
    if agent.status != AgentStatus.OFFLINE:
        changes["status"] = AgentStatus.BUSY if held >= agent.capacity else AgentStatus.ONLINE
    WorkerRegistration.objects.filter(pk=agent.pk).update(**changes, updated_at=timezone.now())
    for field, value in changes.items():
        setattr(agent, field, value)
    return agent


def claimable_jobs(agent: WorkerRegistration) -> QuerySet[Job]:
    """Pending jobs this agent may claim, highest priority then oldest first."""
    qs = Job.objects.filter(project_id=agent.project_id, status=JobStatus.PENDING).filter(
        Q(requested_agent__isnull=True) | Q(requested_agent=agent)
    )
    if agent.capabilities:
        qs = qs.filter(job_type__in=list(agent.capabilities))
    return qs.order_by("-priority", "created_at", "id")


def peek_next_job(agent: WorkerRegistration) -> Job | None:
    """Return the job the agent should try to claim next, or None while it is at capacity."""
    sync_agent_load(agent)
    if agent.running_jobs >= agent.capacity:
        return None
    return claimable_jobs(agent).select_related("test").first()


def claim_job(agent: WorkerRegistration, job_id: int) -> Job:
    """Atomically move a pending job to assigned, held by `agent`."""
    now = timezone.now()
    with transaction.atomic():
        locked_agent = WorkerRegistration.objects.select_for_update().get(pk=agent.pk)
        if _held_jobs(locked_agent).count() >= locked_agent.capacity:
            raise AgentCapacityExceeded("Agent is already at capacity.")

        updated = (
            claimable_jobs(locked_agent)
            .filter(pk=job_id)
            .update(
                status=JobStatus.ASSIGNED,
                agent=locked_agent,
                assigned_at=now,
                updated_at=now,
            )
        )
        if updated != 1:
            if not Job.objects.filter(pk=job_id, project_id=agent.project_id).exists():
                raise NotFoundError("Job not found.")
            raise JobClaimConflict("Job is no longer available.")
        sync_agent_load(agent)

    job = Job.objects.get(pk=job_id)
    logger.info("Agent %s claimed job %s (%s)", agent.agent_id, job.id, job.run_id)
    log_activity(
        event_type=ActivityEventType.JOB_CLAIMED,
        project_id=job.project_id,
        agent_id=agent.agent_id,
        data={"job_id": job.id, "run_id": job.run_id},
    )
    return job


def _get_held_job(agent: WorkerRegistration, job_id: int) -> Job:
    job = Job.objects.filter(pk=job_id, project_id=agent.project_id).first()
    if job is None:
        raise NotFoundError("Job not found.")
    if job.agent_id != agent.pk:
        raise JobOwnershipError("Job is not held by this agent.")
    return job


def start_job(agent: WorkerRegistration, job_id: int) -> Job:
    """assigned -> running, only for the holding agent."""
    job = _get_held_job(agent, job_id)
    if job.status != JobStatus.ASSIGNED:
        raise JobTransitionError(f"Job cannot start from status {job.status}.")

    now = timezone.now()
    updated = Job.objects.filter(pk=job.pk, agent=agent, status=JobStatus.ASSIGNED).update(
        status=JobStatus.RUNNING,
        started_at=now,
        updated_at=now,
    )
    if updated != 1:
        raise JobTransitionError("Job changed while starting.")
    job.refresh_from_db()
    log_activity(
        event_type=ActivityEventType.JOB_STARTED,
        project_id=job.project_id,
        agent_id=agent.agent_id,
        data={"job_id": job.id, "run_id": job.run_id},
    )
    return job


def _next_status_for(job: Job, outcome: JobOutcome) -> tuple[str, int]:
    """Return (new_status, new_retries) for a reported outcome."""
    if outcome.status != JobStatus.FAILED:
        return outcome.status, job.retries
    retries = job.retries + 1
    # Bounded retry budget: re-queue while retries < max_retries.
    if retries < job.max_retries:
        return JobStatus.PENDING, retries
    return JobStatus.FAILED, retries


def report_job_result(agent: WorkerRegistration, job_id: int, outcome: JobOutcome) -> Job:
    """
    Record a terminal report from the holding agent.

    Failures consume one retry and re-queue the job until the retry budget
    is spent. Reports for jobs the agent no longer holds are rejected.
    """
    if outcome.status not in REPORTABLE_STATUSES:
        raise ValidationError("Status must be completed, failed or cancelled.")

    job = _get_held_job(agent, job_id)
    if outcome.status == JobStatus.COMPLETED and job.status != JobStatus.RUNNING:
        raise JobTransitionError(f"Job cannot complete from status {job.status}.")
    if job.status not in ACTIVE_JOB_STATUSES:
        raise JobTransitionError(f"Job is already {job.status}.")

    new_status, retries = _next_status_for(job, outcome)
    if not job.can_transition_to(new_status):
        raise JobTransitionError(f"Job cannot move from {job.status} to {new_status}.")

    now = timezone.now()
    changes: dict[str, object] = {
        "status": new_status,
        "retries": retries,
        "error_message": outcome.error_message or "",
        "updated_at": now,
    }
    if new_status == JobStatus.PENDING:
        changes.update({"agent": None, "assigned_at": None, "started_at": None})
    else:
        changes["completed_at"] = now

    with transaction.atomic():
        updated = Job.objects.filter(pk=job.pk, agent=agent, status=job.status).update(**changes)
        if updated != 1:
            raise JobTransitionError("Job changed while reporting.")
        JobResult.objects.create(
            job=job,
            agent=agent,
            attempt=job.retries + 1,
            status=outcome.status,
            summary=outcome.summary or {},
            results_log_base64=outcome.results_log_base64 or "",
            report_base64=outcome.report_base64 or "",
            error_message=outcome.error_message or "",
            duration_seconds=outcome.duration_seconds,
        )
    sync_agent_load(agent)

    job.refresh_from_db()
    event_type = {
        JobStatus.COMPLETED: ActivityEventType.JOB_COMPLETED,
        JobStatus.FAILED: ActivityEventType.JOB_FAILED,
        JobStatus.CANCELLED: ActivityEventType.JOB_CANCELLED,
        JobStatus.PENDING: ActivityEventType.JOB_REQUEUED,
    }[new_status]
    if new_status == JobStatus.PENDING:
        logger.info("Job %s failed on attempt %d; re-queued", job.id, retries)
    log_activity(
        event_type=event_type,
        project_id=job.project_id,
        agent_id=agent.agent_id,
        data={
            "job_id": job.id,
            "run_id": job.run_id,
            "retries": job.retries,
            "max_retries": job.max_retries,
            "error_message": job.error_message,
        },
    )
    if job.is_terminal:
        job_finished.send(sender=Job, job=job)
    return job


def cancel_job(job: Job, *, reason: str = "") -> Job:
    """Cancel a job that has not finished yet; the holder may not report for it afterwards."""
    if job.is_terminal:
        raise JobTransitionError(f"Job is already {job.status}.")

    now = timezone.now()
    updated = Job.objects.filter(pk=job.pk, status=job.status).update(
        status=JobStatus.CANCELLED,
        error_message=reason or "Cancelled.",
        completed_at=now,
        updated_at=now,
    )
    if updated != 1:
        raise JobTransitionError("Job changed while cancelling.")

    holder_id = job.agent_id
    job.refresh_from_db()
    if holder_id is not None:
        holder = WorkerRegistration.objects.filter(pk=holder_id).first()
        if holder is not None:
            sync_agent_load(holder)
    log_activity(
        event_type=ActivityEventType.JOB_CANCELLED,
        project_id=job.project_id,
        agent_id=job.agent.agent_id if job.agent else "",
        data={"job_id": job.id, "run_id": job.run_id, "reason": job.error_message},
    )
    job_finished.send(sender=Job, job=job)
    return job


def release_held_jobs(agent: WorkerRegistration, *, reason: str) -> list[Job]:
    """
    Fail every job the agent still holds, through the normal retry policy.

    Used when an agent (re)registers: a freshly started worker process has
    nothing in flight, so anything still assigned to it was orphaned.
    """
    released = []
    for job_id in list(_held_jobs(agent).values_list("id", flat=True)):
        try:
            released.append(
                report_job_result(agent, job_id, JobOutcome(status=JobStatus.FAILED, error_message=reason))
            )
        except JobTransitionError:
            # Cancelled or reported concurrently; nothing left to release.
            logger.info("Job %s changed while being released from agent %s", job_id, agent.agent_id)
    if released:
        logger.warning("Released %d orphaned job(s) held by agent %s", len(released), agent.agent_id)
    return released
