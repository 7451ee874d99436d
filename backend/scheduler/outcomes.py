"""Rolls the jobs of one trigger execution up into a passed/failed run outcome."""

from __future__ import annotations

import logging

from django.db.models import Q, QuerySet
from django.utils import timezone

from agents.models import Job, JobStatus

from .models import ExecutionStatus, RunStatus, TriggerExecution

logger = logging.getLogger(__name__)


def run_jobs(execution: TriggerExecution) -> QuerySet[Job]:
    """The jobs queued under an execution's run prefix, in execution order."""
    prefix = execution.run_prefix
    return Job.objects.filter(project_id=execution.project_id).filter(
        Q(run_id=prefix) | Q(run_id__startswith=f"{prefix}-")
    ).order_by("run_id")


def execution_for_job(job: Job) -> TriggerExecution | None:
    """The in-progress execution that queued `job`, if any."""
    # Single tests run under the bare prefix; suite members add a -NNN position.
    prefixes = {job.run_id, job.run_id.rsplit("-", 1)[0]}
    return TriggerExecution.objects.filter(
        project_id=job.project_id,
        status=ExecutionStatus.QUEUED,
        run_status=RunStatus.IN_PROGRESS,
        run_prefix__in=prefixes,
    ).first()


def _result_entry(job: Job) -> dict:
    return {
        "run_id": job.run_id,
        "job_id": job.id,
        "test_id": job.test_id,
        "test_name": (job.payload or {}).get("test_name", ""),
        "status": job.status,
        "error_message": job.error_message,
    }


def finish_run_if_complete(job: Job) -> TriggerExecution | None:
    """
    Record the run outcome of the execution that queued `job` once all its jobs are terminal.

    Completed jobs count as passed; failed and cancelled ones as failed. Returns
    the finished execution, or None while jobs are outstanding or when another
    report already finished the run.
    """
    execution = execution_for_job(job)
    if execution is None:
        return None

    jobs = list(run_jobs(execution))
    outstanding = [member for member in jobs if not member.is_terminal]
    if outstanding:
        logger.debug("Run %s still has %d unfinished job(s)", execution.run_prefix, len(outstanding))
        return None

    passed = sum(1 for member in jobs if member.status == JobStatus.COMPLETED)
    failed = len(jobs) - passed
    updated = TriggerExecution.objects.filter(pk=execution.pk, run_status=RunStatus.IN_PROGRESS).update(
        run_status=RunStatus.PASSED if failed == 0 else RunStatus.FAILED,
        tests_passed=passed,
        tests_failed=failed,
        run_results=[_result_entry(member) for member in jobs],
        run_finished_at=timezone.now(),
    )
    if updated != 1:
        return None

    execution.refresh_from_db()
    logger.info(
        "Run %s finished %s: %d passed, %d failed",
        execution.run_prefix,
        execution.run_status,
        passed,
        failed,
    )
    return execution
