"""Turns due triggers into queued jobs.

`dispatch_due_triggers` is meant to be called from an external periodic tick
(the `dispatch_triggers` command or the admin dispatch endpoint). A pass that
cannot take the dispatch lock returns immediately without doing anything.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from agents.models import Job
from agents.queue import enqueue_job
from catalog.models import TestDefinition, TestSuite
from ops.activity import log_activity
from ops.app_settings import get_bool_setting
from ops.models import ActivityEventType
from ops.settings_registry import DISPATCH_ENABLED

from .errors import TargetResolutionError
from .locks import try_named_lock
from .models import ExecutionSource, ExecutionStatus, TargetType, Trigger, TriggerExecution

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "run_due_scheduled_triggers"

_RUN_PREFIX_LABELS = {
    ExecutionSource.SCHEDULE: "SCHED",
    ExecutionSource.EXTERNAL_EVENT: "EVENT",
    ExecutionSource.MANUAL: "MANUAL",
}


@dataclass
class DispatchResult:
    acquired: bool
    enabled: bool = True
    processed: int = 0
    queued: int = 0
    failed: int = 0
    jobs_created: int = 0

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


def new_run_prefix(source: str) -> str:
    label = _RUN_PREFIX_LABELS.get(source, "RUN")
    return f"{label}-{uuid.uuid4().hex[:12].upper()}"


def member_run_id(prefix: str, position: int) -> str:
    """Zero-padded so run ids sort in suite execution order."""
    return f"{prefix}-{position:03d}"


def resolve_target(trigger: Trigger) -> list[TestDefinition]:
    """Return the tests a firing of `trigger` should run, in execution order."""
    if trigger.target_type == TargetType.SUITE:
        suite = TestSuite.objects.filter(pk=trigger.target_id, project_id=trigger.project_id).first()
        if suite is None:
            raise TargetResolutionError("Target suite not found", code="suite_not_found")
        tests = [membership.test for membership in suite.ordered_members()]
        if not tests:
            raise TargetResolutionError("Suite has no tests", code="empty_suite")
        return tests

    test = TestDefinition.objects.filter(pk=trigger.target_id, project_id=trigger.project_id).first()
    if test is None:
        raise TargetResolutionError("Target test not found", code="test_not_found")
    return [test]


def _create_jobs(trigger: Trigger, tests: list[TestDefinition], prefix: str) -> list[Job]:
    single = trigger.target_type != TargetType.SUITE
    jobs = []
    for position, test in enumerate(tests, start=1):
        jobs.append(
            enqueue_job(
                test=test,
                run_id=prefix if single else member_run_id(prefix, position),
                priority=trigger.priority,
                requested_agent=trigger.agent,
            )
        )
    return jobs


def fire_trigger(
    trigger: Trigger,
    *,
    source: str,
    now: datetime | None = None,
    event_payload: dict | None = None,
) -> TriggerExecution:
    """
    Record one firing attempt of `trigger` and fan its target out into jobs.

    The execution always ends `queued` or `failed`. Target resolution problems
    fail the execution; any other error also fails it and is re-raised.
    """
    now = now or timezone.now()
    execution = TriggerExecution.objects.create(
        trigger=trigger,
        project_id=trigger.project_id,
        source=source,
        triggered_at=now,
        event_payload=event_payload or {},
    )
    prefix = new_run_prefix(source)
    try:
        with transaction.atomic():
            tests = resolve_target(trigger)
            jobs = _create_jobs(trigger, tests, prefix)
    except TargetResolutionError as exc:
        logger.warning("Trigger %s (%s) not fired: %s", trigger.id, trigger.name, exc)
        execution.mark_failed(str(exc))
        return execution
    except Exception as exc:
        execution.mark_failed(f"Unexpected error: {exc}")
        raise

    execution.mark_queued(jobs=jobs, run_prefix=prefix)
    logger.info(
        "Trigger %s (%s) fired from %s: %d job(s) queued under %s",
        trigger.id,
        trigger.name,
        source,
        len(jobs),
        prefix,
    )
    return execution


def _advance_schedule(trigger: Trigger, now: datetime) -> None:
    next_fire = trigger.compute_next_fire_at(now)
    # Queryset updates so Trigger.save() does not recompute from the wall clock.
    advanced = Trigger.objects.filter(pk=trigger.pk, is_active=True).update(
        next_fire_at=next_fire, last_fired_at=now, updated_at=timezone.now()
    )
    if not advanced:
        # Deactivated while firing; its cleared next_fire_at must stay cleared.
        Trigger.objects.filter(pk=trigger.pk).update(last_fired_at=now)
        trigger.refresh_from_db(fields=["is_active", "next_fire_at", "last_fired_at"])
        return
    trigger.next_fire_at = next_fire
    trigger.last_fired_at = now


def _log_firing(trigger: Trigger, execution: TriggerExecution | None, *, event_type: str) -> None:
    log_activity(
        event_type=event_type,
        project_id=trigger.project_id,
        agent_id=trigger.agent.agent_id if trigger.agent else "",
        data={
            "trigger_id": trigger.id,
            "trigger_name": trigger.name,
            "schedule_type": trigger.schedule_type,
            "target_type": trigger.target_type,
            "target_id": trigger.target_id,
            "jobs_created": execution.jobs_created if execution else 0,
            "execution_id": execution.id if execution else None,
            "status": execution.status if execution else "failed",
            "source": execution.source if execution else ExecutionSource.SCHEDULE,
        },
    )


def _dispatch_one(trigger: Trigger, now: datetime, result: DispatchResult) -> None:
    execution: TriggerExecution | None = None
    try:
        execution = fire_trigger(trigger, source=ExecutionSource.SCHEDULE, now=now)
    except Exception:
        logger.exception("Dispatch failed for trigger %s (%s)", trigger.id, trigger.name)

    result.processed += 1
    if execution is not None and execution.status == ExecutionStatus.QUEUED:
        result.queued += 1
        result.jobs_created += execution.jobs_created
    else:
        result.failed += 1

    # The schedule advances even when the target could not be resolved.
    _advance_schedule(trigger, now)
    _log_firing(trigger, execution, event_type=ActivityEventType.SCHEDULED_TRIGGER_EXECUTED)


def dispatch_due_triggers(now: datetime | None = None) -> DispatchResult:
    """Run one dispatch pass; a no-op when another pass holds the lock."""
    lock_name = getattr(settings, "SCHEDULER_DISPATCH_LOCK_NAME", DEFAULT_LOCK_NAME)
    with try_named_lock(lock_name) as acquired:
        if not acquired:
            logger.info("Dispatch lock %s is held elsewhere; skipping this tick", lock_name)
            return DispatchResult(acquired=False)

        if not get_bool_setting(key=DISPATCH_ENABLED):
            logger.info("Scheduled trigger dispatch is disabled")
            return DispatchResult(acquired=True, enabled=False)

        now = now or timezone.now()
        result = DispatchResult(acquired=True)
        due = list(Trigger.objects.due(now).select_related("agent"))
        for trigger in due:
            try:
                _dispatch_one(trigger, now, result)
            except Exception:
                logger.exception("Could not finalize trigger %s after firing", trigger.id)

    if result.processed:
        logger.info(
            "Dispatch pass fired %d trigger(s): %d queued, %d failed, %d job(s) created",
            result.processed,
            result.queued,
            result.failed,
            result.jobs_created,
        )
    return result


def fire_trigger_now(
    trigger: Trigger,
    *,
    source: str = ExecutionSource.MANUAL,
    event_payload: dict | None = None,
) -> TriggerExecution:
    """Fire outside the schedule (manual or external event); next_fire_at is left alone."""
    execution = fire_trigger(trigger, source=source, event_payload=event_payload)
    Trigger.objects.filter(pk=trigger.pk).update(last_fired_at=execution.triggered_at)
    trigger.last_fired_at = execution.triggered_at
    _log_firing(trigger, execution, event_type=ActivityEventType.TRIGGER_FIRED)
    return execution
