from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from .errors import InvalidExecutionTransition
from .recurrence import (
    DEFAULT_DAY_OF_WEEK,
    DEFAULT_TIME_OF_DAY,
    DEFAULT_TIMEZONE,
    ScheduleRule,
    ScheduleType,
    next_fire_at,
)


class TriggerType(models.TextChoices):
    SCHEDULE = "schedule", "Schedule"
    DEPLOYMENT = "deployment", "Deployment"


class TargetType(models.TextChoices):
    SINGLE_TEST = "single_test", "Single test"
    SUITE = "suite", "Suite"


class DeploymentEnvironment(models.TextChoices):
    QA = "QA", "QA"
    UAT = "UAT", "UAT"
    STAGING = "Staging", "Staging"
    PRODUCTION = "Production", "Production"


# Writes touching any of these recompute next_fire_at.
SCHEDULE_STATE_FIELDS = (
    "is_active",
    "trigger_type",
    "schedule_type",
    "schedule_time",
    "schedule_day_of_week",
    "schedule_timezone",
)


class TriggerQuerySet(models.QuerySet):
    def recurring(self):
        return self.filter(trigger_type=TriggerType.SCHEDULE)

    def due(self, now: datetime):
        """Active recurring triggers whose next fire time has arrived, oldest first."""
        return (
            self.recurring()
            .filter(is_active=True, next_fire_at__isnull=False, next_fire_at__lte=now)
            .order_by("next_fire_at", "id")
        )


class Trigger(models.Model):
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, related_name="triggers")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    trigger_type = models.CharField(max_length=20, choices=TriggerType.choices, default=TriggerType.SCHEDULE)
    target_type = models.CharField(max_length=20, choices=TargetType.choices, default=TargetType.SINGLE_TEST)
    target_id = models.PositiveBigIntegerField()
    agent = models.ForeignKey(
        "agents.WorkerRegistration",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="triggers",
        help_text="Pin created jobs to this agent; any agent in the project may claim them when empty.",
    )
    priority = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    schedule_type = models.CharField(max_length=16, choices=ScheduleType.choices, default=ScheduleType.DAILY)
    schedule_time = models.TimeField(default=DEFAULT_TIME_OF_DAY)
    schedule_day_of_week = models.PositiveSmallIntegerField(default=DEFAULT_DAY_OF_WEEK)
    schedule_timezone = models.CharField(max_length=64, default=DEFAULT_TIMEZONE)

    deployment_environment = models.CharField(
        max_length=20,
        choices=DeploymentEnvironment.choices,
        blank=True,
    )
    webhook_secret = models.CharField(max_length=128, blank=True)

    next_fire_at = models.DateTimeField(null=True, blank=True)
    last_fired_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TriggerQuerySet.as_manager()

    class Meta:
        ordering = ["name", "id"]
        indexes = [
            models.Index(fields=["is_active", "next_fire_at"], name="scheduler_t_is_acti_0f3c2e_idx"),
            models.Index(fields=["project", "trigger_type"], name="scheduler_t_project_a81d57_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_schedule_state = instance._schedule_state()
        return instance

    def _schedule_state(self) -> tuple:
        # Read __dict__ so deferred fields are not fetched just for the comparison.
        return tuple(self.__dict__.get(field) for field in SCHEDULE_STATE_FIELDS)

    @property
    def is_recurring(self) -> bool:
        return self.trigger_type == TriggerType.SCHEDULE

    def schedule_rule(self) -> ScheduleRule:
        return ScheduleRule.from_values(
            schedule_type=self.schedule_type,
            time_of_day=self.schedule_time,
            day_of_week=self.schedule_day_of_week,
            timezone=self.schedule_timezone,
        )

    def compute_next_fire_at(self, reference: datetime | None = None) -> datetime | None:
        if not self.is_active or not self.is_recurring:
            return None
        return next_fire_at(self.schedule_rule(), reference or timezone.now())

    def _schedule_changed(self, update_fields) -> bool:
        if self._state.adding:
            return True
        if update_fields is not None and not set(update_fields) & set(SCHEDULE_STATE_FIELDS):
            return False
        loaded = getattr(self, "_loaded_schedule_state", None)
        return loaded is None or loaded != self._schedule_state()

    def save(self, *args, **kwargs):
        update_fields = kwargs.get("update_fields")
        if self._schedule_changed(update_fields):
            self.next_fire_at = self.compute_next_fire_at()
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "next_fire_at"}
        super().save(*args, **kwargs)
        self._loaded_schedule_state = self._schedule_state()


class ExecutionSource(models.TextChoices):
    SCHEDULE = "schedule", "Schedule"
    EXTERNAL_EVENT = "external_event", "External event"
    MANUAL = "manual", "Manual"


class ExecutionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    QUEUED = "queued", "Queued"
    FAILED = "failed", "Failed"


class RunStatus(models.TextChoices):
    IN_PROGRESS = "in_progress", "In progress"
    PASSED = "passed", "Passed"
    FAILED = "failed", "Failed"


EXECUTION_TRANSITIONS: dict[str, frozenset[str]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.QUEUED, ExecutionStatus.FAILED}),
    ExecutionStatus.QUEUED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


class TriggerExecution(models.Model):
    """One firing attempt of a trigger; always finalized by the attempt that created it."""

    trigger = models.ForeignKey(Trigger, on_delete=models.CASCADE, related_name="executions")
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, related_name="trigger_executions")
    source = models.CharField(max_length=20, choices=ExecutionSource.choices)
    status = models.CharField(max_length=16, choices=ExecutionStatus.choices, default=ExecutionStatus.PENDING)
    triggered_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    run_prefix = models.CharField(max_length=64, blank=True)
    job = models.ForeignKey(
        "agents.Job",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="The created job, or the first of several for a suite.",
    )
    jobs_created = models.PositiveIntegerField(default=0)
    event_payload = models.JSONField(default=dict, blank=True)

    # Outcome of the queued jobs, filled in once every one of them is terminal.
    run_status = models.CharField(max_length=16, choices=RunStatus.choices, blank=True)
    tests_passed = models.PositiveIntegerField(default=0)
    tests_failed = models.PositiveIntegerField(default=0)
    run_results = models.JSONField(default=list, blank=True)
    run_finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-triggered_at", "-id"]
        indexes = [
            models.Index(fields=["trigger", "-triggered_at"], name="scheduler_t_trigger_4be0d9_idx"),
            models.Index(fields=["status", "-triggered_at"], name="scheduler_t_status_93e1a4_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.trigger_id}:{self.status}:{self.triggered_at.isoformat()}"

    def _transition(self, status: str, **changes) -> None:
        if status not in EXECUTION_TRANSITIONS[self.status]:
            raise InvalidExecutionTransition(f"Cannot move execution {self.id} from {self.status} to {status}.")
        self.status = status
        self.finished_at = timezone.now()
        for field, value in changes.items():
            setattr(self, field, value)
        self.save(update_fields=["status", "finished_at", *changes.keys()])

    def mark_queued(self, *, jobs: list, run_prefix: str) -> None:
        self._transition(
            ExecutionStatus.QUEUED,
            job=jobs[0] if jobs else None,
            jobs_created=len(jobs),
            run_prefix=run_prefix,
            run_status=RunStatus.IN_PROGRESS if jobs else "",
        )

    def mark_failed(self, message: str) -> None:
        self._transition(ExecutionStatus.FAILED, error_message=message)
