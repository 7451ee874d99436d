from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from catalog.models import TestKind


class AgentStatus(models.TextChoices):
    ONLINE = "online", "Online"
    OFFLINE = "offline", "Offline"
    BUSY = "busy", "Busy"


class WorkerRegistration(models.Model):
    """
    A worker agent allowed to claim jobs for one project.

    Rows are provisioned by a project member (which issues the API key) and
    then kept current by the agent itself through register/heartbeat calls.
    """

    agent_id = models.CharField(max_length=128, unique=True)
    name = models.CharField(max_length=200)
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, related_name="agents")

    status = models.CharField(max_length=16, choices=AgentStatus.choices, default=AgentStatus.OFFLINE)
    capacity = models.PositiveIntegerField(default=1)
    running_jobs = models.PositiveIntegerField(default=0)
    capabilities = models.JSONField(default=list, blank=True)
    telemetry = models.JSONField(default=dict, blank=True)

    api_key_hash = models.CharField(max_length=64, unique=True)
    api_key_prefix = models.CharField(max_length=16, blank=True)

    last_heartbeat = models.DateTimeField(null=True, blank=True)
    registered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]
        indexes = [
            models.Index(fields=["project", "status"], name="agents_work_project_3d8e5f_idx"),
            models.Index(fields=["last_heartbeat"], name="agents_work_last_he_91c0b2_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.agent_id})"

    # DRF treats the authenticated agent as `request.user`.
    is_authenticated = True
    is_anonymous = False
    is_staff = False

    @property
    def available_capacity(self) -> int:
        return max(0, int(self.capacity) - int(self.running_jobs))

    def supports(self, job_type: str) -> bool:
        """Agents that declare no capabilities accept every job type."""
        return not self.capabilities or job_type in self.capabilities


class JobStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ASSIGNED = "assigned", "Assigned"
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


ACTIVE_JOB_STATUSES = (JobStatus.ASSIGNED, JobStatus.RUNNING)
TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

# Every status change goes through this map; PENDING as a target is a re-queue.
JOB_TRANSITIONS: dict[str, frozenset[str]] = {
    JobStatus.PENDING: frozenset({JobStatus.ASSIGNED, JobStatus.CANCELLED}),
    JobStatus.ASSIGNED: frozenset({JobStatus.RUNNING, JobStatus.PENDING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def default_max_retries() -> int:
    return int(getattr(settings, "JOBS_DEFAULT_MAX_RETRIES", 3))


class Job(models.Model):
    project = models.ForeignKey("catalog.Project", on_delete=models.CASCADE, related_name="jobs")
    test = models.ForeignKey(
        "catalog.TestDefinition",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="jobs",
    )
    run_id = models.CharField(max_length=64, unique=True)
    job_type = models.CharField(max_length=20, choices=TestKind.choices, default=TestKind.AUTOMATION)
    payload = models.JSONField(default=dict, blank=True)

    requested_agent = models.ForeignKey(
        WorkerRegistration,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="requested_jobs",
        help_text="Only this agent may claim the job when set.",
    )
    agent = models.ForeignKey(
        WorkerRegistration,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="jobs",
        help_text="Agent currently holding the job.",
    )

    status = models.CharField(max_length=16, choices=JobStatus.choices, default=JobStatus.PENDING)
    priority = models.IntegerField(default=0)
    retries = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=default_max_retries)
    error_message = models.TextField(blank=True)

    assigned_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "created_at", "id"]
        indexes = [
            models.Index(fields=["status", "-priority", "created_at"], name="agents_job_status_7a2c19_idx"),
            models.Index(fields=["project", "status"], name="agents_job_project_c4e6d0_idx"),
            models.Index(fields=["agent", "status"], name="agents_job_agent_i_58f3b7_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.run_id}:{self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def can_transition_to(self, status: str) -> bool:
        return status in JOB_TRANSITIONS[self.status]


class JobResult(models.Model):
    """Outcome reported by an agent for one attempt of a job."""

    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="results")
    agent = models.ForeignKey(
        WorkerRegistration,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="results",
    )
    attempt = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=16, choices=JobStatus.choices)
    summary = models.JSONField(default=dict, blank=True)
    results_log_base64 = models.TextField(blank=True)
    report_base64 = models.TextField(blank=True)
    error_message = models.TextField(blank=True)
    duration_seconds = models.FloatField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.job_id}:{self.attempt}:{self.status}"
