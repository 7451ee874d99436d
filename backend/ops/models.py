from __future__ import annotations

from django.db import models


class SettingValueType(models.TextChoices):
    INTEGER = "integer", "Integer"
    BOOLEAN = "boolean", "Boolean"
    STRING = "string", "String"
    JSON = "json", "JSON"


class AppSetting(models.Model):
    """Runtime-tunable value keyed by a well-known name (see `ops.settings_registry`)."""

    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(null=True, blank=True)
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self) -> str:  # pragma: no cover
        return self.key


class ActivityEventType(models.TextChoices):
    SCHEDULED_TRIGGER_EXECUTED = "scheduled_trigger_executed", "Scheduled trigger executed"
    TRIGGER_FIRED = "trigger_fired", "Trigger fired"
    AGENT_REGISTERED = "agent_registered", "Agent registered"
    JOB_CLAIMED = "job_claimed", "Job claimed"
    JOB_STARTED = "job_started", "Job started"
    JOB_COMPLETED = "job_completed", "Job completed"
    JOB_FAILED = "job_failed", "Job failed"
    JOB_REQUEUED = "job_requeued", "Job requeued"
    JOB_CANCELLED = "job_cancelled", "Job cancelled"


class ActivityLog(models.Model):
    """Append-only audit trail for dispatch and queue activity."""

    project = models.ForeignKey(
        "catalog.Project",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity",
    )
    agent_id = models.CharField(max_length=128, blank=True)
    event_type = models.CharField(max_length=64, choices=ActivityEventType.choices)
    event_data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["event_type", "-created_at"], name="ops_activit_event_t_1c9d2a_idx"),
            models.Index(fields=["project", "-created_at"], name="ops_activit_project_5e7b41_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.event_type}:{self.created_at.isoformat()}"
