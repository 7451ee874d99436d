from django.contrib import admin

from .models import Job, JobResult, WorkerRegistration


@admin.register(WorkerRegistration)
class WorkerRegistrationAdmin(admin.ModelAdmin):
    list_display = ["name", "agent_id", "project", "status", "capacity", "running_jobs", "last_heartbeat"]
    list_filter = ["status", "project"]
    search_fields = ["name", "agent_id"]
    readonly_fields = ["api_key_hash", "api_key_prefix", "running_jobs", "telemetry", "last_heartbeat", "registered_at"]


class JobResultInline(admin.TabularInline):
    model = JobResult
    extra = 0
    fields = ["attempt", "status", "agent", "error_message", "duration_seconds", "created_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    """Jobs change state through the claim protocol; the admin is read-mostly."""

    list_display = ["run_id", "project", "job_type", "status", "priority", "retries", "max_retries", "agent", "created_at"]
    list_filter = ["status", "job_type", "project"]
    search_fields = ["run_id"]
    readonly_fields = ["status", "agent", "assigned_at", "started_at", "completed_at", "retries"]
    inlines = [JobResultInline]
