from django.contrib import admin

from .models import Trigger, TriggerExecution


@admin.register(Trigger)
class TriggerAdmin(admin.ModelAdmin):
    list_display = ["name", "project", "trigger_type", "schedule_type", "is_active", "next_fire_at", "last_fired_at"]
    list_filter = ["trigger_type", "schedule_type", "is_active", "project"]
    search_fields = ["name"]
    readonly_fields = ["next_fire_at", "last_fired_at", "created_at", "updated_at"]


@admin.register(TriggerExecution)
class TriggerExecutionAdmin(admin.ModelAdmin):
    list_display = [
        "trigger",
        "source",
        "status",
        "jobs_created",
        "run_status",
        "tests_passed",
        "tests_failed",
        "triggered_at",
    ]
    list_filter = ["status", "run_status", "source"]
    search_fields = ["run_prefix", "trigger__name"]
