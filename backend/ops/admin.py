from django.contrib import admin

from .models import ActivityLog, AppSetting


@admin.register(AppSetting)
class AppSettingAdmin(admin.ModelAdmin):
    list_display = ["key", "value", "updated_at"]
    search_fields = ["key"]
    ordering = ["key"]


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ["created_at", "event_type", "project", "agent_id"]
    list_filter = ["event_type", "created_at"]
    search_fields = ["agent_id"]
    readonly_fields = ["project", "agent_id", "event_type", "event_data", "created_at"]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        """Activity is recorded by the system, not by hand."""
        return False

    def has_change_permission(self, request, obj=None):
        return False
