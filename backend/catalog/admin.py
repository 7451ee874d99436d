from django.contrib import admin

from .models import Project, SuiteMembership, TestDefinition, TestSuite


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ["name", "created_at"]
    search_fields = ["name"]
    filter_horizontal = ["members"]


@admin.register(TestDefinition)
class TestDefinitionAdmin(admin.ModelAdmin):
    list_display = ["name", "project", "kind", "updated_at"]
    list_filter = ["kind", "project"]
    search_fields = ["name"]


class SuiteMembershipInline(admin.TabularInline):
    model = SuiteMembership
    extra = 0
    ordering = ["execution_order"]


@admin.register(TestSuite)
class TestSuiteAdmin(admin.ModelAdmin):
    """Suites are edited with their ordered members inline."""

    list_display = ["name", "project", "created_at"]
    list_filter = ["project"]
    search_fields = ["name"]
    inlines = [SuiteMembershipInline]
