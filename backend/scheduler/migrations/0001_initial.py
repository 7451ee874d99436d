from __future__ import annotations

import datetime

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        ("agents", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Trigger",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                (
                    "trigger_type",
                    models.CharField(
                        choices=[("schedule", "Schedule"), ("deployment", "Deployment")],
                        default="schedule",
                        max_length=20,
                    ),
                ),
                (
                    "target_type",
                    models.CharField(
                        choices=[("single_test", "Single test"), ("suite", "Suite")],
                        default="single_test",
                        max_length=20,
                    ),
                ),
                ("target_id", models.PositiveBigIntegerField()),
                ("priority", models.IntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "schedule_type",
                    models.CharField(
                        choices=[("hourly", "Hourly"), ("daily", "Daily"), ("weekly", "Weekly")],
                        default="daily",
                        max_length=16,
                    ),
                ),
                ("schedule_time", models.TimeField(default=datetime.time(9, 0))),
                ("schedule_day_of_week", models.PositiveSmallIntegerField(default=1)),
                ("schedule_timezone", models.CharField(default="UTC", max_length=64)),
                (
                    "deployment_environment",
                    models.CharField(
                        blank=True,
                        choices=[("QA", "QA"), ("UAT", "UAT"), ("Staging", "Staging"), ("Production", "Production")],
                        max_length=20,
                    ),
                ),
                ("webhook_secret", models.CharField(blank=True, max_length=128)),
                ("next_fire_at", models.DateTimeField(blank=True, null=True)),
                ("last_fired_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Pin created jobs to this agent; any agent in the project may claim them when empty.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="triggers",
                        to="agents.workerregistration",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="triggers",
                        to="catalog.project",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
                "indexes": [
                    models.Index(fields=["is_active", "next_fire_at"], name="scheduler_t_is_acti_0f3c2e_idx"),
                    models.Index(fields=["project", "trigger_type"], name="scheduler_t_project_a81d57_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TriggerExecution",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "source",
                    models.CharField(
                        choices=[("schedule", "Schedule"), ("external_event", "External event"), ("manual", "Manual")],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("queued", "Queued"), ("failed", "Failed")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("triggered_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True)),
                ("run_prefix", models.CharField(blank=True, max_length=64)),
                ("jobs_created", models.PositiveIntegerField(default=0)),
                ("event_payload", models.JSONField(blank=True, default=dict)),
                (
                    "job",
                    models.ForeignKey(
                        blank=True,
                        help_text="The created job, or the first of several for a suite.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="agents.job",
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="trigger_executions",
                        to="catalog.project",
                    ),
                ),
                (
                    "trigger",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="executions",
                        to="scheduler.trigger",
                    ),
                ),
            ],
            options={
                "ordering": ["-triggered_at", "-id"],
                "indexes": [
                    models.Index(fields=["trigger", "-triggered_at"], name="scheduler_t_trigger_4be0d9_idx"),
                    models.Index(fields=["status", "-triggered_at"], name="scheduler_t_status_93e1a4_idx"),
                ],
            },
        ),
    ]
