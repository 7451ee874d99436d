from __future__ import annotations

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import agents.models

_JOB_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("assigned", "Assigned"),
    ("running", "Running"),
    ("completed", "Completed"),
    ("failed", "Failed"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WorkerRegistration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("agent_id", models.CharField(max_length=128, unique=True)),
                ("name", models.CharField(max_length=200)),
                (
                    "status",
                    models.CharField(
                        choices=[("online", "Online"), ("offline", "Offline"), ("busy", "Busy")],
                        default="offline",
                        max_length=16,
                    ),
                ),
                ("capacity", models.PositiveIntegerField(default=1)),
                ("running_jobs", models.PositiveIntegerField(default=0)),
                ("capabilities", models.JSONField(blank=True, default=list)),
                ("telemetry", models.JSONField(blank=True, default=dict)),
                ("api_key_hash", models.CharField(max_length=64, unique=True)),
                ("api_key_prefix", models.CharField(blank=True, max_length=16)),
                ("last_heartbeat", models.DateTimeField(blank=True, null=True)),
                ("registered_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="agents",
                        to="catalog.project",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
                "indexes": [
                    models.Index(fields=["project", "status"], name="agents_work_project_3d8e5f_idx"),
                    models.Index(fields=["last_heartbeat"], name="agents_work_last_he_91c0b2_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("run_id", models.CharField(max_length=64, unique=True)),
                (
                    "job_type",
                    models.CharField(
                        choices=[("automation", "Automation"), ("performance", "Performance")],
                        default="automation",
                        max_length=20,
                    ),
                ),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("status", models.CharField(choices=_JOB_STATUS_CHOICES, default="pending", max_length=16)),
                ("priority", models.IntegerField(default=0)),
                ("retries", models.PositiveIntegerField(default=0)),
                ("max_retries", models.PositiveIntegerField(default=agents.models.default_max_retries)),
                ("error_message", models.TextField(blank=True)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Agent currently holding the job.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="jobs",
                        to="agents.workerregistration",
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="jobs",
                        to="catalog.project",
                    ),
                ),
                (
                    "requested_agent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Only this agent may claim the job when set.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="requested_jobs",
                        to="agents.workerregistration",
                    ),
                ),
                (
                    "test",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="jobs",
                        to="catalog.testdefinition",
                    ),
                ),
            ],
            options={
                "ordering": ["-priority", "created_at", "id"],
                "indexes": [
                    models.Index(fields=["status", "-priority", "created_at"], name="agents_job_status_7a2c19_idx"),
                    models.Index(fields=["project", "status"], name="agents_job_project_c4e6d0_idx"),
                    models.Index(fields=["agent", "status"], name="agents_job_agent_i_58f3b7_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JobResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("attempt", models.PositiveIntegerField(default=1)),
                ("status", models.CharField(choices=_JOB_STATUS_CHOICES, max_length=16)),
                ("summary", models.JSONField(blank=True, default=dict)),
                ("results_log_base64", models.TextField(blank=True)),
                ("report_base64", models.TextField(blank=True)),
                ("error_message", models.TextField(blank=True)),
                ("duration_seconds", models.FloatField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="results",
                        to="agents.workerregistration",
                    ),
                ),
                (
                    "job",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="results",
                        to="agents.job",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
    ]
