from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="AppSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=100, unique=True)),
                ("value", models.JSONField(blank=True, null=True)),
                ("description", models.TextField(blank=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["key"],
            },
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("agent_id", models.CharField(blank=True, max_length=128)),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("scheduled_trigger_executed", "Scheduled trigger executed"),
                            ("trigger_fired", "Trigger fired"),
                            ("agent_registered", "Agent registered"),
                            ("job_claimed", "Job claimed"),
                            ("job_started", "Job started"),
                            ("job_completed", "Job completed"),
                            ("job_failed", "Job failed"),
                            ("job_requeued", "Job requeued"),
                            ("job_cancelled", "Job cancelled"),
                        ],
                        max_length=64,
                    ),
                ),
                ("event_data", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "project",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="activity",
                        to="catalog.project",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["event_type", "-created_at"], name="ops_activit_event_t_1c9d2a_idx"),
                    models.Index(fields=["project", "-created_at"], name="ops_activit_project_5e7b41_idx"),
                ],
            },
        ),
    ]
