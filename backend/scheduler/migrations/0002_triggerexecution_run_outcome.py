from __future__ import annotations

from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("scheduler", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="triggerexecution",
            name="run_status",
            field=models.CharField(
                blank=True,
                choices=[("in_progress", "In progress"), ("passed", "Passed"), ("failed", "Failed")],
                max_length=16,
            ),
        ),
        migrations.AddField(
            model_name="triggerexecution",
            name="tests_passed",
            field=models.PositiveIntegerField(default=0),
        ),
        migrations.AddField(
            model_name="triggerexecution",
            name="tests_failed",
            field=models.PositiveIntegerField(default=0),
        ),
        migrations.AddField(
            model_name="triggerexecution",
            name="run_results",
            field=models.JSONField(blank=True, default=list),
        ),
        migrations.AddField(
            model_name="triggerexecution",
            name="run_finished_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
