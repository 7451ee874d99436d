from __future__ import annotations

from datetime import datetime, time
from datetime import timezone as dt_timezone
from unittest.mock import patch

from django.test import TestCase

from catalog.models import Project, TestDefinition
from scheduler.models import ExecutionSource, ExecutionStatus, Trigger, TriggerExecution, TriggerType
from scheduler.errors import InvalidExecutionTransition
from scheduler.recurrence import ScheduleType

NOW = datetime(2024, 1, 1, 8, 0, tzinfo=dt_timezone.utc)


class TriggerNextFireTests(TestCase):
    def setUp(self):
        self.project = Project.objects.create(name="Shop")
        self.test = TestDefinition.objects.create(project=self.project, name="Smoke")

    def _create(self, **overrides) -> Trigger:
        fields = {
            "project": self.project,
            "name": "Nightly smoke",
            "target_id": self.test.id,
            "schedule_type": ScheduleType.DAILY,
            "schedule_time": time(9, 0),
        }
        fields.update(overrides)
        with patch("django.utils.timezone.now", return_value=NOW):
            return Trigger.objects.create(**fields)

    def test_create_computes_next_fire_at(self):
        """A new active schedule trigger gets its first fire time on insert."""
        trigger = self._create()
        self.assertEqual(trigger.next_fire_at, datetime(2024, 1, 1, 9, 0, tzinfo=dt_timezone.utc))

    def test_inactive_trigger_has_no_next_fire_at(self):
        trigger = self._create(is_active=False)
        self.assertIsNone(trigger.next_fire_at)

    def test_deployment_trigger_is_not_recurring(self):
        trigger = self._create(trigger_type=TriggerType.DEPLOYMENT, deployment_environment="QA")
        self.assertIsNone(trigger.next_fire_at)

    def test_schedule_change_recomputes(self):
        """Switching to a weekly Wednesday slot moves the next fire time."""
        trigger = Trigger.objects.get(pk=self._create().pk)
        trigger.schedule_type = ScheduleType.WEEKLY
        trigger.schedule_day_of_week = 3
        with patch("django.utils.timezone.now", return_value=NOW):
            trigger.save()
        trigger.refresh_from_db()
        self.assertEqual(trigger.next_fire_at, datetime(2024, 1, 3, 9, 0, tzinfo=dt_timezone.utc))

    def test_deactivate_and_reactivate(self):
        trigger = Trigger.objects.get(pk=self._create().pk)
        trigger.is_active = False
        trigger.save(update_fields=["is_active"])
        trigger.refresh_from_db()
        self.assertIsNone(trigger.next_fire_at)

        trigger.is_active = True
        with patch("django.utils.timezone.now", return_value=NOW):
            trigger.save(update_fields=["is_active"])
        trigger.refresh_from_db()
        self.assertEqual(trigger.next_fire_at, datetime(2024, 1, 1, 9, 0, tzinfo=dt_timezone.utc))

    def test_unrelated_update_keeps_next_fire_at(self):
        """Renaming a trigger does not move its schedule."""
        created = self._create()
        pinned = datetime(2030, 6, 1, 9, 0, tzinfo=dt_timezone.utc)
        Trigger.objects.filter(pk=created.pk).update(next_fire_at=pinned)

        trigger = Trigger.objects.get(pk=created.pk)
        trigger.name = "Renamed"
        trigger.save()
        trigger.refresh_from_db()
        self.assertEqual(trigger.next_fire_at, pinned)

    def test_due_excludes_future_inactive_and_deployment(self):
        due = self._create(name="due")
        self._create(name="inactive", is_active=False)
        self._create(name="deploy", trigger_type=TriggerType.DEPLOYMENT, deployment_environment="QA")
        later = self._create(name="later", schedule_time=time(10, 0))

        at = datetime(2024, 1, 1, 9, 30, tzinfo=dt_timezone.utc)
        self.assertEqual(list(Trigger.objects.due(at)), [due])
        self.assertNotIn(later, Trigger.objects.due(at))


class TriggerExecutionTransitionTests(TestCase):
    def setUp(self):
        project = Project.objects.create(name="Shop")
        test = TestDefinition.objects.create(project=project, name="Smoke")
        trigger = Trigger.objects.create(project=project, name="t", target_id=test.id)
        self.execution = TriggerExecution.objects.create(
            trigger=trigger,
            project=project,
            source=ExecutionSource.MANUAL,
        )

    def test_pending_to_failed_sets_finished_at(self):
        self.execution.mark_failed("boom")
        self.execution.refresh_from_db()
        self.assertEqual(self.execution.status, ExecutionStatus.FAILED)
        self.assertEqual(self.execution.error_message, "boom")
        self.assertIsNotNone(self.execution.finished_at)

    def test_terminal_execution_cannot_change(self):
        """A failed execution is never re-queued."""
        self.execution.mark_failed("boom")
        with self.assertRaises(InvalidExecutionTransition):
            self.execution.mark_queued(jobs=[], run_prefix="SCHED-X")
