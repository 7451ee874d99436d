from __future__ import annotations

from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from agents.lifecycle import ORPHANED_JOB_MESSAGE, mark_stale_agents_offline, record_heartbeat, register_agent
from agents.models import AgentStatus, JobResult, JobStatus, WorkerRegistration
from agents.queue import claim_job, peek_next_job, start_job
from agents.tests.helpers import make_agent, make_job
from catalog.models import Project


class HeartbeatTests(TestCase):
    def setUp(self):
        self.project = Project.objects.create(name="Shop")
        self.agent, _ = make_agent(self.project, capacity=1, online=False)

    def test_heartbeat_brings_offline_agent_online(self):
        agent = record_heartbeat(self.agent)
        self.assertEqual(agent.status, AgentStatus.ONLINE)
        self.assertIsNotNone(agent.last_heartbeat)

    def test_running_jobs_never_exceeds_capacity(self):
        """Shrinking capacity below held jobs clamps running_jobs and marks the agent busy."""
        self.agent.capacity = 2
        self.agent.save(update_fields=["capacity"])
        claim_job(self.agent, make_job(self.project, "RUN-1").id)
        claim_job(self.agent, make_job(self.project, "RUN-2").id)

        agent = record_heartbeat(self.agent, max_capacity=1)

        self.assertEqual(agent.capacity, 1)
        self.assertEqual(agent.running_jobs, 1)
        self.assertEqual(agent.status, AgentStatus.BUSY)


class RegisterAgentTests(TestCase):
    def setUp(self):
        self.project = Project.objects.create(name="Shop")
        self.agent, _ = make_agent(self.project, capacity=2)

    def test_restart_requeues_jobs_left_running(self):
        """A worker that crashed mid-run gets its jobs back in the queue when it re-registers."""
        running = make_job(self.project, "RUN-1")
        claim_job(self.agent, running.id)
        start_job(self.agent, running.id)
        assigned = make_job(self.project, "RUN-2")
        claim_job(self.agent, assigned.id)

        agent = register_agent(self.agent, capacity=2)

        for job in (running, assigned):
            job.refresh_from_db()
            self.assertEqual(job.status, JobStatus.PENDING)
            self.assertEqual(job.retries, 1)
            self.assertIsNone(job.agent_id)
            self.assertIsNone(job.started_at)
            self.assertEqual(job.error_message, ORPHANED_JOB_MESSAGE)
        self.assertEqual(JobResult.objects.filter(status=JobStatus.FAILED).count(), 2)
        self.assertEqual(agent.running_jobs, 0)
        self.assertEqual(peek_next_job(agent).id, running.id)

    def test_restart_with_no_retries_left_fails_the_job(self):
        job = make_job(self.project, "RUN-1", max_retries=1)
        claim_job(self.agent, job.id)
        start_job(self.agent, job.id)

        register_agent(self.agent)

        job.refresh_from_db()
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIsNotNone(job.completed_at)

    def test_restart_leaves_other_agents_jobs_alone(self):
        other, _ = make_agent(self.project, name="perf-2")
        job = make_job(self.project, "RUN-1")
        claim_job(other, job.id)

        register_agent(self.agent)

        job.refresh_from_db()
        self.assertEqual(job.status, JobStatus.ASSIGNED)
        self.assertEqual(job.agent_id, other.pk)


@override_settings(AGENTS_STALE_AFTER_SECONDS=120)
class StaleAgentTests(TestCase):
    def setUp(self):
        self.project = Project.objects.create(name="Shop")
        self.fresh, _ = make_agent(self.project, name="fresh")
        self.stale, _ = make_agent(self.project, name="stale")
        now = timezone.now()
        WorkerRegistration.objects.filter(pk=self.fresh.pk).update(last_heartbeat=now)
        WorkerRegistration.objects.filter(pk=self.stale.pk).update(last_heartbeat=now - timedelta(minutes=5))

    def test_only_stale_agents_go_offline(self):
        self.assertEqual(mark_stale_agents_offline(), 1)
        self.assertEqual(WorkerRegistration.objects.get(pk=self.stale.pk).status, AgentStatus.OFFLINE)
        self.assertEqual(WorkerRegistration.objects.get(pk=self.fresh.pk).status, AgentStatus.ONLINE)

    def test_command(self):
        out = StringIO()
        call_command("mark_stale_agents", stdout=out)
        self.assertIn("Marked 1 agent(s) offline", out.getvalue())

        out = StringIO()
        call_command("mark_stale_agents", stdout=out)
        self.assertIn("All agents are current", out.getvalue())
