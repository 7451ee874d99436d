from __future__ import annotations

from django.urls import reverse
from rest_framework.test import APIClient, APITestCase

from agents.models import AgentStatus, Job, JobStatus
from agents.tests.helpers import make_agent, make_job
from catalog.models import Project
from ops.app_settings import set_setting
from ops.settings_registry import AGENT_POLL_INTERVAL


class AgentApiTestBase(APITestCase):
    def setUp(self):
        self.project = Project.objects.create(name="Shop")
        self.agent, self.raw_key = make_agent(self.project, online=False)
        self.client = APIClient()
        self.client.credentials(HTTP_X_AGENT_KEY=self.raw_key)


class AgentAuthTests(AgentApiTestBase):
    def test_missing_key_is_401(self):
        response = APIClient().get(reverse("agent-job-poll"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response["WWW-Authenticate"], "X-Agent-Key")

    def test_wrong_key_is_401(self):
        client = APIClient()
        client.credentials(HTTP_X_AGENT_KEY="tok_wrong")
        response = client.get(reverse("agent-job-poll"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["message"], "Invalid agent key.")


class RegisterHeartbeatTests(AgentApiTestBase):
    def test_register_marks_agent_online(self):
        response = self.client.post(
            reverse("agent-register"),
            {
                "agent_id": "perf-eu-1",
                "name": "Perf EU",
                "capacity": 3,
                "capabilities": ["performance"],
                "system_info": {"hostname": "perf-eu-1", "cpu_count": 8, "secret": "drop me"},
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.status, AgentStatus.ONLINE)
        self.assertEqual(self.agent.agent_id, "perf-eu-1")
        self.assertEqual(self.agent.capacity, 3)
        self.assertEqual(self.agent.telemetry, {"hostname": "perf-eu-1", "cpu_count": 8})
        self.assertIsNotNone(self.agent.registered_at)

    def test_register_with_taken_identity_conflicts(self):
        make_agent(self.project, name="taken")
        response = self.client.post(reverse("agent-register"), {"agent_id": "taken"}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_heartbeat_reports_derived_load(self):
        """running_jobs comes from the queue, not from what the agent claims."""
        self.client.post(reverse("agent-register"), {}, format="json")
        response = self.client.post(
            reverse("agent-heartbeat"),
            {"running_jobs": 7, "current_capacity": 0, "max_capacity": 1},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"status": AgentStatus.ONLINE, "capacity": 1, "running_jobs": 0})
        self.agent.refresh_from_db()
        self.assertEqual(self.agent.telemetry["reported_running_jobs"], 7)


class JobProtocolApiTests(AgentApiTestBase):
    def setUp(self):
        super().setUp()
        self.client.post(reverse("agent-register"), {}, format="json")

    def test_full_lifecycle(self):
        job = make_job(self.project, "RUN-1")

        polled = self.client.get(reverse("agent-job-poll")).json()["data"]["jobs"]
        self.assertEqual([item["id"] for item in polled], [job.id])
        self.assertIn("test_plan_base64", polled[0]["payload"])

        self.assertEqual(self.client.post(reverse("agent-job-claim", args=[job.id])).status_code, 200)
        self.assertEqual(self.client.get(reverse("agent-job-poll")).json()["data"]["jobs"], [])

        self.assertEqual(self.client.post(reverse("agent-job-start", args=[job.id])).status_code, 200)
        detail = self.client.get(reverse("agent-job-detail", args=[job.id])).json()["data"]
        self.assertEqual(detail["status"], JobStatus.RUNNING)
        self.assertEqual(detail["agent_id"], self.agent.agent_id)

        response = self.client.post(
            reverse("agent-job-result", args=[job.id]),
            {
                "status": "completed",
                "summary": {"total_requests": 3, "error_rate": 0.0},
                "results_log_base64": "dGltZVN0YW1w",
                "report_base64": "IyBSZXBvcnQ=",
                "duration_seconds": 12.5,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        job.refresh_from_db()
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.results.get().report_base64, "IyBSZXBvcnQ=")

    def test_claim_taken_job_is_409(self):
        job = make_job(self.project, "RUN-1")
        rival, rival_key = make_agent(self.project, name="perf-2")
        rival_client = APIClient()
        rival_client.credentials(HTTP_X_AGENT_KEY=rival_key)
        self.assertEqual(rival_client.post(reverse("agent-job-claim", args=[job.id])).status_code, 200)

        response = self.client.post(reverse("agent-job-claim", args=[job.id]))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["status"], "conflict")

    def test_failure_without_message_gets_default(self):
        job = make_job(self.project, "RUN-1", max_retries=0)
        self.client.post(reverse("agent-job-claim", args=[job.id]))
        self.client.post(reverse("agent-job-start", args=[job.id]))

        response = self.client.post(reverse("agent-job-result", args=[job.id]), {"status": "failed"}, format="json")

        self.assertEqual(response.status_code, 200)
        job.refresh_from_db()
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error_message, "Job failed without an error message.")

    def test_report_for_job_held_by_other_agent_is_403(self):
        job = make_job(self.project, "RUN-1")
        rival, rival_key = make_agent(self.project, name="perf-2")
        rival_client = APIClient()
        rival_client.credentials(HTTP_X_AGENT_KEY=rival_key)
        rival_client.post(reverse("agent-job-claim", args=[job.id]))

        response = self.client.post(reverse("agent-job-result", args=[job.id]), {"status": "completed"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(Job.objects.get(pk=job.id).status, JobStatus.ASSIGNED)

    def test_invalid_report_status_is_400(self):
        job = make_job(self.project, "RUN-1")
        response = self.client.post(reverse("agent-job-result", args=[job.id]), {"status": "running"}, format="json")
        self.assertEqual(response.status_code, 400)


class AgentSettingApiTests(AgentApiTestBase):
    def test_default_value_when_unset(self):
        response = self.client.get(reverse("agent-setting", args=[AGENT_POLL_INTERVAL]))
        self.assertEqual(response.json()["data"], {"key": AGENT_POLL_INTERVAL, "value": 10})

    def test_stored_value(self):
        set_setting(key=AGENT_POLL_INTERVAL, value=30)
        response = self.client.get(reverse("agent-setting", args=[AGENT_POLL_INTERVAL]))
        self.assertEqual(response.json()["data"]["value"], 30)

    def test_unknown_key_is_404(self):
        response = self.client.get(reverse("agent-setting", args=["nope"]))
        self.assertEqual(response.status_code, 404)
