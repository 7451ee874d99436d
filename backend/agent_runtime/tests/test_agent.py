from __future__ import annotations

from unittest.mock import Mock, patch

from django.test import SimpleTestCase

from agent_runtime.agent import Agent, system_info
from agent_runtime.client import AgentApiClient
from agent_runtime.config import AgentConfig
from agent_runtime.errors import AgentApiError, ToolNotFoundError
from agent_runtime.executor import ExecutionResult, JobExecutor

JOB = {"id": 5, "run_id": "SCHED-ABC", "status": "assigned", "agent_id": "perf-1", "payload": {}}


class AgentTestBase(SimpleTestCase):
    def setUp(self):
        self.config = AgentConfig(api_base_url="http://control.test", api_key="k", agent_id="perf-1")
        self.client = Mock(spec=AgentApiClient)
        self.client.start.return_value = {**JOB, "status": "running"}
        self.client.get_job.return_value = {**JOB, "status": "running"}
        self.executor = Mock(spec=JobExecutor)
        self.executor.execute.return_value = ExecutionResult(status="completed", summary={"total_requests": 1})
        self.agent = Agent(self.config, client=self.client, executor=self.executor)


class StartupTests(AgentTestBase):
    def test_register_adopts_server_identity(self):
        self.client.register.return_value = {"agent_id": "perf-1-server", "name": "perf", "capacity": 1}
        self.agent.register()
        self.assertEqual(self.agent.agent_id, "perf-1-server")
        kwargs = self.client.register.call_args.kwargs
        self.assertEqual(kwargs["capabilities"], ["performance"])
        self.assertIn("hostname", kwargs["system_info"])

    def test_register_failure_propagates(self):
        self.client.register.side_effect = AgentApiError("rejected", status_code=401)
        with self.assertRaises(AgentApiError):
            self.agent.register()

    def test_runtime_settings_accept_wrapped_values(self):
        self.client.get_setting.side_effect = lambda key: {"value": 15} if "poll" in key else 90
        self.agent.load_runtime_settings()
        self.assertEqual(self.agent.config.poll_interval, 15)
        self.assertEqual(self.agent.config.heartbeat_interval, 90)

    def test_runtime_settings_fall_back_on_errors(self):
        self.client.get_setting.side_effect = AgentApiError("down")
        self.agent.load_runtime_settings()
        self.assertEqual(self.agent.config.poll_interval, 10)
        self.assertEqual(self.agent.config.heartbeat_interval, 60)

    def test_missing_tool_is_logged_not_fatal(self):
        with patch("agent_runtime.agent.locate_jmeter", side_effect=ToolNotFoundError("JMeter not found.")):
            with self.assertLogs("agent_runtime.agent", level="WARNING"):
                self.assertIsNone(self.agent.verify_tool())

    def test_system_info_keys(self):
        self.assertTrue({"hostname", "platform", "python_version", "cpu_count"} <= set(system_info()))


class HeartbeatTests(AgentTestBase):
    def test_reports_available_capacity(self):
        self.assertTrue(self.agent.send_heartbeat())
        self.client.heartbeat.assert_called_once()
        kwargs = self.client.heartbeat.call_args.kwargs
        self.assertEqual(kwargs["current_capacity"], 1)
        self.assertEqual(kwargs["max_capacity"], 1)
        self.assertEqual(kwargs["running_jobs"], 0)

    def test_failure_is_not_fatal(self):
        self.client.heartbeat.side_effect = AgentApiError("timeout")
        self.assertFalse(self.agent.send_heartbeat())


class PollTests(AgentTestBase):
    def test_at_capacity_does_not_poll(self):
        """A worker already running its one job never asks for another."""
        self.agent._running_jobs = 1
        self.assertIsNone(self.agent.poll_once())
        self.client.poll.assert_not_called()

    def test_effective_capacity_is_one_regardless_of_declared(self):
        agent = Agent(
            AgentConfig(api_base_url="http://control.test", api_key="k", capacity=4),
            client=self.client,
            executor=self.executor,
        )
        self.assertEqual(agent.effective_capacity, 1)
        agent._running_jobs = 1
        self.assertFalse(agent.has_free_capacity())

    def test_claimed_job_runs_and_reports_once(self):
        self.client.poll.return_value = [{"id": 5}]
        self.client.claim.return_value = JOB

        self.assertEqual(self.agent.poll_once(), JOB)
        self.agent.wait_for_jobs(timeout=5)

        self.client.start.assert_called_once_with(5)
        self.executor.execute.assert_called_once()
        self.client.report.assert_called_once()
        job_id, payload = self.client.report.call_args.args
        self.assertEqual(job_id, 5)
        self.assertEqual(payload["status"], "completed")
        self.assertEqual(self.agent.running_jobs, 0)

    def test_lost_claim_is_discarded(self):
        self.client.poll.return_value = [{"id": 5}]
        self.client.claim.return_value = None

        self.assertIsNone(self.agent.poll_once())
        self.executor.execute.assert_not_called()
        self.assertEqual(self.agent.running_jobs, 0)

    def test_poll_failure_is_not_fatal(self):
        self.client.poll.side_effect = AgentApiError("connection refused")
        self.assertIsNone(self.agent.poll_once())

    def test_stop_ends_run_loop(self):
        self.client.poll.return_value = []
        self.agent.stop()
        self.agent.run()
        self.client.poll.assert_not_called()


class ProcessJobTests(AgentTestBase):
    def setUp(self):
        super().setUp()
        self.agent._running_jobs = 1

    def test_cancelled_job_is_not_reported(self):
        """A result for a job the agent no longer holds is dropped."""
        self.client.get_job.return_value = {**JOB, "status": "cancelled"}
        self.agent.process_job(JOB)
        self.client.report.assert_not_called()
        self.assertEqual(self.agent.running_jobs, 0)

    def test_job_held_by_another_agent_is_not_reported(self):
        self.client.get_job.return_value = {**JOB, "status": "running", "agent_id": "perf-2"}
        self.agent.process_job(JOB)
        self.client.report.assert_not_called()

    def test_lost_job_on_start_is_abandoned(self):
        self.client.start.side_effect = AgentApiError("conflict", status_code=409)
        self.agent.process_job(JOB)
        self.executor.execute.assert_not_called()
        self.client.report.assert_not_called()
        self.assertEqual(self.agent.running_jobs, 0)

    def test_transient_start_failure_reports_failed(self):
        """A network error on start hands the job back through a failed report."""
        self.client.start.side_effect = AgentApiError("POST /api/agent/jobs/5/start/ failed: connection reset")
        self.client.get_job.return_value = JOB

        self.agent.process_job(JOB)

        self.executor.execute.assert_not_called()
        self.client.report.assert_called_once()
        job_id, payload = self.client.report.call_args.args
        self.assertEqual(job_id, 5)
        self.assertEqual(payload["status"], "failed")
        self.assertIn("connection reset", payload["error_message"])
        self.assertEqual(self.agent.running_jobs, 0)

    def test_unexpected_error_still_releases_capacity(self):
        self.executor.execute.side_effect = RuntimeError("boom")
        with self.assertLogs("agent_runtime.agent", level="ERROR"):
            self.agent.process_job(JOB)
        self.assertEqual(self.agent.running_jobs, 0)

    def test_report_failure_is_not_retried(self):
        self.client.report.side_effect = AgentApiError("bad gateway", status_code=502)
        self.agent.process_job(JOB)
        self.assertEqual(self.client.report.call_count, 1)
        self.assertEqual(self.agent.running_jobs, 0)
