from __future__ import annotations

import os
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase

from agent_runtime.errors import AgentApiError

ENV = {
    "TESTOPS_API_BASE_URL": "http://control.test",
    "TESTOPS_AGENT_KEY": "agt_secret",
}


class RunAgentCommandTests(SimpleTestCase):
    def test_missing_credentials_fail_startup(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(CommandError) as ctx:
                call_command("run_agent", stdout=StringIO())
        self.assertIn("TESTOPS_API_BASE_URL", str(ctx.exception))

    @patch("agent_runtime.management.commands.run_agent.Agent")
    def test_rejected_registration_fails_startup(self, agent_cls):
        agent_cls.return_value.register.side_effect = AgentApiError("returned 401: Invalid agent key.", status_code=401)
        with patch.dict(os.environ, ENV, clear=True):
            with self.assertRaises(CommandError) as ctx:
                call_command("run_agent", stdout=StringIO())
        self.assertIn("Registration failed", str(ctx.exception))
        agent_cls.return_value.run.assert_not_called()
        agent_cls.return_value.close.assert_called_once()

    @patch("agent_runtime.management.commands.run_agent.Agent")
    def test_runs_until_stopped(self, agent_cls):
        agent = agent_cls.return_value
        agent.agent_id = "perf-1"
        out = StringIO()
        with patch.dict(os.environ, ENV, clear=True):
            call_command("run_agent", "--name", "cli-agent", "--tool-timeout", "600", stdout=out)

        config = agent_cls.call_args.args[0]
        self.assertEqual(config.name, "cli-agent")
        self.assertEqual(config.tool_timeout, 600)
        agent.register.assert_called_once()
        agent.verify_tool.assert_called_once()
        agent.load_runtime_settings.assert_called_once()
        agent.start_heartbeat.assert_called_once()
        agent.run.assert_called_once()
        self.assertIn("Agent stopped.", out.getvalue())

    @patch("agent_runtime.management.commands.run_agent.Agent")
    def test_options_override_environment(self, agent_cls):
        with patch.dict(os.environ, ENV, clear=True):
            call_command(
                "run_agent",
                "--api-url",
                "https://other.test",
                "--capacity",
                "3",
                "--jmeter-home",
                "/opt/jm",
                stdout=StringIO(),
            )
        config = agent_cls.call_args.args[0]
        self.assertEqual(config.api_base_url, "https://other.test")
        self.assertEqual(config.capacity, 3)
        self.assertEqual(config.jmeter_home, "/opt/jm")
