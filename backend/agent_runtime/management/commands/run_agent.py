"""Run a performance worker agent against the control-plane API until interrupted."""

from __future__ import annotations

import logging
import signal

from django.core.management.base import BaseCommand, CommandError

from agent_runtime.agent import Agent
from agent_runtime.config import AgentConfig
from agent_runtime.errors import AgentApiError, AgentConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Command(BaseCommand):
    help = "Register this host as a worker agent, then poll for and execute performance jobs"

    def add_arguments(self, parser) -> None:
        parser.add_argument("--api-url", help="Control-plane base URL (env: TESTOPS_API_BASE_URL)")
        parser.add_argument("--agent-key", help="Agent API key (env: TESTOPS_AGENT_KEY)")
        parser.add_argument("--agent-id", help="Identity to register under (env: TESTOPS_AGENT_ID)")
        parser.add_argument("--name", help="Display name (env: TESTOPS_AGENT_NAME)")
        parser.add_argument("--capacity", type=int, help="Declared capacity (env: TESTOPS_AGENT_CAPACITY)")
        parser.add_argument("--work-dir", help="Parent of per-job scratch directories (env: TESTOPS_AGENT_WORK_DIR)")
        parser.add_argument("--jmeter-path", help="JMeter executable (env: JMETER_PATH)")
        parser.add_argument("--jmeter-home", help="JMeter install directory (env: JMETER_HOME)")
        parser.add_argument(
            "--tool-timeout",
            type=int,
            help="Kill a JMeter run after this many seconds (default: no limit)",
        )
        parser.add_argument(
            "--log-level",
            choices=LOG_LEVELS,
            default="INFO",
            help="Log level for the agent runtime (default: INFO)",
        )

    def handle(self, *args, **options) -> None:
        logging.getLogger("agent_runtime").setLevel(options["log_level"])

        try:
            config = AgentConfig.from_env(
                api_base_url=options.get("api_url"),
                api_key=options.get("agent_key"),
                agent_id=options.get("agent_id"),
                name=options.get("name"),
                capacity=options.get("capacity"),
                work_dir=options.get("work_dir"),
                jmeter_path=options.get("jmeter_path"),
                jmeter_home=options.get("jmeter_home"),
                tool_timeout=options.get("tool_timeout"),
            )
        except AgentConfigError as exc:
            raise CommandError(str(exc)) from exc

        agent = Agent(config)
        try:
            try:
                agent.register()
            except AgentApiError as exc:
                raise CommandError(f"Registration failed: {exc}") from exc

            agent.verify_tool()
            agent.load_runtime_settings()
            agent.start_heartbeat()

            previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}

            def _request_stop(signum, frame) -> None:
                agent.stop()

            for sig in previous:
                signal.signal(sig, _request_stop)
            try:
                self.stdout.write(f"Agent {agent.agent_id} running; Ctrl+C to stop.")
                agent.run()
            finally:
                for sig, handler in previous.items():
                    signal.signal(sig, handler)
        finally:
            agent.stop()
            agent.close()

        self.stdout.write(self.style.SUCCESS("Agent stopped."))
