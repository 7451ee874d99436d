from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from .errors import AgentConfigError

DEFAULT_POLL_INTERVAL_SECONDS = 10
DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise AgentConfigError(f"{name} must be an integer, got {raw!r}.") from exc


@dataclass(frozen=True)
class AgentConfig:
    """
    Everything a worker needs at start.

    Values come from environment variables (see `from_env`); the `run_agent`
    command overrides individual fields from its options.
    """

    api_base_url: str
    api_key: str
    agent_id: str | None = None
    name: str | None = None
    capacity: int = 1
    capabilities: tuple[str, ...] = ("performance",)
    work_dir: str | None = None
    jmeter_path: str | None = None
    jmeter_home: str | None = None
    poll_interval: int = DEFAULT_POLL_INTERVAL_SECONDS
    heartbeat_interval: int = DEFAULT_HEARTBEAT_INTERVAL_SECONDS
    tool_timeout: int | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> AgentConfig:
        env = os.environ if environ is None else environ
        values = {
            "api_base_url": (env.get("TESTOPS_API_BASE_URL") or "").strip(),
            "api_key": (env.get("TESTOPS_AGENT_KEY") or "").strip(),
            "agent_id": (env.get("TESTOPS_AGENT_ID") or "").strip() or None,
            "name": (env.get("TESTOPS_AGENT_NAME") or "").strip() or None,
            "capacity": _env_int(env, "TESTOPS_AGENT_CAPACITY", 1),
            "work_dir": (env.get("TESTOPS_AGENT_WORK_DIR") or "").strip() or None,
            "jmeter_path": (env.get("JMETER_PATH") or "").strip() or None,
            "jmeter_home": (env.get("JMETER_HOME") or "").strip() or None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        if not self.api_base_url:
            raise AgentConfigError("TESTOPS_API_BASE_URL (or --api-url) is required.")
        if not self.api_base_url.startswith(("http://", "https://")):
            raise AgentConfigError("The API base URL must start with http:// or https://.")
        if not self.api_key:
            raise AgentConfigError("TESTOPS_AGENT_KEY (or --agent-key) is required.")
        if self.capacity < 1:
            raise AgentConfigError("Agent capacity must be at least 1.")
        if self.tool_timeout is not None and self.tool_timeout <= 0:
            raise AgentConfigError("The tool timeout must be a positive number of seconds.")

    def with_intervals(self, *, poll_interval: int | None = None, heartbeat_interval: int | None = None) -> AgentConfig:
        return replace(
            self,
            poll_interval=poll_interval or self.poll_interval,
            heartbeat_interval=heartbeat_interval or self.heartbeat_interval,
        )
