from __future__ import annotations


class AgentRuntimeError(Exception):
    """Base class for worker-side failures."""


class AgentConfigError(AgentRuntimeError):
    pass


class AgentApiError(AgentRuntimeError):
    """The control plane rejected a call or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ToolNotFoundError(AgentRuntimeError):
    pass


class PayloadDecodeError(AgentRuntimeError):
    pass


class ToolExecutionError(AgentRuntimeError):
    pass
