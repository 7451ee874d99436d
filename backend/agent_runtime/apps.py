from __future__ import annotations

from django.apps import AppConfig


class AgentRuntimeConfig(AppConfig):
    name = "agent_runtime"
    verbose_name = "Worker Agent Runtime"
