from __future__ import annotations

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission

from .lifecycle import hash_api_key
from .models import WorkerRegistration

AGENT_KEY_HEADER = "X-Agent-Key"


class AgentKeyAuthentication(BaseAuthentication):
    """Authenticate worker agents by the API key issued at provisioning."""

    def authenticate(self, request):
        raw_key = (request.META.get("HTTP_X_AGENT_KEY") or "").strip()
        if not raw_key:
            return None
        agent = (
            WorkerRegistration.objects.select_related("project")
            .filter(api_key_hash=hash_api_key(raw_key))
            .first()
        )
        if agent is None:
            raise AuthenticationFailed("Invalid agent key.")
        return agent, None

    def authenticate_header(self, request) -> str:
        return AGENT_KEY_HEADER


class IsAgent(BasePermission):
    message = "Agent credentials required."

    def has_permission(self, request, view) -> bool:
        return isinstance(request.user, WorkerRegistration)
