from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from catalog.models import Project
from config.domain_exceptions import ConflictError
from ops.activity import log_activity
from ops.models import ActivityEventType

from .models import AgentStatus, WorkerRegistration
from .queue import release_held_jobs, sync_agent_load

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "tok_"
_TELEMETRY_KEYS = ("hostname", "platform", "os_release", "python_version", "cpu_count", "load_average", "memory")
ORPHANED_JOB_MESSAGE = "Agent restarted while holding the job."


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def provision_agent(
    *,
    project: Project,
    name: str,
    agent_id: str | None = None,
    capacity: int = 1,
    capabilities: list[str] | None = None,
) -> tuple[WorkerRegistration, str]:
    """Create an agent identity; the raw API key is returned once and never stored."""
    raw_key = generate_api_key()
    try:
        with transaction.atomic():
            agent = WorkerRegistration.objects.create(
                project=project,
                name=name,
                agent_id=agent_id or f"agent-{secrets.token_hex(6)}",
                capacity=max(1, int(capacity)),
                capabilities=list(capabilities or []),
                api_key_hash=hash_api_key(raw_key),
                api_key_prefix=raw_key[: len(API_KEY_PREFIX) + 6],
            )
    except IntegrityError as exc:
        raise ConflictError("An agent with this identity already exists.") from exc
    return agent, raw_key


def _clean_telemetry(raw) -> dict:
    if not isinstance(raw, dict):
        return {}
    return {key: raw[key] for key in _TELEMETRY_KEYS if key in raw}


def register_agent(
    agent: WorkerRegistration,
    *,
    agent_id: str | None = None,
    name: str | None = None,
    capacity: int | None = None,
    capabilities: list[str] | None = None,
    telemetry: dict | None = None,
) -> WorkerRegistration:
    """Record the identity, capacity and capabilities an agent announces on start."""
    now = timezone.now()
    if agent_id and agent_id != agent.agent_id:
        if WorkerRegistration.objects.filter(agent_id=agent_id).exclude(pk=agent.pk).exists():
            raise ConflictError(f"Agent identity '{agent_id}' is already registered.")
        agent.agent_id = agent_id
    if name:
        agent.name = name
    if capacity is not None:
        agent.capacity = max(1, int(capacity))
    if capabilities is not None:
        agent.capabilities = list(capabilities)
    agent.telemetry = _clean_telemetry(telemetry)
    agent.status = AgentStatus.ONLINE
    agent.registered_at = now
    agent.last_heartbeat = now

    with transaction.atomic():
        try:
            agent.save()
        except IntegrityError as exc:
            raise ConflictError(f"Agent identity '{agent.agent_id}' is already registered.") from exc
        sync_agent_load(agent)

    release_held_jobs(agent, reason=ORPHANED_JOB_MESSAGE)

    logger.info("Agent %s registered (capacity=%d)", agent.agent_id, agent.capacity)
    log_activity(
        event_type=ActivityEventType.AGENT_REGISTERED,
        project_id=agent.project_id,
        agent_id=agent.agent_id,
        data={
            "name": agent.name,
            "capacity": agent.capacity,
            "capabilities": agent.capabilities,
        },
    )
    return agent


def record_heartbeat(
    agent: WorkerRegistration,
    *,
    max_capacity: int | None = None,
    current_capacity: int | None = None,
    running_jobs: int | None = None,
    telemetry: dict | None = None,
) -> WorkerRegistration:
    """
    Mark the agent alive and store what it reported.

    `running_jobs` stays derived from the queue; the agent's own counters are
    kept in telemetry for diagnostics.
    """
    reported = _clean_telemetry(telemetry)
    reported["reported_running_jobs"] = running_jobs
    reported["reported_available_capacity"] = current_capacity

    agent.last_heartbeat = timezone.now()
    agent.telemetry = reported
    if max_capacity is not None and int(max_capacity) > 0:
        agent.capacity = int(max_capacity)
    if agent.status == AgentStatus.OFFLINE:
        agent.status = AgentStatus.ONLINE
    agent.save(update_fields=["last_heartbeat", "telemetry", "capacity", "status", "updated_at"])
    return sync_agent_load(agent)


def stale_cutoff(now: datetime | None = None) -> datetime:
    stale_after = int(getattr(settings, "AGENTS_STALE_AFTER_SECONDS", 300))
    return (now or timezone.now()) - timedelta(seconds=stale_after)


def mark_stale_agents_offline(now: datetime | None = None) -> int:
    """Flag agents whose last heartbeat is older than the stale threshold as offline."""
    cutoff = stale_cutoff(now)
    count = (
        WorkerRegistration.objects.exclude(status=AgentStatus.OFFLINE)
        .filter(last_heartbeat__lt=cutoff)
        .update(status=AgentStatus.OFFLINE, updated_at=timezone.now())
    )
    if count:
        logger.warning("Marked %d stale agents offline", count)
    return count
