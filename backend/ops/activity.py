from __future__ import annotations

from typing import Any

from ops.models import ActivityLog


def log_activity(
    *,
    event_type: str,
    project_id: int | None = None,
    agent_id: str = "",
    data: dict[str, Any] | None = None,
) -> ActivityLog:
    """Append one activity/audit row."""
    return ActivityLog.objects.create(
        project_id=project_id,
        agent_id=agent_id or "",
        event_type=event_type,
        event_data=data or {},
    )
