from __future__ import annotations

from dataclasses import dataclass

from ops.models import SettingValueType


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    name: str
    value_type: str
    default: object
    description: str = ""


AGENT_POLL_INTERVAL = "agent_poll_interval_seconds"
AGENT_HEARTBEAT_INTERVAL = "agent_heartbeat_interval_seconds"
DISPATCH_ENABLED = "scheduled_triggers_dispatch_enabled"
EXECUTION_RETENTION_DAYS = "trigger_executions.retention_days"


APP_SETTINGS: list[SettingDefinition] = [
    SettingDefinition(
        key=AGENT_POLL_INTERVAL,
        name="Agent poll interval",
        value_type=SettingValueType.INTEGER,
        default=10,
        description="Seconds between job polls issued by each worker agent.",
    ),
    SettingDefinition(
        key=AGENT_HEARTBEAT_INTERVAL,
        name="Agent heartbeat interval",
        value_type=SettingValueType.INTEGER,
        default=60,
        description="Seconds between capacity/telemetry heartbeats sent by each worker agent.",
    ),
    SettingDefinition(
        key=DISPATCH_ENABLED,
        name="Scheduled trigger dispatch",
        value_type=SettingValueType.BOOLEAN,
        default=True,
        description="If false, dispatch ticks return without firing any due trigger.",
    ),
    SettingDefinition(
        key=EXECUTION_RETENTION_DAYS,
        name="Trigger execution retention",
        value_type=SettingValueType.INTEGER,
        default=30,
        description="Trigger execution history older than this many days is deleted by cleanup.",
    ),
]

APP_SETTINGS_BY_KEY: dict[str, SettingDefinition] = {definition.key: definition for definition in APP_SETTINGS}
