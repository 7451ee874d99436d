"""Next-fire computation for recurring trigger schedules.

Everything here is pure: no database access, no clock reads. Callers pass the
reference instant explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.db import models


class ScheduleType(models.TextChoices):
    HOURLY = "hourly", "Hourly"
    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"


DEFAULT_SCHEDULE_TYPE = ScheduleType.DAILY
DEFAULT_TIME_OF_DAY = time(9, 0)
# 0 = Sunday ... 6 = Saturday
DEFAULT_DAY_OF_WEEK = 1
DEFAULT_TIMEZONE = "UTC"

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_STEPS = {
    ScheduleType.HOURLY: timedelta(hours=1),
    ScheduleType.DAILY: timedelta(days=1),
    ScheduleType.WEEKLY: timedelta(days=7),
}


def _parse_time(value) -> time | None:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, str) and value.strip():
        parts = value.strip().split(":")
        try:
            hour = int(parts[0])
            minute = int(parts[1]) if len(parts) > 1 else 0
            return time(hour, minute)
        except (TypeError, ValueError):
            return None
    return None


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


@dataclass(frozen=True)
class ScheduleRule:
    schedule_type: str = DEFAULT_SCHEDULE_TYPE
    time_of_day: time = DEFAULT_TIME_OF_DAY
    day_of_week: int = DEFAULT_DAY_OF_WEEK
    timezone: str = DEFAULT_TIMEZONE

    @classmethod
    def from_values(
        cls,
        *,
        schedule_type=None,
        time_of_day=None,
        day_of_week=None,
        timezone=None,
    ) -> ScheduleRule:
        """Build a rule from raw stored values, replacing anything empty or invalid with its default."""
        if schedule_type not in ScheduleType.values:
            schedule_type = DEFAULT_SCHEDULE_TYPE

        parsed_time = _parse_time(time_of_day) or DEFAULT_TIME_OF_DAY

        try:
            dow = int(day_of_week)
        except (TypeError, ValueError):
            dow = DEFAULT_DAY_OF_WEEK
        if not 0 <= dow <= 6:
            dow = DEFAULT_DAY_OF_WEEK

        tz_name = (timezone or "").strip() if isinstance(timezone, str) else ""
        if not tz_name or not is_valid_timezone(tz_name):
            tz_name = DEFAULT_TIMEZONE

        return cls(
            schedule_type=ScheduleType(schedule_type),
            time_of_day=parsed_time,
            day_of_week=dow,
            timezone=tz_name,
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def describe(self) -> str:
        at = f"{self.time_of_day.hour:02d}:{self.time_of_day.minute:02d}"
        if self.schedule_type == ScheduleType.HOURLY:
            return f"Hourly at :{self.time_of_day.minute:02d} ({self.timezone})"
        if self.schedule_type == ScheduleType.WEEKLY:
            return f"Weekly on {DAY_NAMES[self.day_of_week]} at {at} ({self.timezone})"
        return f"Daily at {at} ({self.timezone})"


def _local_day_of_week(value: datetime) -> int:
    # datetime.weekday() is Monday=0; rules use Sunday=0.
    return (value.weekday() + 1) % 7


def _to_instant(local_naive: datetime, tz: ZoneInfo) -> datetime:
    return local_naive.replace(tzinfo=tz).astimezone(dt_timezone.utc)


def next_fire_at(rule: ScheduleRule, reference: datetime) -> datetime:
    """
    Return the first fire instant strictly after `reference`, in UTC.

    Daily and weekly rules step in local wall-clock time so they keep their
    time of day across DST changes. Hourly rules step in absolute hours.
    """
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=dt_timezone.utc)

    tz = rule.tzinfo
    local_ref = reference.astimezone(tz).replace(tzinfo=None)
    schedule_type = rule.schedule_type if rule.schedule_type in _STEPS else DEFAULT_SCHEDULE_TYPE
    step = _STEPS[schedule_type]

    if schedule_type == ScheduleType.HOURLY:
        candidate = _to_instant(
            local_ref.replace(minute=rule.time_of_day.minute, second=0, microsecond=0),
            tz,
        )
        while candidate <= reference:
            candidate += step
        return candidate

    if schedule_type == ScheduleType.WEEKLY:
        days_until = (rule.day_of_week - _local_day_of_week(local_ref) + 7) % 7
        candidate_local = datetime.combine(local_ref.date() + timedelta(days=days_until), rule.time_of_day)
    else:
        candidate_local = datetime.combine(local_ref.date(), rule.time_of_day)

    # A candidate equal to the reference has already passed.
    while _to_instant(candidate_local, tz) <= reference:
        candidate_local += step
    return _to_instant(candidate_local, tz)
