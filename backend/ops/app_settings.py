from __future__ import annotations

import logging

from ops.models import AppSetting
from ops.settings_registry import APP_SETTINGS_BY_KEY

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def get_setting_value(key: str) -> object | None:
    """Return the stored value for `key`, or None when no row exists."""
    row = AppSetting.objects.filter(key=key).only("value").first()
    return None if row is None else row.value


def get_int_setting(*, key: str) -> int:
    """
    Read an AppSetting key as an int, falling back to the registry default.

    Logs a warning and returns the default if the value is not parseable.
    """
    default = int(APP_SETTINGS_BY_KEY[key].default)
    value = get_setting_value(key)
    if value is None:
        return default
    # Rows written by older tooling wrap the number as {"value": n}.
    if isinstance(value, dict):
        value = value.get("value")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value, using default %d", key, default)
        return default
    if parsed <= 0:
        logger.warning("Non-positive %s value %d, using default %d", key, parsed, default)
        return default
    return parsed


def get_bool_setting(*, key: str) -> bool:
    default = bool(APP_SETTINGS_BY_KEY[key].default)
    value = get_setting_value(key)
    if value is None:
        return default
    if isinstance(value, dict):
        value = value.get("value", value.get("enabled"))
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    logger.warning("Invalid %s value, using default %s", key, default)
    return default


def set_setting(*, key: str, value: object) -> AppSetting:
    definition = APP_SETTINGS_BY_KEY.get(key)
    row, _ = AppSetting.objects.update_or_create(
        key=key,
        defaults={
            "value": value,
            "description": definition.description if definition else "",
        },
    )
    return row
