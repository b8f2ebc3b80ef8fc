"""Load optional engine configuration from `.taskflow/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import (
    CATEGORY_MAX_LENGTH,
    CONFIG_FILE,
    CONTEXT_MAX_LENGTH,
    DEFAULT_DUE_DATE_CALCULATION,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TIMEZONE,
    DEFAULT_USER_PRIORITY,
    DESCRIPTION_MAX_LENGTH,
    STATE_DIR_NAME,
    TITLE_MAX_LENGTH,
)
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
VALID_DUE_DATE_CALCULATIONS = {"from_original", "from_completion"}


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_logging_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the logging block, normalising the level name.

    Args:
        config: Engine configuration dictionary.

    Returns:
        A mapping with a `level` key; unknown levels fall back to the default.
    """
    raw = _get_nested(config, "logging")
    block = dict(raw) if isinstance(raw, dict) else {}
    level = str(block.get("level") or DEFAULT_LOG_LEVEL).upper()
    block["level"] = level if level in VALID_LOG_LEVELS else DEFAULT_LOG_LEVEL
    return block


def get_defaults_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract defaults applied to new tasks, series and users."""
    raw = _get_nested(config, "defaults")
    block = raw if isinstance(raw, dict) else {}

    user_priority = block.get("user_priority", DEFAULT_USER_PRIORITY)
    try:
        user_priority = int(user_priority)
    except (TypeError, ValueError):
        user_priority = DEFAULT_USER_PRIORITY
    if not 1 <= user_priority <= 10:
        user_priority = DEFAULT_USER_PRIORITY

    tz_name = block.get("timezone")
    if not isinstance(tz_name, str) or not tz_name.strip():
        tz_name = DEFAULT_TIMEZONE

    mode = block.get("due_date_calculation")
    if mode not in VALID_DUE_DATE_CALCULATIONS:
        mode = DEFAULT_DUE_DATE_CALCULATION

    return {"user_priority": user_priority, "timezone": tz_name.strip(), "due_date_calculation": mode}


def get_limits_config(config: dict[str, Any]) -> dict[str, int]:
    """Extract field length limits; non-positive or malformed values use defaults."""
    raw = _get_nested(config, "limits")
    block = raw if isinstance(raw, dict) else {}
    defaults = {
        "title": TITLE_MAX_LENGTH,
        "description": DESCRIPTION_MAX_LENGTH,
        "category": CATEGORY_MAX_LENGTH,
        "context": CONTEXT_MAX_LENGTH,
    }
    limits: dict[str, int] = {}
    for key, default in defaults.items():
        value = block.get(key, default)
        try:
            value = int(value)
        except (TypeError, ValueError):
            value = default
        limits[key] = value if value > 0 else default
    return limits
