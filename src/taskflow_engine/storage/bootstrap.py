from __future__ import annotations

from pathlib import Path

from loguru import logger

from ..constants import (
    CONFIG_FILE,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_DUE_DATE_CALCULATION,
    DEFAULT_LOG_LEVEL,
    DEFAULT_TIMEZONE,
    DEFAULT_USER_PRIORITY,
    HISTORY_FILE,
    REWARDS_FILE,
    STATE_DIR_NAME,
    STATE_FILE,
    STATE_SCHEMA_VERSION,
)
from ..errors import PersistenceError
from ..io_utils import _atomic_write_yaml, _load_data_with_error


def ensure_state_root(project_dir: Path) -> Path:
    """Create `.taskflow/` with a seeded config and empty state files."""
    state_root = project_dir / STATE_DIR_NAME
    try:
        state_root.mkdir(parents=True, exist_ok=True)

        state_path = state_root / STATE_FILE
        if not state_path.exists():
            state_path.write_text(f"version: {STATE_SCHEMA_VERSION}\n", encoding="utf-8")
        for file_name in (HISTORY_FILE, REWARDS_FILE):
            target = state_root / file_name
            if not target.exists():
                target.touch()

        config_path = state_root / CONFIG_FILE
        config, err = _load_data_with_error(config_path, {})
        if err:
            # Leave a broken config alone rather than overwrite it.
            logger.warning("Not seeding config: {}", err)
            return state_root
        config["schema_version"] = CONFIG_SCHEMA_VERSION
        config.setdefault("logging", {"level": DEFAULT_LOG_LEVEL})
        config.setdefault(
            "defaults",
            {
                "user_priority": DEFAULT_USER_PRIORITY,
                "timezone": DEFAULT_TIMEZONE,
                "due_date_calculation": DEFAULT_DUE_DATE_CALCULATION,
            },
        )
        _atomic_write_yaml(config_path, config)
    except OSError as exc:
        raise PersistenceError(f"cannot initialise {state_root}: {exc}") from exc
    return state_root
