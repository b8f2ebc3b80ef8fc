"""Completion reward hooks.

The engine only guarantees the trigger contract: one call per successful
completion, after the completion is durable, with the user's timezone.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from ..domain.models import Task
from ..errors import PersistenceError
from ..io_utils import FileLock, _append_jsonl, _read_jsonl
from ..utils import _to_iso


def local_date(instant: datetime, timezone_name: str) -> date:
    """Calendar day of *instant* in the IANA zone, falling back to UTC."""
    try:
        tz: Any = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    return instant.astimezone(tz).date()


class RewardTrigger(ABC):
    @abstractmethod
    def on_completed(self, task: Task, timezone_name: str) -> None:
        raise NotImplementedError


class NullRewardTrigger(RewardTrigger):
    def on_completed(self, task: Task, timezone_name: str) -> None:
        return None


class LedgerRewardTrigger(RewardTrigger):
    """Append one reward record per completion to a JSONL ledger."""

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def on_completed(self, task: Task, timezone_name: str) -> None:
        completed_at = task.completed_at or datetime.now(timezone.utc)
        record = {
            "task_id": task.id,
            "owner_id": task.owner_id,
            "local_date": local_date(completed_at, timezone_name).isoformat(),
            "completed_at": _to_iso(completed_at),
            "timezone": timezone_name,
        }
        try:
            with self._thread_lock:
                with self._lock:
                    _append_jsonl(self._path, record)
        except OSError as exc:
            raise PersistenceError(f"{self._path.name}: {exc}") from exc
        logger.debug("Reward recorded for {} on {}", task.id, record["local_date"])

    def entries(self, owner_id: Optional[str] = None) -> list[dict[str, Any]]:
        with self._thread_lock:
            with self._lock:
                records = _read_jsonl(self._path)
        if owner_id is None:
            return records
        return [r for r in records if r.get("owner_id") == owner_id]
