from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

import yaml
from loguru import logger

from ..constants import STATE_SCHEMA_VERSION
from ..domain.models import (
    DueDateCalculation,
    Task,
    TaskDependency,
    TaskHistory,
    TaskSeries,
    TaskStatus,
    UserProfile,
)
from ..errors import ConflictError, NotFoundError, OwnershipError, PersistenceError
from ..io_utils import FileLock, _append_jsonl, _atomic_write_yaml, _load_data_with_error, _read_jsonl
from .interfaces import (
    DependencyRepository,
    HistoryRepository,
    SeriesRepository,
    TaskRepository,
    TransactionManager,
    UserDirectory,
)


def _empty_state() -> dict[str, Any]:
    return {"version": STATE_SCHEMA_VERSION, "tasks": {}, "series": {}, "dependencies": [], "users": {}}


class StateTx:
    """Working copy of the state document for one transaction.

    Nested scopes push a savepoint that is filled lazily on the first write,
    so read-only scopes never copy the document.
    """

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data
        self.dirty = False
        self.pending: list[Callable[[], None]] = []
        self._savepoints: list[Optional[dict[str, Any]]] = []

    def section(self, key: str) -> Any:
        return self.data[key]

    def writable(self, key: str) -> Any:
        if any(sp is None for sp in self._savepoints):
            snapshot = copy.deepcopy(self.data)
            self._savepoints = [snapshot if sp is None else sp for sp in self._savepoints]
        self.dirty = True
        return self.data[key]

    def replace(self, key: str, value: Any) -> None:
        self.writable(key)
        self.data[key] = value


class FileStateStore(TransactionManager):
    """Single YAML document holding tasks, series, edges and users.

    The outermost transaction holds the thread lock and the file lock for its
    whole duration, loads a fresh copy from disk and writes it back atomically
    only when something changed and no exception escaped.
    """

    def __init__(self, path: Path, lock_path: Path) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()
        self._active: Optional[StateTx] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        raw, err = _load_data_with_error(self._path, {})
        if err:
            raise PersistenceError(err)
        data = _empty_state()
        for key in ("tasks", "series", "users"):
            value = raw.get(key)
            if isinstance(value, dict):
                data[key] = value
        edges = raw.get("dependencies")
        if isinstance(edges, list):
            data["dependencies"] = [e for e in edges if isinstance(e, dict)]
        return data

    def _save(self, data: dict[str, Any]) -> None:
        try:
            _atomic_write_yaml(self._path, data)
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceError(f"{self._path.name}: {exc.__class__.__name__}: {exc}") from exc

    @contextmanager
    def _savepoint(self, tx: StateTx) -> Iterator[StateTx]:
        dirty = tx.dirty
        pending = len(tx.pending)
        tx._savepoints.append(None)
        try:
            yield tx
        except Exception:
            snapshot = tx._savepoints[-1]
            if snapshot is not None:
                tx.data = copy.deepcopy(snapshot)
                tx.dirty = dirty
            del tx.pending[pending:]
            raise
        finally:
            tx._savepoints.pop()

    @contextmanager
    def transaction(self) -> Iterator[StateTx]:
        with self._thread_lock:
            if self._active is not None:
                with self._savepoint(self._active) as tx:
                    yield tx
                return

            try:
                self._lock.__enter__()
            except OSError as exc:
                raise PersistenceError(f"cannot lock state: {exc}") from exc
            try:
                tx = StateTx(self._load())
                self._active = tx
                try:
                    yield tx
                    if tx.dirty:
                        self._save(tx.data)
                    for callback in tx.pending:
                        callback()
                finally:
                    self._active = None
            finally:
                self._lock.__exit__(None, None, None)

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run *callback* once the active transaction commits, or now if none is open."""
        with self._thread_lock:
            if self._active is None:
                callback()
            else:
                self._active.pending.append(callback)


def _check_owner(raw: Optional[dict[str, Any]], resource: str, resource_id: str, owner_id: str) -> dict[str, Any]:
    if raw is None:
        raise NotFoundError(resource, resource_id)
    if raw.get("owner_id") != owner_id:
        raise OwnershipError(resource, resource_id)
    return raw


def _created_key(item: Any) -> Any:
    return (item.created_at, item.id)


class FileTaskRepository(TaskRepository):
    def __init__(self, store: FileStateStore) -> None:
        self._store = store

    def get(self, owner_id: str, task_id: str) -> Task:
        with self._store.transaction() as tx:
            raw = _check_owner(tx.section("tasks").get(task_id), "task", task_id, owner_id)
            return Task.from_dict(raw)

    def get_many(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, Task]:
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            out: dict[str, Task] = {}
            for task_id in task_ids:
                raw = tasks.get(task_id)
                if raw is not None and raw.get("owner_id") == owner_id:
                    out[task_id] = Task.from_dict(raw)
            return out

    def list_subtasks(self, owner_id: str, parent_id: str) -> list[Task]:
        with self._store.transaction() as tx:
            items = [
                Task.from_dict(raw)
                for raw in tx.section("tasks").values()
                if raw.get("owner_id") == owner_id and raw.get("parent_task_id") == parent_id
            ]
        return sorted(items, key=_created_key)

    def list(
        self,
        owner_id: str,
        *,
        status: Optional[TaskStatus] = None,
        category: Optional[str] = None,
        series_id: Optional[str] = None,
    ) -> list[Task]:
        with self._store.transaction() as tx:
            items = [Task.from_dict(raw) for raw in tx.section("tasks").values() if raw.get("owner_id") == owner_id]
        if status is not None:
            items = [t for t in items if t.status == status]
        if category is not None:
            items = [t for t in items if t.category == category]
        if series_id is not None:
            items = [t for t in items if t.series_id == series_id]
        return sorted(items, key=_created_key)

    def insert(self, task: Task) -> Task:
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            if task.id in tasks:
                raise ConflictError("task", f"{task.id} already exists")
            tx.writable("tasks")[task.id] = task.to_dict()
        return task

    def update(self, task: Task) -> Task:
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            _check_owner(tasks.get(task.id), "task", task.id, task.owner_id)
            tx.writable("tasks")[task.id] = task.to_dict()
        return task

    def delete(self, owner_id: str, task_id: str) -> bool:
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            if task_id not in tasks:
                return False
            _check_owner(tasks.get(task_id), "task", task_id, owner_id)
            del tx.writable("tasks")[task_id]
        return True

    def mark_done_if_open(self, owner_id: str, task_id: str, *, completed_at: Any, priority_score: int) -> Task:
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            raw = _check_owner(tasks.get(task_id), "task", task_id, owner_id)
            if raw.get("status") == TaskStatus.DONE.value:
                raise ConflictError("task", f"{task_id} is already completed")
            task = Task.from_dict(raw)
            task.status = TaskStatus.DONE
            task.completed_at = completed_at
            task.updated_at = completed_at
            task.priority_score = priority_score
            tx.writable("tasks")[task_id] = task.to_dict()
        return task

    def find_by_recurrence_source(self, owner_id: str, source_task_id: str) -> Optional[Task]:
        with self._store.transaction() as tx:
            for raw in tx.section("tasks").values():
                if raw.get("owner_id") == owner_id and raw.get("recurrence_source_id") == source_task_id:
                    return Task.from_dict(raw)
        return None


class FileDependencyRepository(DependencyRepository):
    def __init__(self, store: FileStateStore) -> None:
        self._store = store

    @staticmethod
    def _edges(tx: StateTx, owner_id: str) -> list[dict[str, Any]]:
        return [e for e in tx.section("dependencies") if e.get("owner_id") == owner_id]

    def add(self, edge: TaskDependency) -> bool:
        with self._store.transaction() as tx:
            for existing in self._edges(tx, edge.owner_id):
                if existing.get("task_id") == edge.task_id and existing.get("blocked_by_id") == edge.blocked_by_id:
                    return False
            tx.writable("dependencies").append(edge.to_dict())
        return True

    def remove(self, owner_id: str, task_id: str, blocked_by_id: str) -> bool:
        with self._store.transaction() as tx:
            edges = tx.section("dependencies")
            keep = [
                e
                for e in edges
                if not (
                    e.get("owner_id") == owner_id
                    and e.get("task_id") == task_id
                    and e.get("blocked_by_id") == blocked_by_id
                )
            ]
            if len(keep) == len(edges):
                return False
            tx.replace("dependencies", keep)
        return True

    def remove_for_task(self, owner_id: str, task_id: str) -> int:
        with self._store.transaction() as tx:
            edges = tx.section("dependencies")
            keep = [
                e
                for e in edges
                if not (e.get("owner_id") == owner_id and task_id in (e.get("task_id"), e.get("blocked_by_id")))
            ]
            removed = len(edges) - len(keep)
            if removed:
                tx.replace("dependencies", keep)
        return removed

    def blockers_of(self, owner_id: str, task_id: str) -> list[str]:
        with self._store.transaction() as tx:
            return [str(e["blocked_by_id"]) for e in self._edges(tx, owner_id) if e.get("task_id") == task_id]

    def dependents_of(self, owner_id: str, task_id: str) -> list[str]:
        with self._store.transaction() as tx:
            return [str(e["task_id"]) for e in self._edges(tx, owner_id) if e.get("blocked_by_id") == task_id]

    def count_incomplete_blockers(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, int]:
        counts = {task_id: 0 for task_id in task_ids}
        if not counts:
            return counts
        with self._store.transaction() as tx:
            tasks = tx.section("tasks")
            for edge in self._edges(tx, owner_id):
                task_id = edge.get("task_id")
                if task_id not in counts:
                    continue
                blocker = tasks.get(edge.get("blocked_by_id"))
                if blocker is None or blocker.get("status") != TaskStatus.DONE.value:
                    counts[task_id] += 1
        return counts


class FileSeriesRepository(SeriesRepository):
    def __init__(self, store: FileStateStore) -> None:
        self._store = store

    def get(self, owner_id: str, series_id: str) -> TaskSeries:
        with self._store.transaction() as tx:
            raw = _check_owner(tx.section("series").get(series_id), "series", series_id, owner_id)
            return TaskSeries.from_dict(raw)

    def list(self, owner_id: str, *, active_only: bool = False) -> list[TaskSeries]:
        with self._store.transaction() as tx:
            items = [
                TaskSeries.from_dict(raw) for raw in tx.section("series").values() if raw.get("owner_id") == owner_id
            ]
        if active_only:
            items = [s for s in items if s.is_active]
        return sorted(items, key=_created_key)

    def insert(self, series: TaskSeries) -> TaskSeries:
        with self._store.transaction() as tx:
            section = tx.section("series")
            if series.id in section:
                raise ConflictError("series", f"{series.id} already exists")
            tx.writable("series")[series.id] = series.to_dict()
        return series

    def update(self, series: TaskSeries) -> TaskSeries:
        with self._store.transaction() as tx:
            section = tx.section("series")
            _check_owner(section.get(series.id), "series", series.id, series.owner_id)
            tx.writable("series")[series.id] = series.to_dict()
        return series


class FileUserDirectory(UserDirectory):
    def __init__(self, store: FileStateStore, default_timezone: str = "UTC") -> None:
        self._store = store
        self._default_timezone = default_timezone

    def get_profile(self, user_id: str) -> UserProfile:
        with self._store.transaction() as tx:
            raw = tx.section("users").get(user_id)
        if not isinstance(raw, dict):
            return UserProfile(id=user_id)
        profile = UserProfile.from_dict(raw)
        profile.id = user_id
        return profile

    def get_timezone(self, user_id: str) -> str:
        return self.get_profile(user_id).timezone or self._default_timezone

    def set_timezone(self, user_id: str, timezone_name: str) -> str:
        with self._store.transaction() as tx:
            profile = self.get_profile(user_id)
            profile.timezone = timezone_name
            tx.writable("users")[user_id] = profile.to_dict()
        return timezone_name

    def save_due_date_preference(
        self,
        user_id: str,
        mode: DueDateCalculation,
        *,
        category: Optional[str] = None,
    ) -> UserProfile:
        with self._store.transaction() as tx:
            profile = self.get_profile(user_id)
            if category:
                profile.category_due_date_calculations[category] = mode
            else:
                profile.default_due_date_calculation = mode
            tx.writable("users")[user_id] = profile.to_dict()
        logger.info("Saved {} due-date mode for {} ({})", mode.value, user_id, category or "default")
        return profile


class FileHistoryRepository(HistoryRepository):
    """Append-only JSONL ledger; appends inside a transaction land on commit."""

    def __init__(self, store: FileStateStore, path: Path, lock_path: Path) -> None:
        self._store = store
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()

    def _write(self, event: TaskHistory) -> None:
        try:
            with self._thread_lock:
                with self._lock:
                    _append_jsonl(self._path, event.to_dict())
        except OSError as exc:
            raise PersistenceError(f"{self._path.name}: {exc}") from exc
        logger.debug("history {} {}", event.event_type.value, event.task_id)

    def append(self, event: TaskHistory) -> TaskHistory:
        self._store.on_commit(lambda: self._write(event))
        return event

    def _read(self, limit: Optional[int] = None) -> list[TaskHistory]:
        try:
            with self._thread_lock:
                with self._lock:
                    records = _read_jsonl(self._path, limit)
        except OSError as exc:
            raise PersistenceError(f"{self._path.name}: {exc}") from exc
        return [TaskHistory.from_dict(r) for r in records]

    def for_task(self, owner_id: str, task_id: str) -> list[TaskHistory]:
        return [e for e in self._read() if e.owner_id == owner_id and e.task_id == task_id]

    def list_recent(self, owner_id: str, limit: int = 100) -> list[TaskHistory]:
        if limit <= 0:
            return []
        events = [e for e in self._read() if e.owner_id == owner_id]
        return events[-limit:]
