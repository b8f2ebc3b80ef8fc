"""Blocked-by graph between one owner's tasks."""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

from ..domain.models import DependencyEntry, DependencyInfo, TaskDependency, TaskStatus
from ..errors import CycleDetectedError, ValidationError
from ..storage.interfaces import DependencyRepository, TaskReader, TransactionManager
from .gating import BLOCKERS, GateCheck


class DependencyGraph:
    def __init__(self, tasks: TaskReader, edges: DependencyRepository, tx: TransactionManager) -> None:
        self._tasks = tasks
        self._edges = edges
        self._tx = tx

    def add_dependency(self, owner_id: str, task_id: str, blocked_by_id: str, *, now: datetime) -> TaskDependency:
        """Record that ``task_id`` is blocked by ``blocked_by_id``.

        Adding an existing edge is a no-op.

        Raises:
            ValidationError: for a self-dependency.
            CycleDetectedError: if the edge would close a cycle.
        """
        if task_id == blocked_by_id:
            raise ValidationError("blocked_by_id", "a task cannot depend on itself")

        with self._tx.transaction():
            self._tasks.get(owner_id, task_id)
            self._tasks.get(owner_id, blocked_by_id)

            path = self._find_path(owner_id, blocked_by_id, task_id)
            if path is not None:
                logger.warning("Rejected dependency {} -> {}: cycle {}", task_id, blocked_by_id, path)
                raise CycleDetectedError(task_id, blocked_by_id, [task_id] + path)

            edge = TaskDependency(task_id=task_id, blocked_by_id=blocked_by_id, owner_id=owner_id, created_at=now)
            if self._edges.add(edge):
                logger.info("Task {} now blocked by {}", task_id, blocked_by_id)
        return edge

    def remove_dependency(self, owner_id: str, task_id: str, blocked_by_id: str) -> bool:
        with self._tx.transaction():
            self._tasks.get(owner_id, task_id)
            removed = self._edges.remove(owner_id, task_id, blocked_by_id)
        if removed:
            logger.info("Task {} no longer blocked by {}", task_id, blocked_by_id)
        return removed

    def _find_path(self, owner_id: str, start_id: str, target_id: str) -> Optional[list[str]]:
        """Return the blocked-by chain from *start_id* to *target_id*, if any."""
        parents: dict[str, Optional[str]] = {start_id: None}
        queue: deque[str] = deque([start_id])
        while queue:
            current = queue.popleft()
            if current == target_id:
                path = [current]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            for blocker_id in self._edges.blockers_of(owner_id, current):
                if blocker_id not in parents:
                    parents[blocker_id] = current
                    queue.append(blocker_id)
        return None

    def blocker_check(self, owner_id: str, task_id: str) -> GateCheck:
        blocker_ids = self._edges.blockers_of(owner_id, task_id)
        blockers = self._tasks.get_many(owner_id, blocker_ids)
        open_ids = [
            bid for bid in blocker_ids if bid not in blockers or blockers[bid].status != TaskStatus.DONE
        ]
        return GateCheck.from_offenders(BLOCKERS, open_ids)

    def can_complete(self, owner_id: str, task_id: str) -> bool:
        return self.blocker_check(owner_id, task_id).satisfied

    def count_incomplete_blockers(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, int]:
        return self._edges.count_incomplete_blockers(owner_id, list(task_ids))

    def get_dependency_info(self, owner_id: str, task_id: str) -> DependencyInfo:
        with self._tx.transaction():
            self._tasks.get(owner_id, task_id)
            blocker_ids = self._edges.blockers_of(owner_id, task_id)
            dependent_ids = self._edges.dependents_of(owner_id, task_id)
            related = self._tasks.get_many(owner_id, list(blocker_ids) + list(dependent_ids))

        def _entries(ids: list[str]) -> list[DependencyEntry]:
            return [
                DependencyEntry(task_id=i, title=related[i].title, status=related[i].status)
                for i in ids
                if i in related
            ]

        return DependencyInfo(task_id=task_id, blockers=_entries(blocker_ids), blocking=_entries(dependent_ids))

    def newly_unblocked(self, owner_id: str, completed_task_id: str) -> list[str]:
        """Open tasks that waited on *completed_task_id* and have no open blockers left."""
        with self._tx.transaction():
            dependent_ids = self._edges.dependents_of(owner_id, completed_task_id)
            if not dependent_ids:
                return []
            counts = self._edges.count_incomplete_blockers(owner_id, dependent_ids)
            dependents = self._tasks.get_many(owner_id, dependent_ids)
        return sorted(
            tid
            for tid, count in counts.items()
            if count == 0 and tid in dependents and dependents[tid].status != TaskStatus.DONE
        )
