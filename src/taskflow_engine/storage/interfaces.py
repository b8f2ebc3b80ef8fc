from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable, Optional

from ..domain.models import (
    DueDateCalculation,
    Task,
    TaskDependency,
    TaskHistory,
    TaskSeries,
    TaskStatus,
    UserProfile,
)


class TransactionManager(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Open an atomic scope.

        Scopes nest: an inner scope joins the outer one and is undone on its
        own if it raises, while the outer scope commits or discards everything.
        """
        raise NotImplementedError


class TaskReader(ABC):
    """Read-only task access used by the gating and recurrence components."""

    @abstractmethod
    def get(self, owner_id: str, task_id: str) -> Task:
        """Return the task or raise NotFoundError / OwnershipError."""
        raise NotImplementedError

    @abstractmethod
    def get_many(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, Task]:
        """Return the owner's tasks among *task_ids*; unknown ids are omitted."""
        raise NotImplementedError

    @abstractmethod
    def list_subtasks(self, owner_id: str, parent_id: str) -> list[Task]:
        raise NotImplementedError


class TaskRepository(TaskReader):
    @abstractmethod
    def list(
        self,
        owner_id: str,
        *,
        status: Optional[TaskStatus] = None,
        category: Optional[str] = None,
        series_id: Optional[str] = None,
    ) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    def insert(self, task: Task) -> Task:
        raise NotImplementedError

    @abstractmethod
    def update(self, task: Task) -> Task:
        raise NotImplementedError

    @abstractmethod
    def delete(self, owner_id: str, task_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def mark_done_if_open(self, owner_id: str, task_id: str, *, completed_at: Any, priority_score: int) -> Task:
        """Transition to done only if the task is not already done.

        Raises ConflictError when another caller completed it first.
        """
        raise NotImplementedError

    @abstractmethod
    def find_by_recurrence_source(self, owner_id: str, source_task_id: str) -> Optional[Task]:
        raise NotImplementedError


class DependencyRepository(ABC):
    @abstractmethod
    def add(self, edge: TaskDependency) -> bool:
        """Store *edge*; return False when the pair already exists."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, owner_id: str, task_id: str, blocked_by_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def remove_for_task(self, owner_id: str, task_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def blockers_of(self, owner_id: str, task_id: str) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def dependents_of(self, owner_id: str, task_id: str) -> list[str]:
        """Ids of tasks that *task_id* is blocking."""
        raise NotImplementedError

    @abstractmethod
    def count_incomplete_blockers(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, int]:
        raise NotImplementedError


class SeriesRepository(ABC):
    @abstractmethod
    def get(self, owner_id: str, series_id: str) -> TaskSeries:
        raise NotImplementedError

    @abstractmethod
    def list(self, owner_id: str, *, active_only: bool = False) -> list[TaskSeries]:
        raise NotImplementedError

    @abstractmethod
    def insert(self, series: TaskSeries) -> TaskSeries:
        raise NotImplementedError

    @abstractmethod
    def update(self, series: TaskSeries) -> TaskSeries:
        raise NotImplementedError


class HistoryRepository(ABC):
    @abstractmethod
    def append(self, event: TaskHistory) -> TaskHistory:
        raise NotImplementedError

    @abstractmethod
    def for_task(self, owner_id: str, task_id: str) -> list[TaskHistory]:
        raise NotImplementedError

    @abstractmethod
    def list_recent(self, owner_id: str, limit: int = 100) -> list[TaskHistory]:
        raise NotImplementedError


class UserDirectory(ABC):
    @abstractmethod
    def get_timezone(self, user_id: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def set_timezone(self, user_id: str, timezone_name: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_profile(self, user_id: str) -> UserProfile:
        raise NotImplementedError

    @abstractmethod
    def save_due_date_preference(
        self,
        user_id: str,
        mode: DueDateCalculation,
        *,
        category: Optional[str] = None,
    ) -> UserProfile:
        """Store *mode* as the user default, or for *category* when given."""
        raise NotImplementedError
