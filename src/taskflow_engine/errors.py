"""Domain error taxonomy for the task engine.

Every domain error derives from :class:`TaskflowError` and is recoverable at
the transport boundary.  :class:`PersistenceError` is not part of that
hierarchy: it wraps storage failures (I/O, corrupt state) and is
passed through the engine untouched.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class TaskflowError(Exception):
    """Base class for recoverable domain errors."""

    code = "taskflow_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class ValidationError(TaskflowError):
    code = "validation_error"

    def __init__(self, field: Optional[str], message: str) -> None:
        self.field = field
        self.message = message
        if field:
            super().__init__(f"validation error: {field} - {message}")
        else:
            super().__init__(f"validation error: {message}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class OwnershipError(TaskflowError):
    code = "ownership_error"

    def __init__(self, resource: str, resource_id: str, action: str = "access") -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.action = action
        super().__init__(f"forbidden: cannot {action} {resource} {resource_id}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"resource": self.resource, "id": self.resource_id, "action": self.action})
        return data


class NotFoundError(TaskflowError):
    code = "not_found"

    def __init__(self, resource: str, resource_id: str = "") -> None:
        self.resource = resource
        self.resource_id = resource_id
        if resource_id:
            super().__init__(f"{resource} not found: {resource_id}")
        else:
            super().__init__(f"{resource} not found")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"resource": self.resource, "id": self.resource_id})
        return data


class CycleDetectedError(TaskflowError):
    """Adding ``task_id`` blocked-by ``blocked_by_id`` would close a cycle."""

    code = "dependency_cycle"

    def __init__(self, task_id: str, blocked_by_id: str, path: Optional[Iterable[str]] = None) -> None:
        self.task_id = task_id
        self.blocked_by_id = blocked_by_id
        self.path = list(path or [])
        super().__init__(
            f"adding dependency {task_id} blocked by {blocked_by_id} would create a cycle"
        )

    @property
    def edge(self) -> tuple[str, str]:
        return (self.task_id, self.blocked_by_id)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"task_id": self.task_id, "blocked_by_id": self.blocked_by_id, "path": self.path})
        return data


class GatingError(TaskflowError):
    """Completion was refused because blockers or subtasks are still open."""

    code = "completion_gated"

    def __init__(
        self,
        task_id: str,
        *,
        blocker_ids: Optional[Iterable[str]] = None,
        subtask_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self.task_id = task_id
        self.blocker_ids = sorted(blocker_ids or [])
        self.subtask_ids = sorted(subtask_ids or [])
        reasons: list[str] = []
        if self.blocker_ids:
            reasons.append(f"unresolved blockers: {self.blocker_ids}")
        if self.subtask_ids:
            reasons.append(f"incomplete subtasks: {self.subtask_ids}")
        super().__init__(f"cannot complete {task_id}; " + "; ".join(reasons))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {"task_id": self.task_id, "blocker_ids": self.blocker_ids, "subtask_ids": self.subtask_ids}
        )
        return data


class ConflictError(TaskflowError):
    code = "conflict"

    def __init__(self, resource: str, message: str) -> None:
        self.resource = resource
        self.message = message
        super().__init__(f"conflict: {resource} - {message}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["resource"] = self.resource
        return data


class PersistenceError(Exception):
    """Opaque storage failure; the engine never retries it."""

    code = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"internal error: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}
