from __future__ import annotations

from ..domain.models import SubtaskSummary, TaskStatus
from ..storage.interfaces import TaskReader
from .gating import SUBTASKS, GateCheck


class SubtaskGate:
    """Parent/child completion rules; only direct children are considered."""

    def __init__(self, tasks: TaskReader) -> None:
        self._tasks = tasks

    def subtask_check(self, owner_id: str, parent_id: str) -> GateCheck:
        children = self._tasks.list_subtasks(owner_id, parent_id)
        return GateCheck.from_offenders(SUBTASKS, [c.id for c in children if c.status != TaskStatus.DONE])

    def can_complete_parent(self, owner_id: str, parent_id: str) -> bool:
        return self.subtask_check(owner_id, parent_id).satisfied

    def get_subtask_summary(self, owner_id: str, parent_id: str) -> SubtaskSummary:
        summary = SubtaskSummary()
        for child in self._tasks.list_subtasks(owner_id, parent_id):
            summary.total += 1
            if child.status == TaskStatus.DONE:
                summary.completed += 1
            elif child.status == TaskStatus.IN_PROGRESS:
                summary.in_progress += 1
            else:
                summary.todo += 1
        return summary
