"""Tests for the parent/child completion gate (task_engine/subtasks.py)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from taskflow_engine.clock import FixedClock
from taskflow_engine.domain.models import TaskStatus
from taskflow_engine.errors import GatingError, OwnershipError, ValidationError
from taskflow_engine.storage.container import Container
from taskflow_engine.task_engine.orchestrator import TaskOrchestrator

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
USER = "alice"


@pytest.fixture
def orch(tmp_path: Path) -> TaskOrchestrator:
    return Container(tmp_path, clock=FixedClock(NOW)).orchestrator


@pytest.fixture
def parent_id(orch: TaskOrchestrator) -> str:
    return orch.create_task(USER, {"title": "Plan trip", "category": "travel"}).id


class TestCreateSubtask:
    def test_subtask_inherits_category(self, orch: TaskOrchestrator, parent_id: str) -> None:
        sub = orch.create_subtask(USER, parent_id, {"title": "Book flights"})
        assert sub.parent_task_id == parent_id
        assert sub.category == "travel"
        assert sub.status == TaskStatus.TODO
        assert sub.priority_score > 0

    def test_sub_subtask_rejected(self, orch: TaskOrchestrator, parent_id: str) -> None:
        sub = orch.create_subtask(USER, parent_id, {"title": "Book flights"})
        with pytest.raises(ValidationError) as excinfo:
            orch.create_subtask(USER, sub.id, {"title": "Compare prices"})
        assert excinfo.value.field == "parent_task_id"

    def test_subtask_of_completed_parent_rejected(self, orch: TaskOrchestrator, parent_id: str) -> None:
        orch.complete_task(USER, parent_id)
        with pytest.raises(ValidationError):
            orch.create_subtask(USER, parent_id, {"title": "Too late"})

    def test_subtask_of_foreign_parent_rejected(self, orch: TaskOrchestrator, parent_id: str) -> None:
        with pytest.raises(OwnershipError):
            orch.create_subtask("bob", parent_id, {"title": "Intrude"})

    def test_list_subtasks_in_creation_order(self, orch: TaskOrchestrator, parent_id: str) -> None:
        first = orch.create_subtask(USER, parent_id, {"title": "first"})
        second = orch.create_subtask(USER, parent_id, {"title": "second"})
        assert {t.id for t in orch.list_subtasks(USER, parent_id)} == {first.id, second.id}


class TestSummary:
    def test_no_subtasks(self, orch: TaskOrchestrator, parent_id: str) -> None:
        summary = orch.get_subtask_summary(USER, parent_id)
        assert summary.total == 0
        assert summary.completion_rate == 0.0
        assert summary.all_complete is True
        assert orch.can_complete_parent(USER, parent_id) is True

    def test_counts_by_status(self, orch: TaskOrchestrator, parent_id: str) -> None:
        done = orch.create_subtask(USER, parent_id, {"title": "done"})
        started = orch.create_subtask(USER, parent_id, {"title": "started"})
        orch.create_subtask(USER, parent_id, {"title": "open"})
        orch.complete_task(USER, done.id)
        orch.start_task(USER, started.id)

        summary = orch.get_subtask_summary(USER, parent_id)
        assert (summary.total, summary.completed, summary.in_progress, summary.todo) == (3, 1, 1, 1)
        assert summary.completion_rate == pytest.approx(1 / 3)
        assert summary.all_complete is False
        assert summary.to_dict()["all_complete"] is False


class TestGate:
    def test_parent_gated_until_children_done(self, orch: TaskOrchestrator, parent_id: str) -> None:
        a = orch.create_subtask(USER, parent_id, {"title": "a"})
        b = orch.create_subtask(USER, parent_id, {"title": "b"})

        with pytest.raises(GatingError) as excinfo:
            orch.complete_task(USER, parent_id)
        assert excinfo.value.subtask_ids == sorted([a.id, b.id])
        assert orch.get_task(USER, parent_id).status == TaskStatus.TODO

        first = orch.complete_task(USER, a.id)
        assert first.all_subtasks_complete is False
        last = orch.complete_task(USER, b.id)
        assert last.all_subtasks_complete is True

        assert orch.can_complete_parent(USER, parent_id) is True
        result = orch.complete_task(USER, parent_id)
        assert result.completed_task.is_done
        assert result.all_subtasks_complete is None

    def test_gate_reports_blockers_and_subtasks_together(self, orch: TaskOrchestrator, parent_id: str) -> None:
        blocker = orch.create_task(USER, {"title": "blocker"})
        sub = orch.create_subtask(USER, parent_id, {"title": "sub"})
        orch.add_dependency(USER, parent_id, blocker.id)

        with pytest.raises(GatingError) as excinfo:
            orch.complete_task(USER, parent_id)
        err = excinfo.value
        assert err.blocker_ids == [blocker.id]
        assert err.subtask_ids == [sub.id]
        assert blocker.id in str(err) and sub.id in str(err)
        assert err.to_dict()["error"] == "completion_gated"

    def test_delete_parent_removes_subtasks(self, orch: TaskOrchestrator, parent_id: str) -> None:
        sub = orch.create_subtask(USER, parent_id, {"title": "sub"})
        deleted = orch.delete_task(USER, parent_id)
        assert set(deleted) == {parent_id, sub.id}
        assert orch.list_tasks(USER) == []
