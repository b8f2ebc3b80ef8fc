from __future__ import annotations

import json
from pathlib import Path

import pytest
from loguru import logger

from taskflow_engine.cli import main


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


def _run(tmp_path: Path, capsys: pytest.CaptureFixture, *args: str) -> tuple[int, dict]:
    rc = main(["--project-dir", str(tmp_path), "--user", "alice", "--log-level", "ERROR", *args])
    out, err = capsys.readouterr()
    stream = out if rc == 0 else err
    lines = stream.strip().splitlines()
    payload = json.loads(stream) if rc == 0 else json.loads(lines[-1])
    return rc, payload


def test_task_create_list_and_complete(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc, created = _run(tmp_path, capsys, "task", "create", "Write report", "--priority", "9", "--effort", "small")
    assert rc == 0
    task_id = created["task"]["id"]
    assert created["task"]["priority_score"] == 46

    rc, listed = _run(tmp_path, capsys, "task", "list", "--json")
    assert [t["id"] for t in listed["tasks"]] == [task_id]
    assert listed["tasks"][0]["is_blocked"] is False

    rc, result = _run(tmp_path, capsys, "task", "complete", task_id)
    assert rc == 0
    assert result["completed_task"]["status"] == "done"


def test_task_list_renders_table(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    _run(tmp_path, capsys, "task", "create", "Water plants")
    rc = main(["--project-dir", str(tmp_path), "--user", "alice", "--log-level", "ERROR", "task", "list"])
    out, _ = capsys.readouterr()
    assert rc == 0
    assert "Tasks" in out
    assert "Water" in out


def test_gated_completion_exits_with_error(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    _, parent = _run(tmp_path, capsys, "task", "create", "Parent")
    parent_id = parent["task"]["id"]
    _, sub = _run(tmp_path, capsys, "task", "subtask", parent_id, "Child")
    assert sub["subtask_summary"]["total"] == 1

    rc, error = _run(tmp_path, capsys, "task", "complete", parent_id)
    assert rc == 1
    assert error["error"] == "completion_gated"
    assert error["subtask_ids"] == [sub["task"]["id"]]


def test_dependency_commands(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    _, a = _run(tmp_path, capsys, "task", "create", "A")
    _, b = _run(tmp_path, capsys, "task", "create", "B")
    a_id, b_id = a["task"]["id"], b["task"]["id"]

    rc, edge = _run(tmp_path, capsys, "dep", "add", a_id, b_id)
    assert rc == 0
    assert edge["dependency"]["task_id"] == a_id
    assert edge["dependency"]["blocked_by_id"] == b_id

    rc, error = _run(tmp_path, capsys, "dep", "add", b_id, a_id)
    assert rc == 1
    assert error["error"] == "dependency_cycle"

    rc, info = _run(tmp_path, capsys, "dep", "info", a_id)
    assert info["is_blocked"] is True

    rc, removed = _run(tmp_path, capsys, "dep", "remove", a_id, b_id)
    assert removed["removed"] is True


def test_series_commands(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    _, created = _run(
        tmp_path, capsys, "task", "create", "Standup", "--due", "2030-01-01T09:00:00+00:00", "--recur", "daily"
    )
    series_id = created["task"]["series_id"]
    assert series_id

    rc, result = _run(tmp_path, capsys, "task", "complete", created["task"]["id"])
    assert result["next_task"]["due_date"].startswith("2030-01-02T09:00:00")

    rc, history = _run(tmp_path, capsys, "series", "history", series_id)
    assert history["total"] == 2

    rc, deactivated = _run(tmp_path, capsys, "series", "deactivate", series_id)
    assert deactivated["series"]["is_active"] is False

    rc, listed = _run(tmp_path, capsys, "series", "list", "--active")
    assert listed["series"] == []

    rc, reactivated = _run(tmp_path, capsys, "series", "update", series_id, "--reactivate")
    assert rc == 0
    assert reactivated["series"]["is_active"] is True


def test_user_timezone(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc, shown = _run(tmp_path, capsys, "user", "timezone")
    assert shown == {"user": "alice", "timezone": "UTC"}

    rc, updated = _run(tmp_path, capsys, "user", "timezone", "America/New_York")
    assert updated["timezone"] == "America/New_York"

    rc, error = _run(tmp_path, capsys, "user", "timezone", "Nowhere/Land")
    assert rc == 1
    assert error["field"] == "timezone"


def test_unknown_task_is_not_found(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc, error = _run(tmp_path, capsys, "task", "show", "task-missing")
    assert rc == 1
    assert error["error"] == "not_found"


def test_corrupt_state_exits_with_internal_error(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    state = tmp_path / ".taskflow"
    state.mkdir()
    (state / "state.yaml").write_text("tasks: [broken\n", encoding="utf-8")
    rc, error = _run(tmp_path, capsys, "task", "list", "--json")
    assert rc == 2
    assert error["error"] == "internal_error"


def test_user_due_mode(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc, shown = _run(tmp_path, capsys, "user", "due-mode")
    assert shown["due_date_calculation"] == "from_original"

    rc, saved = _run(tmp_path, capsys, "user", "due-mode", "from_completion", "--category", "garden")
    assert rc == 0
    assert saved == {"user": "alice", "category": "garden", "due_date_calculation": "from_completion"}

    rc, default = _run(tmp_path, capsys, "user", "due-mode")
    assert default["due_date_calculation"] == "from_original"
