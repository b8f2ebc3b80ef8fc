from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import get_logging_config, load_engine_config
from .domain.models import CompletionOptions, DueDateCalculation, RankedTask
from .errors import PersistenceError, TaskflowError
from .logging_utils import configure_logging
from .storage.container import Container

DEFAULT_USER = "local"


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> Container:
    return Container(_resolve_project_dir(args.project_dir))


def _emit(payload: dict[str, Any]) -> int:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")
    return 0


def _render_task_table(ranked: list[RankedTask]) -> None:
    table = Table(title="Tasks")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Bumps", justify="right")
    table.add_column("Due")
    table.add_column("Blocked", justify="center")
    table.add_column("Risk", justify="center")
    for entry in ranked:
        task = entry.task
        due = task.due_date.date().isoformat() if task.due_date else "-"
        table.add_row(
            task.id,
            ("  - " if task.parent_task_id else "") + task.title,
            task.status.value,
            str(task.priority_score),
            str(task.bump_count),
            due,
            f"[red]{entry.incomplete_blockers}[/red]" if entry.is_blocked else "",
            "[yellow]![/yellow]" if entry.at_risk else "",
        )
    Console().print(table)


# ---------------------------------------------------------------------------
# task
# ---------------------------------------------------------------------------

def _task_create(args: argparse.Namespace) -> int:
    container = _ctx(args)
    payload: dict[str, Any] = {"title": args.title, "related_people": list(args.person or [])}
    for key in ("description", "category", "context", "effort"):
        value = getattr(args, key)
        if value is not None:
            payload[key] = value
    if args.priority is not None:
        payload["user_priority"] = args.priority
    if args.due:
        payload["due_date"] = args.due
    if args.recur:
        rule: dict[str, Any] = {"pattern": args.recur, "interval": args.interval}
        if args.until:
            rule["end_date"] = args.until
        if args.due_mode:
            rule["due_date_calculation"] = args.due_mode
        payload["recurrence"] = rule
    task = container.orchestrator.create_task(args.user, payload)
    return _emit({"task": task.to_dict()})


def _task_list(args: argparse.Namespace) -> int:
    container = _ctx(args)
    ranked = container.orchestrator.list_tasks(args.user, status=args.status, category=args.category)
    if args.json:
        return _emit({"tasks": [entry.to_dict() for entry in ranked]})
    _render_task_table(ranked)
    return 0


def _task_show(args: argparse.Namespace) -> int:
    container = _ctx(args)
    orch = container.orchestrator
    task = orch.get_task(args.user, args.task_id)
    payload: dict[str, Any] = {
        "task": task.to_dict(),
        "priority": orch.get_priority_breakdown(args.user, task.id).to_dict(),
        "dependencies": orch.get_dependency_info(args.user, task.id).to_dict(),
        "history": [event.to_dict() for event in orch.get_history(args.user, task.id)],
    }
    if not task.parent_task_id:
        payload["subtasks"] = [t.to_dict() for t in orch.list_subtasks(args.user, task.id)]
        payload["subtask_summary"] = orch.get_subtask_summary(args.user, task.id).to_dict()
    return _emit(payload)


def _task_update(args: argparse.Namespace) -> int:
    container = _ctx(args)
    payload: dict[str, Any] = {}
    for key in ("title", "description", "category", "context", "effort"):
        value = getattr(args, key)
        if value is not None:
            payload[key] = value
    if args.priority is not None:
        payload["user_priority"] = args.priority
    if args.clear_due:
        payload["due_date"] = None
    elif args.due:
        payload["due_date"] = args.due
    task = container.orchestrator.update_task(args.user, args.task_id, payload)
    return _emit({"task": task.to_dict()})


def _task_bump(args: argparse.Namespace) -> int:
    container = _ctx(args)
    task = container.orchestrator.bump_task(args.user, args.task_id)
    return _emit({"task": task.to_dict(), "at_risk": container.orchestrator.calculator.is_at_risk(task, container.clock.now())})


def _task_start(args: argparse.Namespace) -> int:
    container = _ctx(args)
    task = container.orchestrator.start_task(args.user, args.task_id)
    return _emit({"task": task.to_dict()})


def _task_complete(args: argparse.Namespace) -> int:
    container = _ctx(args)
    options = CompletionOptions(
        due_date_calculation=DueDateCalculation(args.due_mode) if args.due_mode else None,
        skip_next_occurrence=args.skip_next,
        stop_recurrence=args.stop_recurrence,
        save_as_default=args.save_as_default,
        save_for_category=args.save_for_category,
    )
    result = container.orchestrator.complete_task(args.user, args.task_id, options)
    return _emit(result.to_dict())


def _task_subtask(args: argparse.Namespace) -> int:
    container = _ctx(args)
    payload: dict[str, Any] = {"title": args.title}
    for key in ("description", "context", "effort"):
        value = getattr(args, key)
        if value is not None:
            payload[key] = value
    if args.priority is not None:
        payload["user_priority"] = args.priority
    if args.due:
        payload["due_date"] = args.due
    task = container.orchestrator.create_subtask(args.user, args.parent_id, payload)
    summary = container.orchestrator.get_subtask_summary(args.user, args.parent_id)
    return _emit({"task": task.to_dict(), "subtask_summary": summary.to_dict()})


def _task_delete(args: argparse.Namespace) -> int:
    container = _ctx(args)
    deleted = container.orchestrator.delete_task(args.user, args.task_id)
    return _emit({"deleted": deleted})


def _task_at_risk(args: argparse.Namespace) -> int:
    container = _ctx(args)
    tasks = container.orchestrator.at_risk_tasks(args.user)
    return _emit({"tasks": [t.to_dict() for t in tasks]})


def _task_rescore(args: argparse.Namespace) -> int:
    container = _ctx(args)
    changed = container.orchestrator.rescore_open_tasks(args.user)
    return _emit({"rescored": [{"task_id": t.id, "priority_score": t.priority_score} for t in changed]})


# ---------------------------------------------------------------------------
# dep
# ---------------------------------------------------------------------------

def _dep_add(args: argparse.Namespace) -> int:
    container = _ctx(args)
    edge = container.orchestrator.add_dependency(args.user, args.task_id, args.blocked_by_id)
    return _emit({"dependency": edge.to_dict()})


def _dep_remove(args: argparse.Namespace) -> int:
    container = _ctx(args)
    removed = container.orchestrator.remove_dependency(args.user, args.task_id, args.blocked_by_id)
    return _emit({"removed": removed, "task_id": args.task_id, "blocked_by_id": args.blocked_by_id})


def _dep_info(args: argparse.Namespace) -> int:
    container = _ctx(args)
    info = container.orchestrator.get_dependency_info(args.user, args.task_id)
    return _emit(info.to_dict())


# ---------------------------------------------------------------------------
# series
# ---------------------------------------------------------------------------

def _series_list(args: argparse.Namespace) -> int:
    container = _ctx(args)
    series = container.orchestrator.list_series(args.user, active_only=args.active)
    return _emit({"series": [s.to_dict() for s in series]})


def _series_history(args: argparse.Namespace) -> int:
    container = _ctx(args)
    return _emit(container.orchestrator.get_series_history(args.user, args.series_id).to_dict())


def _series_update(args: argparse.Namespace) -> int:
    container = _ctx(args)
    payload: dict[str, Any] = {}
    if args.pattern:
        payload["pattern"] = args.pattern
    if args.interval is not None:
        payload["interval"] = args.interval
    if args.clear_until:
        payload["end_date"] = None
    elif args.until:
        payload["end_date"] = args.until
    if args.due_mode:
        payload["due_date_calculation"] = args.due_mode
    if args.reactivate:
        payload["is_active"] = True
    series = container.orchestrator.update_series(args.user, args.series_id, payload)
    return _emit({"series": series.to_dict()})


def _series_deactivate(args: argparse.Namespace) -> int:
    container = _ctx(args)
    series = container.orchestrator.deactivate_series(args.user, args.series_id)
    return _emit({"series": series.to_dict()})


# ---------------------------------------------------------------------------
# user
# ---------------------------------------------------------------------------

def _user_timezone(args: argparse.Namespace) -> int:
    container = _ctx(args)
    if args.timezone:
        tz_name = container.orchestrator.set_user_timezone(args.user, args.timezone)
    else:
        tz_name = container.orchestrator.get_user_timezone(args.user)
    return _emit({"user": args.user, "timezone": tz_name})


def _user_due_mode(args: argparse.Namespace) -> int:
    container = _ctx(args)
    orch = container.orchestrator
    if args.mode:
        orch.set_due_date_preference(args.user, args.mode, category=args.category)
    mode = orch.get_effective_due_date_calculation(args.user, args.category)
    return _emit({"user": args.user, "category": args.category, "due_date_calculation": mode.value})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Taskflow engine CLI")
    parser.add_argument("--project-dir", default=None, help="Project directory holding .taskflow/ (default: cwd)")
    parser.add_argument(
        "--user",
        default=os.environ.get("TASKFLOW_USER", DEFAULT_USER),
        help="Owner id for all operations (default: $TASKFLOW_USER or 'local')",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
        help="Override the log level from config",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    efforts = ["small", "medium", "large", "xlarge"]
    modes = [m.value for m in DueDateCalculation]

    # task
    task = subparsers.add_parser("task", help="Manage tasks")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)

    tcreate = task_sub.add_parser("create", help="Create a task")
    tcreate.add_argument("title")
    tcreate.add_argument("--description", default=None)
    tcreate.add_argument("--priority", type=int, default=None, help="User priority 1-10")
    tcreate.add_argument("--due", default=None, help="Due date (ISO-8601)")
    tcreate.add_argument("--effort", default=None, choices=efforts)
    tcreate.add_argument("--category", default=None)
    tcreate.add_argument("--context", default=None)
    tcreate.add_argument("--person", action="append", help="Related person (repeatable)")
    tcreate.add_argument("--recur", default=None, choices=["daily", "weekly", "monthly"])
    tcreate.add_argument("--interval", type=int, default=1)
    tcreate.add_argument("--until", default=None, help="Series end date (ISO-8601)")
    tcreate.add_argument("--due-mode", default=None, choices=modes)
    tcreate.set_defaults(func=_task_create)

    tlist = task_sub.add_parser("list", help="List tasks by priority")
    tlist.add_argument("--status", default=None, choices=["todo", "in_progress", "done"])
    tlist.add_argument("--category", default=None)
    tlist.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    tlist.set_defaults(func=_task_list)

    tshow = task_sub.add_parser("show", help="Show a task with its score, dependencies and history")
    tshow.add_argument("task_id")
    tshow.set_defaults(func=_task_show)

    tupdate = task_sub.add_parser("update", help="Update task fields")
    tupdate.add_argument("task_id")
    tupdate.add_argument("--title", default=None)
    tupdate.add_argument("--description", default=None)
    tupdate.add_argument("--priority", type=int, default=None)
    tupdate.add_argument("--due", default=None)
    tupdate.add_argument("--clear-due", action="store_true")
    tupdate.add_argument("--effort", default=None, choices=efforts)
    tupdate.add_argument("--category", default=None)
    tupdate.add_argument("--context", default=None)
    tupdate.set_defaults(func=_task_update)

    tbump = task_sub.add_parser("bump", help="Postpone a task")
    tbump.add_argument("task_id")
    tbump.set_defaults(func=_task_bump)

    tstart = task_sub.add_parser("start", help="Move a task to in_progress")
    tstart.add_argument("task_id")
    tstart.set_defaults(func=_task_start)

    tcomplete = task_sub.add_parser("complete", help="Complete a task")
    tcomplete.add_argument("task_id")
    tcomplete.add_argument("--stop-recurrence", action="store_true")
    tcomplete.add_argument("--skip-next", action="store_true")
    tcomplete.add_argument("--due-mode", default=None, choices=modes)
    tcomplete.add_argument("--save-as-default", action="store_true", help="Remember --due-mode as the user default")
    tcomplete.add_argument(
        "--save-for-category", action="store_true", help="Remember --due-mode for the task's category"
    )
    tcomplete.set_defaults(func=_task_complete)

    tsub = task_sub.add_parser("subtask", help="Add a subtask to a task")
    tsub.add_argument("parent_id")
    tsub.add_argument("title")
    tsub.add_argument("--description", default=None)
    tsub.add_argument("--priority", type=int, default=None)
    tsub.add_argument("--due", default=None)
    tsub.add_argument("--effort", default=None, choices=efforts)
    tsub.add_argument("--context", default=None)
    tsub.set_defaults(func=_task_subtask)

    tdelete = task_sub.add_parser("delete", help="Delete a task and its subtasks")
    tdelete.add_argument("task_id")
    tdelete.set_defaults(func=_task_delete)

    trisk = task_sub.add_parser("at-risk", help="List open tasks that are at risk")
    trisk.set_defaults(func=_task_at_risk)

    trescore = task_sub.add_parser("rescore", help="Recompute scores of open tasks")
    trescore.set_defaults(func=_task_rescore)

    # dep
    dep = subparsers.add_parser("dep", help="Manage blocked-by dependencies")
    dep_sub = dep.add_subparsers(dest="dep_cmd", required=True)
    dadd = dep_sub.add_parser("add", help="Mark TASK_ID as blocked by BLOCKED_BY_ID")
    dadd.add_argument("task_id")
    dadd.add_argument("blocked_by_id")
    dadd.set_defaults(func=_dep_add)
    dremove = dep_sub.add_parser("remove", help="Remove a dependency")
    dremove.add_argument("task_id")
    dremove.add_argument("blocked_by_id")
    dremove.set_defaults(func=_dep_remove)
    dinfo = dep_sub.add_parser("info", help="Show blockers and blocked tasks")
    dinfo.add_argument("task_id")
    dinfo.set_defaults(func=_dep_info)

    # series
    series = subparsers.add_parser("series", help="Manage recurring series")
    series_sub = series.add_subparsers(dest="series_cmd", required=True)
    slist = series_sub.add_parser("list", help="List series")
    slist.add_argument("--active", action="store_true")
    slist.set_defaults(func=_series_list)
    shist = series_sub.add_parser("history", help="List tasks generated by a series")
    shist.add_argument("series_id")
    shist.set_defaults(func=_series_history)
    supdate = series_sub.add_parser("update", help="Change a series rule")
    supdate.add_argument("series_id")
    supdate.add_argument("--pattern", default=None, choices=["daily", "weekly", "monthly"])
    supdate.add_argument("--interval", type=int, default=None)
    supdate.add_argument("--until", default=None)
    supdate.add_argument("--clear-until", action="store_true")
    supdate.add_argument("--due-mode", default=None, choices=modes)
    supdate.add_argument("--reactivate", action="store_true", help="Turn a deactivated series back on")
    supdate.set_defaults(func=_series_update)
    sdeactivate = series_sub.add_parser("deactivate", help="Stop a series")
    sdeactivate.add_argument("series_id")
    sdeactivate.set_defaults(func=_series_deactivate)

    # user
    user = subparsers.add_parser("user", help="User settings")
    user_sub = user.add_subparsers(dest="user_cmd", required=True)
    utz = user_sub.add_parser("timezone", help="Show or set the user's IANA timezone")
    utz.add_argument("timezone", nargs="?", default=None)
    utz.set_defaults(func=_user_timezone)

    umode = user_sub.add_parser("due-mode", help="Show or set the due-date mode preference")
    umode.add_argument("mode", nargs="?", default=None, choices=modes)
    umode.add_argument("--category", default=None)
    umode.set_defaults(func=_user_due_mode)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config, err = load_engine_config(_resolve_project_dir(args.project_dir))
    configure_logging(args.log_level or get_logging_config(config)["level"])
    if err:
        logger.warning("Ignoring unreadable config: {}", err)

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except TaskflowError as exc:
        sys.stderr.write(json.dumps(exc.to_dict()) + "\n")
        return 1
    except PersistenceError as exc:
        sys.stderr.write(json.dumps(exc.to_dict()) + "\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
