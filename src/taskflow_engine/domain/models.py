"""Task, series, dependency and history records for the orchestration engine.

All records are plain dataclasses that round-trip through ``to_dict`` /
``from_dict`` so the file-backed store can persist them as YAML.  Timestamps
are timezone-aware UTC ``datetime`` objects in memory and ISO-8601 strings on
disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..utils import _new_id, _parse_iso, _to_iso, add_days, add_months


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskEffort(str, Enum):
    SMALL = "small"    # < 1 hour
    MEDIUM = "medium"  # 1-2 hours
    LARGE = "large"    # 2-4 hours
    XLARGE = "xlarge"  # > 4 hours

    @property
    def multiplier(self) -> float:
        return {"small": 1.3, "medium": 1.15}.get(self.value, 1.0)


class RecurrencePattern(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def is_recurring(self) -> bool:
        return self is not RecurrencePattern.NONE


class DueDateCalculation(str, Enum):
    FROM_ORIGINAL = "from_original"
    FROM_COMPLETION = "from_completion"


class HistoryEventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    BUMPED = "bumped"
    COMPLETED = "completed"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[Enum], raw: Any, default: Optional[Enum]) -> Any:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except (ValueError, KeyError):
        return default


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    id: str = field(default_factory=lambda: _new_id("task"))
    owner_id: str = ""
    title: str = ""
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    user_priority: int = 5
    due_date: Optional[datetime] = None
    effort: Optional[TaskEffort] = None
    category: Optional[str] = None
    context: Optional[str] = None
    related_people: list[str] = field(default_factory=list)

    priority_score: int = 0
    bump_count: int = 0

    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    # Hierarchy and recurrence
    series_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    # Task whose completion generated this instance (recurring series only)
    recurrence_source_id: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "user_priority": self.user_priority,
            "due_date": _to_iso(self.due_date),
            "effort": self.effort.value if self.effort else None,
            "category": self.category,
            "context": self.context,
            "related_people": list(self.related_people),
            "priority_score": self.priority_score,
            "bump_count": self.bump_count,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
            "completed_at": _to_iso(self.completed_at),
            "series_id": self.series_id,
            "parent_task_id": self.parent_task_id,
            "recurrence_source_id": self.recurrence_source_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id") or _new_id("task")),
            owner_id=str(data.get("owner_id") or ""),
            title=str(data.get("title") or ""),
            description=data.get("description"),
            status=_enum(TaskStatus, data.get("status"), TaskStatus.TODO),
            user_priority=int(data.get("user_priority") or 5),
            due_date=_parse_iso(data.get("due_date")),
            effort=_enum(TaskEffort, data.get("effort"), None),
            category=data.get("category"),
            context=data.get("context"),
            related_people=list(data.get("related_people") or []),
            priority_score=int(data.get("priority_score") or 0),
            bump_count=int(data.get("bump_count") or 0),
            created_at=_parse_iso(data.get("created_at")) or now_utc(),
            updated_at=_parse_iso(data.get("updated_at")) or now_utc(),
            completed_at=_parse_iso(data.get("completed_at")),
            series_id=data.get("series_id"),
            parent_task_id=data.get("parent_task_id"),
            recurrence_source_id=data.get("recurrence_source_id"),
        )


# ---------------------------------------------------------------------------
# Task series
# ---------------------------------------------------------------------------

@dataclass
class TaskSeries:
    id: str = field(default_factory=lambda: _new_id("series"))
    owner_id: str = ""
    original_task_id: Optional[str] = None
    pattern: RecurrencePattern = RecurrencePattern.NONE
    interval: int = 1
    end_date: Optional[datetime] = None
    due_date_calculation: DueDateCalculation = DueDateCalculation.FROM_ORIGINAL
    is_active: bool = True
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def can_generate_next(self, reference: datetime) -> bool:
        if not self.is_active:
            return False
        if self.end_date is not None and reference > self.end_date:
            return False
        return True

    def next_due_date(self, base: datetime) -> datetime:
        """Advance *base* by one interval of the series pattern."""
        if self.pattern == RecurrencePattern.DAILY:
            return add_days(base, self.interval)
        if self.pattern == RecurrencePattern.WEEKLY:
            return add_days(base, self.interval * 7)
        if self.pattern == RecurrencePattern.MONTHLY:
            return add_months(base, self.interval)
        return base

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "original_task_id": self.original_task_id,
            "pattern": self.pattern.value,
            "interval": self.interval,
            "end_date": _to_iso(self.end_date),
            "due_date_calculation": self.due_date_calculation.value,
            "is_active": self.is_active,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskSeries":
        return cls(
            id=str(data.get("id") or _new_id("series")),
            owner_id=str(data.get("owner_id") or ""),
            original_task_id=data.get("original_task_id"),
            pattern=_enum(RecurrencePattern, data.get("pattern"), RecurrencePattern.NONE),
            interval=int(data.get("interval") or 1),
            end_date=_parse_iso(data.get("end_date")),
            due_date_calculation=_enum(
                DueDateCalculation, data.get("due_date_calculation"), DueDateCalculation.FROM_ORIGINAL
            ),
            is_active=bool(data.get("is_active", True)),
            created_at=_parse_iso(data.get("created_at")) or now_utc(),
            updated_at=_parse_iso(data.get("updated_at")) or now_utc(),
        )


# ---------------------------------------------------------------------------
# Dependencies, history, users
# ---------------------------------------------------------------------------

@dataclass
class TaskDependency:
    """``task_id`` is blocked by ``blocked_by_id``."""

    task_id: str
    blocked_by_id: str
    owner_id: str = ""
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "blocked_by_id": self.blocked_by_id,
            "owner_id": self.owner_id,
            "created_at": _to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskDependency":
        return cls(
            task_id=str(data.get("task_id") or ""),
            blocked_by_id=str(data.get("blocked_by_id") or ""),
            owner_id=str(data.get("owner_id") or ""),
            created_at=_parse_iso(data.get("created_at")) or now_utc(),
        )


@dataclass(frozen=True)
class TaskHistory:
    task_id: str
    owner_id: str
    event_type: HistoryEventType
    old_value: Any = None
    new_value: Any = None
    created_at: datetime = field(default_factory=now_utc)
    id: str = field(default_factory=lambda: _new_id("hist"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "owner_id": self.owner_id,
            "event_type": self.event_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "created_at": _to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskHistory":
        return cls(
            id=str(data.get("id") or _new_id("hist")),
            task_id=str(data.get("task_id") or ""),
            owner_id=str(data.get("owner_id") or ""),
            event_type=_enum(HistoryEventType, data.get("event_type"), HistoryEventType.UPDATED),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            created_at=_parse_iso(data.get("created_at")) or now_utc(),
        )


@dataclass
class UserProfile:
    """Per-user settings: timezone and due-date mode preferences."""

    id: str
    timezone: Optional[str] = None
    default_due_date_calculation: Optional[DueDateCalculation] = None
    category_due_date_calculations: dict[str, DueDateCalculation] = field(default_factory=dict)

    def due_date_calculation_for(self, category: Optional[str]) -> Optional[DueDateCalculation]:
        """Category preference first, then the user default."""
        if category and category in self.category_due_date_calculations:
            return self.category_due_date_calculations[category]
        return self.default_due_date_calculation

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timezone": self.timezone,
            "default_due_date_calculation": (
                self.default_due_date_calculation.value if self.default_due_date_calculation else None
            ),
            "category_due_date_calculations": {
                name: mode.value for name, mode in sorted(self.category_due_date_calculations.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        raw_categories = data.get("category_due_date_calculations")
        categories: dict[str, DueDateCalculation] = {}
        if isinstance(raw_categories, dict):
            for name, raw in raw_categories.items():
                mode = _enum(DueDateCalculation, raw, None)
                if mode is not None:
                    categories[str(name)] = mode
        return cls(
            id=str(data.get("id") or ""),
            timezone=str(data["timezone"]) if data.get("timezone") else None,
            default_due_date_calculation=_enum(DueDateCalculation, data.get("default_due_date_calculation"), None),
            category_due_date_calculations=categories,
        )


# ---------------------------------------------------------------------------
# Query and operation results
# ---------------------------------------------------------------------------

@dataclass
class SubtaskSummary:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    todo: int = 0

    @property
    def all_complete(self) -> bool:
        # No subtasks counts as complete for gating purposes.
        return self.completed == self.total

    @property
    def completion_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "in_progress": self.in_progress,
            "todo": self.todo,
            "completion_rate": self.completion_rate,
            "all_complete": self.all_complete,
        }


@dataclass
class DependencyEntry:
    task_id: str
    title: str
    status: TaskStatus

    def to_dict(self) -> dict[str, Any]:
        return {"task_id": self.task_id, "title": self.title, "status": self.status.value}


@dataclass
class DependencyInfo:
    task_id: str
    blockers: list[DependencyEntry] = field(default_factory=list)
    blocking: list[DependencyEntry] = field(default_factory=list)

    @property
    def can_complete(self) -> bool:
        return all(entry.status == TaskStatus.DONE for entry in self.blockers)

    @property
    def is_blocked(self) -> bool:
        return not self.can_complete

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "blockers": [b.to_dict() for b in self.blockers],
            "blocking": [b.to_dict() for b in self.blocking],
            "is_blocked": self.is_blocked,
            "can_complete": self.can_complete,
        }


@dataclass
class CompletionOptions:
    """Per-completion overrides for recurring tasks."""

    due_date_calculation: Optional[DueDateCalculation] = None
    skip_next_occurrence: bool = False
    stop_recurrence: bool = False
    save_as_default: bool = False
    save_for_category: bool = False


@dataclass
class CompletionResult:
    completed_task: Task
    next_task: Optional[Task] = None
    series: Optional[TaskSeries] = None
    unblocked_task_ids: list[str] = field(default_factory=list)
    all_subtasks_complete: Optional[bool] = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed_task": self.completed_task.to_dict(),
            "next_task": self.next_task.to_dict() if self.next_task else None,
            "series": self.series.to_dict() if self.series else None,
            "unblocked_task_ids": list(self.unblocked_task_ids),
            "all_subtasks_complete": self.all_subtasks_complete,
            "warnings": list(self.warnings),
        }


@dataclass
class RankedTask:
    task: Task
    incomplete_blockers: int = 0
    at_risk: bool = False

    @property
    def is_blocked(self) -> bool:
        return self.incomplete_blockers > 0

    def to_dict(self) -> dict[str, Any]:
        data = self.task.to_dict()
        data["incomplete_blockers"] = self.incomplete_blockers
        data["is_blocked"] = self.is_blocked
        data["at_risk"] = self.at_risk
        return data


@dataclass
class SeriesHistory:
    series: TaskSeries
    tasks: list[Task] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.tasks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "series": self.series.to_dict(),
            "tasks": [
                {
                    "task_id": t.id,
                    "title": t.title,
                    "status": t.status.value,
                    "due_date": _to_iso(t.due_date),
                    "completed_at": _to_iso(t.completed_at),
                    "created_at": _to_iso(t.created_at),
                }
                for t in self.tasks
            ],
            "total": self.total,
        }
