"""Task lifecycle coordinator.

``TaskOrchestrator`` is the only entry point that mutates tasks.  It validates
requests, scores every mutation through :class:`PriorityCalculator`, runs the
dependency and subtask gates before completion, then hands completed tasks to
the recurrence generator and the reward trigger and appends history events.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from ..clock import Clock
from ..constants import (
    CATEGORY_MAX_LENGTH,
    CONTEXT_MAX_LENGTH,
    DEFAULT_DUE_DATE_CALCULATION,
    DEFAULT_USER_PRIORITY,
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)
from ..domain.models import (
    CompletionOptions,
    CompletionResult,
    DependencyInfo,
    DueDateCalculation,
    HistoryEventType,
    RankedTask,
    SeriesHistory,
    SubtaskSummary,
    Task,
    TaskDependency,
    TaskHistory,
    TaskSeries,
    TaskStatus,
    UserProfile,
)
from ..domain.requests import (
    CreateSubtaskRequest,
    CreateTaskRequest,
    UpdateSeriesRequest,
    UpdateTaskRequest,
    parse_request,
)
from ..errors import ConflictError, GatingError, ValidationError
from ..storage.interfaces import (
    DependencyRepository,
    HistoryRepository,
    SeriesRepository,
    TaskRepository,
    TransactionManager,
    UserDirectory,
)
from ..utils import _ensure_utc, _to_iso
from .dependencies import DependencyGraph
from .gating import enforce
from .priority import PriorityBreakdown, PriorityCalculator
from .recurrence import RecurrenceGenerator
from .rewards import NullRewardTrigger, RewardTrigger
from .subtasks import SubtaskGate

# Fields whose change requires a new priority score.
SCORING_FIELDS = ("user_priority", "due_date", "effort")

Payload = Union[dict[str, Any], None]


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return _to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return _ensure_utc(value) if value is not None else None


class TaskOrchestrator:
    def __init__(
        self,
        *,
        tasks: TaskRepository,
        dependencies: DependencyRepository,
        series: SeriesRepository,
        history: HistoryRepository,
        users: UserDirectory,
        tx: TransactionManager,
        clock: Clock,
        reward: Optional[RewardTrigger] = None,
        calculator: Optional[PriorityCalculator] = None,
        defaults: Optional[dict[str, Any]] = None,
        limits: Optional[dict[str, int]] = None,
    ) -> None:
        self._tasks = tasks
        self._series = series
        self._history = history
        self._users = users
        self._tx = tx
        self._clock = clock
        self._reward = reward or NullRewardTrigger()
        self.calculator = calculator or PriorityCalculator()
        self.graph = DependencyGraph(tasks, dependencies, tx)
        self.subtasks = SubtaskGate(tasks)
        self.recurrence = RecurrenceGenerator(tasks, series, history, self.calculator, tx, users)
        self._dependencies = dependencies

        defaults = defaults or {}
        self._default_priority = int(defaults.get("user_priority", DEFAULT_USER_PRIORITY))
        self._default_mode = DueDateCalculation(defaults.get("due_date_calculation", DEFAULT_DUE_DATE_CALCULATION))
        self._limits = {
            "title": TITLE_MAX_LENGTH,
            "description": DESCRIPTION_MAX_LENGTH,
            "category": CATEGORY_MAX_LENGTH,
            "context": CONTEXT_MAX_LENGTH,
        }
        self._limits.update(limits or {})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_lengths(self, values: dict[str, Any]) -> None:
        for name, limit in self._limits.items():
            value = values.get(name)
            if isinstance(value, str) and len(value) > limit:
                raise ValidationError(name, f"must be at most {limit} characters")

    def _score(self, task: Task, now: datetime) -> None:
        task.priority_score = self.calculator.calculate(task, now)
        logger.debug("Scored {} at {}", task.id, task.priority_score)

    def _record(
        self,
        task: Task,
        event_type: HistoryEventType,
        now: datetime,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self._history.append(
            TaskHistory(
                task_id=task.id,
                owner_id=task.owner_id,
                event_type=event_type,
                old_value=old_value,
                new_value=new_value,
                created_at=now,
            )
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_task(self, owner_id: str, request: Union[CreateTaskRequest, Payload]) -> Task:
        req = parse_request(CreateTaskRequest, request)
        self._check_lengths(req.model_dump())
        now = self._clock.now()

        task = Task(
            owner_id=owner_id,
            title=req.title,
            description=req.description,
            user_priority=req.user_priority or self._default_priority,
            due_date=_utc_or_none(req.due_date),
            effort=req.effort,
            category=req.category,
            context=req.context,
            related_people=list(req.related_people),
            created_at=now,
            updated_at=now,
        )

        with self._tx.transaction():
            rule = req.recurrence
            if rule is not None and rule.pattern.is_recurring:
                series = TaskSeries(
                    owner_id=owner_id,
                    original_task_id=task.id,
                    pattern=rule.pattern,
                    interval=rule.interval,
                    end_date=_utc_or_none(rule.end_date),
                    due_date_calculation=(
                        rule.due_date_calculation or self.get_effective_due_date_calculation(owner_id, req.category)
                    ),
                    created_at=now,
                    updated_at=now,
                )
                self._series.insert(series)
                task.series_id = series.id
                logger.info("Created {} series {} for {}", series.pattern.value, series.id, task.id)

            self._score(task, now)
            self._tasks.insert(task)
            self._record(
                task,
                HistoryEventType.CREATED,
                now,
                new_value={"title": task.title, "priority_score": task.priority_score},
            )

        logger.info("Created task {} ({!r}) score={}", task.id, task.title, task.priority_score)
        return task

    def create_subtask(self, owner_id: str, parent_id: str, request: Union[CreateSubtaskRequest, Payload]) -> Task:
        req = parse_request(CreateSubtaskRequest, request)
        self._check_lengths(req.model_dump())
        now = self._clock.now()

        with self._tx.transaction():
            parent = self._tasks.get(owner_id, parent_id)
            if parent.is_subtask:
                raise ValidationError("parent_task_id", "subtasks cannot have subtasks")
            if parent.is_done:
                raise ValidationError("parent_task_id", "cannot add a subtask to a completed task")

            task = Task(
                owner_id=owner_id,
                title=req.title,
                description=req.description,
                user_priority=req.user_priority or self._default_priority,
                due_date=_utc_or_none(req.due_date),
                effort=req.effort,
                category=parent.category,
                context=req.context,
                created_at=now,
                updated_at=now,
                parent_task_id=parent.id,
            )
            self._score(task, now)
            self._tasks.insert(task)
            self._record(
                task,
                HistoryEventType.CREATED,
                now,
                new_value={"title": task.title, "parent_task_id": parent.id, "priority_score": task.priority_score},
            )

        logger.info("Created subtask {} under {}", task.id, parent_id)
        return task

    # ------------------------------------------------------------------
    # Update / bump / status
    # ------------------------------------------------------------------

    def update_task(self, owner_id: str, task_id: str, request: Union[UpdateTaskRequest, Payload]) -> Task:
        req = parse_request(UpdateTaskRequest, request)
        updates = req.model_dump(exclude_unset=True)
        if "title" in updates and updates["title"] is None:
            raise ValidationError("title", "title cannot be empty")
        if "user_priority" in updates and updates["user_priority"] is None:
            raise ValidationError("user_priority", "user_priority must be between 1 and 10")
        if "related_people" in updates and updates["related_people"] is None:
            updates["related_people"] = []
        if "due_date" in updates:
            updates["due_date"] = _utc_or_none(updates["due_date"])
        self._check_lengths(updates)
        now = self._clock.now()

        with self._tx.transaction():
            task = self._tasks.get(owner_id, task_id)
            if task.is_done:
                raise ValidationError("status", "completed tasks cannot be edited")

            old_values: dict[str, Any] = {}
            new_values: dict[str, Any] = {}
            for name, value in updates.items():
                current = getattr(task, name)
                if current == value:
                    continue
                old_values[name] = _jsonable(current)
                new_values[name] = _jsonable(value)
                setattr(task, name, value)

            if not new_values:
                return task

            if any(name in new_values for name in SCORING_FIELDS):
                self._score(task, now)
            task.updated_at = now
            self._tasks.update(task)
            self._record(task, HistoryEventType.UPDATED, now, old_value=old_values, new_value=new_values)

        logger.info("Updated task {}: {}", task_id, sorted(new_values))
        return task

    def bump_task(self, owner_id: str, task_id: str) -> Task:
        now = self._clock.now()
        with self._tx.transaction():
            task = self._tasks.get(owner_id, task_id)
            if task.is_done:
                raise ValidationError("status", "completed tasks cannot be bumped")
            task.bump_count += 1
            task.updated_at = now
            self._score(task, now)
            self._tasks.update(task)
            self._record(
                task,
                HistoryEventType.BUMPED,
                now,
                old_value={"bump_count": task.bump_count - 1},
                new_value={"bump_count": task.bump_count, "priority_score": task.priority_score},
            )

        if self.calculator.is_at_risk(task, now):
            logger.warning("Task {} is at risk after {} bumps", task_id, task.bump_count)
        return task

    def set_status(self, owner_id: str, task_id: str, status: Union[TaskStatus, str]) -> Task:
        try:
            target = TaskStatus(status)
        except ValueError as exc:
            raise ValidationError("status", f"unknown status {status!r}") from exc
        if target == TaskStatus.DONE:
            raise ValidationError("status", "use complete to finish a task")

        now = self._clock.now()
        with self._tx.transaction():
            task = self._tasks.get(owner_id, task_id)
            if task.is_done:
                raise ValidationError("status", "completed tasks cannot be reopened")
            if task.status == target:
                return task
            previous = task.status
            task.status = target
            task.updated_at = now
            self._score(task, now)
            self._tasks.update(task)
            self._record(
                task,
                HistoryEventType.STATUS_CHANGED,
                now,
                old_value={"status": previous.value},
                new_value={"status": target.value},
            )

        logger.info("Task {} moved {} -> {}", task_id, previous.value, target.value)
        return task

    def start_task(self, owner_id: str, task_id: str) -> Task:
        return self.set_status(owner_id, task_id, TaskStatus.IN_PROGRESS)

    # ------------------------------------------------------------------
    # Complete
    # ------------------------------------------------------------------

    def complete_task(
        self,
        owner_id: str,
        task_id: str,
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Complete a task once both gates hold.

        The completion commits first; recurrence and reward run afterwards and
        their failures are reported in ``CompletionResult.warnings``.

        Raises:
            GatingError: listing every open blocker and subtask.
            ConflictError: if the task is already done.
        """
        now = self._clock.now()
        with self._tx.transaction():
            task = self._tasks.get(owner_id, task_id)
            if task.is_done:
                raise ConflictError("task", f"{task_id} is already completed")

            checks = [
                self.graph.blocker_check(owner_id, task_id),
                self.subtasks.subtask_check(owner_id, task_id),
            ]
            try:
                enforce(task_id, checks)
            except GatingError as exc:
                logger.warning("Completion of {} gated: {}", task_id, exc)
                raise

            completed = self._tasks.mark_done_if_open(
                owner_id,
                task_id,
                completed_at=now,
                priority_score=self.calculator.calculate(task, now),
            )
            self._record(
                completed,
                HistoryEventType.COMPLETED,
                now,
                old_value={"status": task.status.value},
                new_value={"status": TaskStatus.DONE.value, "priority_score": completed.priority_score},
            )
            unblocked = self.graph.newly_unblocked(owner_id, task_id)
            all_subtasks_complete = None
            if completed.parent_task_id:
                summary = self.subtasks.get_subtask_summary(owner_id, completed.parent_task_id)
                all_subtasks_complete = summary.all_complete

        logger.info("Completed task {} score={}", task_id, completed.priority_score)
        result = CompletionResult(
            completed_task=completed,
            unblocked_task_ids=unblocked,
            all_subtasks_complete=all_subtasks_complete,
        )

        if completed.series_id:
            try:
                result.next_task = self.recurrence.on_completed(completed, now, options)
                result.series = self._series.get(owner_id, completed.series_id)
            except Exception as exc:
                logger.exception("Recurrence failed for {}", task_id)
                result.warnings.append(f"recurrence: {exc}")

        try:
            self._reward.on_completed(completed, self._users.get_timezone(owner_id))
        except Exception as exc:
            logger.exception("Reward trigger failed for {}", task_id)
            result.warnings.append(f"reward: {exc}")

        return result

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_task(self, owner_id: str, task_id: str) -> list[str]:
        """Delete a task with its subtasks and every edge touching them."""
        now = self._clock.now()
        with self._tx.transaction():
            task = self._tasks.get(owner_id, task_id)
            doomed = self._tasks.list_subtasks(owner_id, task_id) + [task]
            for item in doomed:
                self._dependencies.remove_for_task(owner_id, item.id)
                self._tasks.delete(owner_id, item.id)
                self._record(item, HistoryEventType.DELETED, now, old_value={"title": item.title})
        deleted = [item.id for item in doomed]
        logger.info("Deleted {}", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_dependency(self, owner_id: str, task_id: str, blocked_by_id: str) -> TaskDependency:
        return self.graph.add_dependency(owner_id, task_id, blocked_by_id, now=self._clock.now())

    def remove_dependency(self, owner_id: str, task_id: str, blocked_by_id: str) -> bool:
        return self.graph.remove_dependency(owner_id, task_id, blocked_by_id)

    def get_dependency_info(self, owner_id: str, task_id: str) -> DependencyInfo:
        return self.graph.get_dependency_info(owner_id, task_id)

    def can_complete(self, owner_id: str, task_id: str) -> bool:
        with self._tx.transaction():
            self._tasks.get(owner_id, task_id)
            return self.graph.can_complete(owner_id, task_id)

    def count_incomplete_blockers(self, owner_id: str, task_ids: Iterable[str]) -> dict[str, int]:
        return self.graph.count_incomplete_blockers(owner_id, task_ids)

    # ------------------------------------------------------------------
    # Subtasks
    # ------------------------------------------------------------------

    def list_subtasks(self, owner_id: str, parent_id: str) -> list[Task]:
        with self._tx.transaction():
            self._tasks.get(owner_id, parent_id)
            return self._tasks.list_subtasks(owner_id, parent_id)

    def can_complete_parent(self, owner_id: str, parent_id: str) -> bool:
        with self._tx.transaction():
            self._tasks.get(owner_id, parent_id)
            return self.subtasks.can_complete_parent(owner_id, parent_id)

    def get_subtask_summary(self, owner_id: str, parent_id: str) -> SubtaskSummary:
        with self._tx.transaction():
            self._tasks.get(owner_id, parent_id)
            return self.subtasks.get_subtask_summary(owner_id, parent_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_task(self, owner_id: str, task_id: str) -> Task:
        return self._tasks.get(owner_id, task_id)

    def get_priority_breakdown(self, owner_id: str, task_id: str) -> PriorityBreakdown:
        task = self._tasks.get(owner_id, task_id)
        return self.calculator.breakdown(task, self._clock.now())

    def get_history(self, owner_id: str, task_id: str) -> list[TaskHistory]:
        self._tasks.get(owner_id, task_id)
        return self._history.for_task(owner_id, task_id)

    def list_tasks(
        self,
        owner_id: str,
        *,
        status: Optional[Union[TaskStatus, str]] = None,
        category: Optional[str] = None,
    ) -> list[RankedTask]:
        """Tasks ordered by score, highest first, each gated by one batch blocker query."""
        wanted = None
        if status is not None:
            try:
                wanted = TaskStatus(status)
            except ValueError as exc:
                raise ValidationError("status", f"unknown status {status!r}") from exc
        now = self._clock.now()
        with self._tx.transaction():
            tasks = self._tasks.list(owner_id, status=wanted, category=category)
            counts = self.graph.count_incomplete_blockers(owner_id, [t.id for t in tasks])
        ranked = [
            RankedTask(
                task=t,
                incomplete_blockers=counts.get(t.id, 0),
                at_risk=not t.is_done and self.calculator.is_at_risk(t, now),
            )
            for t in tasks
        ]
        ranked.sort(key=lambda r: (-r.task.priority_score, r.task.created_at))
        return ranked

    def at_risk_tasks(self, owner_id: str, now: Optional[datetime] = None) -> list[Task]:
        now = now or self._clock.now()
        open_tasks = [t for t in self._tasks.list(owner_id) if not t.is_done]
        return [t for t in open_tasks if self.calculator.is_at_risk(t, now)]

    def rescore_open_tasks(self, owner_id: str) -> list[Task]:
        """Recompute scores of open tasks whose score drifted with time."""
        now = self._clock.now()
        changed: list[Task] = []
        with self._tx.transaction():
            for task in self._tasks.list(owner_id):
                if task.is_done:
                    continue
                score = self.calculator.calculate(task, now)
                if score == task.priority_score:
                    continue
                task.priority_score = score
                self._tasks.update(task)
                changed.append(task)
        logger.info("Rescored {} open task(s) for {}", len(changed), owner_id)
        return changed

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    def list_series(self, owner_id: str, *, active_only: bool = False) -> list[TaskSeries]:
        return self._series.list(owner_id, active_only=active_only)

    def update_series(
        self,
        owner_id: str,
        series_id: str,
        request: Union[UpdateSeriesRequest, Payload],
    ) -> TaskSeries:
        req = parse_request(UpdateSeriesRequest, request)
        updates = req.model_dump(exclude_unset=True)
        if "pattern" in updates and (updates["pattern"] is None or not updates["pattern"].is_recurring):
            raise ValidationError("pattern", "use deactivate to stop a series")
        if "interval" in updates and updates["interval"] is None:
            raise ValidationError("interval", "interval is required")
        if "is_active" in updates and updates["is_active"] is None:
            raise ValidationError("is_active", "is_active must be true or false")
        if "due_date_calculation" in updates and updates["due_date_calculation"] is None:
            updates["due_date_calculation"] = self._default_mode
        if "end_date" in updates:
            updates["end_date"] = _utc_or_none(updates["end_date"])

        with self._tx.transaction():
            series = self._series.get(owner_id, series_id)
            for name, value in updates.items():
                setattr(series, name, value)
            series.updated_at = self._clock.now()
            self._series.update(series)
        logger.info("Updated series {}: {}", series_id, sorted(updates))
        return series

    def deactivate_series(self, owner_id: str, series_id: str) -> TaskSeries:
        with self._tx.transaction():
            series = self._series.get(owner_id, series_id)
            if series.is_active:
                series.is_active = False
                series.updated_at = self._clock.now()
                self._series.update(series)
                logger.info("Deactivated series {}", series_id)
        return series

    def get_series_history(self, owner_id: str, series_id: str) -> SeriesHistory:
        with self._tx.transaction():
            series = self._series.get(owner_id, series_id)
            tasks = self._tasks.list(owner_id, series_id=series_id)
        return SeriesHistory(series=series, tasks=tasks)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_effective_due_date_calculation(self, user_id: str, category: Optional[str] = None) -> DueDateCalculation:
        """Category preference, then the user default, then the configured default."""
        return self._users.get_profile(user_id).due_date_calculation_for(category) or self._default_mode

    def set_due_date_preference(
        self,
        user_id: str,
        mode: Union[DueDateCalculation, str],
        *,
        category: Optional[str] = None,
    ) -> UserProfile:
        try:
            value = DueDateCalculation(mode)
        except ValueError as exc:
            raise ValidationError("due_date_calculation", f"unknown mode {mode!r}") from exc
        category = (category or "").strip() or None
        if category is not None and len(category) > self._limits["category"]:
            raise ValidationError("category", f"must be at most {self._limits['category']} characters")
        return self._users.save_due_date_preference(user_id, value, category=category)

    def get_user_timezone(self, user_id: str) -> str:
        return self._users.get_timezone(user_id)

    def set_user_timezone(self, user_id: str, timezone_name: str) -> str:
        name = (timezone_name or "").strip()
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValidationError("timezone", f"unknown timezone {timezone_name!r}") from exc
        return self._users.set_timezone(user_id, name)
