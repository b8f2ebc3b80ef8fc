"""Follow-on instance generation for recurring task series."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from ..domain.models import (
    CompletionOptions,
    DueDateCalculation,
    HistoryEventType,
    Task,
    TaskHistory,
    TaskSeries,
    TaskStatus,
)
from ..errors import NotFoundError, PersistenceError, TaskflowError
from ..storage.interfaces import (
    HistoryRepository,
    SeriesRepository,
    TaskRepository,
    TransactionManager,
    UserDirectory,
)
from .priority import PriorityCalculator


class RecurrenceGenerator:
    def __init__(
        self,
        tasks: TaskRepository,
        series: SeriesRepository,
        history: HistoryRepository,
        calculator: PriorityCalculator,
        tx: TransactionManager,
        users: Optional[UserDirectory] = None,
    ) -> None:
        self._tasks = tasks
        self._series = series
        self._history = history
        self._calculator = calculator
        self._tx = tx
        self._users = users

    def next_due_date(
        self,
        series: TaskSeries,
        task: Task,
        completed_at: datetime,
        mode: Optional[DueDateCalculation] = None,
    ) -> Optional[datetime]:
        if task.due_date is None:
            return None
        mode = mode or series.due_date_calculation
        base = completed_at if mode == DueDateCalculation.FROM_COMPLETION else task.due_date
        return series.next_due_date(base)

    def on_completed(
        self,
        task: Task,
        now: datetime,
        options: Optional[CompletionOptions] = None,
    ) -> Optional[Task]:
        """Materialise the successor of a completed series task.

        Deactivating an exhausted series and inserting the successor happen in
        one transaction. A successor already generated from *task* is returned
        instead of creating a second one.
        """
        if not task.series_id:
            return None
        options = options or CompletionOptions()

        with self._tx.transaction():
            existing = self._tasks.find_by_recurrence_source(task.owner_id, task.id)
            if existing is not None:
                return existing

            try:
                series = self._series.get(task.owner_id, task.series_id)
            except NotFoundError:
                logger.warning("Task {} references missing series {}", task.id, task.series_id)
                return None
            if not series.pattern.is_recurring:
                return None

            if options.stop_recurrence:
                self._deactivate(series, now, reason="stopped on completion")
                return None
            if options.skip_next_occurrence:
                logger.info("Skipped next occurrence of series {}", series.id)
                return None

            if not series.can_generate_next(now):
                if series.is_active:
                    self._deactivate(series, now, reason="end date passed")
                return None

            if options.due_date_calculation is not None:
                self._save_preferences(task, options)

            completed_at = task.completed_at or now
            next_due = self.next_due_date(series, task, completed_at, options.due_date_calculation)
            if series.end_date is not None and next_due is not None and next_due > series.end_date:
                self._deactivate(series, now, reason="next occurrence after end date")
                return None

            successor = Task(
                owner_id=task.owner_id,
                title=task.title,
                description=task.description,
                status=TaskStatus.TODO,
                user_priority=task.user_priority,
                due_date=next_due,
                effort=task.effort,
                category=task.category,
                context=task.context,
                related_people=list(task.related_people),
                bump_count=0,
                created_at=now,
                updated_at=now,
                series_id=series.id,
                recurrence_source_id=task.id,
            )
            successor.priority_score = self._calculator.calculate(successor, now)
            self._tasks.insert(successor)
            self._history.append(
                TaskHistory(
                    task_id=successor.id,
                    owner_id=successor.owner_id,
                    event_type=HistoryEventType.CREATED,
                    new_value={"source": "recurrence", "series_id": series.id, "previous_task_id": task.id},
                    created_at=now,
                )
            )

        logger.info("Generated {} from series {} (due {})", successor.id, series.id, next_due)
        return successor

    def _save_preferences(self, task: Task, options: CompletionOptions) -> None:
        mode = options.due_date_calculation
        if self._users is None or mode is None:
            return
        targets: list[Optional[str]] = []
        if options.save_as_default:
            targets.append(None)
        if options.save_for_category and task.category:
            targets.append(task.category)
        for category in targets:
            try:
                with self._tx.transaction():
                    self._users.save_due_date_preference(task.owner_id, mode, category=category)
            except (TaskflowError, PersistenceError):
                logger.exception("Could not save due-date preference for {}", task.owner_id)

    def _deactivate(self, series: TaskSeries, now: datetime, *, reason: str) -> None:
        series.is_active = False
        series.updated_at = now
        self._series.update(series)
        logger.info("Deactivated series {}: {}", series.id, reason)
