from .models import (
    CompletionOptions,
    CompletionResult,
    DependencyEntry,
    DependencyInfo,
    DueDateCalculation,
    HistoryEventType,
    RankedTask,
    RecurrencePattern,
    SeriesHistory,
    SubtaskSummary,
    Task,
    TaskDependency,
    TaskEffort,
    TaskHistory,
    TaskSeries,
    TaskStatus,
    UserProfile,
)

__all__ = [
    "CompletionOptions",
    "CompletionResult",
    "DependencyEntry",
    "DependencyInfo",
    "DueDateCalculation",
    "HistoryEventType",
    "RankedTask",
    "RecurrencePattern",
    "SeriesHistory",
    "SubtaskSummary",
    "Task",
    "TaskDependency",
    "TaskEffort",
    "TaskHistory",
    "TaskSeries",
    "TaskStatus",
    "UserProfile",
]
