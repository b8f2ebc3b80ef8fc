"""Request payloads accepted by the orchestrator.

Callers may pass these models or plain dicts; :func:`parse_request` turns
either into a validated model and maps pydantic failures onto the engine's
:class:`~taskflow_engine.errors.ValidationError`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..constants import (
    CATEGORY_MAX_LENGTH,
    CONTEXT_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    MAX_SERIES_INTERVAL,
    MIN_SERIES_INTERVAL,
    TITLE_MAX_LENGTH,
)
from ..errors import ValidationError
from .models import DueDateCalculation, RecurrencePattern, TaskEffort


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class RecurrenceRule(_Request):
    pattern: RecurrencePattern = RecurrencePattern.NONE
    interval: int = Field(1, ge=MIN_SERIES_INTERVAL, le=MAX_SERIES_INTERVAL)
    end_date: Optional[datetime] = None
    due_date_calculation: Optional[DueDateCalculation] = None


class CreateTaskRequest(_Request):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    user_priority: Optional[int] = Field(None, ge=1, le=10)
    due_date: Optional[datetime] = None
    effort: Optional[TaskEffort] = None
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH)
    context: Optional[str] = Field(None, max_length=CONTEXT_MAX_LENGTH)
    related_people: list[str] = Field(default_factory=list)
    recurrence: Optional[RecurrenceRule] = None


class CreateSubtaskRequest(_Request):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    user_priority: Optional[int] = Field(None, ge=1, le=10)
    due_date: Optional[datetime] = None
    effort: Optional[TaskEffort] = None
    context: Optional[str] = Field(None, max_length=CONTEXT_MAX_LENGTH)


class UpdateTaskRequest(_Request):
    """Partial update; only fields explicitly present are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    user_priority: Optional[int] = Field(None, ge=1, le=10)
    due_date: Optional[datetime] = None
    effort: Optional[TaskEffort] = None
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH)
    context: Optional[str] = Field(None, max_length=CONTEXT_MAX_LENGTH)
    related_people: Optional[list[str]] = None


class UpdateSeriesRequest(_Request):
    pattern: Optional[RecurrencePattern] = None
    interval: Optional[int] = Field(None, ge=MIN_SERIES_INTERVAL, le=MAX_SERIES_INTERVAL)
    end_date: Optional[datetime] = None
    due_date_calculation: Optional[DueDateCalculation] = None
    is_active: Optional[bool] = None


M = TypeVar("M", bound=BaseModel)


def parse_request(model_cls: type[M], payload: Union[M, dict[str, Any], None]) -> M:
    """Validate *payload* as *model_cls*.

    Raises:
        ValidationError: naming the first failing field.
    """
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(payload or {})
    except PydanticValidationError as exc:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(loc or None, str(first.get("msg") or "invalid request")) from exc
