"""Priority scoring.

The score blends four components, each normalised to 0-100::

    score = clamp(0, 100, (P*0.4 + T*0.3 + D*0.2 + B*0.1) * E)

* ``P`` user priority (1-10) scaled to 10-100
* ``T`` time decay, growing linearly to 100 over 30 days of age
* ``D`` deadline urgency, quadratic inside the final 7 days, 100 once overdue
* ``B`` bump penalty, 10 per bump capped at 50
* ``E`` effort boost favouring quick wins

The calculator holds no state; ``now`` is always passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..constants import (
    AT_RISK_BUMP_THRESHOLD,
    AT_RISK_OVERDUE_DAYS,
    BUMP_PENALTY_CAP,
    BUMP_PENALTY_PER_BUMP,
    BUMP_PENALTY_WEIGHT,
    DEADLINE_URGENCY_WEIGHT,
    DEADLINE_WINDOW_DAYS,
    TIME_DECAY_HORIZON_DAYS,
    TIME_DECAY_WEIGHT,
    USER_PRIORITY_WEIGHT,
)
from ..domain.models import Task, TaskEffort
from ..utils import _days_between


@dataclass(frozen=True)
class PriorityBreakdown:
    user_priority: float
    time_decay: float
    deadline_urgency: float
    bump_penalty: float
    effort_boost: float
    score: int

    @property
    def weighted(self) -> dict[str, float]:
        return {
            "user_priority": self.user_priority * USER_PRIORITY_WEIGHT,
            "time_decay": self.time_decay * TIME_DECAY_WEIGHT,
            "deadline_urgency": self.deadline_urgency * DEADLINE_URGENCY_WEIGHT,
            "bump_penalty": self.bump_penalty * BUMP_PENALTY_WEIGHT,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_priority": self.user_priority,
            "time_decay": self.time_decay,
            "deadline_urgency": self.deadline_urgency,
            "bump_penalty": self.bump_penalty,
            "effort_boost": self.effort_boost,
            "weighted": self.weighted,
            "score": self.score,
        }


def time_decay(created_at: datetime, now: datetime) -> float:
    age_days = max(0.0, _days_between(created_at, now))
    return min(100.0, age_days / TIME_DECAY_HORIZON_DAYS * 100.0)


def deadline_urgency(due_date: Optional[datetime], now: datetime) -> float:
    if due_date is None:
        return 0.0
    days_remaining = _days_between(now, due_date)
    if days_remaining < 0:
        return 100.0
    if days_remaining > DEADLINE_WINDOW_DAYS:
        return 0.0
    return 100.0 * (1.0 - (days_remaining / DEADLINE_WINDOW_DAYS) ** 2)


def bump_penalty(bump_count: int) -> float:
    return min(BUMP_PENALTY_CAP, max(0, bump_count) * BUMP_PENALTY_PER_BUMP)


def effort_boost(effort: Optional[TaskEffort]) -> float:
    return effort.multiplier if effort is not None else 1.0


class PriorityCalculator:
    def breakdown(self, task: Task, now: datetime) -> PriorityBreakdown:
        p = float(task.user_priority) * 10.0
        t = time_decay(task.created_at, now)
        d = deadline_urgency(task.due_date, now)
        b = bump_penalty(task.bump_count)
        e = effort_boost(task.effort)
        raw = (
            p * USER_PRIORITY_WEIGHT
            + t * TIME_DECAY_WEIGHT
            + d * DEADLINE_URGENCY_WEIGHT
            + b * BUMP_PENALTY_WEIGHT
        ) * e
        # Truncate after trimming float noise so 49.9999999 scores as 50.
        score = int(min(100.0, max(0.0, round(raw, 6))))
        return PriorityBreakdown(
            user_priority=p,
            time_decay=t,
            deadline_urgency=d,
            bump_penalty=b,
            effort_boost=e,
            score=score,
        )

    def calculate(self, task: Task, now: datetime) -> int:
        return self.breakdown(task, now).score

    def is_at_risk(self, task: Task, now: datetime) -> bool:
        if task.bump_count >= AT_RISK_BUMP_THRESHOLD:
            return True
        if task.due_date is not None:
            days_overdue = _days_between(task.due_date, now)
            if days_overdue >= AT_RISK_OVERDUE_DAYS:
                return True
        return False
