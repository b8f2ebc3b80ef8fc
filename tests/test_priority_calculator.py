"""Tests for priority scoring (task_engine/priority.py)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from taskflow_engine.domain.models import Task, TaskEffort
from taskflow_engine.task_engine.priority import (
    PriorityCalculator,
    bump_penalty,
    deadline_urgency,
    effort_boost,
    time_decay,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _task(**kwargs) -> Task:
    kwargs.setdefault("created_at", NOW)
    kwargs.setdefault("title", "t")
    return Task(**kwargs)


@pytest.fixture
def calc() -> PriorityCalculator:
    return PriorityCalculator()


class TestScenarios:
    def test_top_priority_new_task(self, calc: PriorityCalculator) -> None:
        assert calc.calculate(_task(user_priority=10), NOW) == 40

    def test_medium_priority_thirty_days_old(self, calc: PriorityCalculator) -> None:
        task = _task(user_priority=5, created_at=NOW - timedelta(days=30))
        assert calc.calculate(task, NOW) == pytest.approx(50, abs=1)

    def test_five_bumps(self, calc: PriorityCalculator) -> None:
        task = _task(user_priority=5, bump_count=5)
        assert calc.calculate(task, NOW) == pytest.approx(25, abs=1)

    def test_small_effort_boost(self, calc: PriorityCalculator) -> None:
        task = _task(user_priority=8, effort=TaskEffort.SMALL)
        assert calc.calculate(task, NOW) == pytest.approx(42, abs=1)

    def test_overdue_task(self, calc: PriorityCalculator) -> None:
        task = _task(
            user_priority=5,
            created_at=NOW - timedelta(days=10),
            due_date=NOW - timedelta(days=5),
        )
        assert calc.calculate(task, NOW) == pytest.approx(50, abs=1)


class TestComponents:
    def test_time_decay_linear_and_capped(self) -> None:
        assert time_decay(NOW, NOW) == 0
        assert time_decay(NOW - timedelta(days=15), NOW) == pytest.approx(50)
        assert time_decay(NOW - timedelta(days=30), NOW) == pytest.approx(100)
        assert time_decay(NOW - timedelta(days=60), NOW) == 100

    def test_time_decay_ignores_future_creation(self) -> None:
        assert time_decay(NOW + timedelta(days=1), NOW) == 0

    def test_deadline_urgency(self) -> None:
        assert deadline_urgency(None, NOW) == 0
        assert deadline_urgency(NOW + timedelta(days=10), NOW) == 0
        assert deadline_urgency(NOW + timedelta(days=7), NOW) == pytest.approx(0)
        assert deadline_urgency(NOW + timedelta(days=3.5), NOW) == pytest.approx(75)
        assert deadline_urgency(NOW - timedelta(hours=1), NOW) == 100

    def test_deadline_urgency_increases_as_due_date_nears(self) -> None:
        values = [deadline_urgency(NOW + timedelta(days=d), NOW) for d in (6, 4, 2, 1, 0)]
        assert values == sorted(values)

    def test_bump_penalty_capped(self) -> None:
        assert bump_penalty(0) == 0
        assert bump_penalty(3) == 30
        assert bump_penalty(5) == 50
        assert bump_penalty(12) == 50

    def test_effort_boost(self) -> None:
        assert effort_boost(None) == 1.0
        assert effort_boost(TaskEffort.SMALL) == 1.3
        assert effort_boost(TaskEffort.MEDIUM) == 1.15
        assert effort_boost(TaskEffort.LARGE) == 1.0
        assert effort_boost(TaskEffort.XLARGE) == 1.0


class TestCalculator:
    def test_score_is_clamped_to_100(self, calc: PriorityCalculator) -> None:
        task = _task(
            user_priority=10,
            created_at=NOW - timedelta(days=90),
            due_date=NOW - timedelta(days=1),
            bump_count=9,
            effort=TaskEffort.SMALL,
        )
        assert calc.calculate(task, NOW) == 100

    def test_score_range(self, calc: PriorityCalculator) -> None:
        for priority in range(1, 11):
            for bumps in (0, 2, 7):
                score = calc.calculate(_task(user_priority=priority, bump_count=bumps), NOW)
                assert 0 <= score <= 100

    def test_bumps_never_lower_score(self, calc: PriorityCalculator) -> None:
        scores = [calc.calculate(_task(user_priority=4, bump_count=n), NOW) for n in range(8)]
        assert scores == sorted(scores)

    def test_deterministic_for_same_inputs(self, calc: PriorityCalculator) -> None:
        task = _task(user_priority=6, due_date=NOW + timedelta(days=2), bump_count=1)
        assert calc.calculate(task, NOW) == calc.calculate(task, NOW)
        assert PriorityCalculator().calculate(task, NOW) == calc.calculate(task, NOW)

    def test_breakdown_matches_score(self, calc: PriorityCalculator) -> None:
        task = _task(user_priority=7, bump_count=2, effort=TaskEffort.MEDIUM)
        breakdown = calc.breakdown(task, NOW)
        assert breakdown.user_priority == 70
        assert breakdown.bump_penalty == 20
        assert breakdown.effort_boost == 1.15
        assert breakdown.weighted["user_priority"] == pytest.approx(28)
        total = sum(breakdown.weighted.values()) * breakdown.effort_boost
        assert breakdown.score == int(round(total, 6))
        assert breakdown.to_dict()["score"] == calc.calculate(task, NOW)


class TestAtRisk:
    def test_three_bumps_is_at_risk(self, calc: PriorityCalculator) -> None:
        assert calc.is_at_risk(_task(bump_count=3), NOW)
        assert not calc.is_at_risk(_task(bump_count=2), NOW)

    def test_overdue_three_days_is_at_risk(self, calc: PriorityCalculator) -> None:
        assert calc.is_at_risk(_task(due_date=NOW - timedelta(days=3)), NOW)
        assert not calc.is_at_risk(_task(due_date=NOW - timedelta(days=2)), NOW)

    def test_no_due_date_and_few_bumps_is_not_at_risk(self, calc: PriorityCalculator) -> None:
        assert not calc.is_at_risk(_task(), NOW)
