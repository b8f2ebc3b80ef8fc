from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..errors import GatingError

BLOCKERS = "blockers"
SUBTASKS = "subtasks"


@dataclass(frozen=True)
class GateCheck:
    """Outcome of one completion precondition."""

    kind: str
    satisfied: bool
    offending_ids: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_offenders(cls, kind: str, offending_ids: Iterable[str]) -> "GateCheck":
        ids = tuple(sorted(offending_ids))
        return cls(kind=kind, satisfied=not ids, offending_ids=ids)


def enforce(task_id: str, checks: Iterable[GateCheck]) -> None:
    """Raise a single GatingError covering every failed check."""
    failed = {check.kind: check.offending_ids for check in checks if not check.satisfied}
    if not failed:
        return
    raise GatingError(
        task_id,
        blocker_ids=failed.get(BLOCKERS, ()),
        subtask_ids=failed.get(SUBTASKS, ()),
    )
