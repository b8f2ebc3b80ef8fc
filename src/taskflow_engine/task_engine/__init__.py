"""Task orchestration engine.

Priority scoring, dependency and subtask gating, recurrence and reward
triggering, coordinated by :class:`TaskOrchestrator`.
"""

from .dependencies import DependencyGraph
from .gating import GateCheck
from .orchestrator import TaskOrchestrator
from .priority import PriorityBreakdown, PriorityCalculator
from .recurrence import RecurrenceGenerator
from .rewards import LedgerRewardTrigger, NullRewardTrigger, RewardTrigger
from .subtasks import SubtaskGate

__all__ = [
    "DependencyGraph",
    "GateCheck",
    "LedgerRewardTrigger",
    "NullRewardTrigger",
    "PriorityBreakdown",
    "PriorityCalculator",
    "RecurrenceGenerator",
    "RewardTrigger",
    "SubtaskGate",
    "TaskOrchestrator",
]
