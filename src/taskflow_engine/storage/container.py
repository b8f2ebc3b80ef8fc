from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..clock import Clock, SystemClock
from ..config import get_defaults_config, get_limits_config, load_engine_config
from ..constants import HISTORY_FILE, HISTORY_LOCK_FILE, REWARDS_FILE, REWARDS_LOCK_FILE, STATE_FILE, STATE_LOCK_FILE
from ..task_engine.orchestrator import TaskOrchestrator
from ..task_engine.rewards import LedgerRewardTrigger, RewardTrigger
from .bootstrap import ensure_state_root
from .file_repos import (
    FileDependencyRepository,
    FileHistoryRepository,
    FileSeriesRepository,
    FileStateStore,
    FileTaskRepository,
    FileUserDirectory,
)


class Container:
    def __init__(
        self,
        project_dir: Path,
        *,
        clock: Optional[Clock] = None,
        reward: Optional[RewardTrigger] = None,
    ) -> None:
        self.project_dir = project_dir.resolve()
        self.state_root = ensure_state_root(self.project_dir)
        self.config, self.config_error = load_engine_config(self.project_dir)
        defaults = get_defaults_config(self.config)

        self.clock = clock or SystemClock()
        self.store = FileStateStore(self.state_root / STATE_FILE, self.state_root / STATE_LOCK_FILE)
        self.tasks = FileTaskRepository(self.store)
        self.dependencies = FileDependencyRepository(self.store)
        self.series = FileSeriesRepository(self.store)
        self.users = FileUserDirectory(self.store, default_timezone=defaults["timezone"])
        self.history = FileHistoryRepository(
            self.store, self.state_root / HISTORY_FILE, self.state_root / HISTORY_LOCK_FILE
        )
        self.rewards = reward or LedgerRewardTrigger(
            self.state_root / REWARDS_FILE, self.state_root / REWARDS_LOCK_FILE
        )

        self.orchestrator = TaskOrchestrator(
            tasks=self.tasks,
            dependencies=self.dependencies,
            series=self.series,
            history=self.history,
            users=self.users,
            tx=self.store,
            clock=self.clock,
            reward=self.rewards,
            defaults=defaults,
            limits=get_limits_config(self.config),
        )

    @property
    def project_id(self) -> str:
        return self.project_dir.name
