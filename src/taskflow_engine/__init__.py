"""Provide the public `taskflow_engine` package exports."""

from __future__ import annotations

from .storage.container import Container
from .task_engine import TaskOrchestrator

__version__ = "0.1.0"

__all__ = ["Container", "TaskOrchestrator", "__version__"]
