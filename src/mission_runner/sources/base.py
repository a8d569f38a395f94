from __future__ import annotations

from abc import ABC, abstractmethod

from mission_runner.errors import TaskSourceError
from mission_runner.models import TaskMeta

__all__ = ["StatusWriter", "TaskSource", "TaskSourceError"]


class StatusWriter(ABC):
    @abstractmethod
    def set_status(self, source_path: str, status: str) -> bool:
        """Persist ``status`` for the task at ``source_path``.

        Returns False when the stored status already equals ``status``.
        """


class TaskSource(StatusWriter):
    name: str = "source"
    rank: int = 0

    @abstractmethod
    def read_tasks(self) -> list[TaskMeta]:
        """Return every task currently known to this source."""

    @abstractmethod
    def owns(self, source_path: str) -> bool:
        """Whether ``source_path`` was produced by this source."""
