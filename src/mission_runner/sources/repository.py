from __future__ import annotations

import logging
from collections.abc import Sequence

from mission_runner.errors import TaskSourceError
from mission_runner.models import TaskMeta
from mission_runner.sources.base import StatusWriter, TaskSource

logger = logging.getLogger(__name__)


def _precedence(task: TaskMeta) -> tuple[int, int]:
    return (task.rank, task.updated_at)


class TaskRepository(StatusWriter):
    """Merges several task sources into one view keyed by task id.

    Conflict rule: the record from the source with the higher rank wins; for
    equal ranks the more recently updated record wins. On a full tie the
    record read first is kept.
    """

    def __init__(self, sources: Sequence[TaskSource]) -> None:
        self.sources = list(sources)

    def read_tasks(self) -> list[TaskMeta]:
        merged: dict[str, TaskMeta] = {}
        for source in self.sources:
            try:
                tasks = source.read_tasks()
            except (TaskSourceError, OSError) as exc:
                logger.error("Task source %s failed, skipping this tick: %s", source.name, exc)
                continue
            for task in tasks:
                current = merged.get(task.task_id)
                if current is None or _precedence(task) > _precedence(current):
                    merged[task.task_id] = task
        return [merged[task_id] for task_id in sorted(merged)]

    def set_status(self, source_path: str, status: str) -> bool:
        for source in self.sources:
            if source.owns(source_path):
                return source.set_status(source_path, status)
        raise TaskSourceError(f"No task source owns {source_path}")
