from mission_runner.sources.base import StatusWriter, TaskSource, TaskSourceError
from mission_runner.sources.markdown import MarkdownTaskSource, extract_task_id
from mission_runner.sources.repository import TaskRepository

__all__ = [
    "MarkdownTaskSource",
    "StatusWriter",
    "TaskRepository",
    "TaskSource",
    "TaskSourceError",
    "extract_task_id",
]
