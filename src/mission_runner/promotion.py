from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from mission_runner.config import TimingConfig
from mission_runner.errors import TaskSourceError
from mission_runner.models import TaskMeta
from mission_runner.phases import PROMOTION_LABELS, Pending, classify_status
from mission_runner.sources.base import StatusWriter

logger = logging.getLogger(__name__)


class StatusPromoter:
    """Moves tasks out of a stale feedback-pending status.

    The only place the runner writes to task sources. A task is attempted at
    most once per feedback timeout window, whether or not the write succeeds.
    """

    def __init__(self, writer: StatusWriter, timing: TimingConfig) -> None:
        self.writer = writer
        self.timing = timing
        self._last_attempt: dict[str, int] = {}

    def _timeout_ms(self, pending: Pending) -> int:
        if pending is Pending.REVIEW_FEEDBACK:
            return self.timing.effective_review_feedback_timeout_ms
        return self.timing.dev_feedback_timeout_ms

    def target_status(self, task: TaskMeta, now: int) -> str | None:
        classification = classify_status(task.status)
        if classification.pending is Pending.NONE:
            return None
        timeout_ms = self._timeout_ms(classification.pending)
        if now - task.updated_at <= timeout_ms:
            return None
        last_attempt = self._last_attempt.get(task.task_id)
        if last_attempt is not None and now - last_attempt < timeout_ms:
            return None
        return PROMOTION_LABELS[classification.pending]

    def promote(self, task: TaskMeta, now: int) -> bool:
        target = self.target_status(task, now)
        if target is None:
            return False
        self._last_attempt[task.task_id] = now
        try:
            changed = self.writer.set_status(task.source_path, target)
        except (TaskSourceError, OSError) as exc:
            logger.error("Auto-promotion of %s to %r failed: %s", task.task_id, target, exc)
            return False
        if changed:
            logger.info("Auto-promoted %s from %r to %r", task.task_id, task.status, target)
        return changed

    def sweep(self, tasks: Sequence[TaskMeta], now: int) -> list[TaskMeta]:
        swept: list[TaskMeta] = []
        for task in tasks:
            target = self.target_status(task, now)
            if target is not None and self.promote(task, now):
                task = replace(task, status=target, updated_at=now)
            swept.append(task)
        current_ids = {task.task_id for task in tasks}
        for task_id in [key for key in self._last_attempt if key not in current_ids]:
            del self._last_attempt[task_id]
        return swept
