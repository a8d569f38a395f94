"""Diffs the desired (role, task) set against persisted run records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from mission_runner.config import TimingConfig
from mission_runner.models import (
    LogEntry,
    Phase,
    PollMode,
    Role,
    RunKey,
    RunnerState,
    RunRecord,
    RunStatus,
    TaskMeta,
)

logger = logging.getLogger(__name__)

RECOVERY_STATUSES = {RunStatus.TIMED_OUT, RunStatus.DROPPED}
LIVE_STATUSES = {RunStatus.QUEUED, RunStatus.RUNNING}


@dataclass(frozen=True, slots=True)
class TaskTarget:
    task: TaskMeta
    phase: Phase
    roles: tuple[Role, ...]


@dataclass(slots=True)
class ReconcileResult:
    state: RunnerState
    counts: dict[str, int] = field(default_factory=dict)

    def bump(self, key: str) -> None:
        self.counts[key] = self.counts.get(key, 0) + 1


class RunReconciler:
    def __init__(self, timing: TimingConfig) -> None:
        self.timing = timing

    @staticmethod
    def _log(state: RunnerState, run: RunRecord, event: str, now: int) -> None:
        state.append_log(
            LogEntry(
                at=now,
                role=run.role.value,
                task_id=run.task_id,
                event=event,
                reason=f"{run.phase.value}: {run.last_transition or 'ok'}",
            )
        )

    def reconcile(
        self,
        state: RunnerState,
        targets: Mapping[str, TaskTarget],
        now: int,
    ) -> ReconcileResult:
        """Return a new state converged on ``targets``; ``state`` is left untouched."""
        next_state = replace(
            state,
            runs={key: replace(run) for key, run in state.runs.items()},
            log=list(state.log),
            missing_briefings=list(state.missing_briefings),
            poll_interval_ms=self.timing.poll_interval_ms,
            timeout_ms=self.timing.run_timeout_ms,
            fallback_ms=self.timing.fallback_ms,
        )
        result = ReconcileResult(state=next_state)
        desired = self._apply_desired(result, targets, now)
        self._retire_undesired(result, targets, desired, now)
        self._evaluate_timeouts(result, now)
        return result

    def _apply_desired(
        self,
        result: ReconcileResult,
        targets: Mapping[str, TaskTarget],
        now: int,
    ) -> set[RunKey]:
        state = result.state
        desired: set[RunKey] = set()
        for task_id, target in targets.items():
            title = target.task.title or task_id
            for role in target.roles:
                key = RunKey(role, task_id)
                desired.add(key)
                existing = state.runs.get(key)

                if existing is None:
                    run = RunRecord(
                        task_id=task_id,
                        role=role,
                        status=RunStatus.QUEUED,
                        phase=target.phase,
                        started_at=now,
                        last_run_at=now,
                        next_poll_at=now,
                        phase_entered_at=now,
                        task_title=title,
                        last_transition="created",
                    )
                    state.runs[key] = run
                    self._log(state, run, "created", now)
                    result.bump("created")
                    continue

                existing.task_title = title
                existing.last_run_at = now

                if existing.status.reactivatable:
                    existing.status = RunStatus.QUEUED
                    existing.poll_mode = PollMode.NORMAL
                    existing.started_at = now
                    existing.next_poll_at = now
                    existing.phase = target.phase
                    existing.phase_entered_at = now
                    existing.last_transition = "reactivated"
                    self._log(state, existing, "created", now)
                    result.bump("reactivated")
                elif existing.phase is not target.phase:
                    existing.phase = target.phase
                    existing.phase_entered_at = now
                    existing.last_transition = "phase-advance"
                    self._log(state, existing, "phase", now)
                    result.bump("advanced")
        return desired

    def _retire_undesired(
        self,
        result: ReconcileResult,
        targets: Mapping[str, TaskTarget],
        desired: set[RunKey],
        now: int,
    ) -> None:
        state = result.state
        for key, run in state.runs.items():
            if key in desired or run.status.reactivatable:
                continue
            target = targets.get(run.task_id)
            if target is not None and target.phase is not run.phase:
                run.status = RunStatus.COMPLETED
                run.last_transition = f"superseded-by-{target.phase.value.lower()}"
                self._log(state, run, "phase", now)
                result.bump("completed")
                continue

            run.status = RunStatus.DROPPED
            run.poll_mode = PollMode.RECOVERY
            run.next_poll_at = now + self.timing.fallback_ms
            run.last_transition = "missing-task" if target is None else "role-withdrawn"
            self._log(state, run, "dropped", now)
            result.bump("dropped")

    def _evaluate_timeouts(self, result: ReconcileResult, now: int) -> None:
        state = result.state
        timeout_ms = self.timing.run_timeout_ms
        fallback_ms = self.timing.fallback_ms
        for run in state.runs.values():
            if run.status is RunStatus.COMPLETED or run.next_poll_at >= now:
                continue
            timed_out = now - run.started_at > timeout_ms

            if timed_out and run.status not in RECOVERY_STATUSES:
                run.status = RunStatus.TIMED_OUT
                run.poll_mode = PollMode.RECOVERY
                run.next_poll_at = now + fallback_ms
                run.last_transition = "timeout"
                self._log(state, run, "status", now)
                result.bump("timed_out")
                logger.warning(
                    "Run %s/%s timed out after %dms",
                    run.role.value,
                    run.task_id,
                    now - run.started_at,
                )
            elif timed_out:
                run.poll_mode = PollMode.RECOVERY
                run.next_poll_at = max(run.next_poll_at, now + fallback_ms)
            elif run.status in LIVE_STATUSES:
                previous = run.status
                run.status = RunStatus.RUNNING
                run.poll_mode = PollMode.NORMAL
                run.next_poll_at = now + self.timing.poll_interval_ms
                if previous is not RunStatus.RUNNING:
                    run.last_transition = "heartbeat"
                    self._log(state, run, "heartbeat", now)
                    result.bump("heartbeat")
            run.attempts += 1
