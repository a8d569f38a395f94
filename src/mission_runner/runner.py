from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from mission_runner.config import RunnerConfig
from mission_runner.models import Role, RunnerState, RunStatus, TaskMeta, now_ms
from mission_runner.phases import PhaseResolver, build_phase_memory
from mission_runner.promotion import StatusPromoter
from mission_runner.reconciler import RunReconciler, TaskTarget
from mission_runner.roles import RoleProfile, build_profiles, missing_briefings, required_roles
from mission_runner.sources import MarkdownTaskSource, TaskRepository
from mission_runner.state import RunnerStateStore

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


@dataclass(slots=True)
class TickSummary:
    at: int
    runs: int
    active: int
    timed_out_or_dropped: int
    promoted: int
    persisted: bool
    missing_briefings: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)


def build_repository(config: RunnerConfig) -> TaskRepository:
    sources = [
        MarkdownTaskSource(config.resolve(entry.path), rank=entry.rank, name=entry.path)
        for entry in config.paths.task_dirs
    ]
    return TaskRepository(sources)


class Runner:
    def __init__(
        self,
        config: RunnerConfig,
        *,
        repository: TaskRepository | None = None,
        store: RunnerStateStore | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.config = config
        self.repository = repository or build_repository(config)
        self.store = store or RunnerStateStore(config.state_path, config.timing)
        self.clock = clock
        self.resolver = PhaseResolver(config.timing)
        self.reconciler = RunReconciler(config.timing)
        self.promoter = StatusPromoter(self.repository, config.timing)
        self.profiles: dict[Role, RoleProfile] = build_profiles(
            config.agents_path, config.briefings_path
        )
        self.state: RunnerState | None = None
        self._in_flight = threading.Lock()

    def load_state(self) -> RunnerState:
        if self.state is None:
            self.state = self.store.load()
        return self.state

    def build_targets(
        self,
        tasks: Sequence[TaskMeta],
        state: RunnerState,
        now: int,
    ) -> dict[str, TaskTarget]:
        memory = build_phase_memory(state.runs.values())
        targets: dict[str, TaskTarget] = {}
        for task in tasks:
            resolution = self.resolver.resolve(task.status, memory.get(task.task_id), now)
            roles = required_roles(
                task.assignees,
                resolution.phase,
                dev_feedback_pending=resolution.dev_feedback_pending,
                review_feedback_pending=resolution.review_feedback_pending,
            )
            targets[task.task_id] = TaskTarget(task=task, phase=resolution.phase, roles=roles)
        return targets

    def _check_briefings(self, previous: list[str]) -> list[str]:
        try:
            return missing_briefings(self.profiles)
        except OSError as exc:
            logger.error("Cannot check role charters and briefings: %s", exc)
            return list(previous)

    def tick(self, now: int | None = None) -> TickSummary | None:
        """Run one reconciliation pass. Returns None if a pass is already running."""
        if not self._in_flight.acquire(blocking=False):
            logger.warning("Previous tick still in flight, skipping this one")
            return None
        try:
            return self._tick(self.clock() if now is None else now)
        finally:
            self._in_flight.release()

    def _tick(self, now: int) -> TickSummary:
        state = self.load_state()
        tasks = self.repository.read_tasks()
        swept = self.promoter.sweep(tasks, now)
        promoted = sum(1 for before, after in zip(tasks, swept) if before is not after)

        targets = self.build_targets(swept, state, now)
        result = self.reconciler.reconcile(state, targets, now)
        next_state = result.state
        next_state.missing_briefings = self._check_briefings(state.missing_briefings)
        next_state.last_loop_at = now
        next_state.updated_at = now

        persisted = self.store.persist(next_state)
        self.state = next_state

        runs = next_state.runs.values()
        summary = TickSummary(
            at=now,
            runs=len(next_state.runs),
            active=sum(1 for run in runs if run.status in {RunStatus.QUEUED, RunStatus.RUNNING}),
            timed_out_or_dropped=sum(
                1 for run in runs if run.status in {RunStatus.TIMED_OUT, RunStatus.DROPPED}
            ),
            promoted=promoted,
            persisted=persisted,
            missing_briefings=list(next_state.missing_briefings),
            counts=dict(result.counts),
        )
        self._log_summary(summary)
        return summary

    def summary_lines(self, summary: TickSummary) -> list[str]:
        timing = self.config.timing
        lines = [
            f"runs={summary.runs} active={summary.active} "
            f"timed_out_or_dropped={summary.timed_out_or_dropped} "
            f"interval={timing.poll_interval_ms}ms fallback={timing.fallback_ms}ms "
            f"timeout={timing.run_timeout_ms}ms"
        ]
        if summary.promoted:
            lines.append(f"auto-promoted {summary.promoted} task(s)")
        if summary.missing_briefings:
            lines.append(
                "user action required: missing briefing files for "
                + ", ".join(summary.missing_briefings)
            )
        if not summary.persisted:
            lines.append(f"state not persisted to {self.store.path}; will retry next tick")
        return lines

    def _log_summary(self, summary: TickSummary) -> None:
        for index, line in enumerate(self.summary_lines(summary)):
            if index == 0:
                logger.info(line)
            else:
                logger.warning(line)

    async def run(self, *, max_ticks: int | None = None) -> int:
        """Tick on a fixed interval; overrun firings are skipped, never queued."""
        interval = self.config.timing.poll_interval_ms / 1000.0
        loop = asyncio.get_running_loop()
        logger.info(
            "Runner started: interval=%dms fallback=%dms timeout=%dms state=%s",
            self.config.timing.poll_interval_ms,
            self.config.timing.fallback_ms,
            self.config.timing.run_timeout_ms,
            self.store.path,
        )
        ticks = 0
        next_fire = loop.time()
        while max_ticks is None or ticks < max_ticks:
            try:
                await asyncio.to_thread(self.tick)
            except Exception:
                logger.exception("Tick failed; retrying on the next interval")
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            next_fire += interval
            current = loop.time()
            if current > next_fire:
                skipped = int((current - next_fire) // interval) + 1
                next_fire += skipped * interval
                logger.warning("Tick overran the interval, skipping %d firing(s)", skipped)
            await asyncio.sleep(max(0.0, next_fire - current))
        return ticks
