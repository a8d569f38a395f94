from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

LOG_CAPACITY = 500


def now_ms() -> int:
    return int(time.time() * 1000)


class Role(str, Enum):
    PLANNER = "planner"
    DEV = "dev"
    PM = "pm"
    REVIEWER = "reviewer"
    UIUX = "uiux"

    @classmethod
    def parse(cls, value: Any) -> Role | None:
        normalized = str(value or "").strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        return None


class Phase(str, Enum):
    PLANNING = "Planning"
    DEVELOPMENT = "Development"
    REVIEW = "Review"
    DONE = "Done"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)

    def next(self) -> Phase:
        if self is Phase.DONE:
            return self
        return _PHASE_ORDER[self.rank + 1]

    @classmethod
    def parse(cls, value: Any) -> Phase | None:
        normalized = str(value or "").strip().lower()
        for phase in cls:
            if phase.value.lower() == normalized:
                return phase
        return None


_PHASE_ORDER = (Phase.PLANNING, Phase.DEVELOPMENT, Phase.REVIEW, Phase.DONE)


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    TIMED_OUT = "timed_out"
    DROPPED = "dropped"
    COMPLETED = "completed"

    @property
    def reactivatable(self) -> bool:
        return self in {RunStatus.COMPLETED, RunStatus.DROPPED}


class PollMode(str, Enum):
    NORMAL = "normal"
    RECOVERY = "recovery"


class RunKey(NamedTuple):
    role: Role
    task_id: str


@dataclass(frozen=True, slots=True)
class TaskMeta:
    task_id: str
    title: str
    assignees: frozenset[Role] = frozenset()
    status: str = ""
    source_path: str = ""
    updated_at: int = 0
    rank: int = 0


@dataclass(slots=True)
class RunRecord:
    task_id: str
    role: Role
    status: RunStatus
    phase: Phase
    started_at: int
    last_run_at: int
    next_poll_at: int
    phase_entered_at: int
    poll_mode: PollMode = PollMode.NORMAL
    attempts: int = 0
    task_title: str = ""
    last_transition: str = ""

    @property
    def key(self) -> RunKey:
        return RunKey(self.role, self.task_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "role": self.role.value,
            "status": self.status.value,
            "phase": self.phase.value,
            "startedAt": self.started_at,
            "lastRunAt": self.last_run_at,
            "nextPollAt": self.next_poll_at,
            "pollMode": self.poll_mode.value,
            "attempts": self.attempts,
            "taskTitle": self.task_title,
            "lastTransition": self.last_transition,
            "phaseEnteredAt": self.phase_entered_at,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> RunRecord | None:
        if not isinstance(payload, dict):
            return None
        role = Role.parse(payload.get("role"))
        phase = Phase.parse(payload.get("phase"))
        task_id = str(payload.get("taskId") or "").strip().lower()
        if role is None or phase is None or not task_id:
            return None
        try:
            status = RunStatus(str(payload.get("status")))
            started_at = int(payload["startedAt"])
            return cls(
                task_id=task_id,
                role=role,
                status=status,
                phase=phase,
                started_at=started_at,
                last_run_at=int(payload.get("lastRunAt", started_at)),
                next_poll_at=int(payload.get("nextPollAt", started_at)),
                phase_entered_at=int(payload.get("phaseEnteredAt", started_at)),
                poll_mode=PollMode(str(payload.get("pollMode", PollMode.NORMAL.value))),
                attempts=int(payload.get("attempts", 0)),
                task_title=str(payload.get("taskTitle") or task_id),
                last_transition=str(payload.get("lastTransition") or ""),
            )
        except (KeyError, TypeError, ValueError, OverflowError):
            return None


@dataclass(slots=True)
class LogEntry:
    at: int
    role: str
    task_id: str
    event: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "at": self.at,
            "role": self.role,
            "taskId": self.task_id,
            "event": self.event,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> LogEntry | None:
        if not isinstance(payload, dict):
            return None
        try:
            return cls(
                at=int(payload["at"]),
                role=str(payload.get("role", "")),
                task_id=str(payload.get("taskId", "")),
                event=str(payload.get("event", "")),
                reason=str(payload.get("reason", "")),
            )
        except (KeyError, TypeError, ValueError, OverflowError):
            return None


@dataclass(slots=True)
class RunnerState:
    poll_interval_ms: int
    timeout_ms: int
    fallback_ms: int
    updated_at: int = 0
    last_loop_at: int = 0
    missing_briefings: list[str] = field(default_factory=list)
    runs: dict[RunKey, RunRecord] = field(default_factory=dict)
    log: list[LogEntry] = field(default_factory=list)

    def append_log(self, entry: LogEntry) -> None:
        self.log.append(entry)
        if len(self.log) > LOG_CAPACITY:
            del self.log[: len(self.log) - LOG_CAPACITY]

    def to_dict(self) -> dict[str, Any]:
        return {
            "updatedAt": self.updated_at,
            "pollIntervalMs": self.poll_interval_ms,
            "timeoutMs": self.timeout_ms,
            "fallbackMs": self.fallback_ms,
            "lastLoopAt": self.last_loop_at,
            "missingBriefings": list(self.missing_briefings),
            "runs": [run.to_dict() for run in self.runs.values()],
            "log": [entry.to_dict() for entry in self.log],
        }
