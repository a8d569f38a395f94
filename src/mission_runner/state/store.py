from __future__ import annotations

import json
import math
import logging
from pathlib import Path
from typing import Any

from mission_runner.config import TimingConfig
from mission_runner.errors import StateStoreError
from mission_runner.fileio import write_atomic
from mission_runner.models import LOG_CAPACITY, LogEntry, RunKey, RunnerState, RunRecord

logger = logging.getLogger(__name__)


def read_snapshot(path: Path) -> dict[str, Any] | None:
    """Raw persisted document, for read-only consumers."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def _int_field(payload: dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return int(value)


class RunnerStateStore:
    """Loads and persists the whole runner state as one JSON snapshot."""

    def __init__(self, path: Path, timing: TimingConfig) -> None:
        self.path = path
        self.timing = timing

    def defaults(self) -> RunnerState:
        return RunnerState(
            poll_interval_ms=self.timing.poll_interval_ms,
            timeout_ms=self.timing.run_timeout_ms,
            fallback_ms=self.timing.fallback_ms,
        )

    def load(self) -> RunnerState:
        state = self.defaults()
        payload = read_snapshot(self.path)
        if payload is None:
            return state

        state.updated_at = _int_field(payload, "updatedAt", 0)
        state.last_loop_at = _int_field(payload, "lastLoopAt", 0)
        briefings = payload.get("missingBriefings")
        if isinstance(briefings, list):
            state.missing_briefings = [str(item) for item in briefings]

        raw_runs = payload.get("runs")
        if isinstance(raw_runs, list):
            runs: dict[RunKey, RunRecord] = {}
            for item in raw_runs:
                run = RunRecord.from_dict(item)
                if run is not None:
                    runs[run.key] = run
            state.runs = runs

        raw_log = payload.get("log")
        if isinstance(raw_log, list):
            entries = (LogEntry.from_dict(item) for item in raw_log)
            state.log = [entry for entry in entries if entry is not None][-LOG_CAPACITY:]
        return state

    def write(self, state: RunnerState) -> None:
        serialized = json.dumps(state.to_dict(), ensure_ascii=False, indent=2) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_atomic(self.path, serialized)
        except OSError as exc:
            raise StateStoreError(f"Cannot persist runner state to {self.path}: {exc}") from exc

    def persist(self, state: RunnerState) -> bool:
        try:
            self.write(state)
        except StateStoreError as exc:
            logger.error("%s", exc)
            return False
        return True
