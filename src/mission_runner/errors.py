from __future__ import annotations


class MissionRunnerError(RuntimeError):
    """Base class for runner failures."""


class ConfigError(MissionRunnerError):
    """Raised when timing or path configuration is invalid."""


class TaskSourceError(MissionRunnerError):
    """Raised when a task source cannot be read or written."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class StateStoreError(MissionRunnerError):
    """Raised when the runner state snapshot cannot be written."""
