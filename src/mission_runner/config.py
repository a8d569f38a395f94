from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mission_runner.errors import ConfigError

DEFAULT_CONFIG_FILE = "mission-runner.toml"


@dataclass(slots=True)
class TimingConfig:
    poll_interval_ms: int = 10_000
    run_timeout_ms: int = 300_000
    fallback_ms: int = 300_000
    phase_advance_ms: int = 86_400_000
    dev_feedback_timeout_ms: int = 1_800_000
    review_feedback_timeout_ms: int | None = None

    @property
    def effective_review_feedback_timeout_ms(self) -> int:
        if self.review_feedback_timeout_ms is None:
            return self.dev_feedback_timeout_ms
        return self.review_feedback_timeout_ms


@dataclass(slots=True)
class TaskDirConfig:
    path: str
    rank: int = 0


def _default_task_dirs() -> list[TaskDirConfig]:
    return [
        TaskDirConfig(path="mission-control/tasks", rank=2),
        TaskDirConfig(path="mission-control/primitives/tasks", rank=1),
    ]


@dataclass(slots=True)
class PathsConfig:
    workspace_root: str = "."
    task_dirs: list[TaskDirConfig] = field(default_factory=_default_task_dirs)
    agents_dir: str = "mission-control/agents"
    briefings_dir: str = "memory/mc"
    state_file: str = "memory/mc/activity-runner-state.json"

    def resolve(self, value: str, base_dir: Path | None = None) -> Path:
        root = Path(self.workspace_root).expanduser()
        if not root.is_absolute() and base_dir is not None:
            root = base_dir / root
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = root / path
        return path.resolve()


ENV_OVERRIDES: dict[str, str] = {
    "poll_interval_ms": "MC_ACTIVITY_RUN_INTERVAL_MS",
    "run_timeout_ms": "MC_ACTIVITY_RUN_TIMEOUT_MS",
    "fallback_ms": "MC_ACTIVITY_RUN_FALLBACK_MS",
    "phase_advance_ms": "MC_PHASE_ADVANCE_MS",
    "dev_feedback_timeout_ms": "MC_DEV_FEEDBACK_TIMEOUT_MS",
    "review_feedback_timeout_ms": "MC_REVIEW_FEEDBACK_TIMEOUT_MS",
}


@dataclass(slots=True)
class RunnerConfig:
    timing: TimingConfig = field(default_factory=TimingConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    base_dir: Path | None = None

    @classmethod
    def default(cls) -> RunnerConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> RunnerConfig:
        paths_data = dict(data.get("paths", {}))
        raw_dirs = paths_data.pop("task_dirs", None)
        try:
            paths = PathsConfig(**paths_data)
        except TypeError as exc:
            raise ConfigError(f"Invalid [paths] section: {exc}") from exc
        if raw_dirs is not None:
            if not isinstance(raw_dirs, list):
                raise ConfigError("paths.task_dirs must be a list of tables.")
            try:
                paths.task_dirs = [TaskDirConfig(**item) for item in raw_dirs]
            except TypeError as exc:
                raise ConfigError(f"Invalid paths.task_dirs entry: {exc}") from exc
        try:
            timing = TimingConfig(**data.get("timing", {}))
        except TypeError as exc:
            raise ConfigError(f"Invalid [timing] section: {exc}") from exc
        return cls(timing=timing, paths=paths)

    def to_dict(self) -> dict:
        timing = {
            "poll_interval_ms": self.timing.poll_interval_ms,
            "run_timeout_ms": self.timing.run_timeout_ms,
            "fallback_ms": self.timing.fallback_ms,
            "phase_advance_ms": self.timing.phase_advance_ms,
            "dev_feedback_timeout_ms": self.timing.dev_feedback_timeout_ms,
        }
        if self.timing.review_feedback_timeout_ms is not None:
            timing["review_feedback_timeout_ms"] = self.timing.review_feedback_timeout_ms
        return {
            "timing": timing,
            "paths": {
                "workspace_root": self.paths.workspace_root,
                "agents_dir": self.paths.agents_dir,
                "briefings_dir": self.paths.briefings_dir,
                "state_file": self.paths.state_file,
                "task_dirs": [
                    {"path": entry.path, "rank": entry.rank} for entry in self.paths.task_dirs
                ],
            },
        }

    def apply_env(self, environ: dict[str, str] | None = None) -> RunnerConfig:
        env = os.environ if environ is None else environ
        for attribute, variable in ENV_OVERRIDES.items():
            raw = env.get(variable)
            if raw is None or not raw.strip():
                continue
            try:
                value = int(raw.strip())
            except ValueError as exc:
                raise ConfigError(f"{variable} must be a positive integer, got {raw!r}") from exc
            setattr(self.timing, attribute, value)
        workspace_root = env.get("WORKSPACE_ROOT")
        if workspace_root:
            self.paths.workspace_root = workspace_root
        return self

    def validate(self) -> None:
        for attribute, variable in ENV_OVERRIDES.items():
            value = getattr(self.timing, attribute)
            if attribute == "review_feedback_timeout_ms" and value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(
                    f"timing.{attribute} ({variable}) must be a positive integer, got {value!r}"
                )
        if not self.paths.task_dirs:
            raise ConfigError("paths.task_dirs must list at least one task directory.")

    def resolve(self, value: str) -> Path:
        return self.paths.resolve(value, self.base_dir)

    @property
    def state_path(self) -> Path:
        return self.resolve(self.paths.state_file)

    @property
    def agents_path(self) -> Path:
        return self.resolve(self.paths.agents_dir)

    @property
    def briefings_path(self) -> Path:
        return self.resolve(self.paths.briefings_dir)


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: RunnerConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("timing", "paths"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            if key == "task_dirs":
                continue
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    for entry in data["paths"]["task_dirs"]:
        lines.append("[[paths.task_dirs]]")
        lines.append(f"path = {_toml_value(entry['path'])}")
        lines.append(f"rank = {_toml_value(entry['rank'])}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path, *, environ: dict[str, str] | None = None) -> RunnerConfig:
    if path.exists():
        try:
            data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Cannot parse {path}: {exc}") from exc
        config = RunnerConfig.from_dict(data)
    else:
        config = RunnerConfig.default()
    config.base_dir = path.parent.resolve()
    config.apply_env(environ)
    config.validate()
    return config


def save_config(path: Path, config: RunnerConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
