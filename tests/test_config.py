import tomllib
from pathlib import Path

import pytest

from mission_runner import __version__
from mission_runner.config import (
    RunnerConfig,
    TaskDirConfig,
    dumps_toml,
    load_config,
    save_config,
)
from mission_runner.errors import ConfigError


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "mission-runner.toml"
    config = RunnerConfig.default()
    config.timing.poll_interval_ms = 5_000
    config.timing.run_timeout_ms = 60_000
    config.timing.review_feedback_timeout_ms = 900_000
    config.paths.workspace_root = "workspace"
    config.paths.task_dirs = [TaskDirConfig(path="tasks", rank=3)]

    save_config(config_path, config)
    loaded = load_config(config_path, environ={})

    assert loaded.timing.poll_interval_ms == 5_000
    assert loaded.timing.run_timeout_ms == 60_000
    assert loaded.timing.fallback_ms == 300_000
    assert loaded.timing.review_feedback_timeout_ms == 900_000
    assert loaded.paths.workspace_root == "workspace"
    assert [(entry.path, entry.rank) for entry in loaded.paths.task_dirs] == [("tasks", 3)]
    assert loaded.state_path == (
        tmp_path / "workspace" / "memory" / "mc" / "activity-runner-state.json"
    ).resolve()


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml", environ={})

    assert loaded.timing.poll_interval_ms == 10_000
    assert loaded.timing.run_timeout_ms == 300_000
    assert len(loaded.paths.task_dirs) == 2
    assert loaded.paths.task_dirs[0].rank > loaded.paths.task_dirs[1].rank


def test_review_feedback_timeout_defaults_to_dev_value() -> None:
    config = RunnerConfig.default()
    config.timing.dev_feedback_timeout_ms = 42_000

    assert config.timing.review_feedback_timeout_ms is None
    assert config.timing.effective_review_feedback_timeout_ms == 42_000
    assert "review_feedback_timeout_ms" not in dumps_toml(config)


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    config_path = tmp_path / "mission-runner.toml"
    save_config(config_path, RunnerConfig.default())

    loaded = load_config(
        config_path,
        environ={
            "MC_ACTIVITY_RUN_INTERVAL_MS": "2500",
            "MC_ACTIVITY_RUN_TIMEOUT_MS": "120000",
            "WORKSPACE_ROOT": str(tmp_path / "ws"),
        },
    )

    assert loaded.timing.poll_interval_ms == 2_500
    assert loaded.timing.run_timeout_ms == 120_000
    assert loaded.agents_path == (tmp_path / "ws" / "mission-control" / "agents").resolve()


@pytest.mark.parametrize(
    "environ",
    [
        {"MC_ACTIVITY_RUN_INTERVAL_MS": "abc"},
        {"MC_ACTIVITY_RUN_TIMEOUT_MS": "0"},
        {"MC_ACTIVITY_RUN_FALLBACK_MS": "-5"},
        {"MC_DEV_FEEDBACK_TIMEOUT_MS": "1.5"},
    ],
)
def test_invalid_timing_is_fatal(tmp_path: Path, environ: dict[str, str]) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.toml", environ=environ)


def test_non_integer_timing_in_file_is_fatal(tmp_path: Path) -> None:
    config_path = tmp_path / "mission-runner.toml"
    config_path.write_text('[timing]\nrun_timeout_ms = "soon"\n', encoding="utf-8")

    with pytest.raises(ConfigError, match="run_timeout_ms"):
        load_config(config_path, environ={})


def test_unknown_config_key_is_fatal(tmp_path: Path) -> None:
    config_path = tmp_path / "mission-runner.toml"
    config_path.write_text("[timing]\nwarp_factor = 9\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


def test_toml_dump_contains_timing_fields() -> None:
    rendered = dumps_toml(RunnerConfig.default())

    assert "[timing]" in rendered
    assert "poll_interval_ms = 10000" in rendered
    assert "phase_advance_ms" in rendered
    assert "[[paths.task_dirs]]" in rendered
    assert tomllib.loads(rendered)["paths"]["task_dirs"][0]["rank"] == 2


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
