from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click

from mission_runner import __version__
from mission_runner.config import (
    DEFAULT_CONFIG_FILE,
    RunnerConfig,
    load_config,
    save_config,
)
from mission_runner.errors import ConfigError
from mission_runner.phases import classify_status
from mission_runner.roles import build_profiles, required_roles
from mission_runner.runner import Runner
from mission_runner.state import read_snapshot

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _resolve_config_path(config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return config_path.resolve()


def _load(config_value: str) -> RunnerConfig:
    try:
        return load_config(_resolve_config_path(config_value))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


@click.group()
@click.version_option(version=__version__, prog_name="mc-runner")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Mission-control task-phase runner."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("init")
@click.option("--workspace", "workspace_root", default=None, help="Workspace root directory.")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def init_command(workspace_root: str | None, config_value: str) -> None:
    """Write a config file, role charters and the state directory."""
    config_path = _resolve_config_path(config_value)
    config = _load(config_value)
    if workspace_root:
        config.paths.workspace_root = workspace_root
    save_config(config_path, config)

    for entry in config.paths.task_dirs:
        config.resolve(entry.path).mkdir(parents=True, exist_ok=True)
    config.state_path.parent.mkdir(parents=True, exist_ok=True)
    created = [
        profile.charter_path
        for profile in build_profiles(config.agents_path, config.briefings_path).values()
        if profile.ensure_charter()
    ]

    click.echo(f"Config: {config_path}")
    click.echo(f"State file: {config.state_path}")
    for path in created:
        click.echo(f"Created role charter: {path}")


@cli.command("tick")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def tick_command(config_value: str) -> None:
    """Run a single reconciliation tick."""
    runner = Runner(_load(config_value))
    summary = runner.tick()
    if summary is None:
        raise click.ClickException("A tick is already in flight.")
    _emit_lines(runner.summary_lines(summary))


@cli.command("run")
@click.option("--max-ticks", type=click.IntRange(min=1), default=None)
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def run_command(max_ticks: int | None, config_value: str) -> None:
    """Tick forever (or --max-ticks times) on the configured interval."""
    runner = Runner(_load(config_value))
    try:
        ticks = asyncio.run(runner.run(max_ticks=max_ticks))
    except KeyboardInterrupt:
        click.echo("Runner stopped.")
        return
    click.echo(f"Completed {ticks} tick(s).")


@cli.command("status")
@click.option("--verbose", is_flag=True, default=False, help="Include the audit log.")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
def status_command(verbose: bool, config_value: str) -> None:
    """Print the persisted runner state."""
    config = _load(config_value)
    snapshot = read_snapshot(config.state_path)
    if snapshot is None:
        raise click.ClickException(f"No runner state at {config.state_path}")
    if not verbose:
        snapshot = {key: value for key, value in snapshot.items() if key != "log"}
    click.echo(json.dumps(snapshot, ensure_ascii=False, indent=2))


@cli.command("resolve")
@click.argument("status")
def resolve_command(status: str) -> None:
    """Show how a status string classifies and which roles it needs."""
    classification = classify_status(status)
    roles = required_roles(
        (),
        classification.phase,
        dev_feedback_pending=classification.dev_feedback_pending,
        review_feedback_pending=classification.review_feedback_pending,
    )
    payload = {
        "status": status,
        "rule": classification.rule,
        "phase": classification.phase.value,
        "devFeedbackPending": classification.dev_feedback_pending,
        "reviewFeedbackPending": classification.review_feedback_pending,
        "roles": [role.value for role in roles],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":  # pragma: no cover
    cli()
