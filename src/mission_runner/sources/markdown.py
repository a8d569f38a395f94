from __future__ import annotations

import logging
import math
import re
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml

from mission_runner.errors import TaskSourceError
from mission_runner.fileio import write_atomic
from mission_runner.models import Role, TaskMeta
from mission_runner.sources.base import TaskSource

logger = logging.getLogger(__name__)

FRONT_MATTER_PATTERN = re.compile(r"\A---\r?\n(.*?)\r?\n---\r?\n?(.*)\Z", re.DOTALL)
TASK_ID_PATTERN = re.compile(r"[a-z0-9]+-\d{3}(?:-\d{2})?", re.IGNORECASE)
STATUS_LINE_PATTERN = re.compile(r"^[-*]?\s*Status:\s*(.*)$", re.IGNORECASE | re.MULTILINE)


def extract_task_id(value: str | None) -> str | None:
    if not value:
        return None
    match = TASK_ID_PATTERN.search(value)
    return match.group(0).lower() if match else None


def _split_front_matter(content: str) -> tuple[dict[str, Any] | None, str]:
    match = FRONT_MATTER_PATTERN.match(content)
    if not match:
        return None, content
    try:
        parsed = yaml.safe_load(match.group(1))
    except (yaml.YAMLError, ValueError):
        return None, match.group(2)
    if not isinstance(parsed, dict):
        return None, match.group(2)
    return parsed, match.group(2)


def _parse_assignees(value: Any) -> frozenset[Role]:
    if isinstance(value, str):
        items: list[Any] = re.split(r"[,/]", value)
    elif isinstance(value, list):
        items = value
    else:
        return frozenset()
    roles = (Role.parse(item) for item in items)
    return frozenset(role for role in roles if role is not None)


def _timestamp_ms(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=UTC)
        return int(moment.timestamp() * 1000)
    if isinstance(value, date):
        return int(datetime(value.year, value.month, value.day, tzinfo=UTC).timestamp() * 1000)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return _timestamp_ms(parsed)
    return None


class MarkdownTaskSource(TaskSource):
    """Reads task notes (markdown with YAML front matter) from one directory."""

    def __init__(self, directory: Path, *, rank: int = 0, name: str | None = None) -> None:
        self.directory = directory
        self.rank = rank
        self.name = name or directory.name

    def owns(self, source_path: str) -> bool:
        try:
            Path(source_path).resolve().relative_to(self.directory.resolve())
        except ValueError:
            return False
        return True

    def read_tasks(self) -> list[TaskMeta]:
        if not self.directory.is_dir():
            return []
        tasks: list[TaskMeta] = []
        for path in sorted(self.directory.glob("*.md")):
            try:
                content = path.read_text(encoding="utf-8")
                mtime_ms = int(path.stat().st_mtime * 1000)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping unreadable task file %s: %s", path, exc)
                continue
            task = self.parse_task(path, content, mtime_ms)
            if task is not None:
                tasks.append(task)
        return tasks

    def parse_task(self, path: Path, content: str, mtime_ms: int = 0) -> TaskMeta | None:
        front_matter, body = _split_front_matter(content)
        if front_matter is None:
            logger.debug("No usable front matter in %s, deriving id from filename", path)
            front_matter = {}

        raw_id = front_matter.get("taskId")
        task_id = (
            (raw_id.strip().lower() if isinstance(raw_id, str) and raw_id.strip() else None)
            or extract_task_id(path.name)
            or extract_task_id(content)
        )
        if not task_id:
            return None

        title = front_matter.get("title")
        status = front_matter.get("status")
        if not isinstance(status, str):
            match = STATUS_LINE_PATTERN.search(body)
            status = match.group(1).strip() if match else ""
        updated_at = _timestamp_ms(front_matter.get("updatedAt"))

        return TaskMeta(
            task_id=task_id,
            title=title.strip() if isinstance(title, str) and title.strip() else path.stem,
            assignees=_parse_assignees(front_matter.get("assignees")),
            status=status,
            source_path=str(path),
            updated_at=updated_at if updated_at is not None else mtime_ms,
            rank=self.rank,
        )

    def set_status(self, source_path: str, status: str) -> bool:
        path = Path(source_path)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TaskSourceError(f"Cannot read {path}: {exc}", source=self.name) from exc

        front_matter, body = _split_front_matter(content)
        if front_matter is None:
            raise TaskSourceError(
                f"Cannot rewrite status of {path}: no valid front matter", source=self.name
            )
        if front_matter.get("status") == status:
            return False

        front_matter["status"] = status
        rendered = yaml.safe_dump(
            front_matter, sort_keys=False, allow_unicode=True, default_flow_style=False
        )
        self._write(path, f"---\n{rendered}---\n{body}")
        logger.info("Rewrote status of %s to %r", path, status)
        return True

    def _write(self, path: Path, text: str) -> None:
        try:
            write_atomic(path, text)
        except OSError as exc:
            raise TaskSourceError(f"Cannot write {path}: {exc}", source=self.name) from exc
