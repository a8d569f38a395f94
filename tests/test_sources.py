from pathlib import Path

import pytest
import yaml

from mission_runner.errors import TaskSourceError
from mission_runner.models import Role, TaskMeta
from mission_runner.sources import (
    MarkdownTaskSource,
    TaskRepository,
    TaskSource,
    extract_task_id,
)


def _write_task(directory: Path, name: str, front_matter: dict, body: str = "") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    rendered = yaml.safe_dump(front_matter, sort_keys=False)
    path.write_text(f"---\n{rendered}---\n{body}", encoding="utf-8")
    return path


def test_extract_task_id() -> None:
    assert extract_task_id("PROJ-001 login flow.md") == "proj-001"
    assert extract_task_id("notes/abc-123-04.md") == "abc-123-04"
    assert extract_task_id("readme.md") is None
    assert extract_task_id(None) is None


def test_reads_front_matter_fields(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    _write_task(
        tasks_dir,
        "proj-001.md",
        {
            "taskId": "PROJ-001",
            "title": "Login flow",
            "assignees": ["Planner", "dev", "ceo"],
            "status": "Planning",
            "updatedAt": 1_700_000_000_000,
        },
    )
    source = MarkdownTaskSource(tasks_dir, rank=2)

    [task] = source.read_tasks()

    assert task.task_id == "proj-001"
    assert task.title == "Login flow"
    assert task.assignees == frozenset({Role.PLANNER, Role.DEV})
    assert task.status == "Planning"
    assert task.updated_at == 1_700_000_000_000
    assert task.rank == 2
    assert source.owns(task.source_path)


def test_comma_separated_assignees_and_iso_timestamp(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    _write_task(
        tasks_dir,
        "proj-002.md",
        {
            "assignees": "reviewer / uiux",
            "status": "Review",
            "updatedAt": "2026-01-02T03:04:05+00:00",
        },
    )

    [task] = MarkdownTaskSource(tasks_dir).read_tasks()

    assert task.task_id == "proj-002"
    assert task.title == "proj-002"
    assert task.assignees == frozenset({Role.REVIEWER, Role.UIUX})
    assert task.updated_at == 1_767_323_045_000


def test_malformed_front_matter_falls_back_to_filename(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    tasks_dir.mkdir()
    (tasks_dir / "proj-003 broken.md").write_text(
        "---\ntitle: [unclosed\n---\n- Status: in progress\n", encoding="utf-8"
    )
    (tasks_dir / "notes.md").write_text("no identifiers here\n", encoding="utf-8")

    tasks = MarkdownTaskSource(tasks_dir).read_tasks()

    assert [task.task_id for task in tasks] == ["proj-003"]
    assert tasks[0].status == "in progress"
    assert tasks[0].updated_at > 0


def test_missing_directory_yields_nothing(tmp_path: Path) -> None:
    assert MarkdownTaskSource(tmp_path / "absent").read_tasks() == []


def test_set_status_rewrites_front_matter_once(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    path = _write_task(
        tasks_dir,
        "proj-004.md",
        {"taskId": "proj-004", "status": "Planning, Dev Feedback Pending"},
        body="# Task body\n",
    )
    source = MarkdownTaskSource(tasks_dir)

    assert source.set_status(str(path), "Development") is True
    assert source.set_status(str(path), "Development") is False

    [task] = source.read_tasks()
    assert task.status == "Development"
    assert path.read_text(encoding="utf-8").endswith("# Task body\n")
    assert sorted(item.name for item in tasks_dir.iterdir()) == ["proj-004.md"]


def test_set_status_without_front_matter_raises(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    tasks_dir.mkdir()
    path = tasks_dir / "proj-005.md"
    path.write_text("Status: Planning\n", encoding="utf-8")

    with pytest.raises(TaskSourceError):
        MarkdownTaskSource(tasks_dir).set_status(str(path), "Development")


class StaticSource(TaskSource):
    def __init__(self, name: str, rank: int, tasks: list[TaskMeta]) -> None:
        self.name = name
        self.rank = rank
        self.tasks = tasks
        self.writes: list[tuple[str, str]] = []

    def read_tasks(self) -> list[TaskMeta]:
        return list(self.tasks)

    def owns(self, source_path: str) -> bool:
        return source_path.startswith(f"{self.name}/")

    def set_status(self, source_path: str, status: str) -> bool:
        self.writes.append((source_path, status))
        return True


class BrokenSource(StaticSource):
    def read_tasks(self) -> list[TaskMeta]:
        raise TaskSourceError("disk on fire", source=self.name)


def _task(task_id: str, source: str, rank: int, updated_at: int, status: str = "") -> TaskMeta:
    return TaskMeta(
        task_id=task_id,
        title=f"{task_id} from {source}",
        status=status,
        source_path=f"{source}/{task_id}.md",
        updated_at=updated_at,
        rank=rank,
    )


def test_repository_prefers_rank_over_arrival_order() -> None:
    low = StaticSource("low", 1, [_task("proj-001", "low", 1, updated_at=900)])
    high = StaticSource("high", 2, [_task("proj-001", "high", 2, updated_at=100)])

    for order in ([low, high], [high, low]):
        [task] = TaskRepository(order).read_tasks()
        assert task.title == "proj-001 from high"


def test_repository_breaks_rank_ties_by_update_time() -> None:
    first = StaticSource("a", 1, [_task("proj-001", "a", 1, updated_at=100)])
    second = StaticSource("b", 1, [_task("proj-001", "b", 1, updated_at=200)])

    [task] = TaskRepository([second, first]).read_tasks()

    assert task.title == "proj-001 from b"


def test_repository_skips_failing_source_and_routes_writes() -> None:
    healthy = StaticSource("ok", 1, [_task("proj-002", "ok", 1, updated_at=1)])
    repository = TaskRepository([BrokenSource("bad", 5, []), healthy])

    assert [task.task_id for task in repository.read_tasks()] == ["proj-002"]
    assert repository.set_status("ok/proj-002.md", "Review") is True
    assert healthy.writes == [("ok/proj-002.md", "Review")]
    with pytest.raises(TaskSourceError):
        repository.set_status("elsewhere/proj-002.md", "Review")


@pytest.mark.parametrize(
    ("content", "expected_ids"),
    [
        (b"---\ntaskId: proj-001\nupdatedAt: 2024-13-45\n---\n", ["proj-001", "proj-002"]),
        (b"---\ntaskId: proj-001\nupdatedAt: .nan\n---\n", ["proj-001", "proj-002"]),
        (b"---\ntaskId: proj-001\nupdatedAt: .inf\n---\n", ["proj-001", "proj-002"]),
        (b"---\ntitle: \xff\n---\n", ["proj-002"]),
    ],
)
def test_one_bad_note_does_not_hide_the_others(
    tmp_path: Path, content: bytes, expected_ids: list[str]
) -> None:
    tasks_dir = tmp_path / "tasks"
    _write_task(tasks_dir, "proj-002.md", {"taskId": "proj-002", "status": "Review"})
    (tasks_dir / "proj-001.md").write_bytes(content)

    tasks = MarkdownTaskSource(tasks_dir).read_tasks()

    assert [task.task_id for task in tasks] == expected_ids
    assert all(task.updated_at > 0 for task in tasks)


def test_set_status_on_undecodable_note_raises_source_error(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "tasks"
    tasks_dir.mkdir()
    path = tasks_dir / "proj-006.md"
    path.write_bytes(b"---\nstatus: \xff\n---\n")

    with pytest.raises(TaskSourceError):
        MarkdownTaskSource(tasks_dir).set_status(str(path), "Development")
