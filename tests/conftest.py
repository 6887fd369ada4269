"""Shared fixtures for branchboard tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Branch scenarios use real temporary git repos; commit times are pinned
  relative to "now" so the recent-branch window and last-touched ordering are
  deterministic.
"""

from __future__ import annotations

import os
import subprocess
import time
from pathlib import Path

import pytest

from branchboard import log
from branchboard.config import Config
from branchboard.filesystem import CATEGORY_DIRS
from branchboard.tasks.io import serialize_task
from branchboard.tasks.model import Task, TaskCategory


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register opt-in switch for end-to-end tests with real remotes."""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run end-to-end tests marked with 'e2e'.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip e2e tests unless explicitly enabled."""
    if config.getoption("--run-e2e"):
        return

    skip_e2e = pytest.mark.skip(
        reason="E2E tests are skipped by default. Use --run-e2e to include them.",
    )
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch):
    """Keep verbose mode off and ignore any debug env from the developer shell."""
    monkeypatch.delenv("BRANCHBOARD_DEBUG", raising=False)
    log.set_verbose(False)
    yield
    log.set_verbose(False)


def git(repo: Path, *args: str, when: int | None = None) -> str:
    env = dict(os.environ)
    if when is not None:
        stamp = f"{when} +0000"
        env["GIT_AUTHOR_DATE"] = stamp
        env["GIT_COMMITTER_DATE"] = stamp
    r = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, env=env, check=True)
    return r.stdout


def commit_all(repo: Path, message: str, ago: int = 0) -> None:
    """Commit everything, dated *ago* seconds before now."""
    git(repo, "add", "-A")
    git(repo, "commit", "-m", message, when=int(time.time()) - ago)


def write_task(
    repo: Path,
    task: Task,
    category: TaskCategory = TaskCategory.ACTIVE,
    backlog_dir: str = "backlog",
) -> Path:
    """Write *task* under the category directory; removes other copies of the id."""
    for sub in CATEGORY_DIRS.values():
        directory = repo / backlog_dir / sub
        if directory.is_dir():
            for old in directory.glob(f"{task.id} - *.md"):
                old.unlink()
    path = repo / backlog_dir / CATEGORY_DIRS[category] / f"{task.id} - {task.title.replace(' ', '-') or 'x'}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_task(task), encoding="utf-8")
    return path


def _make_task(
    id: str,
    title: str = "",
    status: str = "To Do",
    dependencies: list[str] | None = None,
    ordinal: float | None = None,
    updated_date: str | None = None,
    created_date: str = "2024-01-01 09:00",
    **kwargs,
) -> Task:
    return Task(
        id=id,
        title=title or f"Task {id}",
        status=status,
        dependencies=dependencies or [],
        ordinal=ordinal,
        updated_date=updated_date,
        created_date=created_date,
        **kwargs,
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Minimal git repo on branch ``main`` with one commit from an hour ago."""
    git(tmp_path, "init")
    git(tmp_path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(tmp_path, "config", "user.name", "Test")
    git(tmp_path, "config", "user.email", "test@test")
    git(tmp_path, "config", "commit.gpgsign", "false")
    (tmp_path / "README.md").write_text("# Test\n", encoding="utf-8")
    commit_all(tmp_path, "Initial", ago=3600)
    return tmp_path


@pytest.fixture
def backlog_repo(git_repo: Path) -> Path:
    """Git repo with an initialized, committed ``backlog/`` structure and config."""
    (git_repo / "backlog").mkdir()
    (git_repo / "backlog" / "config.yml").write_text(
        "statuses: [To Do, In Progress, Done]\n"
        "remote_operations: false\n"
        "active_branch_days: 30\n",
        encoding="utf-8",
    )
    commit_all(git_repo, "Add backlog config", ago=3000)
    return git_repo


@pytest.fixture
def offline_cfg() -> Config:
    return Config(remote_operations=False)
