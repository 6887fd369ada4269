"""Working-copy task storage: category directories, listing, load, save."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from branchboard import log
from branchboard.config import DEFAULT_BACKLOG_DIR
from branchboard.errors import TaskParseError
from branchboard.tasks.ids import (
    id_from_filename,
    is_task_filename,
    normalize_task_id,
    sanitize_filename,
    sort_by_task_id,
    task_ids_equal,
)
from branchboard.tasks.io import read_task_file, write_task_file
from branchboard.tasks.model import Task, TaskCategory

# Directory of each category, relative to the backlog directory.
CATEGORY_DIRS: dict[TaskCategory, str] = {
    TaskCategory.ACTIVE: "tasks",
    TaskCategory.DRAFTS: "drafts",
    TaskCategory.COMPLETED: "completed",
    TaskCategory.ARCHIVED: "archive/tasks",
}


def category_for_path(rel_path: str, backlog_dir: str = DEFAULT_BACKLOG_DIR) -> TaskCategory | None:
    """Map a repo-relative path (``backlog/completed/task-3 - X.md``) to its category."""
    prefix = backlog_dir.strip("/") + "/"
    if not rel_path.startswith(prefix):
        return None
    parent = rel_path[len(prefix):].rsplit("/", 1)
    if len(parent) != 2:
        return None
    for category, sub in CATEGORY_DIRS.items():
        if parent[0] == sub:
            return category
    return None


class FileSystem:
    """Task files in the primary working copy.

    Every listing tags the returned tasks with the category of the directory
    they came from, so merge code never has to track which list a task was
    read from.
    """

    def __init__(self, root: Path, backlog_dir: str = DEFAULT_BACKLOG_DIR) -> None:
        self.root = Path(root)
        self.backlog_dir_name = backlog_dir
        self.backlog_dir = self.root / backlog_dir

    # ── directories ──────────────────────────────────────────────

    def category_dir(self, category: TaskCategory) -> Path:
        return self.backlog_dir / CATEGORY_DIRS[category]

    def relative(self, path: Path | str) -> str:
        """Repo-relative POSIX path, as git reports it."""
        return Path(path).resolve().relative_to(self.root.resolve()).as_posix()

    # ── listing ──────────────────────────────────────────────────

    def _list_category(self, category: TaskCategory) -> list[Task]:
        directory = self.category_dir(category)
        if not directory.is_dir():
            return []

        tasks: list[Task] = []
        for path in sorted(directory.glob("task-*.md")):
            try:
                task = read_task_file(path)
            except TaskParseError as exc:
                log.warn(f"Skipping malformed task file {path.name}: {exc}")
                continue
            tasks.append(replace(task, category=category))
        return sort_by_task_id(tasks)

    def list_tasks(self) -> list[Task]:
        return self._list_category(TaskCategory.ACTIVE)

    def list_drafts(self) -> list[Task]:
        return self._list_category(TaskCategory.DRAFTS)

    def list_completed_tasks(self) -> list[Task]:
        return self._list_category(TaskCategory.COMPLETED)

    def list_archived_tasks(self) -> list[Task]:
        return self._list_category(TaskCategory.ARCHIVED)

    # ── single task ──────────────────────────────────────────────

    def find_task_file(self, task_id: str, category: TaskCategory = TaskCategory.ACTIVE) -> Path | None:
        directory = self.category_dir(category)
        if not directory.is_dir():
            return None
        normalized = normalize_task_id(task_id)
        candidates = sorted(p for p in directory.glob("task-*.md") if is_task_filename(p.name))
        # Exact prefix first, then numeric match ignoring leading zeros.
        for p in candidates:
            if p.name.startswith(f"{normalized} -") or p.name.startswith(f"{normalized}-"):
                return p
        for p in candidates:
            found = id_from_filename(p.name)
            if found and task_ids_equal(found, task_id):
                return p
        return None

    def load_task(self, task_id: str, category: TaskCategory = TaskCategory.ACTIVE) -> Task | None:
        path = self.find_task_file(task_id, category)
        if path is None:
            return None
        try:
            task = read_task_file(path)
        except TaskParseError as exc:
            log.warn(f"Cannot parse {path.name}: {exc}")
            return None
        return replace(task, category=category)

    def save_task(self, task: Task, category: TaskCategory | None = None) -> Path:
        """Write *task* under its category directory and return the file path.

        A previous file for the same id with a different title is removed.
        """
        category = category or task.category or TaskCategory.ACTIVE
        task_id = normalize_task_id(task.id)
        filename = f"{task_id} - {sanitize_filename(task.title)}.md"
        target = self.category_dir(category) / filename

        existing = self.find_task_file(task_id, category)
        write_task_file(target, task)
        if existing is not None and existing.name != filename:
            existing.unlink(missing_ok=True)
        return target
