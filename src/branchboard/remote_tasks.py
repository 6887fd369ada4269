"""Branch task loading and field-level conflict resolution.

Each branch is scanned independently and returns plain task values.
:func:`resolve_task_conflict` is commutative and idempotent, so the scans can
run in any order or in parallel. They are merged afterwards with a plain
``reduce``.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, replace
from datetime import datetime, timezone
from functools import reduce
from pathlib import Path
from typing import Callable, Iterable

from branchboard import git_ops, log
from branchboard.branches import recent_branches
from branchboard.config import Config
from branchboard.errors import GitError, TaskParseError
from branchboard.tasks.ids import canonical_task_id, is_task_filename
from branchboard.tasks.io import parse_task
from branchboard.tasks.model import Task, TaskCategory, TaskSource

ProgressCallback = Callable[[str], None]

_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d")

_SOURCE_RANK: dict[TaskSource | None, int] = {
    TaskSource.LOCAL: 2,
    TaskSource.COMPLETED: 1,
    TaskSource.REMOTE: 0,
    None: 0,
}


def get_task_loading_message(cfg: Config) -> str:
    if not cfg.remote_operations:
        return "Loading local tasks (remote operations disabled)..."
    return "Loading tasks from local and remote branches..."


# ── Loading ──────────────────────────────────────────────────────────


def _scan_branch(ref: str, tasks_path: str, cwd: Path | None) -> list[Task]:
    """Parse every task file on *ref*. Any failure means no contribution."""
    try:
        files = git_ops.list_files_in_tree(ref, tasks_path, cwd=cwd)
    except GitError as exc:
        log.debug(f"Skipping {ref}: {exc}")
        return []

    found: list[Task] = []
    for path in files:
        if not is_task_filename(path):
            continue
        try:
            task = parse_task(git_ops.show_file(ref, path, cwd=cwd))
        except (GitError, TaskParseError) as exc:
            log.debug(f"Skipping {ref}:{path}: {exc}")
            continue
        found.append(
            replace(
                task,
                source=TaskSource.REMOTE,
                branch=ref,
                category=TaskCategory.ACTIVE,
                file_path=path,
            )
        )
    return found


def load_remote_tasks(
    cfg: Config,
    cwd: Path | None = None,
    progress: ProgressCallback | None = None,
    local_tasks: list[Task] | None = None,
) -> list[Task]:
    """Load active tasks from every recent branch other than the checked-out one.

    Returns ``[]`` right away in offline mode. When *local_tasks* is given,
    branches whose tasks tree is identical to ``HEAD``'s are skipped, since
    they cannot add anything the working copy does not already show.
    """
    if not cfg.remote_operations:
        log.debug("Remote operations disabled, not loading branch tasks")
        return []

    if progress:
        progress("Fetching remote branches...")
    git_ops.fetch(cwd=cwd)

    tasks_path = f"{cfg.backlog_dir}/tasks"
    branches = recent_branches(cfg, cwd=cwd, exclude_current=True)

    if local_tasks is not None and branches:
        head_tree = git_ops.tree_hash("HEAD", tasks_path, cwd=cwd)
        if head_tree:
            kept = [b for b in branches if git_ops.tree_hash(b, tasks_path, cwd=cwd) != head_tree]
            if len(kept) != len(branches):
                log.debug(f"Skipped {len(branches) - len(kept)} branch(es) identical to HEAD")
            branches = kept

    if not branches:
        return []

    if progress:
        progress(f"Loading tasks from {len(branches)} branch(es)...")

    workers = min(cfg.max_branch_workers, len(branches))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        per_branch = list(pool.map(lambda ref: _scan_branch(ref, tasks_path, cwd), branches))

    loaded = [task for tasks in per_branch for task in tasks]
    log.debug(f"Loaded {len(loaded)} task(s) from {len(branches)} branch(es)")
    return loaded


# ── Conflict resolution ──────────────────────────────────────────────


def parse_task_date(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Aware stamps compare as naive UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _timestamp(task: Task) -> datetime:
    return parse_task_date(task.updated_date) or parse_task_date(task.created_date) or datetime.min


def _status_index(task: Task, statuses: list[str]) -> int:
    wanted = (task.status or "").strip().lower()
    for i, status in enumerate(statuses):
        if status.strip().lower() == wanted:
            return i
    return -1


def _cmp(a: object, b: object) -> int:
    return (a > b) - (a < b)  # type: ignore[operator]


def _fingerprint(task: Task) -> str:
    data = asdict(task)
    data["assignee"] = sorted(task.assignee)
    data["labels"] = sorted(task.labels)
    data["dependencies"] = sorted(task.dependencies)
    return json.dumps(data, sort_keys=True, default=str)


def compare_tasks(a: Task, b: Task, statuses: list[str], strategy: str = "most_progressed") -> int:
    """Return >0 if *a* should win, <0 if *b* should, 0 if indistinguishable.

    Antisymmetric by construction: ``compare_tasks(a, b) == -compare_tasks(b, a)``.
    """
    progress = _cmp(_status_index(a, statuses), _status_index(b, statuses))
    recency = _cmp(_timestamp(a), _timestamp(b))
    primary = (progress, recency) if strategy == "most_progressed" else (recency, progress)
    for order in primary:
        if order:
            return order

    order = _cmp(_SOURCE_RANK[a.source], _SOURCE_RANK[b.source])
    if order:
        return order

    # Smaller branch name wins.
    order = _cmp(b.branch or "", a.branch or "")
    if order:
        return order

    return _cmp(_fingerprint(b), _fingerprint(a))


def resolve_task_conflict(
    a: Task,
    b: Task,
    statuses: list[str],
    strategy: str = "most_progressed",
) -> Task:
    """Pick the winner between two observations of the same task id."""
    return a if compare_tasks(a, b, statuses, strategy) >= 0 else b


def merge_tasks(
    observations: Iterable[Task],
    statuses: list[str],
    strategy: str = "most_progressed",
) -> dict[str, Task]:
    """Fold observations into one winner per canonical id."""
    grouped: dict[str, list[Task]] = {}
    for task in observations:
        grouped.setdefault(canonical_task_id(task.id), []).append(task)
    return {
        key: reduce(lambda x, y: resolve_task_conflict(x, y, statuses, strategy), group)
        for key, group in grouped.items()
    }
