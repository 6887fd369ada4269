"""Cross-branch location reconciliation.

A task id may sit in ``tasks/`` on one branch and in ``completed/`` on
another. The copy whose file was committed most recently decides the id's
category. Tasks loaded from any other category are dropped from the view.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable

from branchboard import git_ops, log
from branchboard.branches import recent_branches
from branchboard.config import Config
from branchboard.errors import GitError
from branchboard.filesystem import category_for_path
from branchboard.tasks.ids import canonical_task_id, id_from_filename, is_task_filename
from branchboard.tasks.model import Task, TaskCategory, TaskLocation

# Later entries are more terminal and win exact ties no current location decides.
CATEGORY_PRECEDENCE: tuple[TaskCategory, ...] = (
    TaskCategory.ACTIVE,
    TaskCategory.DRAFTS,
    TaskCategory.COMPLETED,
    TaskCategory.ARCHIVED,
)


def pick_latest(
    a: TaskLocation,
    b: TaskLocation,
    current: TaskCategory | None = None,
) -> TaskLocation:
    """Choose between two observations of one id. Order-independent."""
    if a.timestamp != b.timestamp:
        return a if a.timestamp > b.timestamp else b
    if a.category != b.category:
        if current is not None and a.category == current:
            return a
        if current is not None and b.category == current:
            return b
        rank_a = CATEGORY_PRECEDENCE.index(a.category)
        rank_b = CATEGORY_PRECEDENCE.index(b.category)
        return a if rank_a > rank_b else b
    return a if a.branch <= b.branch else b


def _scan_branch_locations(
    ref: str,
    backlog_dir: str,
    wanted: set[str],
    cwd: Path | None,
) -> list[tuple[str, TaskLocation]]:
    """Where each wanted id's file lives on *ref*, with the last commit time of that path."""
    try:
        files = git_ops.list_files_in_tree(ref, backlog_dir, cwd=cwd)
        times = git_ops.path_commit_times(ref, backlog_dir, cwd=cwd)
    except GitError as exc:
        log.debug(f"Skipping {ref} for location check: {exc}")
        return []

    observations: list[tuple[str, TaskLocation]] = []
    for path in files:
        if not is_task_filename(path):
            continue
        category = category_for_path(path, backlog_dir)
        if category is None:
            continue
        task_id = id_from_filename(path)
        if not task_id:
            continue
        key = canonical_task_id(task_id)
        if key not in wanted:
            continue
        observations.append((key, TaskLocation(category=category, timestamp=times.get(path, 0), branch=ref)))
    return observations


def get_latest_task_states_for_ids(
    cfg: Config,
    cwd: Path | None,
    task_ids: Iterable[str],
    current_categories: dict[str, TaskCategory] | None = None,
    progress: Callable[[str], None] | None = None,
) -> dict[str, TaskLocation]:
    """Winning location per id across all recent branches, keyed by canonical id.

    Ids not found on any branch are absent from the result.
    """
    wanted = {canonical_task_id(t) for t in task_ids}
    if not wanted:
        return {}

    current = {canonical_task_id(k): v for k, v in (current_categories or {}).items()}
    branches = recent_branches(cfg, cwd=cwd)
    if not branches:
        return {}

    if progress:
        progress(f"Checking task locations on {len(branches)} branch(es)...")

    workers = min(cfg.max_branch_workers, len(branches))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        per_branch = list(
            pool.map(lambda ref: _scan_branch_locations(ref, cfg.backlog_dir, wanted, cwd), branches)
        )

    latest: dict[str, TaskLocation] = {}
    for observations in per_branch:
        for key, location in observations:
            seen = latest.get(key)
            latest[key] = location if seen is None else pick_latest(seen, location, current.get(key))
    return latest


def filter_tasks_by_latest_state(tasks: list[Task], latest: dict[str, TaskLocation]) -> list[Task]:
    """Drop tasks whose loaded category is not their id's winning category."""
    kept: list[Task] = []
    for task in tasks:
        location = latest.get(canonical_task_id(task.id))
        loaded = task.category or TaskCategory.ACTIVE
        if location is not None and location.category != loaded:
            log.debug(
                f"{task.id} superseded: {location.category.value} on {location.branch} "
                f"is newer than its {loaded.value} copy"
            )
            continue
        kept.append(task)
    return kept
