"""Next-id allocation across the working copy and every recent branch.

No lock is taken. Two unmerged branches can still pick the same id
concurrently; git surfaces that later as a file conflict on merge.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from branchboard import git_ops, log
from branchboard.branches import expand_remote_names, recent_branches
from branchboard.config import Config
from branchboard.errors import GitError
from branchboard.filesystem import FileSystem
from branchboard.tasks.ids import TASK_PREFIX, id_from_filename, id_segments, is_task_filename

SUBTASK_PAD_WIDTH = 2


def _branch_task_ids(branch: str, backlog_dir: str, cwd: Path | None) -> list[str]:
    try:
        files = git_ops.list_files_in_tree(branch, backlog_dir, cwd=cwd)
    except GitError as exc:
        log.debug(f"Could not list tasks on {branch}: {exc}")
        return []
    ids: list[str] = []
    for path in files:
        if not is_task_filename(path):
            continue
        task_id = id_from_filename(path)
        if task_id:
            ids.append(task_id)
    return ids


def collect_branch_task_ids(cfg: Config, cwd: Path | None = None) -> list[str]:
    """Task ids visible on any recent branch. Offline or git errors yield what was reachable."""
    if cfg.remote_operations:
        git_ops.fetch(cwd=cwd)
    else:
        log.debug("Remote operations disabled, scanning local branches only")

    branches = expand_remote_names(recent_branches(cfg, cwd=cwd))
    if not branches:
        return []

    workers = min(cfg.max_branch_workers, len(branches))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = pool.map(lambda b: _branch_task_ids(b, cfg.backlog_dir, cwd), branches)
        return [task_id for ids in results for task_id in ids]


def collect_local_task_ids(fs: FileSystem) -> list[str]:
    ids: list[str] = []
    for listing in (fs.list_tasks, fs.list_drafts, fs.list_completed_tasks, fs.list_archived_tasks):
        ids.extend(t.id for t in listing())
    return ids


def next_id_from(ids: list[str], parent_id: str | None = None, padding: int = 0) -> str:
    """Pure allocation step: the smallest id above everything in *ids*."""
    if parent_id:
        parent_segs = id_segments(parent_id)
        if parent_segs is None:
            raise ValueError(f"Invalid parent task id: {parent_id}")
        depth = len(parent_segs)
        highest = 0
        for task_id in ids:
            segs = id_segments(task_id)
            if segs and len(segs) > depth and segs[:depth] == parent_segs:
                highest = max(highest, segs[depth])
        prefix = _parent_prefix(ids, parent_segs)
        child = str(highest + 1)
        if padding > 0:
            child = child.zfill(SUBTASK_PAD_WIDTH)
        return f"{prefix}.{child}"

    highest = 0
    for task_id in ids:
        segs = id_segments(task_id)
        if segs:
            highest = max(highest, segs[0])
    number = str(highest + 1)
    if padding > 0:
        number = number.zfill(padding)
    return f"{TASK_PREFIX}{number}"


def _parent_prefix(ids: list[str], parent_segs: tuple[int, ...]) -> str:
    # Reuse the parent's spelling as it exists on disk (keeps zero padding).
    for task_id in ids:
        if id_segments(task_id) == parent_segs:
            return task_id
    return TASK_PREFIX + ".".join(str(s) for s in parent_segs)


def generate_next_id(
    fs: FileSystem,
    cfg: Config,
    parent_id: str | None = None,
    cwd: Path | None = None,
) -> str:
    """Return the next unused task id, formatted with the configured padding.

    Local listing errors propagate. Every failure on the branch side is
    swallowed, so a repo with no reachable remote falls back to local numbering.
    """
    ids = collect_local_task_ids(fs)
    ids.extend(collect_branch_task_ids(cfg, cwd=cwd or fs.root))
    return next_id_from(ids, parent_id=parent_id, padding=cfg.zero_padded_ids)
