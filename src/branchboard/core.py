"""Core facade: merged board/statistics views, reordering, sequencing, creation.

Every read builds a fresh snapshot from the working copy and the branch
replicas. Nothing is cached between calls.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from branchboard import git_ops, log
from branchboard.branches import recent_branches
from branchboard.config import Config, load_config
from branchboard.cross_branch import filter_tasks_by_latest_state, get_latest_task_states_for_ids
from branchboard.errors import LoadingCancelled, TaskNotFoundError
from branchboard.filesystem import FileSystem
from branchboard.id_allocator import generate_next_id
from branchboard.remote_tasks import get_task_loading_message, load_remote_tasks, merge_tasks
from branchboard.reorder import DEFAULT_ORDINAL_STEP, calculate_new_ordinal, resolve_ordinal_conflicts
from branchboard.sequences import compute_sequences, plan_move_to_sequence, plan_move_to_unsequenced
from branchboard.tasks.ids import canonical_task_id, normalize_task_id, sort_by_task_id
from branchboard.tasks.model import (
    ReorderResult,
    SequenceResult,
    Task,
    TaskCategory,
    TaskSource,
)

ProgressCallback = Callable[[str], None]


@dataclass
class StatisticsSnapshot:
    tasks: list[Task]
    drafts: list[Task]
    statuses: list[str]


@dataclass
class TaskStatistics:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    drafts: int = 0
    completion_percentage: int = 0


@dataclass
class SequenceMoveResult:
    ok: bool
    error: str = ""
    view: SequenceResult = field(default_factory=SequenceResult)


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise LoadingCancelled()


def _strip_category(tasks: list[Task]) -> list[Task]:
    return sort_by_task_id(replace(t, category=None) for t in tasks)


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M")


class Core:
    """Entry point for the board, list, statistics and sequence callers."""

    def __init__(self, root: Path, cfg: Config | None = None) -> None:
        self.root = Path(root)
        self.cfg = cfg if cfg is not None else load_config(self.root)
        self.fs = FileSystem(self.root, self.cfg.backlog_dir)

    # ── merged views ─────────────────────────────────────────────

    def _load_local_and_remote(
        self,
        progress: ProgressCallback | None,
        include_completed: bool,
    ) -> tuple[list[Task], list[Task]]:
        """Working-copy listing and branch scan. Both are read-only."""
        def local() -> list[Task]:
            tasks = [replace(t, source=TaskSource.LOCAL) for t in self.fs.list_tasks()]
            if include_completed:
                tasks += [replace(t, source=TaskSource.COMPLETED) for t in self.fs.list_completed_tasks()]
            return tasks

        with ThreadPoolExecutor(max_workers=2) as pool:
            local_future = pool.submit(local)
            if include_completed:
                # Statistics: local first, so the branch scan can use it as a skip hint.
                remote = load_remote_tasks(self.cfg, self.root, progress, local_future.result())
            else:
                remote = pool.submit(load_remote_tasks, self.cfg, self.root, progress).result()
            return local_future.result(), remote

    def _reconcile_locations(self, tasks: list[Task], progress: ProgressCallback | None) -> list[Task]:
        if not self.cfg.check_active_branches:
            if progress:
                progress("Skipping cross-branch check (disabled in config)...")
            return tasks
        if progress:
            progress("Resolving task states across branches...")
        current = {t.id: t.category or TaskCategory.ACTIVE for t in tasks}
        latest = get_latest_task_states_for_ids(self.cfg, self.root, list(current), current, progress)
        return filter_tasks_by_latest_state(tasks, latest)

    def _merged_tasks(
        self,
        progress: ProgressCallback | None,
        cancel: threading.Event | None,
        include_completed: bool,
    ) -> list[Task]:
        _check_cancelled(cancel)
        if progress:
            progress(get_task_loading_message(self.cfg))
        local_tasks, remote_tasks = self._load_local_and_remote(progress, include_completed)

        _check_cancelled(cancel)
        if progress:
            progress("Merging tasks...")
        merged = merge_tasks(local_tasks + remote_tasks, self.cfg.statuses, self.cfg.task_resolution_strategy)

        _check_cancelled(cancel)
        filtered = self._reconcile_locations(list(merged.values()), progress)

        _check_cancelled(cancel)
        return filtered

    def load_board_tasks(
        self,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> list[Task]:
        """Merged, location-filtered active task set for board and list views."""
        return _strip_category(self._merged_tasks(progress, cancel, include_completed=False))

    def load_all_tasks_for_statistics(
        self,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> StatisticsSnapshot:
        tasks = self._merged_tasks(progress, cancel, include_completed=True)
        if progress:
            progress("Loading drafts...")
        drafts = self.fs.list_drafts()
        return StatisticsSnapshot(
            tasks=_strip_category(tasks),
            drafts=_strip_category(drafts),
            statuses=list(self.cfg.statuses),
        )

    def get_statistics(
        self,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> TaskStatistics:
        snapshot = self.load_all_tasks_for_statistics(progress, cancel)
        stats = TaskStatistics(total=len(snapshot.tasks), drafts=len(snapshot.drafts))
        stats.by_status = {status: 0 for status in snapshot.statuses}
        for task in snapshot.tasks:
            stats.by_status[task.status or "(none)"] = stats.by_status.get(task.status or "(none)", 0) + 1
            priority = task.priority or "none"
            stats.by_priority[priority] = stats.by_priority.get(priority, 0) + 1
        done = stats.by_status.get(self.cfg.done_status, 0)
        if stats.total:
            stats.completion_percentage = round(done * 100 / stats.total)
        return stats

    # ── ids and creation ─────────────────────────────────────────

    def generate_next_id(self, parent_id: str | None = None) -> str:
        return generate_next_id(self.fs, self.cfg, parent_id=parent_id, cwd=self.root)

    def create_task(
        self,
        title: str,
        *,
        parent_id: str | None = None,
        status: str | None = None,
        dependencies: list[str] | None = None,
        labels: list[str] | None = None,
        assignee: list[str] | None = None,
        priority: str | None = None,
        body: str = "",
        draft: bool = False,
    ) -> Task:
        """Allocate an id and write a new task (or draft) file."""
        if not title.strip():
            raise ValueError("title is required")
        status = status or self.cfg.default_status
        if status not in self.cfg.statuses:
            raise ValueError(f"Invalid status: {status}. Valid statuses are: {', '.join(self.cfg.statuses)}")
        if parent_id and self.fs.load_task(parent_id) is None:
            raise TaskNotFoundError(parent_id)

        task = Task(
            id=self.generate_next_id(parent_id),
            title=title.strip(),
            status=status,
            assignee=list(assignee or []),
            labels=list(labels or []),
            dependencies=[normalize_task_id(d) for d in dependencies or []],
            parent_task_id=normalize_task_id(parent_id) if parent_id else None,
            priority=priority,
            created_date=_now(),
            body=body,
        )
        category = TaskCategory.DRAFTS if draft else TaskCategory.ACTIVE
        path = self.fs.save_task(task, category)
        self._maybe_commit(f"Create {task.id} - {task.title}")
        return replace(task, file_path=str(path), category=category)

    # ── reordering ───────────────────────────────────────────────

    def reorder_task(
        self,
        task_id: str,
        target_status: str,
        ordered_task_ids: list[str],
        default_step: float = DEFAULT_ORDINAL_STEP,
    ) -> ReorderResult:
        """Move *task_id* into *target_status* at its position in *ordered_task_ids*."""
        task_id = (task_id or "").strip()
        target_status = (target_status or "").strip()
        ordered = [i.strip() for i in ordered_task_ids if i and i.strip()]

        if not task_id:
            raise ValueError("task_id is required")
        if not target_status:
            raise ValueError("target_status is required")
        if not ordered:
            raise ValueError("ordered_task_ids must include at least one task")
        keys = [canonical_task_id(i) for i in ordered]
        if len(set(keys)) != len(keys):
            dup = next(i for i in ordered if keys.count(canonical_task_id(i)) > 1)
            raise ValueError(f"Duplicate task id {dup} in ordered_task_ids")
        moved_key = canonical_task_id(task_id)
        if moved_key not in keys:
            raise ValueError("ordered_task_ids must include the task being moved")

        loaded: list[Task] = []
        for tid in ordered:
            task = self.fs.load_task(tid)
            if task is None:
                raise TaskNotFoundError(tid)
            loaded.append(task)

        index = keys.index(moved_key)
        previous = loaded[index - 1] if index > 0 else None
        following = loaded[index + 1] if index < len(loaded) - 1 else None
        placement = calculate_new_ordinal(previous, following, default_step)

        moved = replace(loaded[index], status=target_status, ordinal=placement.ordinal)
        in_order = [moved if i == index else t for i, t in enumerate(loaded)]
        updates = {
            canonical_task_id(t.id): t
            for t in resolve_ordinal_conflicts(
                in_order,
                default_step=default_step,
                start_ordinal=default_step,
                force_sequential=placement.requires_rebalance,
            )
        }
        updates.setdefault(moved_key, moved)

        originals = {canonical_task_id(t.id): t for t in loaded}
        changed = [
            t
            for key, t in updates.items()
            if originals[key].ordinal != t.ordinal or originals[key].status != t.status
        ]
        if changed:
            self._write_tasks(changed, f"Reorder tasks in {target_status}")
        return ReorderResult(updated_task=updates[moved_key], changed_tasks=changed)

    # ── sequences ────────────────────────────────────────────────

    def _active(self, tasks: list[Task]) -> list[Task]:
        done = self.cfg.done_status.lower()
        return [t for t in tasks if (t.status or "").lower() != done]

    def list_active_sequences(self) -> SequenceResult:
        return compute_sequences(self._active(self.fs.list_tasks()), self.cfg.done_status)

    def move_task_in_sequences(
        self,
        task_id: str,
        *,
        unsequenced: bool = False,
        target_index: int | None = None,
    ) -> SequenceMoveResult:
        """Apply a sequence drag. Planning problems come back as ``ok=False``."""
        all_tasks = self.fs.list_tasks()
        if unsequenced:
            plan = plan_move_to_unsequenced(all_tasks, task_id, self.cfg.done_status)
            message = f"Move {task_id} to Unsequenced"
        else:
            if target_index is None:
                return SequenceMoveResult(ok=False, error="target_index is required", view=self.list_active_sequences())
            current = compute_sequences(self._active(all_tasks), self.cfg.done_status)
            plan = plan_move_to_sequence(all_tasks, current, task_id, target_index, self.cfg.done_status)
            message = f"Update dependencies for {task_id}"

        if not plan.ok:
            log.debug(f"Sequence move rejected: {plan.error}")
            return SequenceMoveResult(ok=False, error=plan.error, view=self.list_active_sequences())
        if plan.changed:
            self._write_tasks(plan.changed, message)
        return SequenceMoveResult(ok=True, view=self.list_active_sequences())

    # ── branch lookups ───────────────────────────────────────────

    def locate_task(self, task_id: str) -> str | None:
        """Branch whose most recent commit touched this task's file, if any."""
        for category in TaskCategory:
            path = self.fs.find_task_file(task_id, category)
            if path is not None:
                branches = recent_branches(self.cfg, cwd=self.root)
                return git_ops.file_last_modified_branch(self.fs.relative(path), branches, cwd=self.root)
        return None

    # ── writes ───────────────────────────────────────────────────

    def _write_tasks(self, tasks: list[Task], message: str) -> None:
        for task in tasks:
            stamped = replace(task, updated_date=_now())
            self.fs.save_task(stamped, task.category or TaskCategory.ACTIVE)
        self._maybe_commit(message)

    def _maybe_commit(self, message: str) -> None:
        if not self.cfg.auto_commit:
            return
        if git_ops.add_and_commit(message, [self.cfg.backlog_dir], cwd=self.root):
            log.debug(f"Committed: {message}")
