"""Tests for next-id allocation across the working copy and branches."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from branchboard.branches import expand_remote_names
from branchboard.config import Config
from branchboard.errors import GitError
from branchboard.filesystem import FileSystem
from branchboard.id_allocator import collect_branch_task_ids, generate_next_id, next_id_from
from branchboard.tasks.model import TaskCategory
from conftest import commit_all, git, write_task


# ── next_id_from (pure) ──────────────────────────────────────────────


class TestNextIdFrom:
    def test_empty(self) -> None:
        assert next_id_from([]) == "task-1"

    def test_max_plus_one(self) -> None:
        assert next_id_from(["task-1", "task-7", "task-3"]) == "task-8"

    def test_subtasks_count_toward_parent_number(self) -> None:
        assert next_id_from(["task-2", "task-9.1"]) == "task-10"

    def test_padding(self) -> None:
        assert next_id_from(["task-007"], padding=3) == "task-008"
        assert next_id_from([], padding=3) == "task-001"

    def test_padding_never_truncates(self) -> None:
        assert next_id_from(["task-999"], padding=2) == "task-1000"

    def test_first_subtask(self) -> None:
        assert next_id_from(["task-4"], parent_id="task-4") == "task-4.1"

    def test_next_subtask(self) -> None:
        ids = ["task-4", "task-4.1", "task-4.3", "task-5.9", "task-4.2.7"]
        assert next_id_from(ids, parent_id="4") == "task-4.4"

    def test_nested_subtask(self) -> None:
        assert next_id_from(["task-4.2", "task-4.2.1"], parent_id="task-4.2") == "task-4.2.2"

    def test_subtask_padding_reuses_parent_spelling(self) -> None:
        assert next_id_from(["task-004", "task-004.01"], parent_id="task-4", padding=3) == "task-004.02"

    def test_invalid_parent(self) -> None:
        with pytest.raises(ValueError, match="Invalid parent"):
            next_id_from([], parent_id="task-abc")


class TestExpandRemoteNames:
    def test_both_spellings(self) -> None:
        assert expand_remote_names(["origin/feat", "main", "origin/HEAD", "feat"]) == [
            "origin/feat",
            "feat",
            "main",
        ]


# ── generate_next_id against real repos ──────────────────────────────


class TestGenerateNextId:
    def test_local_only(self, backlog_repo: Path, make_task) -> None:
        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-1"))
        fs.save_task(make_task("task-3"), TaskCategory.DRAFTS)
        assert generate_next_id(fs, Config(remote_operations=False), cwd=backlog_repo) == "task-4"

    def test_completed_and_archived_ids_never_reused(self, backlog_repo: Path, make_task) -> None:
        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-5", status="Done"), TaskCategory.COMPLETED)
        fs.save_task(make_task("task-8"), TaskCategory.ARCHIVED)
        assert generate_next_id(fs, Config(remote_operations=False), cwd=backlog_repo) == "task-9"

    def test_ids_on_other_branch_are_skipped(self, backlog_repo: Path, make_task) -> None:
        git(backlog_repo, "checkout", "-b", "feature")
        write_task(backlog_repo, make_task("task-12"))
        commit_all(backlog_repo, "Add task-12", ago=60)
        git(backlog_repo, "checkout", "main")

        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-2"))
        assert generate_next_id(fs, Config(remote_operations=False), cwd=backlog_repo) == "task-13"

    def test_non_ascii_title_on_other_branch(self, backlog_repo: Path, make_task) -> None:
        git(backlog_repo, "checkout", "-b", "feature")
        write_task(backlog_repo, make_task("task-12", title="Café menu"))
        commit_all(backlog_repo, "Add task-12", ago=60)
        git(backlog_repo, "checkout", "main")

        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-2"))
        assert generate_next_id(fs, Config(remote_operations=False), cwd=backlog_repo) == "task-13"

    def test_subtask_seen_on_branch(self, backlog_repo: Path, make_task) -> None:
        write_task(backlog_repo, make_task("task-4"))
        commit_all(backlog_repo, "Add task-4", ago=120)
        git(backlog_repo, "checkout", "-b", "feature")
        write_task(backlog_repo, make_task("task-4.1"))
        commit_all(backlog_repo, "Add subtask", ago=60)
        git(backlog_repo, "checkout", "main")

        fs = FileSystem(backlog_repo)
        assert generate_next_id(fs, Config(remote_operations=False), parent_id="task-4", cwd=backlog_repo) == "task-4.2"

    def test_stale_branches_ignored(self, backlog_repo: Path, make_task) -> None:
        git(backlog_repo, "checkout", "-b", "ancient")
        write_task(backlog_repo, make_task("task-50"))
        commit_all(backlog_repo, "Old work", ago=90 * 86400)
        git(backlog_repo, "checkout", "main")

        cfg = Config(remote_operations=False, active_branch_days=30)
        assert generate_next_id(FileSystem(backlog_repo), cfg, cwd=backlog_repo) == "task-1"

    def test_branch_failures_fall_back_to_local(self, backlog_repo: Path, make_task) -> None:
        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-6"))
        with patch(
            "branchboard.id_allocator.git_ops.list_files_in_tree",
            side_effect=GitError("boom", ref="main"),
        ):
            assert generate_next_id(fs, Config(remote_operations=False), cwd=backlog_repo) == "task-7"

    def test_remote_enabled_without_origin(self, backlog_repo: Path, make_task) -> None:
        fs = FileSystem(backlog_repo)
        fs.save_task(make_task("task-2"))
        assert generate_next_id(fs, Config(remote_operations=True), cwd=backlog_repo) == "task-3"

    def test_outside_git(self, tmp_path: Path, make_task) -> None:
        fs = FileSystem(tmp_path)
        fs.save_task(make_task("task-2"))
        assert collect_branch_task_ids(Config(), cwd=tmp_path) == []
        assert generate_next_id(fs, Config(), cwd=tmp_path) == "task-3"
