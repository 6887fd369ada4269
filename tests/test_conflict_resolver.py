"""Tests for field-level conflict resolution between task observations."""

from __future__ import annotations

from itertools import permutations

import pytest

from branchboard.remote_tasks import compare_tasks, merge_tasks, parse_task_date, resolve_task_conflict
from branchboard.tasks.model import TaskSource

STATUSES = ["To Do", "In Progress", "Done"]


def _obs(make_task, status: str, updated: str | None, branch: str, source=TaskSource.REMOTE, **kw):
    return make_task("task-7", status=status, updated_date=updated, branch=branch, source=source, **kw)


class TestParseTaskDate:
    @pytest.mark.parametrize(
        "value",
        [
            "2024-03-01 10:00",
            "2024-03-01 10:00:00",
            "2024-03-01T10:00",
            "2024-03-01T12:00:00+02:00",
            "2024-03-01T10:00:00Z",
        ],
    )
    def test_formats(self, value: str) -> None:
        parsed = parse_task_date(value)
        assert parsed is not None
        assert (parsed.year, parsed.month, parsed.day, parsed.hour) == (2024, 3, 1, 10)

    def test_offsets_converted_to_utc(self) -> None:
        assert parse_task_date("2024-03-01T10:00+02:00") < parse_task_date("2024-03-01T09:00Z")
        assert parse_task_date("2024-03-01T23:30-01:00").day == 2

    def test_date_only(self) -> None:
        assert parse_task_date("2024-03-01").day == 1

    def test_garbage(self) -> None:
        assert parse_task_date("next tuesday") is None
        assert parse_task_date(None) is None


# ── most_progressed ──────────────────────────────────────────────────


class TestMostProgressed:
    def test_higher_status_beats_newer_timestamp(self, make_task) -> None:
        done = _obs(make_task, "Done", "2024-01-01 00:00", "a")
        todo = _obs(make_task, "To Do", "2024-06-01 00:00", "b")
        assert resolve_task_conflict(done, todo, STATUSES) is done
        assert resolve_task_conflict(todo, done, STATUSES) is done

    def test_same_status_newer_wins(self, make_task) -> None:
        old = _obs(make_task, "In Progress", "2024-01-01 00:00", "a")
        new = _obs(make_task, "In Progress", "2024-02-01 00:00", "b")
        assert resolve_task_conflict(old, new, STATUSES) is new

    def test_timestamps_in_different_zones(self, make_task) -> None:
        berlin = _obs(make_task, "In Progress", "2024-03-01T10:00+02:00", "a")
        utc = _obs(make_task, "In Progress", "2024-03-01T09:00Z", "b")
        assert resolve_task_conflict(berlin, utc, STATUSES) is utc
        assert resolve_task_conflict(utc, berlin, STATUSES) is utc

    def test_created_date_used_when_never_updated(self, make_task) -> None:
        a = _obs(make_task, "To Do", None, "a", created_date="2024-01-01 09:00")
        b = _obs(make_task, "To Do", None, "b", created_date="2024-01-02 09:00")
        assert resolve_task_conflict(a, b, STATUSES) is b

    def test_unknown_status_ranks_lowest(self, make_task) -> None:
        odd = _obs(make_task, "Blocked", "2024-09-01 00:00", "a")
        todo = _obs(make_task, "To Do", "2024-01-01 00:00", "b")
        assert resolve_task_conflict(odd, todo, STATUSES) is todo

    def test_status_match_is_case_insensitive(self, make_task) -> None:
        a = _obs(make_task, "done", "2024-01-01 00:00", "a")
        b = _obs(make_task, "In Progress", "2024-05-01 00:00", "b")
        assert resolve_task_conflict(a, b, STATUSES) is a


class TestMostRecent:
    def test_newer_beats_more_progressed(self, make_task) -> None:
        done = _obs(make_task, "Done", "2024-01-01 00:00", "a")
        todo = _obs(make_task, "To Do", "2024-06-01 00:00", "b")
        assert resolve_task_conflict(done, todo, STATUSES, "most_recent") is todo

    def test_equal_time_falls_back_to_status(self, make_task) -> None:
        done = _obs(make_task, "Done", "2024-01-01 00:00", "a")
        todo = _obs(make_task, "To Do", "2024-01-01 00:00", "b")
        assert resolve_task_conflict(todo, done, STATUSES, "most_recent") is done


# ── tie-breaks ───────────────────────────────────────────────────────


class TestTieBreaks:
    def test_local_beats_remote_on_full_tie(self, make_task) -> None:
        local = _obs(make_task, "To Do", "2024-01-01 00:00", "", source=TaskSource.LOCAL, title="local copy")
        remote = _obs(make_task, "To Do", "2024-01-01 00:00", "origin/x", title="remote copy")
        assert resolve_task_conflict(remote, local, STATUSES) is local

    def test_smaller_branch_wins_between_remotes(self, make_task) -> None:
        a = _obs(make_task, "To Do", "2024-01-01 00:00", "origin/alpha", title="alpha")
        b = _obs(make_task, "To Do", "2024-01-01 00:00", "origin/beta", title="beta")
        assert resolve_task_conflict(a, b, STATUSES) is a
        assert resolve_task_conflict(b, a, STATUSES) is a

    def test_content_decides_last(self, make_task) -> None:
        a = _obs(make_task, "To Do", "2024-01-01 00:00", "x", title="A")
        b = _obs(make_task, "To Do", "2024-01-01 00:00", "x", title="B")
        assert resolve_task_conflict(a, b, STATUSES) == resolve_task_conflict(b, a, STATUSES)

    def test_antisymmetric(self, make_task) -> None:
        a = _obs(make_task, "In Progress", "2024-01-01 00:00", "a")
        b = _obs(make_task, "To Do", "2024-03-01 00:00", "b")
        assert compare_tasks(a, b, STATUSES) == -compare_tasks(b, a, STATUSES)
        assert compare_tasks(a, a, STATUSES) == 0


# ── merge fold ───────────────────────────────────────────────────────


class TestMerge:
    def test_task7_done_wins_in_every_order(self, make_task) -> None:
        observations = [
            _obs(make_task, "To Do", "2024-01-02 00:00", "origin/a"),
            _obs(make_task, "Done", "2024-01-01 00:00", "origin/b"),
            _obs(make_task, "In Progress", "2024-01-03 00:00", "origin/c"),
        ]
        for order in permutations(observations):
            merged = merge_tasks(list(order), STATUSES)
            assert merged["task-7"].status == "Done"
            assert merged["task-7"].branch == "origin/b"

    def test_fold_is_order_independent_on_ties(self, make_task) -> None:
        observations = [
            _obs(make_task, "To Do", "2024-01-01 00:00", "origin/c", title="c"),
            _obs(make_task, "To Do", "2024-01-01 00:00", "origin/a", title="a"),
            _obs(make_task, "To Do", "2024-01-01 00:00", "origin/b", title="b"),
        ]
        winners = {merge_tasks(list(order), STATUSES)["task-7"].title for order in permutations(observations)}
        assert winners == {"a"}

    def test_idempotent(self, make_task) -> None:
        a = _obs(make_task, "In Progress", "2024-01-01 00:00", "a")
        assert resolve_task_conflict(a, a, STATUSES) is a
        assert merge_tasks([a, a, a], STATUSES)["task-7"] is a

    def test_groups_by_canonical_id(self, make_task) -> None:
        padded = make_task("task-007", status="Done", branch="x", source=TaskSource.REMOTE)
        plain = make_task("task-7", status="To Do", source=TaskSource.LOCAL)
        other = make_task("task-8")
        merged = merge_tasks([plain, padded, other], STATUSES)
        assert set(merged) == {"task-7", "task-8"}
        assert merged["task-7"] is padded
