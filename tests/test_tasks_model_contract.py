"""Contract tests for task data models used across loader/merger/sequencer."""

from __future__ import annotations

from dataclasses import FrozenInstanceError, fields

import pytest

from branchboard.tasks.model import (
    PlanResult,
    Sequence,
    SequenceResult,
    Task,
    TaskCategory,
    TaskLocation,
    TaskSource,
)


def test_task_carries_merge_tags() -> None:
    names = {f.name for f in fields(Task)}
    assert {"source", "branch", "category"} <= names


def test_task_defaults() -> None:
    task = Task(id="task-1")
    assert task.dependencies == []
    assert task.ordinal is None
    assert task.extra == {}


def test_enum_values_are_strings() -> None:
    assert TaskCategory.COMPLETED == "completed"
    assert TaskSource.REMOTE.value == "remote"


def test_location_is_immutable() -> None:
    loc = TaskLocation(category=TaskCategory.ACTIVE, timestamp=1, branch="main")
    with pytest.raises(FrozenInstanceError):
        loc.timestamp = 2  # type: ignore[misc]


def test_sequence_result_wave_of() -> None:
    result = SequenceResult(
        unsequenced=[Task(id="task-9")],
        sequences=[
            Sequence(index=0, tasks=[Task(id="task-1")]),
            Sequence(index=1, tasks=[Task(id="task-2")]),
        ],
    )
    assert result.wave_of("task-2") == 1
    assert result.wave_of("task-01") == 0
    assert result.wave_of("task-9") is None
    assert result.sequences[1].ids() == ["task-2"]


def test_plan_failure() -> None:
    plan = PlanResult.failure("nope")
    assert plan.ok is False
    assert plan.changed == []
    assert plan.error == "nope"
