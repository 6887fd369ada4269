"""Task records and the value types produced by the reconciliation core."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from branchboard.tasks.ids import task_ids_equal


class TaskCategory(str, Enum):
    """Physical bucket a task file lives in."""

    ACTIVE = "active"
    DRAFTS = "drafts"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskSource(str, Enum):
    """Where a merged task value was observed. Never persisted."""

    LOCAL = "local"
    REMOTE = "remote"
    COMPLETED = "completed"


PRIORITIES: tuple[str, ...] = ("high", "medium", "low")


@dataclass
class Task:
    id: str
    title: str = ""
    status: str = ""
    assignee: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    parent_task_id: str | None = None
    priority: str | None = None
    ordinal: float | None = None
    created_date: str = ""
    updated_date: str | None = None
    body: str = ""
    # Frontmatter keys this version does not model; written back untouched.
    extra: dict[str, Any] = field(default_factory=dict)
    file_path: str | None = None

    # Merge-time tags, stripped or ignored on write.
    source: TaskSource | None = None
    branch: str | None = None
    category: TaskCategory | None = None


@dataclass(frozen=True)
class TaskLocation:
    """Winning observation of where a task id lives across branches."""

    category: TaskCategory
    timestamp: int
    branch: str


@dataclass
class OrdinalResult:
    ordinal: float
    requires_rebalance: bool = False


@dataclass
class ReorderResult:
    updated_task: Task
    changed_tasks: list[Task] = field(default_factory=list)


@dataclass
class Sequence:
    """One wave: tasks that become ready at the same dependency depth."""

    index: int
    tasks: list[Task] = field(default_factory=list)

    def ids(self) -> list[str]:
        return [t.id for t in self.tasks]


@dataclass
class SequenceResult:
    unsequenced: list[Task] = field(default_factory=list)
    sequences: list[Sequence] = field(default_factory=list)

    def wave_of(self, task_id: str) -> int | None:
        """Return the wave index holding *task_id*, or ``None`` if unsequenced/absent."""
        for seq in self.sequences:
            for t in seq.tasks:
                if task_ids_equal(t.id, task_id):
                    return seq.index
        return None


@dataclass
class PlanResult:
    """Outcome of an interactive sequence move. Never raised, always returned."""

    ok: bool
    changed: list[Task] = field(default_factory=list)
    error: str = ""

    @classmethod
    def failure(cls, error: str) -> PlanResult:
        return cls(ok=False, error=error)
