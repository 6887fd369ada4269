"""Ordinal engine for drag-and-drop reordering within a status column.

Every changed ordinal is a file rewrite, and possibly a commit. A move
normally touches only the moved task. The whole column is renumbered only
when there is no fractional room left between the neighbours.
"""

from __future__ import annotations

from dataclasses import replace

from branchboard.errors import OrdinalInvariantError
from branchboard.tasks.ids import canonical_task_id
from branchboard.tasks.model import OrdinalResult, Task

DEFAULT_ORDINAL_STEP = 1000
MIN_ORDINAL_GAP = 1


def calculate_new_ordinal(
    previous: Task | None = None,
    next: Task | None = None,
    default_step: float = DEFAULT_ORDINAL_STEP,
) -> OrdinalResult:
    """Ordinal for a task dropped between *previous* and *next*.

    ``requires_rebalance`` is set when the neighbours leave less than one unit
    of room, are inverted, or one of them has no ordinal yet.
    """
    prev_ord = previous.ordinal if previous is not None else None
    next_ord = next.ordinal if next is not None else None

    if (previous is not None and prev_ord is None) or (next is not None and next_ord is None):
        base = prev_ord if prev_ord is not None else 0
        return OrdinalResult(ordinal=base + default_step, requires_rebalance=True)

    if prev_ord is None and next_ord is None:
        return OrdinalResult(ordinal=default_step)
    if next_ord is None:
        return OrdinalResult(ordinal=prev_ord + default_step)
    if prev_ord is None:
        return OrdinalResult(ordinal=next_ord - default_step)

    gap = next_ord - prev_ord
    if gap < MIN_ORDINAL_GAP:
        return OrdinalResult(ordinal=prev_ord + default_step, requires_rebalance=True)
    return OrdinalResult(ordinal=prev_ord + gap / 2)


def _check_strictly_increasing(tasks: list[Task]) -> None:
    last: float | None = None
    for task in tasks:
        if task.ordinal is None or (last is not None and task.ordinal <= last):
            raise OrdinalInvariantError(
                f"Ordinal plan is not strictly increasing at {task.id} "
                f"(ordinal={task.ordinal}, previous={last})"
            )
        last = task.ordinal


def resolve_ordinal_conflicts(
    tasks: list[Task],
    default_step: float = DEFAULT_ORDINAL_STEP,
    start_ordinal: float = DEFAULT_ORDINAL_STEP,
    force_sequential: bool = False,
) -> list[Task]:
    """Make ordinals strictly increasing in list order. Returns only the tasks that changed.

    With *force_sequential* the column is renumbered ``start, start+step, ...``.
    Otherwise consistent ordinals are left alone. A task is bumped to
    ``previous + step`` only when its ordinal is missing or not above its
    predecessor's.
    """
    if default_step <= 0:
        raise ValueError("default_step must be positive")
    seen: set[str] = set()
    for task in tasks:
        key = canonical_task_id(task.id)
        if key in seen:
            raise ValueError(f"Duplicate task id {task.id} in ordered column")
        seen.add(key)

    result: list[Task] = []
    changed: list[Task] = []
    last: float | None = None
    for i, task in enumerate(tasks):
        if force_sequential:
            wanted = start_ordinal + i * default_step
        elif task.ordinal is None or (last is not None and task.ordinal <= last):
            wanted = start_ordinal if last is None else last + default_step
        else:
            wanted = task.ordinal

        updated = task if wanted == task.ordinal else replace(task, ordinal=wanted)
        if updated is not task:
            changed.append(updated)
        result.append(updated)
        last = wanted

    _check_strictly_increasing(result)
    return changed
