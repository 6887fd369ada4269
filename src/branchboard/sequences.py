"""Dependency sequencing: layer the active task set into ordered waves.

Wave 0 holds tasks with no unresolved active dependency. Wave k holds tasks
whose active dependencies all sit in earlier waves. Tasks left over once no
more zero-indegree nodes can be peeled (cycles and everything downstream of
them) go to ``unsequenced``. Computing a board never raises.
"""

from __future__ import annotations

from collections import deque
from dataclasses import replace

from branchboard import log
from branchboard.tasks.ids import canonical_task_id, sort_key
from branchboard.tasks.model import PlanResult, Sequence, SequenceResult, Task

DEFAULT_DONE_STATUS = "Done"


def _is_done(task: Task, done_status: str) -> bool:
    return (task.status or "").strip().lower() == done_status.strip().lower()


def _index_active(tasks: list[Task], done_status: str) -> dict[str, Task]:
    active: dict[str, Task] = {}
    for task in tasks:
        if _is_done(task, done_status):
            continue
        active.setdefault(canonical_task_id(task.id), task)
    return active


def _active_deps(task: Task, active: dict[str, Task]) -> set[str]:
    return {k for k in (canonical_task_id(d) for d in task.dependencies) if k in active}


def _dependents(active: dict[str, Task]) -> dict[str, set[str]]:
    out: dict[str, set[str]] = {key: set() for key in active}
    for key, task in active.items():
        for dep in _active_deps(task, active):
            out[dep].add(key)
    return out


def _ordered(keys: set[str] | list[str], active: dict[str, Task]) -> list[Task]:
    return sorted((active[k] for k in keys), key=lambda t: sort_key(t.id))


def compute_sequences(active_tasks: list[Task], done_status: str = DEFAULT_DONE_STATUS) -> SequenceResult:
    """Kahn layering over the non-Done tasks."""
    active = _index_active(active_tasks, done_status)
    indegree = {key: len(_active_deps(task, active)) for key, task in active.items()}
    dependents = _dependents(active)

    sequences: list[Sequence] = []
    wave = [k for k, n in indegree.items() if n == 0]
    placed: set[str] = set()
    while wave:
        sequences.append(Sequence(index=len(sequences), tasks=_ordered(wave, active)))
        placed.update(wave)
        following: list[str] = []
        for key in wave:
            for child in dependents[key]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    following.append(child)
        wave = following

    leftover = set(active) - placed
    if leftover:
        log.debug(f"Unsequenced (cyclic or blocked): {', '.join(sorted(leftover))}")
    return SequenceResult(unsequenced=_ordered(leftover, active), sequences=sequences)


def _find(tasks: list[Task], task_id: str) -> Task | None:
    key = canonical_task_id(task_id)
    for task in tasks:
        if canonical_task_id(task.id) == key:
            return task
    return None


def _descendants(key: str, dependents: dict[str, set[str]]) -> set[str]:
    """Every active task that depends on *key*, directly or transitively."""
    seen: set[str] = set()
    queue = deque(dependents.get(key, ()))
    while queue:
        node = queue.popleft()
        if node in seen:
            continue
        seen.add(node)
        queue.extend(dependents.get(node, ()))
    return seen


def plan_move_to_unsequenced(
    all_tasks: list[Task],
    task_id: str,
    done_status: str = DEFAULT_DONE_STATUS,
) -> PlanResult:
    """Detach a task from every chain.

    Removes the task's edges to active tasks and the edges active tasks have
    to it. Edges to Done or unknown tasks do not affect placement and are kept.
    """
    task = _find(all_tasks, task_id)
    if task is None:
        return PlanResult.failure(f"Task {task_id} not found")

    active = _index_active(all_tasks, done_status)
    key = canonical_task_id(task.id)
    changed: list[Task] = []

    kept = [d for d in task.dependencies if canonical_task_id(d) not in active]
    if kept != task.dependencies:
        changed.append(replace(task, dependencies=kept))

    for other_key, other in active.items():
        if other_key == key:
            continue
        trimmed = [d for d in other.dependencies if canonical_task_id(d) != key]
        if trimmed != other.dependencies:
            changed.append(replace(other, dependencies=trimmed))

    return PlanResult(ok=True, changed=changed)


def plan_move_to_sequence(
    all_tasks: list[Task],
    sequences: SequenceResult | list[Sequence],
    task_id: str,
    target_index: int,
    done_status: str = DEFAULT_DONE_STATUS,
) -> PlanResult:
    """Plan dependency edits so *task_id* lands in wave *target_index*.

    Dependencies on tasks in the target wave or later, or in the unsequenced
    bucket, are dropped. If nothing in wave ``target_index - 1`` is already a
    dependency, one task from that wave is added as an anchor. The anchor never
    depends on the moved task. The plan is checked against a fresh
    :func:`compute_sequences` and rejected as a whole if the task would not
    land where asked.
    """
    waves = sequences.sequences if isinstance(sequences, SequenceResult) else sequences

    task = _find(all_tasks, task_id)
    if task is None:
        return PlanResult.failure(f"Task {task_id} not found")
    if _is_done(task, done_status):
        return PlanResult.failure(f"Task {task.id} is {done_status} and cannot be sequenced")
    if target_index < 0 or target_index > len(waves):
        return PlanResult.failure(
            f"Sequence {target_index + 1} does not exist (there are {len(waves)} sequences)"
        )

    active = _index_active(all_tasks, done_status)
    key = canonical_task_id(task.id)
    wave_of = {canonical_task_id(t.id): seq.index for seq in waves for t in seq.tasks}
    downstream = _descendants(key, _dependents(active))

    new_deps: list[str] = []
    for dep in task.dependencies:
        dep_key = canonical_task_id(dep)
        if dep_key == key or dep_key in downstream:
            continue
        if dep_key in active:
            wave = wave_of.get(dep_key)
            if wave is None or wave >= target_index:
                continue
        new_deps.append(dep)

    if target_index > 0:
        anchored = any(wave_of.get(canonical_task_id(d)) == target_index - 1 for d in new_deps)
        if not anchored:
            candidates = [
                t
                for t in waves[target_index - 1].tasks
                if canonical_task_id(t.id) != key and canonical_task_id(t.id) not in downstream
            ]
            if not candidates:
                return PlanResult.failure(
                    f"Cannot move {task.id} to sequence {target_index + 1}: "
                    f"no task in sequence {target_index} can precede it without a cycle"
                )
            anchor = sorted(candidates, key=lambda t: sort_key(t.id))[0]
            new_deps.append(anchor.id)

    if new_deps == task.dependencies:
        changed: list[Task] = []
    else:
        changed = [replace(task, dependencies=new_deps)]

    # Verify against a recomputation before handing back any edit.
    updated = {canonical_task_id(t.id): t for t in changed}
    simulated = [updated.get(canonical_task_id(t.id), t) for t in all_tasks]
    landed = compute_sequences(simulated, done_status).wave_of(task.id)
    if landed != target_index:
        where = "unsequenced" if landed is None else f"sequence {landed + 1}"
        return PlanResult.failure(
            f"Cannot move {task.id} to sequence {target_index + 1}: it would end up in {where}"
        )
    return PlanResult(ok=True, changed=changed)
