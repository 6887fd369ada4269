"""Task id helpers: normalization, numeric comparison, filename parsing."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from branchboard.tasks.model import Task

TASK_PREFIX = "task-"

_BODY_RE = re.compile(r"^(?:task-)?([0-9]+(?:\.[0-9]+)*)$", re.IGNORECASE)
_FILENAME_RE = re.compile(r"^task-([0-9]+(?:\.[0-9]+)*)", re.IGNORECASE)


def normalize_task_id(task_id: str) -> str:
    """Ensure the ``task-`` prefix is present, preserving the body as given."""
    trimmed = task_id.strip()
    if trimmed.lower().startswith(TASK_PREFIX):
        trimmed = trimmed[len(TASK_PREFIX):]
    return f"{TASK_PREFIX}{trimmed}"


def id_segments(task_id: str) -> tuple[int, ...] | None:
    """Return the numeric dot-segments of an id (``task-7.02`` -> ``(7, 2)``)."""
    match = _BODY_RE.match(task_id.strip())
    if not match:
        return None
    return tuple(int(seg) for seg in match.group(1).split("."))


def canonical_task_id(task_id: str) -> str:
    """Stable dictionary key for an id: leading zeros dropped, lower-cased prefix."""
    segs = id_segments(task_id)
    if segs is None:
        return normalize_task_id(task_id).lower()
    return TASK_PREFIX + ".".join(str(s) for s in segs)


def task_ids_equal(left: str, right: str) -> bool:
    return canonical_task_id(left) == canonical_task_id(right)


def is_task_filename(name: str) -> bool:
    base = name.rsplit("/", 1)[-1]
    return base.endswith(".md") and _FILENAME_RE.match(base) is not None


def id_from_filename(name: str) -> str | None:
    """Extract ``task-<n>[.<m>...]`` from a file name or repo path."""
    base = name.rsplit("/", 1)[-1]
    match = _FILENAME_RE.match(base)
    if not match:
        return None
    return f"{TASK_PREFIX}{match.group(1)}"


def sort_key(task_id: str) -> tuple:
    segs = id_segments(task_id)
    if segs is None:
        return (1, (), task_id.lower())
    return (0, segs, "")


def sort_by_task_id(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: sort_key(t.id))


def sanitize_filename(title: str) -> str:
    cleaned = re.sub(r"[<>:\"/\\|?*']", "", title)
    cleaned = re.sub(r"\s+", "-", cleaned.strip())
    return cleaned or "untitled"
