"""Read and write task markdown files (YAML frontmatter + body)."""

from __future__ import annotations

import datetime as _dt
from pathlib import Path
from typing import Any

import yaml

from branchboard.errors import TaskParseError
from branchboard.io_utils import read_text, write_text
from branchboard.tasks.ids import normalize_task_id
from branchboard.tasks.model import PRIORITIES, Task

_FENCE = "---"

# Keys the Task dataclass models directly, in the order they are written.
_KNOWN_KEYS = (
    "id",
    "title",
    "status",
    "assignee",
    "created_date",
    "updated_date",
    "labels",
    "dependencies",
    "parent_task_id",
    "priority",
    "ordinal",
)


def _split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    stripped = text.lstrip("﻿")
    lines = stripped.splitlines()
    if not lines or lines[0].strip() != _FENCE:
        raise TaskParseError("Task file has no frontmatter block")
    for i in range(1, len(lines)):
        if lines[i].strip() == _FENCE:
            header = "\n".join(lines[1:i])
            body = "\n".join(lines[i + 1:]).strip("\n")
            break
    else:
        raise TaskParseError("Unterminated frontmatter block")

    try:
        data = yaml.safe_load(header) or {}
    except yaml.YAMLError as exc:
        raise TaskParseError(f"Invalid frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise TaskParseError("Frontmatter must be a mapping")
    return data, body


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, _dt.datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, _dt.date):
        return value.isoformat()
    return str(value).strip()


def _as_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [_as_str(v) for v in value if _as_str(v)]
    return [s.strip() for s in str(value).split(",") if s.strip()]


def _as_ordinal(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_task(text: str) -> Task:
    """Turn raw task-file text into a :class:`Task`."""
    data, body = _split_frontmatter(text)

    raw_id = _as_str(data.get("id"))
    if not raw_id:
        raise TaskParseError("Task frontmatter is missing 'id'")

    priority = _as_str(data.get("priority")).lower() or None
    if priority not in PRIORITIES:
        priority = None

    parent = _as_str(data.get("parent_task_id") or data.get("parent")) or None

    extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS and k != "parent"}

    return Task(
        id=normalize_task_id(raw_id),
        title=_as_str(data.get("title")),
        status=_as_str(data.get("status")),
        assignee=_as_list(data.get("assignee")),
        labels=_as_list(data.get("labels")),
        dependencies=[normalize_task_id(d) for d in _as_list(data.get("dependencies"))],
        parent_task_id=normalize_task_id(parent) if parent else None,
        priority=priority,
        ordinal=_as_ordinal(data.get("ordinal")),
        created_date=_as_str(data.get("created_date")),
        updated_date=_as_str(data.get("updated_date")) or None,
        body=body,
        extra=extra,
    )


def _format_ordinal(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def serialize_task(task: Task) -> str:
    """Render a task back to markdown. Merge-time tags are never written."""
    data: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "assignee": list(task.assignee),
        "created_date": task.created_date,
    }
    if task.updated_date:
        data["updated_date"] = task.updated_date
    data["labels"] = list(task.labels)
    data["dependencies"] = list(task.dependencies)
    if task.parent_task_id:
        data["parent_task_id"] = task.parent_task_id
    if task.priority:
        data["priority"] = task.priority
    if task.ordinal is not None:
        data["ordinal"] = _format_ordinal(task.ordinal)
    for key, value in task.extra.items():
        data.setdefault(key, value)

    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=None)
    body = task.body.strip("\n")
    text = f"{_FENCE}\n{header}{_FENCE}\n"
    if body:
        text += f"\n{body}\n"
    return text


def read_task_file(path: Path) -> Task:
    try:
        text = read_text(path)
    except UnicodeDecodeError as exc:
        raise TaskParseError(f"{path.name} is not valid UTF-8: {exc}") from exc
    task = parse_task(text)
    task.file_path = str(path)
    return task


def write_task_file(path: Path, task: Task) -> None:
    write_text(path, serialize_task(task))
