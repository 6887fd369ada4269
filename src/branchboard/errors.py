"""Exception types and git failure classification for branchboard."""

from __future__ import annotations


class BranchboardError(Exception):
    """Base class for every error raised by branchboard."""


class GitError(BranchboardError):
    """A git read (tree listing, blob, log) failed for a given ref."""

    def __init__(self, message: str, *, ref: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.ref = ref
        self.stderr = stderr


class LoadingCancelled(BranchboardError):
    """Raised when a board/statistics load is cancelled between phases."""

    def __init__(self, message: str = "Loading cancelled") -> None:
        super().__init__(message)


class OrdinalInvariantError(BranchboardError):
    """The ordinal engine produced a non-increasing column. Always a bug."""


class TaskNotFoundError(BranchboardError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskParseError(BranchboardError, ValueError):
    """A task file has no frontmatter or no usable id."""


CONNECTIVITY_PATTERNS: tuple[str, ...] = (
    "could not resolve host",
    "could not read from remote repository",
    "unable to access",
    "connection timed out",
    "connection refused",
    "network is unreachable",
    "no such remote",
    "does not appear to be a git repository",
    "operation timed out",
)

MISSING_PATH_PATTERNS: tuple[str, ...] = (
    "does not exist in",
    "not a valid object name",
    "unknown revision",
    "bad revision",
    "invalid object name",
    "not a tree object",
    "ambiguous argument",
)


def _contains_any(text: str, patterns: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(pattern in lower for pattern in patterns)


def looks_like_connectivity_failure(text: str) -> bool:
    """Return ``True`` when git stderr indicates the remote is unreachable."""
    if not text:
        return False
    return _contains_any(text, CONNECTIVITY_PATTERNS)


def looks_like_missing_path(text: str) -> bool:
    """Return ``True`` when git stderr means the ref or path is simply absent."""
    if not text:
        return False
    return _contains_any(text, MISSING_PATH_PATTERNS)
