"""Git operations: branch enumeration and read-only tree/blob/log access at a ref."""

from __future__ import annotations

import subprocess
import time
from pathlib import Path

from branchboard import log
from branchboard.errors import GitError, looks_like_connectivity_failure, looks_like_missing_path

_COMMIT_MARK = "\x00commit "
_COMMIT_FORMAT = "%x00commit %ct"


def _git(*args: str, cwd: Path | None = None, check: bool = False) -> subprocess.CompletedProcess[str]:
    """Run a git command, capturing output as UTF-8 text.

    ``core.quotePath`` is turned off so non-ASCII file names come back verbatim
    instead of quoted and octal-escaped.
    """
    return subprocess.run(
        ["git", "-c", "core.quotePath=false", *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=cwd,
        check=check,
    )


def _lines(stdout: str) -> list[str]:
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def _raise_for(r: subprocess.CompletedProcess[str], what: str, ref: str) -> None:
    if r.returncode == 0:
        return
    stderr = r.stderr.strip()
    if looks_like_missing_path(stderr):
        log.debug(f"{what}: {ref} has no such path")
    raise GitError(f"{what} failed for {ref}: {stderr}", ref=ref, stderr=stderr)


def is_git_repo(cwd: Path | None = None) -> bool:
    r = _git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    return r.returncode == 0 and r.stdout.strip() == "true"


def current_branch(cwd: Path | None = None) -> str:
    r = _git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    return r.stdout.strip() if r.returncode == 0 else ""


def has_remote(remote: str = "origin", cwd: Path | None = None) -> bool:
    r = _git("remote", cwd=cwd)
    return r.returncode == 0 and remote in _lines(r.stdout)


def fetch(remote: str = "origin", cwd: Path | None = None) -> bool:
    """Fetch *remote*. Failures (offline, no remote) are reported, never raised."""
    if not has_remote(remote, cwd=cwd):
        log.debug(f"No '{remote}' remote configured, skipping fetch")
        return False
    r = _git("fetch", remote, "--prune", "--quiet", cwd=cwd)
    if r.returncode != 0:
        stderr = r.stderr.strip()
        if looks_like_connectivity_failure(stderr):
            log.debug(f"Remote '{remote}' unreachable, using local branches only")
        else:
            log.debug(f"git fetch {remote} failed: {stderr}")
        return False
    return True


# ── Branch enumeration ───────────────────────────────────────────────


def _is_pseudo_ref(name: str) -> bool:
    return not name or "HEAD" in name or name == "origin"


def list_recent_branches(
    days: int,
    include_remotes: bool = True,
    cwd: Path | None = None,
) -> list[str]:
    """Branches whose tip was committed within the last *days* days, newest first.

    ``days == 0`` disables the window and returns every branch.
    """
    namespaces = ["refs/heads"]
    if include_remotes:
        namespaces.append("refs/remotes")
    r = _git(
        "for-each-ref",
        "--sort=-committerdate",
        "--format=%(refname:short)|%(committerdate:unix)",
        *namespaces,
        cwd=cwd,
    )
    if r.returncode != 0:
        return []

    cutoff = time.time() - days * 86400 if days > 0 else None
    branches: list[str] = []
    for line in _lines(r.stdout):
        name, _, ts = line.rpartition("|")
        if _is_pseudo_ref(name):
            continue
        try:
            committed = int(ts)
        except ValueError:
            continue
        if cutoff is not None and committed < cutoff:
            continue
        if name not in branches:
            branches.append(name)
    return branches


# ── Reads at a ref (no checkout) ─────────────────────────────────────


def list_files_in_tree(ref: str, path: str, cwd: Path | None = None) -> list[str]:
    """Return repo-relative file paths under *path* at *ref* (recursive)."""
    r = _git("ls-tree", "-r", "--name-only", ref, "--", path, cwd=cwd)
    _raise_for(r, "ls-tree", ref)
    return _lines(r.stdout)


def show_file(ref: str, path: str, cwd: Path | None = None) -> str:
    """Return the content of *path* at *ref*."""
    r = _git("show", f"{ref}:{path}", cwd=cwd)
    _raise_for(r, "show", ref)
    return r.stdout


def tree_hash(ref: str, path: str, cwd: Path | None = None) -> str | None:
    """Object id of the tree at ``ref:path``, or ``None`` when absent."""
    r = _git("rev-parse", "--verify", "--quiet", f"{ref}:{path}", cwd=cwd)
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None


def path_commit_times(ref: str, path: str, cwd: Path | None = None) -> dict[str, int]:
    """Map each file ever touched under *path* on *ref* to its last commit time.

    One ``git log`` walk per ref. The first time a path shows up in the
    newest-first log is the last commit that touched it.
    """
    r = _git(
        "log",
        f"--format={_COMMIT_FORMAT}",
        "--name-only",
        "--no-renames",
        ref,
        "--",
        path,
        cwd=cwd,
    )
    _raise_for(r, "log", ref)

    times: dict[str, int] = {}
    current = 0
    for raw in r.stdout.splitlines():
        line = raw.strip("\n")
        if line.startswith(_COMMIT_MARK):
            try:
                current = int(line[len(_COMMIT_MARK):].strip())
            except ValueError:
                current = 0
            continue
        name = line.strip()
        if name and name not in times:
            times[name] = current
    return times


def last_commit_time(ref: str, path: str, cwd: Path | None = None) -> int | None:
    r = _git("log", "-1", "--format=%ct", ref, "--", path, cwd=cwd)
    if r.returncode != 0 or not r.stdout.strip():
        return None
    try:
        return int(r.stdout.strip())
    except ValueError:
        return None


def file_last_modified_branch(path: str, branches: list[str], cwd: Path | None = None) -> str | None:
    """Return the branch among *branches* with the most recent commit touching *path*."""
    best: tuple[int, str] | None = None
    for branch in branches:
        ts = last_commit_time(branch, path, cwd=cwd)
        if ts is None:
            continue
        # Newer wins; on equal time the lexically smaller branch wins.
        if best is None or ts > best[0] or (ts == best[0] and branch < best[1]):
            best = (ts, branch)
    return best[1] if best else None


# ── Writes ───────────────────────────────────────────────────────────


def add_and_commit(message: str, paths: list[str], cwd: Path | None = None) -> bool:
    """Stage *paths* (additions and deletions) and commit them."""
    if not paths:
        return False
    _git("add", "-A", "--", *paths, cwd=cwd)
    r = _git("commit", "-m", message, "--", *paths, cwd=cwd)
    if r.returncode != 0:
        log.warn(f"git commit failed: {r.stderr.strip() or r.stdout.strip()}")
        return False
    return True
