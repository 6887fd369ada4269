"""Which branch replicas a scan should visit."""

from __future__ import annotations

from pathlib import Path

from branchboard import git_ops, log
from branchboard.config import Config


def recent_branches(cfg: Config, cwd: Path | None = None, *, exclude_current: bool = False) -> list[str]:
    """Recent branch refs, remote refs included unless remote operations are off."""
    branches = git_ops.list_recent_branches(
        cfg.active_branch_days,
        include_remotes=cfg.remote_operations,
        cwd=cwd,
    )
    if exclude_current:
        current = git_ops.current_branch(cwd=cwd)
        branches = [b for b in branches if b != current]
    log.debug(f"Recent branches ({len(branches)}): {', '.join(branches) or '-'}")
    return branches


def expand_remote_names(branches: list[str], remote: str = "origin") -> list[str]:
    """Map ``origin/x`` to both ``origin/x`` and ``x``. Dedupe, drop ``HEAD``.

    Id scans use both spellings so a branch that exists under either name is
    visited. Order of first appearance is kept.
    """
    prefix = f"{remote}/"
    expanded: list[str] = []
    for branch in branches:
        names = [branch]
        if branch.startswith(prefix):
            names.append(branch[len(prefix):])
        for name in names:
            if not name or "HEAD" in name or name in expanded:
                continue
            expanded.append(name)
    return expanded
