"""Project configuration: ``backlog/config.yml`` defaults, env vars, runtime options."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from branchboard import log
from branchboard.io_utils import read_text


DEFAULT_BACKLOG_DIR = "backlog"
CONFIG_FILENAME = "config.yml"

DEFAULT_STATUSES: tuple[str, ...] = ("To Do", "In Progress", "Done")

RESOLUTION_STRATEGIES: tuple[str, ...] = ("most_progressed", "most_recent")


@dataclass
class Config:
    """Project settings. Field names mirror the snake_case keys of ``config.yml``."""

    # Board
    statuses: list[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    default_status: str = ""

    # Branch reconciliation
    remote_operations: bool = True
    check_active_branches: bool = True
    active_branch_days: int = 30
    task_resolution_strategy: str = "most_progressed"
    max_branch_workers: int = 8

    # Ids and commits
    zero_padded_ids: int = 0
    auto_commit: bool = False

    # Layout
    backlog_dir: str = DEFAULT_BACKLOG_DIR

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.statuses:
            self.statuses = list(DEFAULT_STATUSES)
        if not self.default_status:
            self.default_status = self.statuses[0]
        if self.task_resolution_strategy not in RESOLUTION_STRATEGIES:
            allowed = ", ".join(RESOLUTION_STRATEGIES)
            raise ValueError(
                f"Unknown task_resolution_strategy: {self.task_resolution_strategy}. "
                f"Valid strategies: {allowed}."
            )
        if self.active_branch_days < 0:
            raise ValueError("active_branch_days must be >= 0")
        if self.max_branch_workers < 1:
            self.max_branch_workers = 1
        if os.environ.get("BRANCHBOARD_DEBUG"):
            self.verbose = True

    @property
    def done_status(self) -> str:
        """The terminal status of the pipeline (last configured status)."""
        return self.statuses[-1]


def config_path(root: Path, backlog_dir: str = DEFAULT_BACKLOG_DIR) -> Path:
    return root / backlog_dir / CONFIG_FILENAME


def load_config(root: Path, backlog_dir: str = DEFAULT_BACKLOG_DIR) -> Config:
    """Load ``<root>/<backlog_dir>/config.yml``. Missing file means defaults.

    Unknown keys are ignored so configs written by newer versions still load.
    """
    path = config_path(root, backlog_dir)
    if not path.is_file():
        return Config(backlog_dir=backlog_dir)

    raw = yaml.safe_load(read_text(path)) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a YAML mapping")

    known = {f.name for f in fields(Config)}
    kwargs = {}
    for key, value in raw.items():
        if key in known:
            kwargs[key] = value
        else:
            log.debug(f"Ignoring unknown config key: {key}")
    kwargs.setdefault("backlog_dir", backlog_dir)
    if "statuses" in kwargs:
        kwargs["statuses"] = [str(s) for s in kwargs["statuses"] or []]
    return Config(**kwargs)


def resolve_repo_root() -> Path:
    """Return the git repository root, falling back to cwd."""
    import subprocess

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path.cwd()
