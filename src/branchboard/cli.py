"""branchboard CLI: a task board whose state is reconciled across git branches.

Installed as the ``branchboard`` console_script.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import click

from branchboard import __version__

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _split_ids(raw: str) -> list[str]:
    return [item.strip() for item in raw.replace(" ", ",").split(",") if item.strip()]


def _load_core(ctx: click.Context, **overrides: object):
    """Build a Core for ``--root``, applying per-command config overrides."""
    from branchboard import log as blog
    from branchboard.config import load_config, resolve_repo_root
    from branchboard.core import Core

    root: Path = ctx.obj.get("root") or resolve_repo_root()
    try:
        cfg = load_config(root)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if ctx.obj.get("verbose"):
        cfg.verbose = True
    if cfg.verbose:
        blog.set_verbose(True)
    changes = {k: v for k, v in overrides.items() if v is not None}
    if changes:
        cfg = replace(cfg, **changes)
    return Core(root, cfg)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (defaults to the git toplevel)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="branchboard")
@click.pass_context
def main(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """branchboard: markdown tasks reconciled across git branches.

    \b
    EXAMPLES:
      branchboard board                      # merged board from all recent branches
      branchboard board --offline            # working copy + local branches only
      branchboard next-id --parent task-4    # next free subtask id
      branchboard reorder task-7 --status "In Progress" --order task-3,task-7,task-9
      branchboard sequence-move task-9 --to 2
    """
    from branchboard import log as blog

    blog.set_verbose(verbose)
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["verbose"] = verbose


# ── board ────────────────────────────────────────────────────────────


@main.command()
@click.option("--offline", is_flag=True, help="Do not fetch or read remote branches")
@click.option("--no-branch-check", is_flag=True, help="Skip cross-branch location check (faster, may show moved tasks)")
@click.pass_context
def board(ctx: click.Context, offline: bool, no_branch_check: bool) -> None:
    """Show the merged board, one column per status."""
    from rich.table import Table

    from branchboard import log as blog
    from branchboard.errors import LoadingCancelled

    core = _load_core(
        ctx,
        remote_operations=False if offline else None,
        check_active_branches=False if no_branch_check else None,
    )
    try:
        tasks = core.load_board_tasks(progress=blog.progress if blog.is_verbose() else None)
    except LoadingCancelled as exc:
        blog.warn(str(exc))
        sys.exit(130)

    columns: dict[str, list] = {status: [] for status in core.cfg.statuses}
    for task in tasks:
        columns.setdefault(task.status or "(none)", []).append(task)

    table = Table(show_lines=False)
    for status in columns:
        table.add_column(f"{status} ({len(columns[status])})")
    for column in columns.values():
        column.sort(key=lambda t: (t.ordinal is None, t.ordinal or 0))
    depth = max((len(c) for c in columns.values()), default=0)
    for row in range(depth):
        cells = []
        for column in columns.values():
            if row < len(column):
                task = column[row]
                marker = " [dim](remote)[/dim]" if task.source and task.source.value == "remote" else ""
                cells.append(f"[cyan]{task.id}[/cyan] {task.title}{marker}")
            else:
                cells.append("")
        table.add_row(*cells)
    blog.console.print(table)


# ── ids / creation ───────────────────────────────────────────────────


@main.command("next-id")
@click.option("--parent", default=None, help="Allocate a subtask id under this task")
@click.pass_context
def next_id(ctx: click.Context, parent: str | None) -> None:
    """Print the next task id not used on any recent branch."""
    core = _load_core(ctx)
    click.echo(core.generate_next_id(parent))


@main.command()
@click.argument("title")
@click.option("--parent", default=None, help="Parent task id")
@click.option("--draft", is_flag=True, help="Create as a draft")
@click.option("--status", default=None, help="Initial status")
@click.option("--depends-on", "depends_on", multiple=True, help="Dependency id (repeatable)")
@click.option("--label", "labels", multiple=True, help="Label (repeatable)")
@click.option("--priority", type=click.Choice(["high", "medium", "low"]), default=None)
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    parent: str | None,
    draft: bool,
    status: str | None,
    depends_on: tuple[str, ...],
    labels: tuple[str, ...],
    priority: str | None,
) -> None:
    """Create a task (or draft) with a collision-free id."""
    from branchboard import log as blog
    from branchboard.errors import TaskNotFoundError

    core = _load_core(ctx)
    try:
        task = core.create_task(
            title,
            parent_id=parent,
            status=status,
            dependencies=list(depends_on),
            labels=list(labels),
            priority=priority,
            draft=draft,
        )
    except (ValueError, TaskNotFoundError) as exc:
        blog.error(str(exc))
        sys.exit(1)
    kind = "draft" if draft else "task"
    blog.success(f"Created {kind} {task.id} - {task.title}")


# ── reorder ──────────────────────────────────────────────────────────


@main.command()
@click.argument("task_id")
@click.option("--status", "target_status", required=True, help="Target status column")
@click.option("--order", "order", required=True, help="Comma-separated ids of the column, in final order")
@click.option("--step", type=float, default=None, help="Ordinal step")
@click.pass_context
def reorder(ctx: click.Context, task_id: str, target_status: str, order: str, step: float | None) -> None:
    """Move TASK_ID within (or into) a status column."""
    from branchboard import log as blog
    from branchboard.errors import TaskNotFoundError
    from branchboard.reorder import DEFAULT_ORDINAL_STEP

    core = _load_core(ctx)
    try:
        result = core.reorder_task(task_id, target_status, _split_ids(order), step or DEFAULT_ORDINAL_STEP)
    except (ValueError, TaskNotFoundError) as exc:
        blog.error(str(exc))
        sys.exit(1)

    blog.success(
        f"{result.updated_task.id} -> {result.updated_task.status} "
        f"(ordinal {result.updated_task.ordinal:g}); {len(result.changed_tasks)} file(s) rewritten"
    )


# ── sequences ────────────────────────────────────────────────────────


def _print_sequences(view) -> None:
    from branchboard import log as blog

    for seq in view.sequences:
        blog.console.print(f"[bold]Sequence {seq.index + 1}[/bold]")
        for task in seq.tasks:
            deps = f" [dim](depends on {', '.join(task.dependencies)})[/dim]" if task.dependencies else ""
            blog.console.print(f"  - [cyan]{task.id}[/cyan] {task.title}{deps}")
    if view.unsequenced:
        blog.console.print("[bold yellow]Unsequenced[/bold yellow]")
        for task in view.unsequenced:
            blog.console.print(f"  - [cyan]{task.id}[/cyan] {task.title}")
    if not view.sequences and not view.unsequenced:
        blog.info("No active tasks.")


@main.command()
@click.pass_context
def sequences(ctx: click.Context) -> None:
    """List active tasks grouped into dependency waves."""
    core = _load_core(ctx)
    _print_sequences(core.list_active_sequences())


@main.command("sequence-move")
@click.argument("task_id")
@click.option(
    "--unsequenced",
    is_flag=True,
    help="Drop the task's dependency links both ways; it becomes standalone in sequence 1",
)
@click.option("--to", "target", type=int, default=None, help="Target sequence number (1-based)")
@click.pass_context
def sequence_move(ctx: click.Context, task_id: str, unsequenced: bool, target: int | None) -> None:
    """Edit dependencies so TASK_ID lands in another sequence."""
    from branchboard import log as blog

    if unsequenced == (target is not None):
        raise click.UsageError("Use exactly one of --unsequenced or --to N.")
    if target is not None and target < 1:
        raise click.BadParameter("Sequence numbers start at 1.", param_hint="--to")

    core = _load_core(ctx)
    result = core.move_task_in_sequences(
        task_id,
        unsequenced=unsequenced,
        target_index=None if target is None else target - 1,
    )
    if not result.ok:
        blog.error(result.error)
        sys.exit(1)
    _print_sequences(result.view)


# ── stats / where ────────────────────────────────────────────────────


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Task counts across every recent branch."""
    from branchboard import log as blog

    core = _load_core(ctx)
    s = core.get_statistics()
    blog.console.print(f"[bold]Total tasks:[/bold] {s.total}  [dim]drafts: {s.drafts}[/dim]")
    for status, count in s.by_status.items():
        blog.console.print(f"  {status}: {count}")
    if s.by_priority:
        parts = ", ".join(f"{p}: {n}" for p, n in sorted(s.by_priority.items()))
        blog.console.print(f"[bold]Priority:[/bold] {parts}")
    blog.console.print(f"[bold]Completion:[/bold] {s.completion_percentage}%")


@main.command()
@click.argument("task_id")
@click.pass_context
def where(ctx: click.Context, task_id: str) -> None:
    """Show which branch last touched TASK_ID's file."""
    from branchboard import log as blog

    core = _load_core(ctx)
    branch = core.locate_task(task_id)
    if branch is None:
        blog.warn(f"{task_id} has no committed history on any recent branch")
        sys.exit(1)
    click.echo(branch)
