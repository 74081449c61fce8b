"""Command-line interface for Grove."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import Config
from .errors import GroveError, RepositoryNotFoundError
from .events import ProgressEvent, ProgressLevel, ProgressQueue
from .grove_config import describe_config
from .models import Repository, RepositorySelection
from .orchestrator import GroveOrchestrator, create_orchestrator
from .utils import GitUtils
from .workspace import WorkspaceResolver

console = Console()
stderr_console = Console(stderr=True)

T = TypeVar("T")

_EVENT_STYLES = {
    ProgressLevel.INFO: "dim",
    ProgressLevel.WARNING: "yellow",
    ProgressLevel.ERROR: "red",
}


def setup_logging(level: str = "INFO", verbose: bool = False,
                  log_file: Path | None = None) -> logging.Logger:
    """Configure logging with a Rich handler on stderr and return the grove logger."""
    numeric_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    handler = RichHandler(console=stderr_console, rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handlers: list[logging.Handler] = [handler]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logger = logging.getLogger("grove")
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    for h in handlers:
        logger.addHandler(h)
    logger.propagate = False
    return logger


def _find_repository(orchestrator: GroveOrchestrator, value: str,
                     cwd: Path | None) -> Repository | None:
    repository = orchestrator.repositories.get_by_name(value)
    if repository is None:
        path = Path(value).expanduser()
        if cwd is not None and not path.is_absolute():
            path = cwd / path
        repository = orchestrator.repositories.get_by_path(path.resolve())
    return repository


def _candidate_splits(value: str):
    """Yield ``(repo, project)`` for each dot, leftmost first.

    Project folders are top-level, so a part containing a path separator is
    never a project.
    """
    for index, char in enumerate(value):
        if char != ".":
            continue
        repo, project = value[:index], value[index + 1:]
        if not repo.strip(".") or "/" in project or "\\" in project:
            continue
        yield repo, project or None


def resolve_selection(orchestrator: GroveOrchestrator, value: str,
                      cwd: Path | None = None) -> RepositorySelection:
    """Turn a ``repo[.project]`` argument into a repository selection.

    The repository may be given by registered name or by path; relative
    paths are taken from ``cwd``. The whole argument is looked up first, so
    names and paths containing dots (``./my.repo``) select the repository
    itself.
    """
    repository = _find_repository(orchestrator, value, cwd)
    project = None
    if repository is None:
        for name, project in _candidate_splits(value):
            repository = _find_repository(orchestrator, name, cwd)
            if repository is not None:
                break
    if repository is None:
        raise RepositoryNotFoundError(f"Repository not registered: {value}")

    if project:
        if not repository.is_monorepo:
            raise GroveError(
                f"Repository {repository.name} is not marked as a monorepo; "
                f"cannot select project {project}"
            )
        if not (Path(repository.path) / project).is_dir():
            raise GroveError(f"Project folder not found: {repository.name}/{project}")

    return RepositorySelection(repository=repository, project_path=project)


def _print_event(event: ProgressEvent) -> None:
    style = _EVENT_STYLES[event.level]
    prefix = f"[bold]{event.worktree}[/bold] " if event.worktree else ""
    console.print(f"{prefix}[{style}]{escape(event.message)}[/{style}]", highlight=False)


async def _run_with_progress(orchestrator: GroveOrchestrator,
                             operation: Callable[[ProgressQueue], Awaitable[T]]) -> T:
    """Run an engine operation while printing its progress events in order."""
    queue = orchestrator.new_progress_queue()

    async def _drain():
        while True:
            event = await queue.get()
            _print_event(event)
            queue.task_done()

    consumer = asyncio.create_task(_drain())
    try:
        return await operation(queue)
    finally:
        await queue.join()
        consumer.cancel()


def _orchestrator(ctx: click.Context) -> GroveOrchestrator:
    """Build the orchestrator once per invocation, exiting on a broken workspace."""
    if "orchestrator" not in ctx.obj:
        try:
            ctx.obj["orchestrator"] = create_orchestrator(ctx.obj["config"], ctx.obj["cwd"])
        except GroveError as e:
            _fail(ctx, str(e))
    return ctx.obj["orchestrator"]


def _fail(ctx: click.Context, message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    ctx.exit(1)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file path (JSON)')
@click.option('--cwd', type=click.Path(exists=True, file_okay=False),
              help='Directory used to discover the workspace')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def main(ctx: click.Context, config: str | None, cwd: str | None, verbose: bool) -> None:
    """Grove - Manage groups of git worktrees for parallel work."""
    ctx.ensure_object(dict)

    try:
        ctx.obj['config'] = Config.load_from_file(Path(config) if config else None)
    except (OSError, ValueError) as e:
        _fail(ctx, f"Invalid configuration: {e}")

    ctx.obj['cwd'] = Path(cwd) if cwd else Path.cwd()
    ctx.obj['verbose'] = verbose
    setup_logging(ctx.obj['config'].log_level, verbose, ctx.obj['config'].log_file)


@main.command()
@click.argument('path', type=click.Path(exists=True, file_okay=False), default='.')
@click.option('--monorepo', is_flag=True, help='Allow selecting project subfolders')
@click.pass_context
def register(ctx: click.Context, path: str, monorepo: bool) -> None:
    """Register a git repository."""
    try:
        repository = _orchestrator(ctx).register_repository(Path(path).resolve(), monorepo)
    except GroveError as e:
        _fail(ctx, str(e))
        return

    console.print(f"[green]✓[/green] Registered [bold]{repository.name}[/bold]")
    console.print(f"  Path: {repository.path}")
    if repository.is_monorepo:
        projects = GitUtils.list_monorepo_projects(repository.path)
        console.print(f"  Monorepo projects: {', '.join(projects) or '-'}")


@main.command()
@click.pass_context
def repos(ctx: click.Context) -> None:
    """List registered repositories."""
    repositories = _orchestrator(ctx).repositories.list_repositories()
    if not repositories:
        console.print("[yellow]No repositories registered[/yellow]")
        return

    table = Table(title="Repositories")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Path", style="blue")
    table.add_column("Monorepo", style="magenta")
    table.add_column("Registered", style="green")
    for repo in repositories:
        table.add_row(repo.name, repo.path, "yes" if repo.is_monorepo else "",
                      repo.registered_at.strftime("%Y-%m-%d %H:%M"))
    console.print(table)


@main.command()
@click.argument('name')
@click.argument('repositories', nargs=-1)
@click.pass_context
def create(ctx: click.Context, name: str, repositories: tuple[str, ...]) -> None:
    """Create a grove with a worktree per REPO[.PROJECT]."""
    orchestrator = _orchestrator(ctx)

    async def _create():
        selections = [resolve_selection(orchestrator, value, ctx.obj["cwd"])
                      for value in repositories]
        return await _run_with_progress(
            orchestrator, lambda queue: orchestrator.create_grove(name, selections, queue)
        )

    try:
        result = asyncio.run(_create())
    except GroveError as e:
        _fail(ctx, str(e))
        return

    metadata = result.metadata
    console.print(f"[green]✓[/green] Grove created: [bold]{metadata.name}[/bold] ({metadata.id})")
    console.print(f"  Path: {result.path}")
    for worktree in metadata.worktrees:
        console.print(f"  {worktree.display_name}: {worktree.branch}")
    if result.is_partial:
        console.print(f"[yellow]{len(result.errors)} selection(s) failed:[/yellow]")
        for error in result.errors:
            console.print(f"  [yellow]{escape(error)}[/yellow]")


@main.command('add-worktree')
@click.argument('grove_id')
@click.argument('name')
@click.argument('repository')
@click.pass_context
def add_worktree(ctx: click.Context, grove_id: str, name: str, repository: str) -> None:
    """Add a worktree NAME for REPOSITORY[.PROJECT] to a grove."""
    orchestrator = _orchestrator(ctx)

    async def _add():
        selection = resolve_selection(orchestrator, repository, ctx.obj["cwd"])
        return await _run_with_progress(
            orchestrator,
            lambda queue: orchestrator.add_worktree_to_grove(grove_id, selection, name, queue)
        )

    try:
        metadata = asyncio.run(_add())
    except GroveError as e:
        _fail(ctx, str(e))
        return

    worktree = metadata.worktrees[-1]
    console.print(f"[green]✓[/green] Worktree added to [bold]{metadata.name}[/bold]")
    console.print(f"  Path: {worktree.worktree_path}")
    console.print(f"  Branch: {worktree.branch}")


@main.command('list')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.option('--all', 'include_closed', is_flag=True, help='Include closed worktrees')
@click.pass_context
def list_groves(ctx: click.Context, as_json: bool, include_closed: bool) -> None:
    """List groves and their worktrees."""
    entries = _orchestrator(ctx).list_groves(include_closed=include_closed)

    if as_json:
        data = [entry.model_dump(mode="json", by_alias=True, exclude_none=True)
                for entry in entries]
        click.echo(json.dumps(data, indent=2))
        return

    if not entries:
        console.print("[yellow]No groves found[/yellow]")
        return

    table = Table(title="Groves")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Worktrees", style="yellow")
    table.add_column("Updated", style="magenta")
    table.add_column("Path", style="blue")
    for entry in entries:
        ref = entry.reference
        if entry.metadata_found:
            worktrees = "\n".join(
                f"{wt.display_name} ({wt.branch})" + (" [closed]" if wt.closed else "")
                for wt in entry.worktrees
            ) or "-"
        else:
            worktrees = "[red]metadata missing[/red]"
        table.add_row(ref.id, ref.name, worktrees,
                      ref.updated_at.strftime("%Y-%m-%d %H:%M"), ref.path)
    console.print(table)


@main.command()
@click.argument('grove_id')
@click.pass_context
def close(ctx: click.Context, grove_id: str) -> None:
    """Close a grove: remove its worktrees and folder."""
    result = asyncio.run(_orchestrator(ctx).close_grove(grove_id))

    for error in result.errors:
        console.print(f"  [yellow]{escape(error)}[/yellow]")
    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        _fail(ctx, result.message or "Failed to close grove")


@main.command('close-worktree')
@click.argument('grove_id')
@click.argument('worktree_path', type=click.Path())
@click.pass_context
def close_worktree(ctx: click.Context, grove_id: str, worktree_path: str) -> None:
    """Close a single worktree of a grove."""
    orchestrator = _orchestrator(ctx)
    result = asyncio.run(orchestrator.close_worktree(grove_id, ctx.obj["cwd"] / worktree_path))

    for error in result.errors:
        console.print(f"  [yellow]{escape(error)}[/yellow]")
    if result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        _fail(ctx, result.message or "Failed to close worktree")


@main.command()
@click.pass_context
def prune(ctx: click.Context) -> None:
    """Remove index entries of groves whose folder is gone."""
    orchestrator = _orchestrator(ctx)
    pruned = orchestrator.prune_orphaned_groves()
    errors = asyncio.run(orchestrator.prune_stale_worktrees())

    if not pruned:
        console.print("[green]No orphaned groves[/green]")
    for ref in pruned:
        console.print(f"[green]✓[/green] Pruned {ref.name} ({ref.id})")
    for error in errors:
        console.print(f"  [yellow]Could not prune worktrees of {escape(error)}[/yellow]")


@main.command('config')
@click.argument('repository')
@click.pass_context
def show_config(ctx: click.Context, repository: str) -> None:
    """Show the merged grove configuration for REPOSITORY[.PROJECT]."""
    orchestrator = _orchestrator(ctx)
    try:
        selection = resolve_selection(orchestrator, repository, ctx.obj["cwd"])
    except GroveError as e:
        _fail(ctx, str(e))
        return

    merged = orchestrator.config_resolver.resolve(selection.repository.path,
                                                  selection.project_path)
    console.print(JSON(describe_config(merged)))


@main.command('workspace-init')
@click.argument('path', type=click.Path(file_okay=False), default='.')
@click.option('--name', '-n', help='Workspace name (defaults to the folder name)')
@click.option('--groves-folder', default='./groves', show_default=True,
              help='Where groves are created, relative to the workspace')
@click.pass_context
def workspace_init(ctx: click.Context, path: str, name: str | None, groves_folder: str) -> None:
    """Create a workspace with its own repositories and groves."""
    workspace_path = Path(path).resolve()
    workspace_path.mkdir(parents=True, exist_ok=True)
    resolver = WorkspaceResolver(global_folder=ctx.obj['config'].grove_folder)

    try:
        context = resolver.init_workspace(workspace_path, name or workspace_path.name,
                                          groves_folder)
    except (GroveError, OSError) as e:
        _fail(ctx, str(e))
        return

    console.print(f"[green]✓[/green] Workspace initialized: [bold]{context.config.name}[/bold]")
    console.print(f"  Storage: {context.grove_folder}")
    console.print(f"  Groves: {context.groves_folder}")


if __name__ == '__main__':
    main()
