"""CLI for Config Diff."""

import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Literal

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from . import CD_DIR, ConfigDiffError, __version__
from .config import create_default_config, get_cd_dir, load_config, save_config
from .differ import ChangeEvent, ChangeSet, ChangeType, DifferenceEngine
from .loader import load_snapshot, value_at_path
from .merkle import HashNode
from .state import create_baseline, load_baseline, save_baseline
from .watcher import SnapshotWatcher

console = Console()
error_console = Console(stderr=True)

CHANGE_STYLES = {
    ChangeType.ADDED: "green",
    ChangeType.REMOVED: "red",
    ChangeType.MODIFIED: "yellow",
}


def get_project_root() -> Path:
    """Get the project root directory (current working directory)."""
    return Path.cwd()


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    error_console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def _load(path: Path) -> Any:
    try:
        return load_snapshot(path)
    except ConfigDiffError as e:
        fail(str(e))


def _changes_table(changes: ChangeSet, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Change", style="bold")
    table.add_column("Path")
    for event in changes.events:
        style = CHANGE_STYLES[event.type]
        table.add_row(f"[{style}]{event.type.value}[/{style}]", escape(event.path) or "<root>")
    return table


def _render_tree(node: HashNode, label: str, branch: Tree | None = None) -> Tree:
    text = f"{escape(label)} [dim]{node.kind.value} {node.digest[:12]}[/dim]"
    current = Tree(text) if branch is None else branch.add(text)
    for key, child in node.children.items():
        _render_tree(child, key, current)
    return current


def _print_changes(changes: ChangeSet, title: str) -> None:
    if not changes.has_changes:
        console.print("[green]No changes.[/green]")
        return
    console.print(_changes_table(changes, title))


def format_change(event: ChangeEvent, snapshot: Any) -> str:
    """Render one watch event as rich markup, with the new value unless removed."""
    style = CHANGE_STYLES[event.type]
    text = f"[{style}]{event.type.value}[/{style}] {escape(event.path) or '<root>'}"
    if event.type is ChangeType.REMOVED:
        return text
    value = value_at_path(snapshot, event.path)
    return f"{text} = {escape(json.dumps(value, default=str))}"


def print_change(event: ChangeEvent, snapshot: Any) -> None:
    console.print(format_change(event, snapshot))


@click.group()
@click.version_option(version=__version__, prog_name="cdiff")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """Config Diff - incremental change detection for JSON/YAML config files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


@main.command()
@click.option(
    "--digest-order",
    type=click.Choice(["insertion", "sorted"]),
    default="insertion",
    help="Child order used when recomputing digests after an update",
)
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(digest_order: Literal["insertion", "sorted"], force: bool) -> None:
    """Initialize config-diff settings in the current project."""
    project_root = get_project_root()
    cd_dir = get_cd_dir(project_root)

    if cd_dir.exists() and not force:
        error_console.print(
            f"[yellow]Warning:[/yellow] {CD_DIR}/ already exists. Use --force to reinitialize."
        )
        sys.exit(1)

    config = create_default_config(digest_order)
    save_config(config, project_root)

    console.print(
        Panel(
            f"[green]Initialized Config Diff[/green]\n\n"
            f"Digest order: [bold]{digest_order}[/bold]\n"
            f"Config directory: [dim]{cd_dir}[/dim]",
            title="cdiff init",
        )
    )


@main.command(name="hash")
@click.argument("file", type=click.Path(path_type=Path))
@click.option("--tree", "show_tree", is_flag=True, help="Print the whole hash tree")
def hash_command(file: Path, show_tree: bool) -> None:
    """Print the root digest of FILE."""
    engine = DifferenceEngine(load_config(get_project_root()))
    try:
        root = engine.initialize(_load(file))
    except ConfigDiffError as e:
        fail(str(e))

    if show_tree:
        console.print(_render_tree(root, file.name))
    else:
        click.echo(root.digest)


@main.command()
@click.argument("old", type=click.Path(path_type=Path))
@click.argument("new", type=click.Path(path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print changes as JSON")
def diff(old: Path, new: Path, as_json: bool) -> None:
    """Show which paths changed between OLD and NEW."""
    engine = DifferenceEngine(load_config(get_project_root()))
    try:
        engine.initialize(_load(old))
        with engine.collect() as changes:
            engine.update(_load(new))
    except ConfigDiffError as e:
        fail(str(e))

    if as_json:
        click.echo(json.dumps([event.to_dict() for event in changes.events], indent=2))
        return
    _print_changes(changes, f"{old.name} → {new.name}")


@main.command()
@click.argument("file", type=click.Path(path_type=Path))
@click.option(
    "--state",
    "state_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Baseline file holding the previous hash tree",
)
def check(file: Path, state_path: Path) -> None:
    """Compare FILE against a stored baseline and update the baseline."""
    config = load_config(get_project_root())
    engine = DifferenceEngine(config)
    snapshot = _load(file)

    try:
        baseline = load_baseline(state_path)
    except ValueError as e:
        fail(f"Cannot read baseline {state_path}: {e}")

    if baseline is not None and baseline.source and baseline.source != str(file):
        error_console.print(
            f"[yellow]Warning:[/yellow] {escape(str(state_path))} was recorded for "
            f"{escape(baseline.source)}, not {escape(str(file))}."
        )

    try:
        root = baseline.root() if baseline is not None else None
        if root is None or not baseline.matches(config):
            if baseline is not None:
                console.print("[yellow]Baseline settings changed; rebuilding.[/yellow]")
            engine.initialize(snapshot)
            changes = ChangeSet()
            created_at = None
        else:
            engine.restore(root)
            with engine.collect() as changes:
                engine.update(snapshot)
            created_at = baseline.created_at
    except ConfigDiffError as e:
        fail(str(e))

    new_baseline = create_baseline(str(file), engine.root, config)
    if created_at is not None:
        new_baseline.created_at = created_at
    save_baseline(new_baseline, state_path)

    if baseline is None:
        console.print(f"[green]Baseline created:[/green] [dim]{state_path}[/dim]")
        return
    _print_changes(changes, file.name)


@main.command()
@click.argument("file", type=click.Path(path_type=Path))
@click.option("--debounce-ms", type=int, default=None, help="Quiet period before re-reading")
def watch(file: Path, debounce_ms: int | None) -> None:
    """Watch FILE and print each changed path as it happens."""
    if not file.exists():
        fail(f"{file} does not exist.")

    engine = DifferenceEngine(load_config(get_project_root()))
    watcher = SnapshotWatcher(file, engine, debounce_ms=debounce_ms, on_change=print_change)
    watcher.start()
    console.print(f"[bold]Watching[/bold] {file} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()


if __name__ == "__main__":
    main()
