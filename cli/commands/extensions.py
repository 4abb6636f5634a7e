"""Extensions CLI commands.

Manage locally installed provider extensions.
"""

import typer
from rich.table import Table

from cli.commands.common import run_with_host
from cli.exthost.output import console, print_error, print_success, print_warning

extensions_app = typer.Typer(
    name="extensions",
    help="Manage locally installed extensions.",
)

STATUS_STYLES = {
    "loaded": "green",
    "no_provider": "yellow",
    "failed": "red",
}


@extensions_app.command("list")
def list_extensions() -> None:
    """List installed extensions and whether they loaded.

    Example:
        exthost extensions list
    """

    async def action(host):
        return host.loader.list(), host.store.directory

    entries, directory = run_with_host(action)

    if not entries:
        console.print("[yellow]No extensions installed[/yellow]")
        console.print(f"[dim]Place .pyz files in {directory} or install from a repository[/dim]")
        return

    table = Table(title="Installed Extensions")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Error", style="dim")

    for entry in entries:
        style = STATUS_STYLES.get(entry.status.value, "white")
        table.add_row(
            entry.name,
            entry.version,
            entry.artifact.path.name,
            f"[{style}]{entry.status.value}[/{style}]",
            (entry.error or "")[:60],
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(entries)} extensions[/dim]")


@extensions_app.command("reload")
def reload() -> None:
    """Reload every extension and report failures."""

    async def action(host):
        return await host.reload()

    entries = run_with_host(action)
    loaded = [e for e in entries if e.has_provider]
    print_success(f"Loaded {len(loaded)} of {len(entries)} extensions")
    for entry in entries:
        if not entry.has_provider:
            print_warning(f"{entry.artifact.path.name}: {entry.error}")


@extensions_app.command("uninstall")
def uninstall(
    name: str = typer.Argument(..., help="Extension name or file stem"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Uninstall an extension.

    Example:
        exthost extensions uninstall Example
    """
    if not yes and not typer.confirm(f"Uninstall {name}?"):
        raise typer.Exit(0)

    async def action(host):
        entry = host.loader.get(name)
        if entry is None:
            return None
        return await host.loader.uninstall(entry)

    outcome = run_with_host(action)
    if outcome is None:
        print_error(f"Extension '{name}' is not installed")
        raise typer.Exit(1)

    if outcome.value == "pending":
        print_warning(f"Uninstalled {name}; the file is in use and will be deleted later")
    elif outcome.value == "retained":
        print_warning(f"Uninstalled {name}, but its file could not be removed")
    else:
        print_success(f"Uninstalled: {name}")


@extensions_app.command("sweep")
def sweep() -> None:
    """Delete files left behind by earlier uninstalls."""
    from extensions import ArtifactStore
    from host import get_config

    store = ArtifactStore(get_config().paths.extensions_path)
    removed = store.sweep_pending()
    print_success(f"Removed {removed} pending file(s)")


@extensions_app.command("path")
def path() -> None:
    """Print the extensions directory."""
    from host import get_config

    console.print(str(get_config().paths.extensions_path))
