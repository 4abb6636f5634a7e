"""Repository CLI commands.

Subscribe to extension repositories, browse their plugin lists and install
plugins from them.
"""

import typer
from rich.table import Table

from cli.commands.common import run_with_host
from cli.exthost.output import console, print_error, print_info, print_success, print_warning
from extensions import ConversionError, DownloadError
from repositories import SHORTCODES, FetchError, InvalidReference, resolve_shortcode

repos_app = typer.Typer(
    name="repos",
    help="Manage extension repositories.",
)


@repos_app.command("list")
def list_repositories() -> None:
    """List subscribed repositories.

    Example:
        exthost repos list
    """

    async def action(host):
        return host.repositories.list(), host.repositories.urls()

    repositories, urls = run_with_host(action, load_repositories=True)

    if not urls:
        console.print("[yellow]No repositories added[/yellow]")
        console.print(f"[dim]Shortcodes: {', '.join(SHORTCODES)}[/dim]")
        return

    table = Table(title="Repositories")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("URL", style="dim")

    resolved = {repo.url: repo for repo in repositories}
    for url in urls:
        repo = resolved.get(url)
        if repo is None:
            table.add_row("[red]unreachable[/red]", "", url)
        else:
            table.add_row(repo.name, repo.description or "", url)

    console.print(table)


@repos_app.command("add")
def add(
    reference: str = typer.Argument(..., help="Manifest URL, repository link or shortcode"),
) -> None:
    """Subscribe to a repository.

    Examples:
        exthost repos add cs-main
        exthost repos add https://example.org/builds/repo.json
    """

    async def action(host):
        return await host.repositories.add(reference)

    try:
        repo = run_with_host(action, load_repositories=True)
    except (InvalidReference, FetchError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added repository: {repo.name}")


@repos_app.command("remove")
def remove(
    reference: str = typer.Argument(..., help="Manifest URL or shortcode"),
) -> None:
    """Unsubscribe from a repository."""

    async def action(host):
        return await host.repositories.remove(reference)

    if run_with_host(action, load_repositories=True):
        print_success(f"Removed repository: {reference}")
    else:
        print_error(f"Repository '{reference}' is not subscribed")
        raise typer.Exit(1)


@repos_app.command("plugins")
def plugins(
    reference: str = typer.Argument(..., help="Manifest URL or shortcode"),
) -> None:
    """Show the plugins a repository offers.

    Example:
        exthost repos plugins cs-main
    """

    async def action(host):
        repo = host.repositories.get(reference)
        if repo is None:
            repo = await host.catalog.fetch_repository(_resolve(reference))
        return repo, await host.catalog.fetch_plugin_list(repo)

    try:
        repo, entries = run_with_host(action, load_repositories=True)
    except (InvalidReference, FetchError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not entries:
        console.print(f"[yellow]{repo.name} lists no plugins[/yellow]")
        return

    table = Table(title=f"Plugins: {repo.name}")
    table.add_column("Name", style="cyan")
    table.add_column("Version", justify="right")
    table.add_column("Types", style="green")
    table.add_column("Authors")
    table.add_column("Description")

    for entry in entries:
        desc = entry.description or ""
        desc = desc[:40] + "..." if len(desc) > 40 else desc
        table.add_row(
            entry.internal_name,
            str(entry.version),
            ", ".join(entry.tv_types or []),
            ", ".join(entry.authors or []),
            desc,
        )

    console.print(table)


@repos_app.command("install")
def install(
    reference: str = typer.Argument(..., help="Manifest URL or shortcode"),
    name: str = typer.Argument(..., help="Plugin internal name"),
) -> None:
    """Install a plugin from a repository.

    Example:
        exthost repos install cs-main Example
    """

    async def action(host):
        repo = host.repositories.get(reference)
        if repo is None:
            repo = await host.catalog.fetch_repository(_resolve(reference))
        entries = await host.catalog.fetch_plugin_list(repo)
        entry = next((e for e in entries if e.internal_name == name), None)
        if entry is None:
            return None, None
        artifact = await host.install(entry)
        return artifact, host.loader.get(artifact.name)

    try:
        artifact, loaded = run_with_host(action, load_repositories=True)
    except (InvalidReference, FetchError, DownloadError, ConversionError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if artifact is None:
        print_error(f"Plugin '{name}' not found in {reference}")
        raise typer.Exit(1)

    print_success(f"Installed {artifact.path.name}")
    if not artifact.loadable:
        print_warning("Conversion failed; the original file was saved for inspection")
    if loaded is not None and not loaded.has_provider:
        print_warning(f"Installed, but not loadable: {loaded.error}")
    elif loaded is not None:
        print_info(f"Provider ready: {loaded.name} {loaded.version}")


def _resolve(reference: str) -> str:
    url = resolve_shortcode(reference)
    if not url.startswith("http"):
        raise InvalidReference(f"Invalid URL or unknown shortcode: {reference}")
    return url
