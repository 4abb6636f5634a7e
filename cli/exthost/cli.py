"""Extension host CLI.

Main command-line interface: repository and extension management plus
one-off downloads and searches across loaded providers.
"""

from typing import Optional

import typer
from rich.table import Table

from cli.commands.common import run_with_host
from cli.exthost.output import (
    console,
    format_bytes,
    print_error,
    print_success,
    print_warning,
)
from extensions import ConversionError, DownloadError

app = typer.Typer(
    name="exthost",
    help="Extension host - discover, install and search provider extensions",
    no_args_is_help=True,
)

from cli.commands.extensions import extensions_app
from cli.commands.repos import repos_app

app.add_typer(extensions_app, name="extensions")
app.add_typer(repos_app, name="repos")


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
) -> None:
    """Configure logging for every command."""
    from host import get_config
    from host.log import setup_logging

    level = "DEBUG" if verbose else get_config().logging.level
    setup_logging(level)


@app.command()
def download(
    url: str = typer.Argument(..., help="Artifact URL (.pyz, .tar.gz or .tgz)"),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        help="Install under this name (default: last URL path segment)",
    ),
) -> None:
    """Download and install an extension from a URL.

    Examples:
        exthost download https://example.org/builds/Example.pyz
        exthost download https://example.org/builds/Legacy.tgz --name Legacy
    """
    from urllib.parse import urlsplit

    suggested = name or urlsplit(url).path.rsplit("/", 1)[-1]
    if not suggested:
        print_error("Cannot derive a name from the URL; pass --name")
        raise typer.Exit(1)

    async def action(host):
        artifact = await host.downloader.download(url, suggested)
        await host.reload()
        return artifact, host.loader.get(artifact.name)

    try:
        artifact, loaded = run_with_host(action)
    except (DownloadError, ConversionError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    size = artifact.path.stat().st_size if artifact.path.exists() else 0
    print_success(f"Installed {artifact.path.name} ({format_bytes(size)})")
    if not artifact.loadable:
        print_warning("Conversion failed; the original file was saved for inspection")
    if loaded is not None and not loaded.has_provider:
        print_warning(f"Not loadable: {loaded.error}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
) -> None:
    """Search every loaded provider.

    Example:
        exthost search "the matrix"
    """

    async def action(host):
        return await host.fanout.invoke_detailed("search", query)

    outcomes = run_with_host(action)
    if not outcomes:
        console.print("[yellow]No providers loaded[/yellow]")
        return

    table = Table(title=f"Search Results: {query}")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Provider")
    table.add_column("Poster", style="dim")

    count = 0
    for outcome in outcomes:
        if not outcome.ok:
            print_warning(f"{outcome.provider.name} failed: {outcome.error}")
            continue
        for result in outcome.results:
            table.add_row(
                str(getattr(result, "name", result)),
                str(getattr(result, "type", "")),
                outcome.provider.name,
                getattr(result, "poster_url", None) or "",
            )
            count += 1

    if count == 0:
        console.print(f"[yellow]No results found for: {query}[/yellow]")
        return
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
