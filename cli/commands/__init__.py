"""CLI command modules for the extension host."""

from cli.commands.extensions import extensions_app
from cli.commands.repos import repos_app

__all__ = ["extensions_app", "repos_app"]
