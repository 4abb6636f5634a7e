"""Extension host CLI.

Command-line interface for managing repositories and provider extensions.
"""

__version__ = "0.1.0"

from cli.exthost.cli import app, main

__all__ = ["__version__", "app", "main"]
