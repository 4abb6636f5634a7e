"""Example provider - a minimal extension for the extension host.

Build the artifact from this directory:

    python -m zipfile -c ../Example.pyz manifest.yaml example.py catalogue.py

and copy Example.pyz into the extensions directory (``exthost extensions path``).
"""

from extensions.provider import Provider, SearchResult

from .catalogue import TITLES


class ExampleProvider(Provider):
    """Searches a small in-memory catalogue."""

    name = "Example"

    def search(self, query: str) -> list[SearchResult]:
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            SearchResult(
                name=title,
                type=kind,
                url=f"https://example.org/title/{slug}",
            )
            for slug, title, kind in TITLES
            if needle in title.lower()
        ]
