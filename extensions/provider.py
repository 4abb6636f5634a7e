"""Provider capability contract.

Every downloadable extension ships exactly one concrete subclass of
``Provider``. The host never depends on what a provider does internally; it
only needs a ``name`` and a ``search`` operation returning ``SearchResult``
records.

Example provider module inside an extension archive:

    from extensions.provider import Provider, SearchResult


    class ExampleProvider(Provider):
        name = "Example"

        def search(self, query: str) -> list[SearchResult]:
            return [SearchResult(name=query.title(), type="Movie")]
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class SearchResult:
    """A single result record returned by a provider query."""

    name: str
    type: str
    poster_url: str | None = None
    url: str | None = None


class Provider(ABC):
    """Base class for loadable providers.

    Subclasses must be instantiable without arguments. ``search`` may be a
    plain method or a coroutine.
    """

    name: str = ""
    version: str | None = None

    @abstractmethod
    def search(self, query: str) -> Any:
        """Search the provider's catalogue.

        Args:
            query: Free-text search query.

        Returns:
            Sequence of SearchResult records (or an awaitable of one).
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
