"""Invocation fan-out across loaded providers.

Calls one operation on every loaded provider concurrently and merges the
results. A provider that fails is logged and left out; the caller never sees
its exception.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from extensions.loader import ExtensionLoader, LoadedProvider
from extensions.provider import SearchResult

logger = logging.getLogger(__name__)


@dataclass
class InvocationOutcome:
    """Result of calling an operation on a single provider."""

    provider: LoadedProvider
    results: list[Any] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class InvocationFanout:
    """Dispatch operations to every provider in an ExtensionLoader.

    Example:
        >>> fanout = InvocationFanout(loader)
        >>> results = await fanout.search("dune")
    """

    def __init__(self, loader: ExtensionLoader):
        self.loader = loader

    async def invoke(self, operation: str, *args: Any, **kwargs: Any) -> list[Any]:
        """Call ``operation`` on every provider and concatenate the results.

        Results keep registry order, and each provider's own order within its
        contribution. Failing providers contribute nothing.
        """
        outcomes = await self.invoke_detailed(operation, *args, **kwargs)
        combined: list[Any] = []
        for outcome in outcomes:
            combined.extend(outcome.results)
        return combined

    async def invoke_detailed(
        self, operation: str, *args: Any, **kwargs: Any
    ) -> list[InvocationOutcome]:
        """Like invoke(), but report each provider's outcome separately."""
        entries = await self.loader.snapshot()
        if not entries:
            return []

        return list(
            await asyncio.gather(
                *(self._call(entry, operation, args, kwargs) for entry in entries)
            )
        )

    async def search(self, query: str) -> list[SearchResult]:
        """Search every loaded provider."""
        return await self.invoke("search", query)

    async def _call(
        self,
        entry: LoadedProvider,
        operation: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> InvocationOutcome:
        try:
            method = getattr(entry.provider, operation)
            if inspect.iscoroutinefunction(method):
                response = await method(*args, **kwargs)
            else:
                response = await asyncio.to_thread(_call_in_thread, method, args, kwargs)
            if inspect.isasyncgen(response):
                response = [item async for item in response]
            elif inspect.isawaitable(response):
                response = await response
            results = _collect(response)
        except asyncio.CancelledError:
            raise
        except (Exception, SystemExit) as e:
            logger.warning("Error calling %s on %s: %s", operation, entry.name, e)
            return InvocationOutcome(provider=entry, error=e)

        return InvocationOutcome(provider=entry, results=results)


def _call_in_thread(method: Any, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    """Call a sync provider method and drain any iterator it returns.

    Generators run here, off the event loop, so errors raised mid-iteration
    surface as the provider's failure.
    """
    response = method(*args, **kwargs)
    if inspect.isawaitable(response) or inspect.isasyncgen(response):
        return response
    return _collect(response)


def _collect(response: Any) -> list[Any]:
    """Turn a provider response into a result list.

    Raises:
        TypeError: If the response is a string, bytes, mapping or not iterable.
    """
    if response is None:
        return []
    if isinstance(response, (str, bytes, bytearray, Mapping)):
        raise TypeError(f"expected a sequence of results, got {type(response).__name__}")
    return list(response)
