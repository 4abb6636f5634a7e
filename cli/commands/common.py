"""Shared helpers for CLI commands."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from host import ExtensionHost

T = TypeVar("T")


def run_with_host(
    action: Callable[[ExtensionHost], Awaitable[T]],
    load_repositories: bool = False,
) -> T:
    """Start a host, run one async action against it and shut it down.

    Args:
        action: Coroutine function receiving the started host.
        load_repositories: Re-fetch subscribed repository manifests on start.

    Returns:
        Whatever the action returns.
    """

    async def _main() -> T:
        host = ExtensionHost()
        try:
            await host.start(load_repositories=load_repositories)
            return await action(host)
        finally:
            await host.shutdown()

    return asyncio.run(_main())
