"""Extension host state container.

Owns the artifact store, repository registry, downloader, loader and fan-out
for one process, and wires them to a single shared HTTP client.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from extensions.downloader import Downloader
from extensions.fanout import InvocationFanout
from extensions.loader import ExtensionLoader, LoadedProvider
from extensions.provider import SearchResult
from extensions.store import Artifact, ArtifactStore
from host.config import Config, get_config
from repositories.catalog import CatalogClient, CatalogEntry
from repositories.registry import RepositoryRegistry

logger = logging.getLogger(__name__)


class ExtensionHost:
    """Lifecycle of the extension host: ``start`` → use → ``shutdown``.

    Example:
        >>> async with ExtensionHost() as host:
        ...     await host.repositories.add("cs-main")
        ...     results = await host.search("dune")
    """

    def __init__(
        self,
        config: Config | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Build the host components.

        Args:
            config: Host configuration (default: get_config()).
            http_client: Shared HTTP client. One is created (and owned) if omitted.
        """
        self.config = config or get_config()
        network = self.config.network
        paths = self.config.paths

        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=network.timeout_seconds, follow_redirects=True
        )

        self.store = ArtifactStore(paths.extensions_path)
        self.catalog = CatalogClient(self.http, user_agent=network.user_agent)
        self.repositories = RepositoryRegistry(self.catalog, paths.repositories_path)
        self.downloader = Downloader(
            self.store,
            self.http,
            user_agent=network.user_agent,
            temp_dir=paths.temp_path,
        )
        self.loader = ExtensionLoader(
            self.store,
            enabled_extensions=self.config.loader.enabled,
            disabled_extensions=self.config.loader.disabled,
        )
        self.fanout = InvocationFanout(self.loader)
        self.started = False

    async def __aenter__(self) -> ExtensionHost:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def start(self, load_repositories: bool = True) -> list[LoadedProvider]:
        """Sweep leftovers, re-resolve repositories and load extensions.

        Args:
            load_repositories: Also re-fetch subscribed repository manifests.

        Returns:
            The loaded registry.
        """
        self.store.ensure_dir()
        await self.loader.sweep()
        if load_repositories:
            await self.repositories.load()
        entries = await self.loader.reload()
        self.started = True
        return entries

    async def reload(self) -> list[LoadedProvider]:
        return await self.loader.reload()

    async def install(self, entry: CatalogEntry, reload: bool = True) -> Artifact:
        """Download a catalog entry and (by default) reload the registry."""
        artifact = await self.downloader.install_entry(entry)
        if reload:
            await self.loader.reload()
        return artifact

    async def search(self, query: str) -> list[SearchResult]:
        return await self.fanout.search(query)

    async def shutdown(self) -> None:
        """Unload providers, retry pending deletions and close the client."""
        await self.loader.unload()
        await self.loader.sweep()
        if self._owns_client:
            await self.http.aclose()
        self.started = False
        logger.debug("Extension host shut down")
