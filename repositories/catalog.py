"""Catalog client for extension repositories.

A repository publishes two JSON documents:

- a manifest (``repo.json``) naming the repository and pointing at a plugin list
- a plugin list (``plugins.json``): an array of installable entries
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_PLUGIN_LIST = "plugins.json"


class FetchError(Exception):
    """Raised when a catalog document cannot be fetched or parsed."""

    pass


def resolve_plugin_list_url(
    repository_url: str,
    plugin_url: str | None = None,
    plugin_lists: list[str] | None = None,
) -> str:
    """Resolve where a repository's plugin list lives.

    ``plugin_url`` wins over the first of ``plugin_lists``. Relative pointers
    are resolved against the directory of the manifest URL; with no pointer at
    all the list is expected next to the manifest as ``plugins.json``.

    Example:
        >>> resolve_plugin_list_url("https://host/repo/manifest.json", "plugins.json")
        'https://host/repo/plugins.json'
    """
    pointer = plugin_url or (plugin_lists[0] if plugin_lists else None)
    base = repository_url.rsplit("/", 1)[0]

    if not pointer:
        return f"{base}/{DEFAULT_PLUGIN_LIST}"
    if pointer.startswith("http"):
        return pointer
    return f"{base}/{pointer}"


class Repository(BaseModel):
    """A subscribed extension repository.

    ``url`` is the URL the manifest was requested from and is the identity of
    the repository. It is never taken from the manifest body.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., description="Repository display name")
    description: str | None = Field(None, description="Repository description")
    manifest_version: int | None = Field(None, alias="manifestVersion")
    plugin_url: str | None = Field(None, alias="pluginUrl")
    plugin_lists: list[str] | None = Field(None, alias="pluginLists")
    url: str = Field("", exclude=True, description="Resolved manifest URL")

    @property
    def plugin_list_url(self) -> str:
        return resolve_plugin_list_url(self.url, self.plugin_url, self.plugin_lists)


class CatalogEntry(BaseModel):
    """An installable entry from a repository's plugin list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    internal_name: str = Field(..., alias="internalName")
    version: int = Field(..., description="Integer plugin version")
    url: str = Field(..., description="Artifact download URL")
    icon_url: str | None = Field(None, alias="iconUrl")
    authors: list[str] | None = None
    description: str | None = None
    tv_types: list[str] | None = Field(None, alias="tvTypes")


class CatalogClient:
    """Fetch repository manifests and plugin lists over HTTP.

    Example:
        >>> async with CatalogClient() as catalog:
        ...     repo = await catalog.fetch_repository(url)
        ...     entries = await catalog.fetch_plugin_list(repo)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float | None = None,
    ):
        """Initialize the catalog client.

        Args:
            http_client: Shared HTTP client. One is created (and owned) if omitted.
            user_agent: User-Agent header sent with every request.
            timeout: Request timeout in seconds (None = no timeout).
        """
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )
        self.user_agent = user_agent

    async def __aenter__(self) -> CatalogClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _get(self, url: str) -> httpx.Response:
        """GET a catalog document, translating transport and status errors."""
        try:
            response = await self.http.get(url, headers={"User-Agent": self.user_agent})
        except httpx.RequestError as e:
            raise FetchError(f"Connection error fetching {url}: {e}") from e

        logger.debug("GET %s -> %d", url, response.status_code)
        if not response.is_success:
            raise FetchError(f"Failed to fetch {url}: HTTP {response.status_code}")
        return response

    async def fetch_repository(self, url: str) -> Repository:
        """Fetch and parse a repository manifest.

        Args:
            url: Manifest URL.

        Returns:
            Repository whose ``url`` is the requested URL.

        Raises:
            FetchError: On transport error, non-2xx status, empty or invalid body.
        """
        logger.info("Fetching repository from %s", url)
        response = await self._get(url)
        if not response.content.strip():
            raise FetchError(f"Empty manifest from {url}")

        try:
            data = json.loads(response.content)
            repository = Repository.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise FetchError(f"Invalid manifest from {url}: {e}") from e

        repository = repository.model_copy(update={"url": url})
        logger.info(
            "Loaded repository %s (plugin list: %s)",
            repository.name,
            repository.plugin_list_url,
        )
        return repository

    async def fetch_plugin_list(self, repository: Repository) -> list[CatalogEntry]:
        """Fetch the installable entries advertised by a repository.

        Args:
            repository: A repository returned by fetch_repository.

        Returns:
            Catalog entries; empty if the list body is empty.

        Raises:
            FetchError: On transport error, non-2xx status or invalid body.
        """
        url = repository.plugin_list_url
        logger.info("Fetching plugins for %s from %s", repository.name, url)
        response = await self._get(url)

        if not response.content.strip():
            logger.info("Empty plugin list from %s", url)
            return []

        try:
            data = json.loads(response.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FetchError(f"Invalid plugin list from {url}: {e}") from e

        if not isinstance(data, list):
            raise FetchError(f"Plugin list from {url} is not an array")

        try:
            entries = [CatalogEntry.model_validate(item) for item in data]
        except ValidationError as e:
            raise FetchError(f"Invalid plugin entry from {url}: {e}") from e

        logger.info("Parsed %d plugins from %s", len(entries), repository.name)
        return entries
