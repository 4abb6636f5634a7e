"""Repository registry.

Keeps the ordered list of subscribed repositories. Only URLs are persisted;
manifest metadata is re-fetched on every start.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from repositories.catalog import CatalogClient, Repository

logger = logging.getLogger(__name__)

# Well-known repositories reachable by a short alias
SHORTCODES: dict[str, str] = {
    "cs-main": "https://codeberg.org/cloudstream/cloudstream-extensions/raw/branch/builds/repo.json",
    "cs-english": "https://codeberg.org/cloudstream/cloudstream-extensions-multilingual/raw/branch/builds/repo.json",
    "cs-hexated": "https://codeberg.org/Hexated/cloudstream-extensions-hexated/raw/branch/builds/repo.json",
    "megarepo": "https://raw.githubusercontent.com/self-similarity/MegaRepo/builds/repo.json",
}

REPO_SCHEME = "cloudstreamrepo://"


class InvalidReference(Exception):
    """Raised when a repository reference is neither a shortcode nor an HTTP URL."""

    pass


def resolve_shortcode(token: str) -> str:
    """Resolve a shortcode or repository link to a manifest URL.

    Unknown tokens are returned unchanged; the custom repository scheme is
    rewritten to https.
    """
    token = token.strip()
    url = SHORTCODES.get(token, token)
    if url.startswith(REPO_SCHEME):
        url = "https://" + url[len(REPO_SCHEME):]
    return url


def write_json_atomic(path: Path, data: object) -> None:
    """Write JSON to a temp file in the same directory, then replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    closed = False
    try:
        os.write(fd, content.encode("utf-8"))
        os.fsync(fd)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except Exception:
        if not closed:
            os.close(fd)
        if Path(tmp_path).exists():
            os.unlink(tmp_path)
        raise


class RepositoryRegistry:
    """Subscribed repositories, in subscription order.

    A URL that is subscribed but whose manifest could not be fetched at load
    time stays in the persisted list (and is retried on the next load) but is
    not returned by ``list()``.

    Example:
        >>> registry = RepositoryRegistry(catalog, Path("repositories.json"))
        >>> await registry.load()
        >>> await registry.add("cs-main")
        >>> [r.name for r in registry.list()]
    """

    def __init__(self, catalog: CatalogClient, repositories_file: Path):
        self.catalog = catalog
        self.repositories_file = Path(repositories_file)
        self._urls: list[str] = []
        self._repositories: dict[str, Repository] = {}
        self._lock = asyncio.Lock()

    def read_persisted(self) -> list[str]:
        """Read the persisted URL list (empty if missing or unreadable)."""
        if not self.repositories_file.exists():
            logger.info("No saved repositories at %s", self.repositories_file)
            return []
        try:
            data = json.loads(self.repositories_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read %s: %s", self.repositories_file, e)
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a JSON array", self.repositories_file)
            return []

        urls: list[str] = []
        for item in data:
            if isinstance(item, str) and item not in urls:
                urls.append(item)
        return urls

    async def load(self) -> list[Repository]:
        """Load persisted subscriptions and re-fetch every manifest.

        Manifests are fetched concurrently. Failures are logged and leave the
        repository out of the in-memory list.

        Returns:
            The repositories that resolved.
        """
        urls = self.read_persisted()
        logger.info("Loading %d repositories from %s", len(urls), self.repositories_file)

        results = await asyncio.gather(
            *(self.catalog.fetch_repository(url) for url in urls),
            return_exceptions=True,
        )

        resolved: dict[str, Repository] = {}
        for url, result in zip(urls, results):
            if isinstance(result, Repository):
                resolved[url] = result
            elif isinstance(result, Exception):
                logger.warning("Failed to load repository %s: %s", url, result)
            else:
                raise result

        async with self._lock:
            self._urls = urls
            self._repositories = resolved
        return self.list()

    def list(self) -> list[Repository]:
        """Resolved repositories in subscription order."""
        return [self._repositories[url] for url in self._urls if url in self._repositories]

    def urls(self) -> list[str]:
        """All subscribed URLs, including ones that failed to resolve."""
        return list(self._urls)

    def get(self, url_or_shortcode: str) -> Repository | None:
        return self._repositories.get(resolve_shortcode(url_or_shortcode))

    async def add(self, url_or_shortcode: str) -> Repository:
        """Subscribe to a repository.

        Args:
            url_or_shortcode: Manifest URL, repository link or shortcode.

        Returns:
            The subscribed repository (the existing one if already subscribed).

        Raises:
            InvalidReference: If the reference does not resolve to an HTTP URL.
            FetchError: If the manifest cannot be fetched.
        """
        url = resolve_shortcode(url_or_shortcode)
        if not url.startswith("http"):
            raise InvalidReference(f"Invalid URL or unknown shortcode: {url_or_shortcode}")

        async with self._lock:
            existing = self._repositories.get(url)
            if existing is not None:
                logger.info("Repository already added: %s", url)
                return existing

            repository = await self.catalog.fetch_repository(url)
            self._repositories[url] = repository
            if url not in self._urls:
                self._urls.append(url)
            await self._save_locked()

        logger.info("Added repository %s (%s)", repository.name, url)
        return repository

    async def remove(self, repository: Repository | str) -> bool:
        """Unsubscribe from a repository.

        Args:
            repository: Repository, URL or shortcode.

        Returns:
            True if it was subscribed.
        """
        if isinstance(repository, Repository):
            url = repository.url
        else:
            url = resolve_shortcode(repository)

        async with self._lock:
            if url not in self._urls:
                return False
            self._urls.remove(url)
            self._repositories.pop(url, None)
            await self._save_locked()

        logger.info("Removed repository %s", url)
        return True

    async def save(self) -> None:
        """Persist the subscribed URLs."""
        async with self._lock:
            await self._save_locked()

    async def _save_locked(self) -> None:
        urls = list(self._urls)
        await asyncio.to_thread(write_json_atomic, self.repositories_file, urls)
        logger.info("Saved %d repositories to %s", len(urls), self.repositories_file)
