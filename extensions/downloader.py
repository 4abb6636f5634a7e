"""Extension downloader.

Fetches an artifact, normalizes legacy tarballs into zip archives and
installs the result into the artifact store.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx

from extensions.normalizer import (
    LEGACY_SUFFIXES,
    ConversionError,
    is_legacy_source,
    normalize,
)
from extensions.store import LOADABLE_SUFFIX, Artifact, ArtifactStore
from repositories.catalog import DEFAULT_USER_AGENT

if TYPE_CHECKING:
    from repositories.catalog import CatalogEntry

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Raised when an artifact cannot be fetched."""

    pass


def final_artifact_name(suggested_name: str) -> str:
    """File name an artifact is installed under.

    Known suffixes are stripped from the suggested name before the loadable
    suffix is appended, e.g. ``"Example.tgz"`` -> ``"Example.pyz"``.
    """
    name = Path(suggested_name.strip()).name
    lowered = name.lower()
    for suffix in (LOADABLE_SUFFIX, *LEGACY_SUFFIXES):
        if lowered.endswith(suffix):
            name = name[: -len(suffix)]
            break
    if not name:
        raise DownloadError(f"Invalid artifact name: {suggested_name!r}")
    return name + LOADABLE_SUFFIX


class Downloader:
    """Download extensions into an artifact store.

    Example:
        >>> downloader = Downloader(ArtifactStore(extensions_dir))
        >>> artifact = await downloader.download(
        ...     "https://example.org/builds/Example.tgz", "Example"
        ... )
    """

    def __init__(
        self,
        store: ArtifactStore,
        http_client: httpx.AsyncClient | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float | None = None,
        temp_dir: Path | None = None,
    ):
        """Initialize the downloader.

        Args:
            store: Store that receives finished artifacts.
            http_client: Shared HTTP client. One is created (and owned) if omitted.
            user_agent: User-Agent header sent with every request.
            timeout: Request timeout in seconds (None = no timeout).
            temp_dir: Where partial downloads are written (default: system temp).
        """
        self.store = store
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )
        self.user_agent = user_agent
        self.temp_dir = Path(temp_dir) if temp_dir else None

    async def __aenter__(self) -> Downloader:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def download(self, url: str, suggested_name: str) -> Artifact:
        """Download, normalize and install one artifact.

        Args:
            url: Artifact URL. ``.tar.gz`` / ``.tgz`` URLs are treated as
                legacy tarballs and converted; anything else is stored as-is.
            suggested_name: Name to install under (suffix optional).

        Returns:
            The installed artifact. ``loadable`` is False if conversion failed
            and the untouched download was stored instead.

        Raises:
            DownloadError: On transport error, non-2xx status, empty body or
                failure to install.
            ConversionError: If conversion failed and the fallback install
                failed too.
        """
        final_name = final_artifact_name(suggested_name)
        legacy = is_legacy_source(urlsplit(url).path)
        source_suffix = _source_suffix(url) if legacy else LOADABLE_SUFFIX

        if self.temp_dir is not None:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix="plugin_download", suffix=source_suffix, dir=self.temp_dir
        )
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            await self._fetch_to(url, tmp_path)
            data = await asyncio.to_thread(tmp_path.read_bytes)
            if not data:
                raise DownloadError(f"Empty body downloading {url}")

            if legacy:
                return await asyncio.to_thread(
                    self._normalize_and_install, data, final_name, source_suffix
                )
            return await asyncio.to_thread(self._install, final_name, data)
        finally:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Could not remove temp file %s: %s", tmp_path, e)

    async def install_entry(self, entry: CatalogEntry) -> Artifact:
        """Download a plugin-list entry under its internal name."""
        return await self.download(entry.url, entry.internal_name)

    async def _fetch_to(self, url: str, target: Path) -> None:
        """Stream a response body into a file."""
        logger.info("Downloading %s", url)
        try:
            async with self.http.stream(
                "GET", url, headers={"User-Agent": self.user_agent}
            ) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Failed to download {url}: HTTP {response.status_code}"
                    )
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except httpx.RequestError as e:
            raise DownloadError(f"Connection error downloading {url}: {e}") from e
        except OSError as e:
            raise DownloadError(f"Could not write download of {url}: {e}") from e

    def _install(self, final_name: str, data: bytes) -> Artifact:
        try:
            return self.store.install(final_name, data)
        except OSError as e:
            raise DownloadError(f"Could not install {final_name}: {e}") from e

    def _normalize_and_install(
        self, data: bytes, final_name: str, source_suffix: str
    ) -> Artifact:
        normalized = normalize(data, source_suffix)
        if normalized.loadable:
            return self._install(final_name, normalized.data)

        # Keep the untouched download so it can be inspected or reported.
        try:
            artifact = self.store.install(final_name, normalized.data, loadable=False)
        except OSError as e:
            raise ConversionError(
                f"Failed to convert {final_name}: {normalized.error}"
            ) from e

        logger.warning(
            "Conversion failed for %s, saved untouched file anyway: %s",
            final_name,
            normalized.error,
        )
        return artifact


def _source_suffix(url: str) -> str:
    path = urlsplit(url).path.lower()
    for suffix in LEGACY_SUFFIXES:
        if path.endswith(suffix):
            return suffix
    return ""
