"""
Pytest configuration and fixtures.
"""

import io
import json
import os
import tarfile
import textwrap
import zipfile
from pathlib import Path
from typing import Callable

import httpx
import pytest
import pytest_asyncio

from extensions.store import ArtifactStore

os.environ["LOG_LEVEL"] = "WARNING"


def provider_source(
    name: str,
    results: list[str] | None = None,
    raises: str | None = None,
    is_async: bool = False,
    version: str | None = None,
) -> str:
    """Source of a module defining one Provider subclass."""
    results = results if results is not None else [f"{name} result"]
    prefix = "async " if is_async else ""
    body = (
        f"raise RuntimeError({raises!r})"
        if raises
        else f"return [SearchResult(name=n, type='Movie') for n in {results!r}]"
    )
    return textwrap.dedent(
        f"""
        from extensions.provider import Provider, SearchResult


        class FixtureProvider(Provider):
            name = {name!r}
            version = {version!r}

            {prefix}def search(self, query):
                {body}
        """
    )


def build_archive(files: dict[str, str | bytes]) -> bytes:
    """Build a zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def build_tarball(files: dict[str, str | bytes], mode: str = "w:gz") -> bytes:
    """Build a tarball in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def extensions_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "extensions"
    directory.mkdir()
    return directory


@pytest.fixture
def store(extensions_dir: Path) -> ArtifactStore:
    return ArtifactStore(extensions_dir)


@pytest.fixture
def install_provider(store: ArtifactStore) -> Callable[..., Path]:
    """Install a provider archive into the store and return its path."""

    def _install(
        file_stem: str, name: str | None = None, manifest: str | None = None, **kwargs
    ) -> Path:
        source = provider_source(file_stem if name is None else name, **kwargs)
        files: dict[str, str | bytes] = {"provider.py": source}
        if manifest is not None:
            files["manifest.yaml"] = manifest
        return store.install(f"{file_stem}.pyz", build_archive(files)).path

    return _install


class FakeServer:
    """Static responses keyed by URL, served through httpx.MockTransport."""

    def __init__(self):
        self.routes: dict[str, tuple[int, dict]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, status_code: int = 200, **kwargs) -> None:
        self.routes[url] = (status_code, kwargs)

    def add_json(self, url: str, data: object, status_code: int = 200) -> None:
        self.add(url, status_code, content=json.dumps(data).encode())

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        status_code, kwargs = route
        if isinstance(kwargs.get("error"), Exception):
            raise kwargs["error"]
        return httpx.Response(status_code, **kwargs)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def http_client(server: FakeServer):
    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler)) as client:
        yield client
