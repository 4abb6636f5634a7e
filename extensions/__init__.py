"""Extension lifecycle for the extension host.

This package stores, converts, loads and invokes provider extensions:

- store: the directory of installed ``.pyz`` artifacts
- normalizer: converts legacy tarballs into loadable zip archives
- downloader: fetches artifacts and installs them into the store
- loader: imports artifacts and finds their Provider implementation
- fanout: calls an operation on every loaded provider

Extensions are stored in ~/.extension-host/extensions/ by default.
"""

from extensions.downloader import DownloadError, Downloader
from extensions.fanout import InvocationFanout, InvocationOutcome
from extensions.loader import (
    ExtensionLoader,
    LoadedProvider,
    LoadError,
    LoadStatus,
    UninstallOutcome,
)
from extensions.normalizer import ConversionError
from extensions.provider import Provider, SearchResult
from extensions.store import Artifact, ArtifactStore

__all__ = [
    "Artifact",
    "ArtifactStore",
    "ConversionError",
    "DownloadError",
    "Downloader",
    "ExtensionLoader",
    "InvocationFanout",
    "InvocationOutcome",
    "LoadError",
    "LoadStatus",
    "LoadedProvider",
    "Provider",
    "SearchResult",
    "UninstallOutcome",
]
