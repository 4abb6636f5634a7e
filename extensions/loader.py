"""Extension loader.

Discovers artifacts in the store, imports each archive into its own package
namespace and picks out the provider it implements.

An artifact is a zip archive laid out like:

    Example.pyz
    ├── manifest.yaml        # optional: name, version
    ├── example.py           # top-level module(s) ...
    └── helpers/             # ... and/or packages
        └── __init__.py

Modules inside an archive import their siblings relatively
(``from . import helpers``); every load gets a fresh package name, so two
archives never share module objects.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.machinery
import importlib.util
import inspect
import itertools
import logging
import re
import sys
import zipfile
import zlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import ModuleType

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from extensions.provider import Provider
from extensions.store import DEFAULT_VERSION, Artifact, ArtifactStore

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.yaml"
PACKAGE_PREFIX = "_exthost_artifact"

# Shared by every loader in the process so package names are never reused
_generation = itertools.count(1)


class LoadError(Exception):
    """Raised when an artifact cannot be loaded as a provider."""

    pass


class LoadStatus(str, Enum):
    """Outcome of loading one artifact."""

    LOADED = "loaded"
    NO_PROVIDER = "no_provider"
    FAILED = "failed"


class UninstallOutcome(str, Enum):
    """Outcome of removing an artifact from disk."""

    DELETED = "deleted"
    PENDING = "pending"  # renamed to a .del marker, swept later
    RETAINED = "retained"  # could be neither deleted nor renamed
    MISSING = "missing"


class ArtifactManifest(BaseModel):
    """Optional ``manifest.yaml`` bundled inside an artifact."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    version: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: object) -> object:
        """Accept bare numbers (``version: 3``)."""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @classmethod
    def from_yaml(cls, text: bytes | str) -> ArtifactManifest:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("manifest must be a mapping")
        return cls.model_validate(data)


@dataclass
class LoadedProvider:
    """An artifact as seen by the last reload."""

    name: str
    version: str
    artifact: Artifact
    provider: Provider | None = None
    status: LoadStatus = LoadStatus.LOADED
    error: str | None = None
    package: str | None = field(default=None, repr=False, compare=False)

    @property
    def has_provider(self) -> bool:
        return self.provider is not None


def find_provider_class(module: ModuleType, package: str) -> type[Provider] | None:
    """Return the first concrete Provider subclass defined inside ``package``."""
    for obj in vars(module).values():
        if not isinstance(obj, type) or obj is Provider:
            continue
        if not issubclass(obj, Provider) or inspect.isabstract(obj):
            continue
        if not obj.__module__.startswith(package + "."):
            continue
        return obj
    return None


def archive_modules(names: list[str]) -> list[str]:
    """Top-level module and package names found in an archive listing."""
    modules: set[str] = set()
    for name in names:
        parts = name.split("/")
        if len(parts) == 1 and name.endswith(".py") and name != "__init__.py":
            modules.add(name[:-3])
        elif len(parts) == 2 and parts[1] == "__init__.py":
            modules.add(parts[0])
    return sorted(m for m in modules if m.isidentifier())


class ExtensionLoader:
    """Load providers from every artifact in the store.

    The registry of loaded providers is replaced wholesale by ``reload()``;
    readers always see either the previous or the new list, never a partial
    one.

    Example:
        >>> loader = ExtensionLoader(ArtifactStore(extensions_dir))
        >>> entries = await loader.reload()
        >>> [e.name for e in entries if e.has_provider]
    """

    def __init__(
        self,
        store: ArtifactStore,
        enabled_extensions: list[str] | None = None,
        disabled_extensions: list[str] | None = None,
    ):
        """Initialize the extension loader.

        Args:
            store: Artifact store to load from.
            enabled_extensions: Whitelist of artifact names (None = all).
            disabled_extensions: Blacklist of artifact names.
        """
        self.store = store
        self.enabled_extensions = set(enabled_extensions) if enabled_extensions else None
        self.disabled_extensions = set(disabled_extensions or [])

        self._entries: list[LoadedProvider] = []
        self._lock = asyncio.Lock()

    def list(self) -> list[LoadedProvider]:
        """Every artifact from the last reload, with or without a provider."""
        return list(self._entries)

    def providers(self) -> list[LoadedProvider]:
        """Entries that carry a provider, in registry order."""
        return [entry for entry in self._entries if entry.has_provider]

    async def snapshot(self) -> list[LoadedProvider]:
        """Provider entries, taken while no reload or uninstall is running."""
        async with self._lock:
            return self.providers()

    def get(self, name: str) -> LoadedProvider | None:
        for entry in self._entries:
            if entry.name == name or entry.artifact.name == name:
                return entry
        return None

    async def reload(self) -> list[LoadedProvider]:
        """Rebuild the registry from the artifact store.

        A failing artifact is recorded with status ``failed`` (or
        ``no_provider``) and never stops the others from loading.

        Returns:
            The new registry.
        """
        async with self._lock:
            previous = self._entries
            entries = await asyncio.to_thread(self._load_all)
            self._entries = entries
            for entry in previous:
                self._unload_modules(entry)

        loaded = sum(1 for e in entries if e.has_provider)
        logger.info("Loaded %d providers from %d artifacts", loaded, len(entries))
        return list(entries)

    async def unload(self) -> None:
        """Forget every loaded provider."""
        async with self._lock:
            previous, self._entries = self._entries, []
            for entry in previous:
                self._unload_modules(entry)

    async def uninstall(self, loaded: LoadedProvider) -> UninstallOutcome:
        """Remove a provider from the registry, then delete its artifact.

        If the file cannot be deleted it is renamed to a pending-deletion
        marker and removed by a later ``sweep()``.

        Args:
            loaded: Entry returned by reload().

        Returns:
            What happened to the artifact on disk.
        """
        async with self._lock:
            self._entries = [
                entry for entry in self._entries
                if entry.artifact.path != loaded.artifact.path
            ]
            self._unload_modules(loaded)
            self._forget_importer(loaded.artifact.path)
            outcome = await asyncio.to_thread(self._delete_artifact, loaded.artifact)

        logger.info("Uninstalled %s (%s)", loaded.name, outcome.value)
        return outcome

    async def sweep(self) -> int:
        """Delete pending-deletion markers left by earlier uninstalls."""
        return await asyncio.to_thread(self.store.sweep_pending)

    def _delete_artifact(self, artifact: Artifact) -> UninstallOutcome:
        if not artifact.path.exists():
            return UninstallOutcome.MISSING
        if self.store.remove(artifact):
            return UninstallOutcome.DELETED
        if self.store.mark_pending_deletion(artifact) is not None:
            return UninstallOutcome.PENDING
        return UninstallOutcome.RETAINED

    def _is_disabled(self, name: str) -> bool:
        """Check if an artifact is disabled."""
        if name in self.disabled_extensions:
            return True
        if self.enabled_extensions is not None and name not in self.enabled_extensions:
            return True
        return False

    def _load_all(self) -> list[LoadedProvider]:
        entries: list[LoadedProvider] = []
        for artifact in self.store.list():
            if self._is_disabled(artifact.name):
                logger.debug("Skipping disabled extension %s", artifact.name)
                continue
            try:
                entries.append(self._load_artifact(artifact))
            except (Exception, SystemExit) as e:
                logger.exception("Unexpected error loading %s", artifact.path.name)
                entries.append(
                    LoadedProvider(
                        name=artifact.name,
                        version=artifact.version,
                        artifact=artifact,
                        status=LoadStatus.FAILED,
                        error=f"{type(e).__name__}: {e}",
                    )
                )
        return entries

    def _load_artifact(self, artifact: Artifact) -> LoadedProvider:
        """Load one artifact, recording rather than raising failures."""
        package = self._package_name(artifact)
        try:
            manifest, modules = self._inspect_archive(artifact.path)
        except LoadError as e:
            logger.warning("Failed to load extension %s: %s", artifact.path.name, e)
            return LoadedProvider(
                name=artifact.name,
                version=artifact.version,
                artifact=artifact,
                status=LoadStatus.FAILED,
                error=str(e),
            )

        entry = LoadedProvider(
            name=(manifest.name if manifest and manifest.name else artifact.name),
            version=(manifest.version if manifest and manifest.version else DEFAULT_VERSION),
            artifact=artifact,
            package=package,
        )

        try:
            provider = self._find_provider(artifact.path, package, modules)
        except LoadError as e:
            logger.warning("Failed to load extension %s: %s", artifact.path.name, e)
            entry.status = LoadStatus.FAILED
            entry.error = str(e)
            return entry

        if provider is None:
            logger.warning("No provider found in %s", artifact.path.name)
            entry.status = LoadStatus.NO_PROVIDER
            entry.error = "No Provider implementation found"
            return entry

        entry.provider = provider
        if provider.name:
            entry.name = provider.name
        if not (manifest and manifest.version) and provider.version:
            entry.version = str(provider.version)
        artifact.version = entry.version
        logger.info("Loaded provider %s %s from %s", entry.name, entry.version, artifact.path.name)
        return entry

    def _package_name(self, artifact: Artifact) -> str:
        slug = re.sub(r"\W", "_", artifact.name) or "artifact"
        return f"{PACKAGE_PREFIX}_{next(_generation)}_{slug}"

    def _inspect_archive(self, path: Path) -> tuple[ArtifactManifest | None, list[str]]:
        """List importable modules and read the bundled manifest, if any."""
        try:
            with zipfile.ZipFile(path) as archive:
                names = archive.namelist()
                manifest_data = archive.read(MANIFEST_FILE) if MANIFEST_FILE in names else None
        except (
            zipfile.BadZipFile,
            OSError,
            KeyError,
            EOFError,
            RuntimeError,  # encrypted member
            NotImplementedError,  # unsupported compression method
            zlib.error,
        ) as e:
            raise LoadError(f"Not a readable archive: {e}") from e

        manifest = None
        if manifest_data is not None:
            try:
                manifest = ArtifactManifest.from_yaml(manifest_data)
            except (yaml.YAMLError, ValidationError, ValueError) as e:
                logger.warning("Ignoring invalid %s in %s: %s", MANIFEST_FILE, path.name, e)

        modules = archive_modules(names)
        if not modules:
            raise LoadError("Archive contains no Python modules")
        return manifest, modules

    def _find_provider(
        self, path: Path, package: str, modules: list[str]
    ) -> Provider | None:
        """Import the archive's modules until a provider class turns up.

        Raises:
            LoadError: If no module could be imported, or the provider could
                not be instantiated.
        """
        self._forget_importer(path)
        self._create_package(package, path)

        errors: list[str] = []
        for module_name in modules:
            try:
                module = importlib.import_module(f"{package}.{module_name}")
            except (Exception, SystemExit) as e:
                # Provider code is third-party; any import-time error is possible
                logger.debug("Could not import %s from %s: %s", module_name, path.name, e)
                errors.append(f"{module_name}: {type(e).__name__}: {e}")
                continue

            provider_class = find_provider_class(module, package)
            if provider_class is None:
                continue

            try:
                return provider_class()
            except (Exception, SystemExit) as e:
                raise LoadError(
                    f"Could not instantiate {provider_class.__name__}: {e}"
                ) from e

        if errors and len(errors) == len(modules):
            raise LoadError("; ".join(errors))
        return None

    def _create_package(self, package: str, path: Path) -> ModuleType:
        """Register an empty package whose search path is the archive."""
        spec = importlib.machinery.ModuleSpec(package, None, is_package=True)
        spec.submodule_search_locations = [str(path)]
        module = importlib.util.module_from_spec(spec)
        sys.modules[package] = module
        return module

    @staticmethod
    def _forget_importer(path: Path) -> None:
        """Drop the cached zip importer so a replaced archive is re-read."""
        importer = sys.path_importer_cache.pop(str(path), None)
        if importer is not None and hasattr(importer, "invalidate_caches"):
            importer.invalidate_caches()

    def _unload_modules(self, entry: LoadedProvider) -> None:
        if not entry.package:
            return
        prefix = entry.package + "."
        for name in [n for n in sys.modules if n == entry.package or n.startswith(prefix)]:
            del sys.modules[name]
