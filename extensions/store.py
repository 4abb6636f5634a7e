"""Artifact store for installed extensions.

A flat directory of ``.pyz`` archives. Anything else in the directory
(pending-deletion markers, temp files, legacy tarballs) is ignored.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

LOADABLE_SUFFIX = ".pyz"
PENDING_DELETION_SUFFIX = ".del"
DEFAULT_VERSION = "1.0.0"


@dataclass
class Artifact:
    """An installed extension file."""

    path: Path
    name: str
    version: str = DEFAULT_VERSION
    loadable: bool = True

    @classmethod
    def from_path(cls, path: Path, loadable: bool = True) -> Artifact:
        return cls(path=path, name=path.stem, loadable=loadable)


class ArtifactStore:
    """Enumerate, add and remove artifacts in the extensions directory.

    Example:
        >>> store = ArtifactStore(Path.home() / ".extension-host" / "extensions")
        >>> store.install("example.pyz", data)
        >>> [a.name for a in store.list()]
        ['example']
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def ensure_dir(self) -> Path:
        """Create the store directory if it doesn't exist."""
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def path_for(self, final_name: str) -> Path:
        """Path an artifact with this file name would be installed at."""
        name = Path(final_name).name
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid artifact name: {final_name!r}")
        return self.directory / name

    def list(self) -> list[Artifact]:
        """List installed artifacts, sorted by file name."""
        self.ensure_dir()
        return [
            Artifact.from_path(path)
            for path in sorted(self.directory.iterdir())
            if path.is_file() and path.suffix.lower() == LOADABLE_SUFFIX
        ]

    def install(self, final_name: str, data: bytes, loadable: bool = True) -> Artifact:
        """Write an artifact, replacing any existing file of the same name.

        Args:
            final_name: Target file name (should carry the loadable suffix).
            data: Artifact contents.
            loadable: Whether the contents are known to be in loadable form.

        Returns:
            The installed artifact.
        """
        target = self.path_for(final_name)
        self.ensure_dir()

        fd, tmp_path = tempfile.mkstemp(
            dir=self.directory, prefix=".install-", suffix=".tmp"
        )
        closed = False
        try:
            os.write(fd, data)
            os.fsync(fd)
            os.close(fd)
            closed = True
            os.replace(tmp_path, target)
        except Exception:
            if not closed:
                os.close(fd)
            if Path(tmp_path).exists():
                os.unlink(tmp_path)
            raise

        logger.info("Installed artifact %s (%d bytes)", target.name, len(data))
        return Artifact.from_path(target, loadable=loadable)

    def remove(self, artifact: Artifact) -> bool:
        """Delete an artifact.

        Returns:
            True if the file is gone, False if the OS refused to delete it.
        """
        try:
            artifact.path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("Could not delete %s: %s", artifact.path.name, e)
            return False
        logger.info("Removed artifact %s", artifact.path.name)
        return True

    def mark_pending_deletion(self, artifact: Artifact) -> Path | None:
        """Rename an artifact so it is no longer listed.

        Returns:
            The marker path, or None if the rename failed as well.
        """
        marker = artifact.path.with_name(artifact.path.name + PENDING_DELETION_SUFFIX)
        try:
            os.replace(artifact.path, marker)
        except OSError as e:
            logger.error("Could not mark %s for deletion: %s", artifact.path.name, e)
            return None
        logger.info("Marked %s for deletion", artifact.path.name)
        return marker

    def pending_deletions(self) -> list[Path]:
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob(f"*{PENDING_DELETION_SUFFIX}"))

    def sweep_pending(self) -> int:
        """Try to delete every pending-deletion marker.

        Returns:
            Number of markers removed.
        """
        removed = 0
        for marker in self.pending_deletions():
            try:
                marker.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.debug("Still cannot delete %s: %s", marker.name, e)
        if removed:
            logger.info("Swept %d pending deletion(s)", removed)
        return removed
