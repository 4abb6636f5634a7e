"""Format normalizer for downloaded artifacts.

The host loads zip archives. Legacy extensions are distributed as tarballs;
those are transcoded into a zip archive carrying the same members.
"""

from __future__ import annotations

import io
import logging
import tarfile
import zipfile
import zlib
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK"
LEGACY_SUFFIXES = (".tar.gz", ".tgz")


class ConversionError(Exception):
    """Raised when an artifact cannot be normalized into loadable form."""

    pass


@dataclass
class NormalizedArtifact:
    """Result of normalization.

    ``error`` is set when transcoding failed and ``data`` holds the untouched
    input bytes instead of a loadable archive.
    """

    data: bytes
    transcoded: bool = False
    error: ConversionError | None = None

    @property
    def loadable(self) -> bool:
        return self.error is None


def is_loadable(data: bytes) -> bool:
    """Check for the zip archive signature."""
    return data[:2] == ZIP_MAGIC


def is_legacy_source(name: str) -> bool:
    """Check whether a URL or file name carries a legacy suffix."""
    return name.lower().endswith(LEGACY_SUFFIXES)


def transcode(data: bytes) -> bytes:
    """Convert a tarball into a zip archive.

    Regular file members are copied with their relative paths; directories,
    links and members escaping the archive root are skipped. A single wrapper
    directory around the whole tarball is stripped.

    Raises:
        ConversionError: If the input is not a readable tarball or is empty.
    """
    files: dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                arcname = member.name
                while arcname.startswith("./"):
                    arcname = arcname[2:]
                if not arcname or arcname.startswith("/") or ".." in arcname.split("/"):
                    logger.debug("Skipping unsafe member %s", member.name)
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                files[arcname] = extracted.read()
    except (tarfile.TarError, EOFError, OSError, zlib.error) as e:
        raise ConversionError(f"Not a readable legacy archive: {e}") from e

    if not files:
        raise ConversionError("Legacy archive contains no files")

    root = _common_root(files)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for arcname, content in files.items():
            archive.writestr(arcname[len(root):], content)
    return buffer.getvalue()


def _common_root(files: dict[str, bytes]) -> str:
    """Wrapper directory to strip, e.g. "my-provider/" from a packaged tarball.

    A shared top-level directory that is itself a Python package is kept.
    """
    tops = {name.split("/", 1)[0] for name in files}
    if len(tops) != 1 or any("/" not in name for name in files):
        return ""
    top = tops.pop()
    if f"{top}/__init__.py" in files:
        return ""
    return f"{top}/"


def normalize(data: bytes, source_suffix: str = "") -> NormalizedArtifact:
    """Bring downloaded bytes into loadable form.

    Args:
        data: Raw artifact bytes.
        source_suffix: Suffix the artifact was published with (informational).

    Returns:
        NormalizedArtifact. On transcode failure the original bytes are
        returned with ``error`` set, so the caller can still persist them.

    Raises:
        ConversionError: If there is nothing to persist at all.
    """
    if not data:
        raise ConversionError("Artifact is empty")

    if is_loadable(data):
        logger.debug("Artifact (%s) is already a zip archive", source_suffix or "?")
        return NormalizedArtifact(data=data)

    try:
        converted = transcode(data)
    except ConversionError as e:
        logger.warning("Conversion of %s artifact failed: %s", source_suffix or "?", e)
        return NormalizedArtifact(data=data, error=e)

    logger.info("Converted %s artifact to zip (%d bytes)", source_suffix or "?", len(converted))
    return NormalizedArtifact(data=converted, transcoded=True)
