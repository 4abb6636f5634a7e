"""
Tests for the artifact store.
"""

import os
from pathlib import Path

import pytest

from extensions.store import PENDING_DELETION_SUFFIX, Artifact, ArtifactStore


class TestArtifactStore:
    def test_creates_missing_directory(self, tmp_path: Path):
        store = ArtifactStore(tmp_path / "nested" / "extensions")
        assert store.list() == []
        assert (tmp_path / "nested" / "extensions").is_dir()

    def test_lists_only_loadable_files_sorted(self, store: ArtifactStore, extensions_dir: Path):
        (extensions_dir / "b.pyz").write_bytes(b"PK")
        (extensions_dir / "a.pyz").write_bytes(b"PK")
        (extensions_dir / "c.tar.gz").write_bytes(b"\x1f\x8b")
        (extensions_dir / "d.pyz.del").write_bytes(b"PK")
        (extensions_dir / "notes.txt").write_text("hi")
        (extensions_dir / "dir.pyz").mkdir()

        names = [artifact.name for artifact in store.list()]
        assert names == ["a", "b"]

    def test_install_writes_contents(self, store: ArtifactStore):
        artifact = store.install("Example.pyz", b"PK\x03\x04data")

        assert artifact.name == "Example"
        assert artifact.loadable is True
        assert artifact.path.read_bytes() == b"PK\x03\x04data"

    def test_install_replaces_existing(self, store: ArtifactStore):
        store.install("Example.pyz", b"PK old")
        artifact = store.install("Example.pyz", b"PK new")

        assert artifact.path.read_bytes() == b"PK new"
        assert len(store.list()) == 1

    def test_install_leaves_no_temp_files(self, store: ArtifactStore, extensions_dir: Path):
        store.install("Example.pyz", b"PK")
        assert [p.name for p in extensions_dir.iterdir()] == ["Example.pyz"]

    def test_install_records_unloadable(self, store: ArtifactStore):
        artifact = store.install("Broken.pyz", b"\x1f\x8b garbage", loadable=False)
        assert artifact.loadable is False

    @pytest.mark.parametrize("name", ["", ".", ".."])
    def test_rejects_invalid_names(self, store: ArtifactStore, name: str):
        with pytest.raises(ValueError):
            store.path_for(name)

    def test_path_for_strips_directories(self, store: ArtifactStore, extensions_dir: Path):
        assert store.path_for("../../evil.pyz") == extensions_dir / "evil.pyz"

    def test_remove(self, store: ArtifactStore):
        artifact = store.install("Example.pyz", b"PK")
        assert store.remove(artifact) is True
        assert not artifact.path.exists()

    def test_remove_missing_file(self, store: ArtifactStore, extensions_dir: Path):
        artifact = Artifact.from_path(extensions_dir / "gone.pyz")
        assert store.remove(artifact) is True


class TestPendingDeletion:
    def test_mark_hides_artifact(self, store: ArtifactStore):
        artifact = store.install("Example.pyz", b"PK")

        marker = store.mark_pending_deletion(artifact)

        assert marker is not None
        assert marker.name == "Example.pyz" + PENDING_DELETION_SUFFIX
        assert store.list() == []
        assert store.pending_deletions() == [marker]

    def test_sweep_removes_markers(self, store: ArtifactStore):
        for name in ("a.pyz", "b.pyz"):
            store.mark_pending_deletion(store.install(name, b"PK"))

        assert store.sweep_pending() == 2
        assert store.pending_deletions() == []

    def test_sweep_keeps_undeletable_markers(self, store: ArtifactStore, monkeypatch):
        store.mark_pending_deletion(store.install("a.pyz", b"PK"))

        def refuse(self, missing_ok=False):
            raise PermissionError("in use")

        monkeypatch.setattr(Path, "unlink", refuse)

        assert store.sweep_pending() == 0
        monkeypatch.undo()
        assert len(store.pending_deletions()) == 1

    def test_sweep_on_missing_directory(self, tmp_path: Path):
        assert ArtifactStore(tmp_path / "missing").sweep_pending() == 0

    def test_marker_survives_until_swept(self, store: ArtifactStore, extensions_dir: Path):
        store.mark_pending_deletion(store.install("a.pyz", b"PK"))
        assert os.path.exists(extensions_dir / "a.pyz.del")
