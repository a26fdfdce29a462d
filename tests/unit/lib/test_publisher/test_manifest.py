"""Unit tests for product manifests and collection records."""

import json
from pathlib import Path

import pytest

from data_publisher.lib.publisher.errors import ManifestError
from data_publisher.lib.publisher.manifest import (
    COLLECTION_RECORD_VERSION,
    PRODUCT_MANIFEST_VERSION,
    ManifestWriter,
    ProductEntry,
    build_manifest,
    read_manifest,
    write_collection_record,
)
from data_publisher.lib.store import DataObject, LocalStore


def _obj(store: LocalStore, path: str) -> DataObject:
    return DataObject(store=store, path=path)


class TestBuildManifest:
    """Tests for build_manifest."""

    def test_document_shape(self) -> None:
        manifest = build_manifest("/archive/run1", [ProductEntry("/archive/run1/a/x", "1.txt")])
        assert manifest == {
            "version": PRODUCT_MANIFEST_VERSION,
            "destinationRoot": "/archive/run1",
            "products": [{"remoteCollection": "/archive/run1/a/x", "remoteRelativePath": "1.txt"}],
        }


class TestManifestWriter:
    """Tests for ManifestWriter."""

    def test_writes_recorded_entries(self, tmp_path: Path, store: LocalStore) -> None:
        path = tmp_path / "manifest.json"
        writer = ManifestWriter(path, "/archive/run1")
        writer.record(_obj(store, "/archive/run1/a/x/1.txt"), "/archive/run1/a/x", "1.txt")
        writer.record(_obj(store, "/archive/run1/a/x/2.txt"), "/archive/run1/a/x", "2.txt")

        assert writer.write() == 2
        document = json.loads(path.read_text())
        assert [p["remoteRelativePath"] for p in document["products"]] == ["1.txt", "2.txt"]
        assert writer.pending == []

    def test_appends_across_runs(self, tmp_path: Path, store: LocalStore) -> None:
        path = tmp_path / "manifest.json"
        first = ManifestWriter(path, "/archive/run1")
        first.record(_obj(store, "/archive/run1/a/1.txt"), "/archive/run1/a", "1.txt")
        first.write()

        second = ManifestWriter(path, "/archive/run1")
        second.record(_obj(store, "/archive/run1/b/2.txt"), "/archive/run1/b", "2.txt")
        second.write()

        products = read_manifest(path)["products"]
        assert [p["remoteCollection"] for p in products] == ["/archive/run1/a", "/archive/run1/b"]

    def test_empty_write_creates_document(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        assert ManifestWriter(path, "/archive/run1").write() == 0
        assert read_manifest(path)["products"] == []

    def test_invalid_existing_manifest_raises_on_construction(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        path.write_text(json.dumps({"version": COLLECTION_RECORD_VERSION, "destinationRoot": "/x"}))
        with pytest.raises(ManifestError, match="unsupported version"):
            ManifestWriter(path, "/archive/run1")

    def test_malformed_existing_manifest_raises_on_construction(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        path.write_text("{not json")
        with pytest.raises(ManifestError):
            ManifestWriter(path, "/archive/run1")

    def test_prepare_creates_missing_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "manifests" / "manifest.json"
        ManifestWriter(path, "/archive/run1").prepare()
        assert path.parent.is_dir()
        assert not path.exists()

    def test_prepare_rejects_manifest_corrupted_after_construction(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        writer = ManifestWriter(path, "/archive/run1")
        path.write_text("{not json")
        with pytest.raises(ManifestError):
            writer.prepare()

    def test_prepare_rejects_uncreatable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        writer = ManifestWriter(blocker / "manifest.json", "/archive/run1")
        with pytest.raises(ManifestError, match="Cannot create manifest directory"):
            writer.prepare()


class TestReadManifest:
    """Tests for read_manifest."""

    def test_missing_returns_none(self, tmp_path: Path) -> None:
        assert read_manifest(tmp_path / "missing.json") is None

    def test_corrupt_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        path.write_text("[")
        with pytest.raises(ManifestError, match="Failed to read manifest"):
            read_manifest(path)

    def test_invalid_utf8_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        path.write_bytes(b"\xff\xfe")
        with pytest.raises(ManifestError, match="Failed to read manifest"):
            read_manifest(path)


class TestCollectionRecord:
    """Tests for write_collection_record."""

    def test_document_shape(self, tmp_path: Path) -> None:
        path = tmp_path / "collection.json"
        write_collection_record(path, "/archive/run1")
        assert json.loads(path.read_text()) == {
            "version": COLLECTION_RECORD_VERSION,
            "destinationRoot": "/archive/run1",
        }
