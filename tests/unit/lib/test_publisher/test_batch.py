"""Unit tests for the batch publisher."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from tree_helpers import extra_avus, primary_avus, secondary_avus

from data_publisher.lib.publisher.batch import BatchPublisher
from data_publisher.lib.publisher.checksum import compute_md5, write_checksum_cache
from data_publisher.lib.publisher.errors import ConfigurationError, RestartFileError
from data_publisher.lib.publisher.manifest import ManifestWriter
from data_publisher.lib.publisher.state import PublishState
from data_publisher.lib.publisher.types import PublishCounts, PublishStatus
from data_publisher.lib.store import AVU, DataObject, LocalStore

_DEST = "/archive/run1/a/x"


@pytest.fixture
def batch_files(tmp_path: Path) -> list[Path]:
    directory = tmp_path / "batch"
    directory.mkdir()
    files = []
    for name in ("1.txt", "2.txt", "3.txt", "4.txt"):
        path = directory / name
        path.write_text(name)
        files.append(path)
    return files


class _FailingStore(LocalStore):
    """LocalStore whose uploads fail for selected file names."""

    def __init__(self, root: Path, fail_names: set[str]) -> None:
        super().__init__(root)
        self.fail_names = fail_names
        self.attempted: list[str] = []

    def put_object(self, local_path: Path, remote_path: str, checksum: str | None = None) -> DataObject:
        self.attempted.append(local_path.name)
        if local_path.name in self.fail_names:
            raise OSError(f"simulated upload failure for {local_path.name}")
        return super().put_object(local_path, remote_path, checksum)


class TestBatchPublisherInit:
    """Tests for constructor validation."""

    def test_negative_max_errors_raises(self, store: LocalStore) -> None:
        with pytest.raises(ConfigurationError, match="non-negative"):
            BatchPublisher(store, max_errors=-1)

    def test_zero_workers_raises(self, store: LocalStore) -> None:
        with pytest.raises(ConfigurationError, match="at least 1"):
            BatchPublisher(store, max_workers=0)


class TestPublishFileBatch:
    """Tests for publish_file_batch."""

    def test_publishes_all_files(self, store: LocalStore, batch_files: list[Path]) -> None:
        counts = BatchPublisher(store).publish_file_batch(batch_files, _DEST)

        assert counts == PublishCounts(found=4, processed=4, errors=0)
        assert store.list_collection(_DEST) == [f"{_DEST}/{p.name}" for p in batch_files]

    def test_attaches_metadata_once(self, store: LocalStore, batch_files: list[Path]) -> None:
        """Each callback's AVUs appear exactly once, even when republished with force."""
        publisher = BatchPublisher(store, force=True)
        for _ in range(2):
            publisher.publish_file_batch(
                batch_files, _DEST, primary_cb=primary_avus, secondary_cb=secondary_avus, extra_cb=extra_avus
            )

        for path in batch_files:
            assert sorted(store.get_metadata(f"{_DEST}/{path.name}"), key=lambda a: a.attribute) == [
                AVU("extra", "evalue"),
                AVU("primary", "pvalue"),
                AVU("secondary", "svalue"),
            ]

    def test_second_run_skips_published(self, store: LocalStore, batch_files: list[Path]) -> None:
        state = PublishState()
        BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)
        counts = BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)
        assert counts == PublishCounts(found=4, processed=0, errors=0)

    def test_force_republishes(self, store: LocalStore, batch_files: list[Path]) -> None:
        state = PublishState()
        BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)
        counts = BatchPublisher(store, force=True, publish_state=state).publish_file_batch(batch_files, _DEST)
        assert counts.processed == 4

    def test_records_checksums_in_state(self, store: LocalStore, batch_files: list[Path]) -> None:
        state = PublishState()
        BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)
        record = state.get(f"{_DEST}/1.txt")
        assert record.status is PublishStatus.PUBLISHED
        assert record.checksum == compute_md5(batch_files[0])

    def test_upload_failure_is_counted(self, tmp_path: Path, batch_files: list[Path]) -> None:
        store = _FailingStore(tmp_path / "store", {"2.txt"})
        state = PublishState()
        counts = BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)

        assert counts == PublishCounts(found=4, processed=3, errors=1)
        assert state.get(f"{_DEST}/2.txt").status is PublishStatus.FAILED

    def test_budget_stops_batch(self, tmp_path: Path, batch_files: list[Path]) -> None:
        """With max_errors=1 the batch stops after the first failure."""
        store = _FailingStore(tmp_path / "store", {"2.txt", "3.txt"})
        counts = BatchPublisher(store, max_errors=1).publish_file_batch(batch_files, _DEST)

        assert counts == PublishCounts(found=2, processed=1, errors=1)
        assert store.attempted == ["1.txt", "2.txt"]

    def test_zero_budget_attempts_nothing(self, store: LocalStore, batch_files: list[Path]) -> None:
        counts = BatchPublisher(store, max_errors=0).publish_file_batch(batch_files, _DEST)
        assert counts == PublishCounts()

    def test_failing_callback_is_per_file_error(self, store: LocalStore, batch_files: list[Path]) -> None:
        def explode(obj: DataObject) -> list[AVU]:
            if obj.name == "3.txt":
                raise RuntimeError("no metadata")
            return []

        counts = BatchPublisher(store).publish_file_batch(batch_files, _DEST, secondary_cb=explode)
        assert counts == PublishCounts(found=4, processed=3, errors=1)

    def test_missing_required_cache_is_per_file_error(self, store: LocalStore, tmp_path: Path) -> None:
        """A .bam without its .md5 cache fails while other files still publish."""
        directory = tmp_path / "reads"
        directory.mkdir()
        bam = directory / "reads.bam"
        bam.write_bytes(b"BAM\x01")
        cached_bam = directory / "cached.bam"
        cached_bam.write_bytes(b"BAM\x02")
        write_checksum_cache(cached_bam, compute_md5(cached_bam))
        text = directory / "notes.txt"
        text.write_text("notes")

        counts = BatchPublisher(store).publish_file_batch([cached_bam, bam, text], _DEST)

        assert counts == PublishCounts(found=3, processed=2, errors=1)
        assert not store.object_exists(f"{_DEST}/reads.bam")

    def test_published_file_skipped_after_cache_removed(self, store: LocalStore, tmp_path: Path) -> None:
        directory = tmp_path / "reads"
        directory.mkdir()
        bam = directory / "reads.bam"
        bam.write_bytes(b"BAM\x01")
        checksum = compute_md5(bam)
        cache = write_checksum_cache(bam, checksum)
        state = PublishState()

        first = BatchPublisher(store, publish_state=state).publish_file_batch([bam], _DEST)
        assert first == PublishCounts(found=1, processed=1, errors=0)

        cache.unlink()
        rerun = BatchPublisher(store, publish_state=state).publish_file_batch([bam], _DEST)

        assert rerun == PublishCounts(found=1, processed=0, errors=0)
        assert state.get(f"{_DEST}/reads.bam").checksum == checksum

    def test_forced_republish_still_requires_cache(self, store: LocalStore, tmp_path: Path) -> None:
        bam = tmp_path / "reads.bam"
        bam.write_bytes(b"BAM\x01")
        cache = write_checksum_cache(bam, compute_md5(bam))
        state = PublishState()
        BatchPublisher(store, publish_state=state).publish_file_batch([bam], _DEST)

        cache.unlink()
        counts = BatchPublisher(store, force=True, publish_state=state).publish_file_batch([bam], _DEST)

        assert counts == PublishCounts(found=1, processed=0, errors=1)

    def test_checksum_mismatch_is_per_file_error(self, batch_files: list[Path]) -> None:
        store = MagicMock()
        store.put_object.side_effect = lambda local, remote, checksum: DataObject(store, remote, "0" * 32)

        counts = BatchPublisher(store).publish_file_batch(batch_files[:1], _DEST)
        assert counts == PublishCounts(found=1, processed=0, errors=1)

    def test_records_manifest_entries(self, store: LocalStore, batch_files: list[Path], tmp_path: Path) -> None:
        manifest = ManifestWriter(tmp_path / "manifest.json", "/archive/run1")
        BatchPublisher(store).publish_file_batch(batch_files, _DEST, manifest=manifest)
        assert [(e.remote_collection, e.remote_relative_path) for e in manifest.pending] == [
            (_DEST, p.name) for p in batch_files
        ]

    def test_restart_write_failure_is_fatal(self, store: LocalStore, batch_files: list[Path]) -> None:
        state = MagicMock(spec=PublishState)
        state.is_published.return_value = False
        state.mark_published.side_effect = RestartFileError("restart.json", "disk full")

        with pytest.raises(RestartFileError):
            BatchPublisher(store, publish_state=state).publish_file_batch(batch_files, _DEST)

    def test_workers_match_sequential(self, tmp_path: Path, batch_files: list[Path]) -> None:
        sequential = LocalStore(tmp_path / "seq")
        parallel = LocalStore(tmp_path / "par")
        seq_manifest = ManifestWriter(tmp_path / "seq.json", "/archive/run1")
        par_manifest = ManifestWriter(tmp_path / "par.json", "/archive/run1")

        seq_counts = BatchPublisher(sequential).publish_file_batch(batch_files, _DEST, manifest=seq_manifest)
        par_counts = BatchPublisher(parallel, max_workers=4).publish_file_batch(
            batch_files, _DEST, manifest=par_manifest
        )

        assert seq_counts == par_counts
        assert sequential.list_collection(_DEST) == parallel.list_collection(_DEST)
        assert seq_manifest.pending == par_manifest.pending
