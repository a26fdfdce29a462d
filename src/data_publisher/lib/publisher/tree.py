"""Tree publisher — publishes a local directory tree to a remote collection tree.

Files keep their layout relative to the source directory: a file at
``{source}/a/x/1.txt`` becomes the data object ``{dest}/a/x/1.txt``.
Files are grouped into one batch per destination collection and the
batches are published in sorted collection order, so reruns and error
accounting are reproducible.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from loguru import logger

from data_publisher.lib.publisher.batch import DEFAULT_REQUIRE_CHECKSUM_CACHE, BatchPublisher
from data_publisher.lib.publisher.errors import ConfigurationError, PublishError
from data_publisher.lib.publisher.lister import list_directory
from data_publisher.lib.publisher.manifest import write_collection_record
from data_publisher.lib.publisher.state import PublishState
from data_publisher.lib.publisher.types import PublishCounts, SourceFile
from data_publisher.lib.store.base import ensure_collection, normalize_remote_path

if TYPE_CHECKING:
    from data_publisher.lib.publisher.types import ManifestRecorder, MetadataProvider, Predicate
    from data_publisher.lib.store.base import RemoteStore


class TreePublisher:
    """Publish files from a source directory into a destination collection tree.

    Attributes:
        store: Remote store to publish into.
        source_directory: Local root the files are taken from.
        dest_collection: Remote root collection mirroring ``source_directory``.
        force: Republish files already recorded as published.
        max_errors: Errors tolerated per ``publish_tree`` call before the
            remaining batches are abandoned.
        publish_state: Registry shared by all batches.
        require_checksum_cache: File suffixes whose ``.md5`` cache must exist.
        collection_record: Path of the whole-collection manifest record,
            written once per ``publish_tree`` call.  Cannot be combined
            with a per-file ``manifest`` recorder.
        max_workers: Concurrent uploads within a batch.
    """

    def __init__(
        self,
        store: RemoteStore,
        source_directory: Path | str,
        dest_collection: str,
        *,
        force: bool = False,
        max_errors: int | None = None,
        publish_state: PublishState | None = None,
        require_checksum_cache: Iterable[str] = DEFAULT_REQUIRE_CHECKSUM_CACHE,
        collection_record: Path | str | None = None,
        max_workers: int = 1,
    ) -> None:
        if max_errors is not None and max_errors < 0:
            msg = f"max_errors must be non-negative, got {max_errors}"
            raise ConfigurationError(msg)

        self.store = store
        self.source_directory = Path(source_directory)
        self.dest_collection = normalize_remote_path(dest_collection)
        self.force = force
        self.max_errors = max_errors
        self.publish_state = publish_state if publish_state is not None else PublishState()
        self.require_checksum_cache = tuple(require_checksum_cache)
        self.collection_record = Path(collection_record) if collection_record else None
        self.max_workers = max_workers

    def list_directory(self, directory: Path | None = None, *, recurse: bool = True) -> list[Path]:
        """List files under ``directory`` (default: the source directory) in sorted order."""
        return list_directory(directory or self.source_directory, recurse=recurse)

    def publish_tree(
        self,
        files: Sequence[Path | str],
        *,
        filter: Predicate | None = None,  # noqa: A002
        primary_cb: MetadataProvider | None = None,
        secondary_cb: MetadataProvider | None = None,
        extra_cb: MetadataProvider | None = None,
        manifest: ManifestRecorder | None = None,
    ) -> PublishCounts:
        """Publish ``files`` to the destination tree.

        Args:
            files: Local files beneath the source directory.
            filter: Predicate returning True for files to publish.  Rejected
                files are not counted at all.
            primary_cb: Callback returning primary AVUs for each new object.
            secondary_cb: Callback returning secondary AVUs.
            extra_cb: Callback returning any further AVUs.
            manifest: Per-file manifest recorder; ``write()`` is called once
                after all batches, or when a fatal error stops them.

        Returns:
            ``PublishCounts`` of files found, published, and failed.  Callers
            must inspect ``errors`` to decide success.

        Raises:
            ConfigurationError: If both manifest modes are configured, or a
                file is outside the source directory or duplicated.
            ManifestError: If the product manifest is invalid or cannot be
                written; checked before anything is uploaded.
            PublishError: For fatal conditions raised by collaborators.
        """
        if self.collection_record is not None and manifest is not None:
            msg = "A per-file manifest recorder cannot be used with the collection_record attribute set"
            raise ConfigurationError(msg)

        paths = [Path(f) for f in files]
        if filter is not None:
            paths = [p for p in paths if self._accept(filter, p)]

        batches = self._collate_by_dest_coll(paths)
        if manifest is not None:
            manifest.prepare()

        ensure_collection(self.store, self.dest_collection)

        counts = PublishCounts()
        with logger.contextualize(publish_root=self.dest_collection):
            try:
                for dest_coll in sorted(batches):
                    batch_max_errors = None
                    if self.max_errors is not None:
                        if counts.errors >= self.max_errors:
                            logger.error(
                                "The number of errors {} reached the maximum permitted of {}. Aborting",
                                counts.errors,
                                self.max_errors,
                            )
                            break
                        batch_max_errors = self.max_errors - counts.errors

                    ensure_collection(self.store, dest_coll)
                    subset = batches[dest_coll]
                    logger.debug("Publishing batch of {} files to '{}'", len(subset), dest_coll)

                    batch_publisher = BatchPublisher(
                        self.store,
                        force=self.force,
                        max_errors=batch_max_errors,
                        publish_state=self.publish_state,
                        require_checksum_cache=self.require_checksum_cache,
                        max_workers=self.max_workers,
                    )
                    counts += batch_publisher.publish_file_batch(
                        subset,
                        dest_coll,
                        primary_cb=primary_cb,
                        secondary_cb=secondary_cb,
                        extra_cb=extra_cb,
                        manifest=manifest,
                    )
            except BaseException:
                # Recorded entries are written even when a fatal error propagates
                if manifest is not None:
                    self._write_manifest_after_error(manifest)
                raise
            if manifest is not None:
                manifest.write()

        if self.collection_record is not None:
            write_collection_record(self.collection_record, self.dest_collection)

        logger.info(
            "Published tree '{}' to '{}': found {}, processed {}, errors {}",
            self.source_directory,
            self.dest_collection,
            counts.found,
            counts.processed,
            counts.errors,
        )
        return counts

    def _write_manifest_after_error(self, manifest: ManifestRecorder) -> None:
        try:
            manifest.write()
        except PublishError as exc:
            logger.error("Failed to write manifest while aborting publish of '{}': {}", self.dest_collection, exc)

    def _accept(self, predicate: Predicate, path: Path) -> bool:
        if predicate(path):
            logger.debug("Publish filter true (accepted) for '{}'", path)
            return True
        logger.info("Publish filter false (rejected) for '{}'", path)
        return False

    def _collate_by_dest_coll(self, paths: list[Path]) -> dict[str, list[Path]]:
        """Group files into batches keyed by destination collection, keeping input order."""
        collated: dict[str, list[Path]] = {}
        seen: set[str] = set()
        for path in paths:
            source_file = self._source_file(path)
            remote_path = source_file.destination(self.dest_collection)
            if remote_path in seen:
                msg = f"Duplicate destination '{remote_path}' for '{path}'"
                raise ConfigurationError(msg)
            seen.add(remote_path)

            dest_coll = self.infer_dest_collection(path)
            collated.setdefault(dest_coll, []).append(source_file.path)
        return collated

    def infer_dest_collection(self, path: Path | str) -> str:
        """Return the remote collection receiving ``path``.

        The path of the file relative to the source directory determines the
        path of the data object relative to the destination collection.
        """
        remote_path = PurePosixPath(self._source_file(Path(path)).destination(self.dest_collection))
        dest_coll = str(remote_path.parent)
        logger.trace("Destination collection of '{}' is '{}'", path, dest_coll)
        return dest_coll

    def _source_file(self, path: Path) -> SourceFile:
        try:
            return SourceFile.from_path(path, self.source_directory)
        except ValueError as exc:
            msg = f"File '{path}' is not beneath the source directory '{self.source_directory}'"
            raise ConfigurationError(msg) from exc
