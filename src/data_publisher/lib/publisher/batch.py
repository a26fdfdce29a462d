"""Batch publisher — publishes files into a single destination collection.

For each file, in order: skip it if the publish state already records
the same content at the destination; resolve its checksum; upload it;
attach metadata from the callbacks (primary and secondary AVUs replace
values left by an earlier publication, extra AVUs are added); record
it in the manifest; and persist the publish state before moving on.

Per-file failures are logged and counted rather than raised.  When a
``max_errors`` budget is set, the batch stops as soon as it is spent.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from loguru import logger

from data_publisher.lib.publisher.checksum import checksum_cache_path, resolve_checksum
from data_publisher.lib.publisher.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    FilePublishError,
    MetadataError,
    PublishError,
)
from data_publisher.lib.publisher.state import PublishState
from data_publisher.lib.publisher.types import AVU, PublishCounts

if TYPE_CHECKING:
    from data_publisher.lib.publisher.types import ManifestRecorder, MetadataProvider
    from data_publisher.lib.store.base import DataObject, RemoteStore

DEFAULT_REQUIRE_CHECKSUM_CACHE = ("bam", "cram")

# Attributes returned by these callbacks replace earlier values on republish
_SUPERSEDING_CALLBACKS = frozenset({"primary", "secondary"})


class _Outcome(Enum):
    SKIPPED = "skipped"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass
class _FileResult:
    path: Path
    remote_path: str
    checksum: str | None = None
    outcome: _Outcome = _Outcome.FAILED
    obj: DataObject | None = None
    error: Exception | None = None


class BatchPublisher:
    """Publish a batch of files to one destination collection.

    Args:
        store: Remote store to publish into.
        force: Republish files even when already recorded as published.
        max_errors: Errors tolerated before the rest of the batch is abandoned.
        publish_state: Registry of published files; a fresh in-memory
            registry is used when omitted.
        require_checksum_cache: File suffixes whose ``.md5`` cache must
            already exist.
        max_workers: Number of concurrent uploads.  Files are dispatched
            in windows of this size and tallied in input order.

    Raises:
        ConfigurationError: If ``max_errors`` is negative or ``max_workers`` < 1.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        force: bool = False,
        max_errors: int | None = None,
        publish_state: PublishState | None = None,
        require_checksum_cache: Iterable[str] = DEFAULT_REQUIRE_CHECKSUM_CACHE,
        max_workers: int = 1,
    ) -> None:
        if max_errors is not None and max_errors < 0:
            msg = f"max_errors must be non-negative, got {max_errors}"
            raise ConfigurationError(msg)
        if max_workers < 1:
            msg = f"max_workers must be at least 1, got {max_workers}"
            raise ConfigurationError(msg)

        self.store = store
        self.force = force
        self.max_errors = max_errors
        self.publish_state = publish_state if publish_state is not None else PublishState()
        self.require_checksum_cache = frozenset(s.lstrip(".").lower() for s in require_checksum_cache)
        self.max_workers = max_workers

    def publish_file_batch(
        self,
        files: Sequence[Path | str],
        dest_collection: str,
        *,
        primary_cb: MetadataProvider | None = None,
        secondary_cb: MetadataProvider | None = None,
        extra_cb: MetadataProvider | None = None,
        manifest: ManifestRecorder | None = None,
    ) -> PublishCounts:
        """Publish ``files`` into ``dest_collection``.

        Each file becomes the data object ``dest_collection/<file name>``.
        A file whose suffix requires a checksum cache, but whose cache has been
        removed, is skipped when the publish state already records it as
        published; its content is not rechecked.

        Args:
            files: Local files, processed in the given order.
            dest_collection: Remote collection receiving the files.
            primary_cb: Callback returning primary AVUs for a new object.
            secondary_cb: Callback returning secondary AVUs.
            extra_cb: Callback returning any further AVUs.
            manifest: Recorder notified of every published object.

        Returns:
            Counts of files found, published, and failed.

        Raises:
            PublishError: For fatal conditions (not ``FilePublishError``),
                e.g. a restart file that can no longer be written.
        """
        paths = [Path(f) for f in files]
        callbacks = (("primary", primary_cb), ("secondary", secondary_cb), ("extra", extra_cb))

        def publish(path: Path) -> _FileResult:
            return self._publish_file(path, dest_collection, callbacks)

        found = processed = errors = 0
        window = self.max_workers
        executor = ThreadPoolExecutor(max_workers=window) if window > 1 else None
        try:
            for start in range(0, len(paths), window):
                if self._budget_spent(errors):
                    logger.error(
                        "The number of errors {} reached the maximum permitted of {}. Aborting batch to '{}'",
                        errors,
                        self.max_errors,
                        dest_collection,
                    )
                    break

                chunk = paths[start : start + window]
                if executor is None:
                    results = [publish(chunk[0])]
                else:
                    futures = [executor.submit(publish, path) for path in chunk]
                    results = [future.result() for future in futures]

                # Finalised in input order, matching a sequential run
                for result in results:
                    found += 1
                    outcome = self._finish(result, dest_collection, manifest)
                    if outcome is _Outcome.PUBLISHED:
                        processed += 1
                    elif outcome is _Outcome.FAILED:
                        errors += 1
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        logger.debug(
            "Batch to '{}': found {}, processed {}, errors {}",
            dest_collection,
            found,
            processed,
            errors,
        )
        return PublishCounts(found=found, processed=processed, errors=errors)

    def _budget_spent(self, errors: int) -> bool:
        return self.max_errors is not None and errors >= self.max_errors

    def _requires_cache(self, path: Path) -> bool:
        return path.suffix.lstrip(".").lower() in self.require_checksum_cache

    def _publish_file(
        self,
        path: Path,
        dest_collection: str,
        callbacks: tuple[tuple[str, MetadataProvider | None], ...],
    ) -> _FileResult:
        """Checksum, upload, and annotate one file; safe to run on a worker thread."""
        remote_path = str(PurePosixPath(dest_collection) / path.name)
        result = _FileResult(path=path, remote_path=remote_path)

        require_cache = self._requires_cache(path)
        if require_cache and not self.force and not checksum_cache_path(path).exists():
            # Required caches may be cleaned up once their files are published
            if self.publish_state.is_published(remote_path):
                logger.info("Skipping '{}': already published to '{}' (no checksum cache)", path, remote_path)
                result.checksum = self.publish_state.get(remote_path).checksum
                result.outcome = _Outcome.SKIPPED
                return result

        try:
            result.checksum = resolve_checksum(path, require_cache=require_cache)

            if not self.force and self.publish_state.is_published(remote_path, result.checksum):
                logger.info("Skipping '{}': already published to '{}'", path, remote_path)
                result.outcome = _Outcome.SKIPPED
                return result

            obj = self.store.put_object(path, remote_path, result.checksum)
            if obj.checksum is not None and obj.checksum != result.checksum:
                raise ChecksumMismatchError(remote_path, result.checksum, obj.checksum)

            for name, callback in callbacks:
                if callback is not None:
                    self._attach_metadata(obj, name, callback)
        except PublishError as exc:
            if not isinstance(exc, FilePublishError):
                raise
            result.error = exc
            return result
        except Exception as exc:  # noqa: BLE001
            result.error = exc
            return result

        result.obj = obj
        result.outcome = _Outcome.PUBLISHED
        return result

    def _finish(
        self,
        result: _FileResult,
        dest_collection: str,
        manifest: ManifestRecorder | None,
    ) -> _Outcome:
        if result.error is not None:
            return self._fail(result, result.error)
        if result.outcome is not _Outcome.PUBLISHED or result.obj is None:
            return result.outcome

        if manifest is not None:
            try:
                manifest.record(result.obj, dest_collection, result.obj.name)
            except Exception as exc:  # noqa: BLE001
                msg = f"Manifest callback failed for '{result.remote_path}': {exc}"
                return self._fail(result, MetadataError(msg))

        self.publish_state.mark_published(result.remote_path, result.checksum)
        logger.info("Published '{}' to '{}'", result.path, result.remote_path)
        return _Outcome.PUBLISHED

    def _attach_metadata(self, obj: DataObject, name: str, callback: Callable[[DataObject], object]) -> None:
        try:
            returned = callback(obj) or []
            avus = [avu if isinstance(avu, AVU) else AVU.from_dict(avu) for avu in returned]
        except PublishError:
            raise
        except Exception as exc:
            msg = f"The {name} metadata callback failed for '{obj.path}': {exc}"
            raise MetadataError(msg) from exc

        if name in _SUPERSEDING_CALLBACKS:
            obj.supersede_avus(avus)
        else:
            for avu in avus:
                obj.add_avu(avu.attribute, avu.value, avu.units)
        logger.debug("Attached {} {} AVUs to '{}'", len(avus), name, obj.path)

    def _fail(self, result: _FileResult, exc: Exception) -> _Outcome:
        logger.error("Failed to publish '{}' to '{}': {}", result.path, result.remote_path, exc)
        self.publish_state.mark_failed(result.remote_path, result.checksum)
        return _Outcome.FAILED
