"""Publish service — wires settings, store backends, and publishers together.

The CLI calls into this module; it owns no publishing logic of its own.
"""

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from data_publisher.core.config import Settings
from data_publisher.lib.analysis import AnalysisPublisher, JsonWarehouse
from data_publisher.lib.publisher import (
    ConfigurationError,
    ManifestWriter,
    PublishCounts,
    PublishState,
    PublishStatus,
    RestartFileError,
    TreePublisher,
    list_directory,
)
from data_publisher.lib.store import LocalStore, RemoteStore, S3Store, create_s3_client


@dataclass(frozen=True)
class RestartSummary:
    """Overview of a restart file."""

    path: Path
    published: int
    failed: int
    last_updated: str | None


def create_store(settings: Settings) -> RemoteStore:
    """Build the configured remote store.

    Args:
        settings: Application settings.

    Returns:
        A ``LocalStore`` or a validated ``S3Store``.

    Raises:
        ConfigurationError: If the s3 backend is selected without a bucket.
        StoreError: If the S3 bucket is not accessible.
    """
    if settings.store_backend == "local":
        logger.debug("Using local store at {}", settings.store_root)
        return LocalStore(settings.store_root)

    if not settings.s3_bucket:
        msg = "The s3 store backend requires S3_BUCKET to be set"
        raise ConfigurationError(msg)

    client = create_s3_client(
        settings.s3_access_key_id,
        settings.s3_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        region_name=settings.s3_region,
    )
    store = S3Store(client, settings.s3_bucket, settings.s3_prefix)
    store.validate()
    logger.debug("Using S3 store s3://{}/{}", settings.s3_bucket, settings.s3_prefix)
    return store


def publish_tree(
    settings: Settings,
    source: Path,
    dest: str,
    *,
    store: RemoteStore | None = None,
    pattern: str | None = None,
    force: bool = False,
    max_errors: int | None = None,
    restart_file: Path | None = None,
    manifest_path: Path | None = None,
    collection_record: Path | None = None,
    workers: int | None = None,
) -> PublishCounts:
    """Publish a local directory tree to ``dest``.

    Options left as None fall back to their settings defaults.

    Returns:
        Counts of files found, published, and failed.

    Raises:
        ConfigurationError: If both manifest modes are requested.
        PublishError: For fatal publishing conditions.
    """
    if manifest_path is not None and collection_record is not None:
        msg = "--manifest and --collection-record cannot be used together"
        raise ConfigurationError(msg)

    store = store if store is not None else create_store(settings)
    publisher = TreePublisher(
        store,
        source,
        dest,
        force=force,
        max_errors=max_errors if max_errors is not None else settings.max_errors,
        publish_state=PublishState(restart_file or settings.restart_file_path),
        require_checksum_cache=settings.require_checksum_cache_list,
        collection_record=collection_record,
        max_workers=workers or settings.max_workers,
    )
    files = list_directory(source, recurse=True, pattern=pattern)
    manifest = ManifestWriter(manifest_path, publisher.dest_collection) if manifest_path else None
    return publisher.publish_tree(files, manifest=manifest)


def publish_analysis(
    settings: Settings,
    runfolder: Path,
    dest: str,
    warehouse_file: Path,
    *,
    run_name: str,
    well: str,
    store: RemoteStore | None = None,
    force: bool = False,
    max_errors: int | None = None,
    restart_file: Path | None = None,
    manifest_path: Path | None = None,
) -> PublishCounts:
    """Publish one cell's analysis output with warehouse metadata.

    Raises:
        ValueError: If the warehouse export is invalid.
        PublishError: For fatal publishing conditions, including pre-flight failures.
    """
    warehouse = JsonWarehouse.from_file(warehouse_file)
    publisher = AnalysisPublisher(
        store if store is not None else create_store(settings),
        runfolder,
        dest,
        warehouse,
        run_name=run_name,
        well=well,
        restart_file=restart_file or settings.restart_file_path,
        manifest_path=manifest_path,
        force=force,
        max_errors=max_errors if max_errors is not None else settings.max_errors,
    )
    return publisher.publish_files()


def summarize_restart_file(path: Path) -> RestartSummary:
    """Summarize the records of a restart file.

    Raises:
        RestartFileError: If the file is missing or invalid.
    """
    if not path.exists():
        raise RestartFileError(path, "file does not exist")

    state = PublishState(path)
    counts = state.counts()
    records = state.records()
    last = max((r.timestamp for r in records), default=None)
    return RestartSummary(
        path=path,
        published=counts[PublishStatus.PUBLISHED],
        failed=counts[PublishStatus.FAILED],
        last_updated=last.strftime("%Y-%m-%d %H:%M:%S UTC") if last else None,
    )
