"""Publisher library — public API for publishing local file trees to a remote store.

Provides the tree and batch publishers, the restart-file backed publish
state, checksum cache handling, and manifest writers.
"""

from data_publisher.lib.publisher.batch import BatchPublisher
from data_publisher.lib.publisher.checksum import compute_md5, read_checksum_cache, resolve_checksum
from data_publisher.lib.publisher.errors import (
    ChecksumCacheError,
    ChecksumMismatchError,
    ConfigurationError,
    FilePublishError,
    ManifestError,
    MetadataError,
    PreflightError,
    PublishError,
    QCFailedError,
    RestartFileError,
    UnexpectedBarcodeError,
)
from data_publisher.lib.publisher.lister import list_directory
from data_publisher.lib.publisher.manifest import ManifestWriter, ProductEntry, write_collection_record
from data_publisher.lib.publisher.state import PublishState
from data_publisher.lib.publisher.tree import TreePublisher
from data_publisher.lib.publisher.types import PublishCounts, PublishRecord, PublishStatus, SourceFile

__all__ = [
    "BatchPublisher",
    "ChecksumCacheError",
    "ChecksumMismatchError",
    "ConfigurationError",
    "FilePublishError",
    "ManifestError",
    "ManifestWriter",
    "MetadataError",
    "PreflightError",
    "ProductEntry",
    "PublishCounts",
    "PublishError",
    "PublishRecord",
    "PublishState",
    "PublishStatus",
    "QCFailedError",
    "RestartFileError",
    "SourceFile",
    "TreePublisher",
    "UnexpectedBarcodeError",
    "compute_md5",
    "list_directory",
    "read_checksum_cache",
    "resolve_checksum",
    "write_collection_record",
]
