"""Remote store library — the hierarchical data store publishers write to.

Public API:
    - ``RemoteStore``: Protocol for store backends
    - ``DataObject``: Handle to a published data object
    - ``AVU``: Attribute/value/units metadata triple
    - ``LocalStore``: Directory-tree backend
    - ``S3Store``: S3-compatible object storage backend
    - ``create_s3_client``: Build a configured boto3 S3 client
"""

from data_publisher.lib.store.base import (
    AVU,
    DataObject,
    RemoteStore,
    StoreError,
    ensure_collection,
    normalize_remote_path,
)
from data_publisher.lib.store.local import LocalStore
from data_publisher.lib.store.s3 import S3Store, create_s3_client

__all__ = [
    "AVU",
    "DataObject",
    "LocalStore",
    "RemoteStore",
    "S3Store",
    "StoreError",
    "create_s3_client",
    "ensure_collection",
    "normalize_remote_path",
]
