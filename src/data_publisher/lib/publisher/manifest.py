"""Manifest documents for downstream warehouse loaders.

Two mutually exclusive manifest modes are supported:

1. **Product manifest** (``ManifestWriter``) — one product entry per
   successfully published object, appended across runs::

       {"version": "1.0", "destinationRoot": "/archive/run1",
        "products": [{"remoteCollection": "/archive/run1/a/x",
                      "remoteRelativePath": "1.txt"}]}

2. **Collection record** (``write_collection_record``) — a single record
   naming the destination root of the whole run::

       {"version": "1.1", "destinationRoot": "/archive/run1"}
"""

import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from data_publisher.lib.publisher.errors import ManifestError
from data_publisher.lib.publisher.jsonfile import read_json, write_json_atomic
from data_publisher.lib.store.base import DataObject

PRODUCT_MANIFEST_VERSION = "1.0"
COLLECTION_RECORD_VERSION = "1.1"


@dataclass(frozen=True)
class ProductEntry:
    """Location of one published object."""

    remote_collection: str
    remote_relative_path: str

    def to_dict(self) -> dict[str, str]:
        return {
            "remoteCollection": self.remote_collection,
            "remoteRelativePath": self.remote_relative_path,
        }


def build_manifest(destination_root: str, products: list[ProductEntry]) -> dict[str, Any]:
    """Construct a product manifest dict.

    Args:
        destination_root: Remote root collection of the run.
        products: Product entries in publication order.

    Returns:
        Manifest dict ready for JSON serialization.
    """
    return {
        "version": PRODUCT_MANIFEST_VERSION,
        "destinationRoot": destination_root,
        "products": [p.to_dict() for p in products],
    }


def read_manifest(path: Path) -> dict[str, Any] | None:
    """Load and validate a product manifest.

    Args:
        path: Manifest file path.

    Returns:
        The manifest dict, or None if the file does not exist.

    Raises:
        ManifestError: If the file is unreadable or not a product manifest.
    """
    if not path.exists():
        return None
    try:
        data = read_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"Failed to read manifest '{path}': {exc}"
        raise ManifestError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Manifest '{path}' must be a JSON object"
        raise ManifestError(msg)
    if data.get("version") != PRODUCT_MANIFEST_VERSION:
        msg = f"Manifest '{path}' has unsupported version {data.get('version')!r}"
        raise ManifestError(msg)
    if not isinstance(data.get("products"), list):
        msg = f"Manifest '{path}' is missing its 'products' list"
        raise ManifestError(msg)
    return data


class ManifestWriter:
    """Collects product entries during a publish and appends them to a manifest.

    ``record`` is thread-safe; ``write`` merges the collected entries onto
    any existing document at ``path`` and rewrites it atomically.

    Args:
        path: Manifest file path.
        destination_root: Remote root collection recorded in the header
            of a new manifest.

    Raises:
        ManifestError: If a document already at ``path`` is not a valid
            product manifest.
    """

    def __init__(self, path: Path, destination_root: str) -> None:
        self.path = Path(path)
        self.destination_root = destination_root
        self._pending: list[ProductEntry] = []
        self._lock = threading.Lock()
        read_manifest(self.path)

    def prepare(self) -> None:
        """Check that the manifest can be extended before anything is published.

        Raises:
            ManifestError: If the existing document is invalid or its
                directory cannot be written.
        """
        read_manifest(self.path)
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create manifest directory '{directory}': {exc}"
            raise ManifestError(msg) from exc
        if not os.access(directory, os.W_OK):
            msg = f"Manifest directory '{directory}' is not writable"
            raise ManifestError(msg)

    @property
    def pending(self) -> list[ProductEntry]:
        with self._lock:
            return list(self._pending)

    def record(self, obj: DataObject, collection: str, relative_path: str) -> None:
        """Queue a product entry for ``obj``."""
        logger.debug("Manifest entry for {}: {} + {}", obj.path, collection, relative_path)
        with self._lock:
            self._pending.append(ProductEntry(collection, relative_path))

    def write(self) -> int:
        """Append queued entries to the manifest file.

        Returns:
            The number of entries appended.

        Raises:
            ManifestError: If the existing manifest is invalid or the write fails.
        """
        with self._lock:
            pending = list(self._pending)
            existing = read_manifest(self.path)
            if existing is None:
                document = build_manifest(self.destination_root, pending)
            else:
                document = existing
                document["products"].extend(p.to_dict() for p in pending)

            try:
                write_json_atomic(self.path, document)
            except OSError as exc:
                msg = f"Failed to write manifest '{self.path}': {exc}"
                raise ManifestError(msg) from exc
            self._pending.clear()

        logger.info("Wrote {} product entries to manifest {}", len(pending), self.path)
        return len(pending)


def write_collection_record(path: Path, destination_root: str) -> None:
    """Write the whole-collection record for a run.

    Raises:
        ManifestError: If the file cannot be written.
    """
    document = {
        "version": COLLECTION_RECORD_VERSION,
        "destinationRoot": destination_root,
    }
    try:
        write_json_atomic(Path(path), document)
    except OSError as exc:
        msg = f"Failed to write collection record '{path}': {exc}"
        raise ManifestError(msg) from exc
    logger.info("Wrote collection record for {} to {}", destination_root, path)
