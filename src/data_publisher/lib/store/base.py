"""Remote store abstraction.

Provides the ``RemoteStore`` Protocol consumed by the publishers and the
``DataObject`` handle returned when a file is uploaded.  Collections are
folders and data objects are files, addressed by absolute POSIX paths
such as ``/archive/run1/a/x/1.txt``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

AVU_SIDECAR_SUFFIX = ".avus.json"


@dataclass(frozen=True)
class AVU:
    """An attribute/value/units metadata triple."""

    attribute: str
    value: str
    units: str | None = None

    def __post_init__(self) -> None:
        if not self.attribute:
            msg = "AVU attribute must not be empty"
            raise ValueError(msg)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AVU:
        """Build an AVU from a ``{"attribute", "value"[, "units"]}`` mapping.

        Raises:
            ValueError: If ``attribute`` or ``value`` is missing.
        """
        try:
            return cls(
                attribute=str(data["attribute"]),
                value=str(data["value"]),
                units=data.get("units"),
            )
        except KeyError as exc:
            msg = f"AVU mapping is missing {exc.args[0]!r}: {data!r}"
            raise ValueError(msg) from exc

    def to_dict(self) -> dict[str, str]:
        data = {"attribute": self.attribute, "value": self.value}
        if self.units is not None:
            data["units"] = self.units
        return data


class StoreError(Exception):
    """Raised when a remote store operation fails.

    Args:
        path: Remote path the operation addressed.
        message: Human-readable error description.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class RemoteStore(Protocol):
    """Capability surface of a hierarchical remote data store."""

    def collection_exists(self, path: str) -> bool:
        """Return True if ``path`` is an existing collection."""
        ...

    def create_collection(self, path: str) -> None:
        """Create ``path`` and any missing parents; no error if it exists."""
        ...

    def object_exists(self, path: str) -> bool:
        """Return True if ``path`` is an existing data object."""
        ...

    def put_object(self, local_path: Path, remote_path: str, checksum: str | None = None) -> DataObject:
        """Create or replace the data object at ``remote_path`` from a local file.

        Args:
            local_path: File to upload.
            remote_path: Absolute remote object path.
            checksum: Local MD5 checksum, recorded with the object where
                the backend supports it.

        Returns:
            Handle to the stored object, carrying the checksum the store reports.
        """
        ...

    def add_metadata(self, path: str, avu: AVU) -> bool:
        """Attach ``avu`` to the object; a duplicate triple is not added twice.

        Returns:
            True if the AVU was added, False if it was already present.
        """
        ...

    def replace_metadata(self, path: str, avus: list[AVU]) -> None:
        """Attach ``avus``, first removing existing AVUs with the same attributes.

        AVUs whose attributes do not appear in ``avus`` are left untouched.
        """
        ...

    def get_metadata(self, path: str) -> list[AVU]:
        """Return the AVUs attached to the object at ``path``."""
        ...

    def list_collection(self, path: str, recursive: bool = False) -> list[str]:
        """Return sorted absolute paths of the data objects under ``path``."""
        ...


@dataclass
class DataObject:
    """Handle to a data object held in a remote store.

    Attributes:
        store: The store holding the object.
        path: Absolute remote path.
        checksum: MD5 checksum reported by the store, if known.
    """

    store: RemoteStore
    path: str
    checksum: str | None = None

    @property
    def collection(self) -> str:
        return str(PurePosixPath(self.path).parent)

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def add_avu(self, attribute: str, value: str, units: str | None = None) -> bool:
        return self.store.add_metadata(self.path, AVU(attribute, value, units))

    def supersede_avus(self, avus: list[AVU]) -> None:
        self.store.replace_metadata(self.path, avus)

    def get_avus(self, attribute: str | None = None) -> list[AVU]:
        """Return the object's AVUs, optionally only those for ``attribute``."""
        avus = self.store.get_metadata(self.path)
        if attribute is None:
            return avus
        return [avu for avu in avus if avu.attribute == attribute]

    def __str__(self) -> str:
        return self.path


def merge_avus(existing: list[AVU], avus: list[AVU]) -> list[AVU]:
    """Return ``existing`` with the attributes named in ``avus`` replaced by ``avus``."""
    superseded = {avu.attribute for avu in avus}
    merged = [avu for avu in existing if avu.attribute not in superseded]
    for avu in avus:
        if avu not in merged:
            merged.append(avu)
    return merged


def ensure_collection(store: RemoteStore, path: str) -> str:
    """Create the collection ``path`` if it does not already exist."""
    if not store.collection_exists(path):
        store.create_collection(path)
    return path


def normalize_remote_path(path: str) -> str:
    """Return ``path`` as an absolute, normalised POSIX path string.

    Raises:
        ValueError: If the path escapes the root with ``..`` components.
    """
    pure = PurePosixPath("/") / path
    parts: list[str] = []
    for part in pure.parts[1:]:
        if part == "..":
            msg = f"Remote path must not contain '..': {path!r}"
            raise ValueError(msg)
        if part != ".":
            parts.append(part)
    return "/" + "/".join(parts)


def check_object_name(path: str) -> str:
    """Return ``path`` unchanged if its name can be stored as a data object.

    Raises:
        StoreError: If the name collides with the AVU sidecar naming scheme.
    """
    if PurePosixPath(path).name.endswith(AVU_SIDECAR_SUFFIX):
        raise StoreError(path, f"data object names must not end with '{AVU_SIDECAR_SUFFIX}'")
    return path
