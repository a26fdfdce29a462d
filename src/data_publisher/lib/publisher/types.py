"""Publisher data types.

Dataclasses for source files, metadata triples, publish records, and the
``(found, processed, errors)`` accumulator returned by every publish call.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol

from data_publisher.lib.store.base import AVU, DataObject

if TYPE_CHECKING:
    from collections.abc import Iterator


class PublishStatus(StrEnum):
    """Outcome recorded for a destination path."""

    PUBLISHED = "published"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceFile:
    """A local file enumerated for publishing.

    Attributes:
        path: Absolute local path.
        relative_path: POSIX path relative to the source root.
    """

    path: Path
    relative_path: str

    @classmethod
    def from_path(cls, path: Path | str, source_root: Path | str) -> SourceFile:
        """Resolve ``path`` against ``source_root``.

        Raises:
            ValueError: If ``path`` is not located beneath ``source_root``.
        """
        abs_path = Path(os.path.abspath(path))
        abs_root = Path(os.path.abspath(source_root))
        relative = abs_path.relative_to(abs_root)
        return cls(path=abs_path, relative_path=relative.as_posix())

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def suffix(self) -> str:
        """Final extension without the leading dot, lower-cased."""
        return self.path.suffix.lstrip(".").lower()

    def destination(self, dest_root: str) -> str:
        """Remote object path for this file under ``dest_root``."""
        return str(PurePosixPath(dest_root) / self.relative_path)


@dataclass(frozen=True)
class PublishRecord:
    """Registry entry for one destination path."""

    destination_path: str
    checksum: str | None
    timestamp: datetime
    status: PublishStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "destinationPath": self.destination_path,
            "checksum": self.checksum,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishRecord:
        """Parse a restart-file entry.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the timestamp or status is invalid.
        """
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            destination_path=data["destinationPath"],
            checksum=data.get("checksum"),
            timestamp=timestamp,
            status=PublishStatus(data["status"]),
        )


@dataclass(frozen=True)
class PublishCounts:
    """Accumulator of files found, processed, and failed.

    Unpacks as a ``(found, processed, errors)`` tuple and adds element-wise.
    """

    found: int = 0
    processed: int = 0
    errors: int = 0

    def __add__(self, other: PublishCounts) -> PublishCounts:
        return PublishCounts(
            found=self.found + other.found,
            processed=self.processed + other.processed,
            errors=self.errors + other.errors,
        )

    def __iter__(self) -> Iterator[int]:
        return iter((self.found, self.processed, self.errors))


class MetadataProvider(Protocol):
    """Callback returning the AVUs to attach to a newly published object."""

    def __call__(self, obj: DataObject) -> list[AVU] | list[dict[str, Any]]: ...


class Predicate(Protocol):
    """Filter deciding whether a local path is published."""

    def __call__(self, path: Path) -> bool: ...


class ManifestRecorder(Protocol):
    """Per-file manifest hook.

    ``prepare`` is called before anything is uploaded, ``record`` once for
    every successfully published object, and ``write`` once per publish call
    after all batches have settled.
    """

    def prepare(self) -> None: ...

    def record(self, obj: DataObject, collection: str, relative_path: str) -> None: ...

    def write(self) -> None: ...
