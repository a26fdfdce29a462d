"""Publish state registry backed by a restart file.

Records which destination paths have been published, and with what
content checksum, so that a rerun after an interruption skips work that
already completed.  Every change rewrites the restart file atomically.

Restart file schema::

    {
      "version": "1",
      "entries": [
        {"destinationPath": "...", "checksum": "...", "timestamp": "...", "status": "published"}
      ]
    }

Two processes must not share a restart file concurrently; there is no
cross-process locking.
"""

import json
import threading
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from data_publisher.lib.publisher.errors import RestartFileError
from data_publisher.lib.publisher.jsonfile import read_json, write_json_atomic
from data_publisher.lib.publisher.types import PublishRecord, PublishStatus

RESTART_FILE_VERSION = "1"


class PublishState:
    """Idempotency registry of published destination paths.

    Args:
        restart_file: Optional path of the JSON restart document.  When it
            exists it is loaded; when None the registry lives in memory only.

    Raises:
        RestartFileError: If an existing restart file is unreadable or invalid.
    """

    def __init__(self, restart_file: Path | None = None) -> None:
        self._restart_file = Path(restart_file) if restart_file else None
        self._records: dict[str, PublishRecord] = {}
        self._lock = threading.Lock()

        if self._restart_file is not None and self._restart_file.exists():
            self._load()

    @property
    def restart_file(self) -> Path | None:
        return self._restart_file

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, destination_path: object) -> bool:
        return destination_path in self._records

    def get(self, destination_path: str) -> PublishRecord | None:
        """Return the record for ``destination_path``, or None."""
        return self._records.get(destination_path)

    def is_published(self, destination_path: str, checksum: str | None = None) -> bool:
        """Check whether ``destination_path`` has been published.

        Args:
            destination_path: Remote object path.
            checksum: When given, the recorded checksum must match too.

        Returns:
            True if a published record exists (with matching content).
        """
        record = self._records.get(destination_path)
        if record is None or record.status != PublishStatus.PUBLISHED:
            return False
        if checksum is None:
            return True
        return record.checksum == checksum

    def mark_published(
        self,
        destination_path: str,
        checksum: str | None,
        timestamp: datetime | None = None,
    ) -> PublishRecord:
        """Record a successful publication and persist the registry."""
        return self._update(destination_path, checksum, PublishStatus.PUBLISHED, timestamp)

    def mark_failed(
        self,
        destination_path: str,
        checksum: str | None = None,
        timestamp: datetime | None = None,
    ) -> PublishRecord:
        """Record a failed publication and persist the registry."""
        return self._update(destination_path, checksum, PublishStatus.FAILED, timestamp)

    def records(self) -> list[PublishRecord]:
        """Return all records sorted by destination path."""
        return [self._records[k] for k in sorted(self._records)]

    def counts(self) -> dict[PublishStatus, int]:
        """Return the number of records per status."""
        tally = Counter(r.status for r in self._records.values())
        return {status: tally.get(status, 0) for status in PublishStatus}

    def save(self) -> None:
        """Rewrite the restart file from the in-memory registry."""
        with self._lock:
            self._write()

    def _update(
        self,
        destination_path: str,
        checksum: str | None,
        status: PublishStatus,
        timestamp: datetime | None,
    ) -> PublishRecord:
        record = PublishRecord(
            destination_path=destination_path,
            checksum=checksum,
            timestamp=timestamp or datetime.now(tz=UTC),
            status=status,
        )
        with self._lock:
            previous = self._records.get(destination_path)
            self._records[destination_path] = record
            try:
                self._write()
            except (OSError, TypeError) as exc:
                if previous is None:
                    del self._records[destination_path]
                else:
                    self._records[destination_path] = previous
                raise RestartFileError(self._restart_file, f"write failed: {exc}") from exc
        return record

    def _write(self) -> None:
        if self._restart_file is None:
            return
        document = {
            "version": RESTART_FILE_VERSION,
            "entries": [self._records[k].to_dict() for k in sorted(self._records)],
        }
        write_json_atomic(self._restart_file, document)

    def _load(self) -> None:
        path = self._restart_file
        try:
            data = read_json(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RestartFileError(path, str(exc)) from exc

        if not isinstance(data, dict):
            raise RestartFileError(path, "document must be a JSON object")
        version = data.get("version")
        if version != RESTART_FILE_VERSION:
            raise RestartFileError(path, f"unsupported version {version!r} (expected {RESTART_FILE_VERSION!r})")
        entries = data.get("entries")
        if not isinstance(entries, list):
            raise RestartFileError(path, "'entries' must be a list")

        for i, raw in enumerate(entries):
            try:
                record = PublishRecord.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                raise RestartFileError(path, f"invalid entry at index {i}: {exc}") from exc
            self._records[record.destination_path] = record

        logger.info("Loaded {} publish records from restart file {}", len(self._records), path)
