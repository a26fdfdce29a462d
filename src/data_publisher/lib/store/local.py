"""Local filesystem implementation of RemoteStore.

Remote paths map beneath a root directory: ``/archive/run1/x.bam`` is
stored at ``{root}/archive/run1/x.bam``.  AVUs are kept in a JSON sidecar
``x.bam.avus.json`` beside the object and are hidden from listings.
Useful for staging areas, NFS-mounted archives, and tests.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path

from loguru import logger

from data_publisher.lib.publisher.checksum import compute_md5
from data_publisher.lib.store.base import (
    AVU,
    AVU_SIDECAR_SUFFIX,
    DataObject,
    StoreError,
    check_object_name,
    merge_avus,
    normalize_remote_path,
)


def _is_internal(name: str) -> bool:
    """True for AVU sidecars and in-flight upload temp files."""
    return name.endswith(AVU_SIDECAR_SUFFIX) or (name.startswith(".") and name.endswith(".part"))


class LocalStore:
    """Directory-tree backed remote store.

    Args:
        root: Directory under which all collections and objects live.
            Created if missing.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def local_path(self, remote_path: str) -> Path:
        """Return the local filesystem location of ``remote_path``."""
        return self._root / normalize_remote_path(remote_path).lstrip("/")

    def collection_exists(self, path: str) -> bool:
        return self.local_path(path).is_dir()

    def create_collection(self, path: str) -> None:
        target = self.local_path(path)
        if target.exists() and not target.is_dir():
            raise StoreError(path, "a data object already exists at this path")
        target.mkdir(parents=True, exist_ok=True)
        logger.debug("Created collection {}", path)

    def object_exists(self, path: str) -> bool:
        return self.local_path(path).is_file()

    def put_object(self, local_path: Path, remote_path: str, checksum: str | None = None) -> DataObject:
        """Copy ``local_path`` into the store, replacing any existing object.

        The copy goes to a temporary file first and is renamed into place.
        The returned handle carries the MD5 of the stored copy.
        """
        remote_path = check_object_name(normalize_remote_path(remote_path))
        target = self.local_path(remote_path)
        if target.is_dir():
            raise StoreError(remote_path, "a collection already exists at this path")
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=target.parent)
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            shutil.copyfile(local_path, tmp_path)
            os.replace(tmp_path, target)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(remote_path, f"upload failed: {exc}") from exc

        logger.debug("Stored {} at {}", local_path, remote_path)
        return DataObject(store=self, path=remote_path, checksum=compute_md5(target))

    def add_metadata(self, path: str, avu: AVU) -> bool:
        if not self.object_exists(path):
            raise StoreError(path, "no such data object")
        avus = self.get_metadata(path)
        if avu in avus:
            return False
        avus.append(avu)
        self._write_sidecar(path, avus)
        return True

    def replace_metadata(self, path: str, avus: list[AVU]) -> None:
        if not self.object_exists(path):
            raise StoreError(path, "no such data object")
        self._write_sidecar(path, merge_avus(self.get_metadata(path), avus))

    def get_metadata(self, path: str) -> list[AVU]:
        sidecar = self._sidecar_path(path)
        if not sidecar.exists():
            return []
        try:
            raw = json.loads(sidecar.read_text(encoding="utf-8"))
            return [AVU.from_dict(item) for item in raw]
        except (OSError, ValueError, TypeError) as exc:
            raise StoreError(path, f"unreadable metadata: {exc}") from exc

    def list_collection(self, path: str, recursive: bool = False) -> list[str]:
        base = self.local_path(path)
        if not base.is_dir():
            raise StoreError(path, "no such collection")
        candidates = base.rglob("*") if recursive else base.iterdir()
        paths = []
        for p in candidates:
            if not p.is_file() or _is_internal(p.name):
                continue
            paths.append("/" + p.relative_to(self._root).as_posix())
        return sorted(paths)

    def _sidecar_path(self, path: str) -> Path:
        target = self.local_path(path)
        return target.parent / f"{target.name}{AVU_SIDECAR_SUFFIX}"

    def _write_sidecar(self, path: str, avus: list[AVU]) -> None:
        sidecar = self._sidecar_path(path)
        tmp = sidecar.with_name(f".{sidecar.name}.part")
        tmp.write_text(json.dumps([a.to_dict() for a in avus], indent=2), encoding="utf-8")
        os.replace(tmp, sidecar)
