"""Deterministic local file enumeration."""

import re
from pathlib import Path

from data_publisher.lib.publisher.checksum import CACHE_SUFFIX


def list_directory(
    directory: Path,
    *,
    recurse: bool = False,
    pattern: str | None = None,
    include_checksum_caches: bool = False,
) -> list[Path]:
    """List the regular files under ``directory`` in sorted path order.

    Args:
        directory: Directory to enumerate.
        recurse: Descend into subdirectories.
        pattern: Optional regular expression matched with ``re.search``
            against each file name.
        include_checksum_caches: Include ``.md5`` checksum cache files,
            which are excluded by default.

    Returns:
        Sorted list of file paths.

    Raises:
        NotADirectoryError: If ``directory`` is not a directory.
    """
    directory = Path(directory)
    if not directory.is_dir():
        msg = f"Not a directory: {directory}"
        raise NotADirectoryError(msg)

    regex = re.compile(pattern) if pattern else None
    candidates = directory.rglob("*") if recurse else directory.iterdir()

    files: list[Path] = []
    for path in candidates:
        if not path.is_file():
            continue
        if not include_checksum_caches and path.name.endswith(CACHE_SUFFIX):
            continue
        if regex and not regex.search(path.name):
            continue
        files.append(path)

    return sorted(files)
