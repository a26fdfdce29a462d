"""MD5 checksum computation and companion cache files.

A checksum cache is a ``<file>.md5`` file beside its source file holding
the hex digest, optionally followed by the file name in GNU coreutils
style (``<hash>  <filename>``).
"""

import hashlib
import re
from pathlib import Path

from loguru import logger

from data_publisher.lib.publisher.errors import ChecksumCacheError

# Read buffer size for hashing large files
_CHUNK_SIZE = 1024 * 1024

CACHE_SUFFIX = ".md5"

_MD5_RE = re.compile(r"[a-f0-9]{32}")


def checksum_cache_path(file_path: Path) -> Path:
    """Return the companion cache path for ``file_path``."""
    return file_path.parent / f"{file_path.name}{CACHE_SUFFIX}"


def compute_md5(file_path: Path) -> str:
    """Compute the MD5 hex digest of a file using streaming reads.

    Args:
        file_path: Path to the file to hash.

    Returns:
        Lowercase hex digest string (32 characters).
    """
    md5 = hashlib.md5()  # noqa: S324
    with file_path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            md5.update(chunk)
    return md5.hexdigest()


def read_checksum_cache(file_path: Path) -> str | None:
    """Read the cached checksum for ``file_path``.

    Args:
        file_path: The source file (not the cache file).

    Returns:
        The cached digest, or None if no cache file exists.

    Raises:
        ChecksumCacheError: If the cache file exists but does not hold a valid MD5 digest.
    """
    cache_path = checksum_cache_path(file_path)
    if not cache_path.exists():
        return None

    try:
        text = cache_path.read_text().strip()
    except OSError as exc:
        msg = f"Failed to read checksum cache '{cache_path}': {exc}"
        raise ChecksumCacheError(msg) from exc

    digest = text.split()[0].lower() if text else ""
    if not _MD5_RE.fullmatch(digest):
        msg = f"Checksum cache '{cache_path}' does not contain an MD5 digest"
        raise ChecksumCacheError(msg)
    return digest


def write_checksum_cache(file_path: Path, checksum: str) -> Path:
    """Write ``checksum`` to the companion cache file of ``file_path``."""
    cache_path = checksum_cache_path(file_path)
    cache_path.write_text(f"{checksum}\n")
    return cache_path


def _cache_is_fresh(file_path: Path) -> bool:
    cache_path = checksum_cache_path(file_path)
    return cache_path.stat().st_mtime >= file_path.stat().st_mtime


def resolve_checksum(file_path: Path, *, require_cache: bool = False) -> str:
    """Return the MD5 checksum of ``file_path``, using its cache when possible.

    When ``require_cache`` is True the cache file must already exist; the
    checksum is never computed on the fly.  Otherwise a cache that is at
    least as new as the file is used, and a missing or stale cache is
    replaced by a freshly computed digest.

    Args:
        file_path: Local file to checksum.
        require_cache: Whether a precomputed cache file is mandatory.

    Returns:
        Lowercase MD5 hex digest.

    Raises:
        ChecksumCacheError: If a required cache is missing or any cache is invalid.
    """
    if require_cache:
        cached = read_checksum_cache(file_path)
        if cached is None:
            msg = f"Missing required checksum cache file '{checksum_cache_path(file_path)}'"
            raise ChecksumCacheError(msg)
        return cached

    if checksum_cache_path(file_path).exists() and _cache_is_fresh(file_path):
        cached = read_checksum_cache(file_path)
        if cached is not None:
            logger.debug("Using cached checksum {} for {}", cached, file_path.name)
            return cached

    checksum = compute_md5(file_path)
    try:
        write_checksum_cache(file_path, checksum)
    except OSError as exc:
        logger.warning("Could not write checksum cache for {}: {}", file_path.name, exc)
    return checksum
