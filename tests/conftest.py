"""Shared test fixtures for source trees, stores, and settings."""

from pathlib import Path

import pytest
from tree_helpers import build_source_tree

from data_publisher.core.config import Settings
from data_publisher.lib.store import LocalStore


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Source directory populated with the 18-file test tree."""
    root = tmp_path / "source"
    build_source_tree(root)
    return root


@pytest.fixture
def source_files(source_dir: Path) -> list[Path]:
    """Sorted files of the source tree (checksum caches excluded)."""
    return sorted(source_dir.rglob("*.txt"))


@pytest.fixture
def store(tmp_path: Path) -> LocalStore:
    """Empty local store rooted in a temporary directory."""
    return LocalStore(tmp_path / "store")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test settings using a local store and no .env file."""
    return Settings(_env_file=None, store_backend="local", store_root=str(tmp_path / "store"))  # type: ignore[call-arg]
