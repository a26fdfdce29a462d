"""Atomic JSON document persistence.

Documents are written to a temporary file in the target directory and
renamed over the original, so a crash mid-write never leaves a
half-written document behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialise ``data`` to ``path`` via temp-file-then-rename.

    Args:
        path: Destination document path.  Its parent directory is created
            if needed.
        data: JSON-serialisable object.

    Raises:
        OSError: If the document cannot be written.
        TypeError: If ``data`` is not JSON-serialisable.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    """Load a JSON document.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
        json.JSONDecodeError: If the content is not valid JSON.
    """
    with path.open(encoding="utf-8") as f:
        return json.load(f)
