"""Loguru logging configuration for publish runs.

Console records carry the destination root bound by the tree publisher
(``logger.contextualize(publish_root=...)``) so interleaved runs stay
readable.  ``json_logs`` switches the console sink to serialized JSON for
log shippers.  A rotating log file is written when a ``log_dir`` is
provided.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"
_ROOT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[publish_root]} | {message}"


def _format(record: dict[str, Any]) -> str:
    if "publish_root" in record["extra"]:
        return _ROOT_FORMAT + "\n{exception}"
    return _LOG_FORMAT + "\n{exception}"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, json_logs: bool = False) -> None:
    """Configure Loguru sinks for the publisher.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
        json_logs: Emit console records as serialized JSON.
    """
    level = log_level.upper()
    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_format)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "data-publisher.log",
            level=level,
            format=_format,
            rotation="24h",
            retention="7 days",
        )
