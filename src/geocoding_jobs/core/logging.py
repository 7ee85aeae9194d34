"""Loguru logging configuration for the geocoding engine.

Log lines carry the tenant and geocoding a record was bound to, so the
output of concurrent runs can be told apart. Records bound with
``json_output=True`` (error-sink reports) are also emitted as JSON, and a
rotating log file is added when a ``log_dir`` is provided.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

_LOG_PREFIX = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | "

# Bound identifiers shown ahead of the message, in this order
_CONTEXT_KEYS = ("tenant_id", "geocoding_id")


def format_record(record: dict[str, Any]) -> str:
    """Build the Loguru format string for one record.

    Identifiers bound with ``logger.bind(tenant_id=..., geocoding_id=...)``
    are rendered as ``key=value`` pairs between the source location and the
    message; records without them keep the plain layout.
    """
    context = " ".join(f"{key}={{extra[{key}]}}" for key in _CONTEXT_KEYS if key in record["extra"])
    if context:
        return _LOG_PREFIX + context + " | {message}\n{exception}"
    return _LOG_PREFIX + "{message}\n{exception}"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for ``geocoding-jobs.log``, rotated
            every 24 hours and kept 7 days.
    """
    level = log_level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=format_record)
    logger.add(
        sys.stderr,
        level=level,
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "geocoding-jobs.log",
            level=level,
            format=format_record,
            rotation="24h",
            retention="7 days",
        )
