"""
Core Module - Logging Setup.

Configures the root logger once per process. Components only
ever call logging.getLogger(<component name>).
"""

import json
import logging
import sys
from typing import Optional


class JsonFormatter(logging.Formatter):
    """One JSON object per line; the message is escaped like any other value."""

    def __init__(self, process_role: Optional[str] = None) -> None:
        super().__init__()
        self._role = process_role or ""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "role": self._role,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    process_role: Optional[str] = None,
) -> logging.Logger:
    """
    Set up process-wide logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        process_role: Role tag added to every line (collector, processor, ...)

    Returns:
        The pipeline logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = JsonFormatter(process_role)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {process_role or '-'} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("pipeline")
