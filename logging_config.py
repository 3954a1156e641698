"""
Shared logging configuration for the BookVerse API.

Usage:
    from logging_config import setup_logging
    logger = setup_logging("api")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "service": self.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class ServiceFormatter(logging.Formatter):
    """Standard formatter with clear service prefix."""

    def __init__(self, service_name: str):
        # Format: [api] 2026-01-26 19:45:00 - INFO - services.chat_service - Message
        super().__init__(
            fmt=f"[{service_name}] %(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(
    service_name: str,
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """Configure the root logger once and return the service logger."""
    from config import settings

    level = (level or settings.log_level).upper()
    log_format = (log_format or settings.log_format).lower()

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(ServiceFormatter(service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))

    # Quiet down chatty libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)

    return logging.getLogger(service_name)
