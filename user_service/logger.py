"""Centralized logging configuration for the application."""

import json
import logging
import sys
from datetime import datetime, timezone
from .config import settings

LOGGER_NAME = "user_service"

CONSOLE_FORMAT = logging.Formatter(
    fmt='%(asctime)s %(levelname)-8s [%(name)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def setup_logger(
    name: str = LOGGER_NAME,
    level: str = settings.LOG_LEVEL,
    log_file: str | None = settings.LOG_FILE,
    log_format: str = settings.LOG_FORMAT,
) -> logging.Logger:
    """Configure and return the application logger.

    Console output always uses the plain format. The optional file handler
    writes JSON lines when log_format is "json".
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Already configured (module re-import, reload in tests)
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CONSOLE_FORMAT)
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logger.error(f"Failed to create file handler for {log_file}: {e}")
        else:
            file_handler.setFormatter(JSONFormatter() if log_format == "json" else CONSOLE_FORMAT)
            logger.addHandler(file_handler)

    return logger


logger = setup_logger()
