"""
Structured Logging Configuration

One line per event: timestamp, level, logger, message, then any care
context passed through ``extra=`` as ``key=value`` pairs, e.g.

    logger.info("Care plan approved", extra={"care_plan_id": plan.id})
"""
import logging
import sys
from typing import Optional, Tuple
from datetime import datetime, timezone

from mdt_engine import config

# Attributes picked up from ``extra=`` and appended to the line
CONTEXT_FIELDS: Tuple[str, ...] = ("patient_id", "meeting_id", "plan_id", "care_plan_id", "actor_id")


class StructuredFormatter(logging.Formatter):
    """Single-line formatter; colour only when writing to a terminal."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        context = " ".join(
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )

        line = f"[{stamp}] {record.levelname:8} [{record.name}] {record.getMessage()}"
        if context:
            line += f" | {context}"
        if self.use_color:
            line = f"{self.COLORS.get(record.levelname, '')}{line}{self.COLORS['RESET']}"
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure the ``mdt_engine`` logger hierarchy.

    Only the package logger is touched so host applications (uvicorn, pytest)
    keep their own root handlers.
    """
    package_logger = logging.getLogger("mdt_engine")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    package_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter(use_color=sys.stdout.isatty()))
    package_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter(use_color=False))
        package_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


setup_logging(config.LOG_LEVEL, config.LOG_FILE or None)
