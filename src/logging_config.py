"""Central logging configuration for the proxy, its cache and transport layers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone as dt_timezone
from logging.config import dictConfig
from typing import Optional
from zoneinfo import ZoneInfo


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRIBUTES = set(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class _ContextFormatter(logging.Formatter):
    """Formatter with an optional IANA timezone that renders ``extra`` fields.

    Call sites log structured context (``extra={"sheet": ..., "action": ...}``);
    those fields are appended to the line as ``key=value`` pairs.
    """

    def __init__(self, fmt: str, datefmt: Optional[str] = None, timezone: Optional[str] = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.tzinfo = ZoneInfo(timezone) if timezone else None

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = format_context(record)
        return f"{line} | {context}" if context else line

    def formatTime(self, record, datefmt=None):  # noqa: N802 - override signature
        dt = self._to_datetime(record.created, self.tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat()

    @staticmethod
    def _to_datetime(timestamp, tzinfo):
        base_dt = datetime.fromtimestamp(timestamp, tz=dt_timezone.utc)
        return base_dt.astimezone(tzinfo) if tzinfo else base_dt


def format_context(record: logging.LogRecord) -> str:
    pairs = [
        f"{key}={value}"
        for key, value in sorted(vars(record).items())
        if key not in _RESERVED_ATTRIBUTES and not key.startswith("_")
    ]
    return " ".join(pairs)


def configure_logging(log_level: str = "INFO", timezone: Optional[str] = None) -> None:
    """Configure console logging for the proxy process.

    Safe to call more than once: existing handlers are replaced by a single
    stdout stream handler, and warnings are captured into the same stream.
    """

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    formatter_factory = {
        "()": _ContextFormatter,
        "fmt": DEFAULT_FORMAT,
        "datefmt": DEFAULT_DATE_FORMAT,
    }
    if timezone:
        formatter_factory["timezone"] = timezone

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"standard": formatter_factory},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": normalized_level,
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {
                "handlers": ["console"],
                "level": normalized_level,
            },
            "loggers": {
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
        }
    )

    logging.captureWarnings(True)
