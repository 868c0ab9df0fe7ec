# ABOUTME: Logging setup for the console front end.
# ABOUTME: Installs a dictConfig with a formatter that appends known `extra` context keys.

import logging
from collections.abc import Iterable, Sequence
from logging.config import dictConfig

_DEFAULT_EXTRA_KEYS = (
    "location_id",
    "location",
    "unit",
    "reading_count",
    "status_code",
    "path",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Formatter that renders selected `extra` attributes as trailing key=value pairs."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={getattr(record, key)}" for key in self._extra_keys if getattr(record, key, None) is not None
        ]
        if context:
            return f"{message} | {' '.join(context)}"
        return message


def configure_logging(level: str | int = "INFO") -> None:
    """Configure application-wide logging once. Later calls are ignored."""
    global _configured
    if _configured:
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": ContextualFormatter,
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "contextual",
                    "stream": "ext://sys.stderr",
                }
            },
            "root": {"handlers": ["default"], "level": level},
        }
    )
    _configured = True
