"""
Logging configuration — central setup for the CLI entrypoint.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    --debug  >  --verbose  >  --quiet  >  DEPLOYERRA_LOG_LEVEL  >  WARNING

Optional file output via DEPLOYERRA_LOG_FILE / DEPLOYERRA_LOG_FILE_LEVEL.

A sudo password handed to the tool is registered with ``add_secret``.
Every handler carries a filter that masks registered secrets, so a
command line or receipt that echoes the password is still safe to log.
"""

from __future__ import annotations

import logging
import sys

_MASK = "****"

# Console formats, most detailed first: (max level, format, datefmt)
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = ("%(message)s", None)

# File output always carries full detail
_FILE_FORMAT = (
    "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s",
    "%Y-%m-%d %H:%M:%S",
)

_secrets: set[str] = set()


def add_secret(secret: str | None) -> None:
    """Mask ``secret`` in every log record from now on."""
    if secret:
        _secrets.add(secret)


class _SecretRedactor(logging.Filter):
    """Replace registered secrets in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not _secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in _secrets:
            masked = masked.replace(secret, _MASK)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _console_format(numeric_level: int) -> tuple[str, str | None]:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if numeric_level <= threshold:
            return fmt, datefmt
    return _CONSOLE_DEFAULT


def _handler(
    handler: logging.Handler, level: int, fmt: str, datefmt: str | None
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handler.addFilter(_SecretRedactor())
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the console level.
    """
    console_level = _parse_level(level)
    console = logging.StreamHandler(sys.stderr)
    handlers = [_handler(console, console_level, *_console_format(console_level))]

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), file_level, *_FILE_FORMAT)
        )

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # Root passes everything any handler wants
    root.setLevel(min(h.level for h in handlers))

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
