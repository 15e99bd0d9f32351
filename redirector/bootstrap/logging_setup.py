"""Structured logging for the redirector.

Every module logs through a ``CorrelationLoggerAdapter`` on a child of the
``redirector`` logger. ``configure_logging`` installs exactly one handler on
that parent: stdout or a rotating file, JSON lines or plain text.

Redirect targets routinely carry credentials in their query strings
(``?token=...``), so string extras pass through ``redact_sensitive`` before
they are written. Only the secret part is masked; the rest of the URL stays
readable.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from redirector.domain.correlation_id import CorrelationLoggerAdapter

LOGGER_NAME = "redirector"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5
REDACTED = "[REDACTED]"

AUTHORIZATION_PATTERN = re.compile(r"(?i)\b((?:proxy-)?authorization\s*[:=]\s*).+")
SECRET_PARAMETER_PATTERN = re.compile(
    r"(?i)\b((?:api[_-]?)?key|[a-z_]*token|signature|sig|password|passwd|[a-z_]*secret)"
    r"(\s*[=:]\s*)([^&;\s]+)"
)
OPAQUE_RUN_PATTERN = re.compile(r"[A-Za-z0-9+_-]{32,}={0,2}")

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "correlation_id", "component"}


def _mask_opaque_run(match: "re.Match[str]") -> str:
    run = match.group(0)
    has_digit = any(char.isdigit() for char in run)
    has_alpha = any(char.isalpha() for char in run)
    return REDACTED if has_digit and has_alpha else run


def redact_sensitive(value: Optional[str]) -> Optional[str]:
    """Mask credentials inside ``value`` and leave the surrounding text."""
    if not value:
        return value

    value = AUTHORIZATION_PATTERN.sub(lambda m: m.group(1) + REDACTED, value)
    value = SECRET_PARAMETER_PATTERN.sub(
        lambda m: m.group(1) + m.group(2) + REDACTED, value
    )
    return OPAQUE_RUN_PATTERN.sub(_mask_opaque_run, value)


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Default correlation_id for records logged outside an adapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Return the fields a caller attached to ``record`` through ``extra``."""
    extras = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRIBUTES or key.startswith("_"):
            continue
        extras[key] = redact_sensitive(value) if isinstance(value, str) else value
    return extras


class JsonFormatter(logging.Formatter):
    """One JSON object per line, keys sorted."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = record_extras(record)
        log_data.update(
            timestamp=self.formatTime(record, self.datefmt),
            level=record.levelname,
            correlation_id=getattr(record, "correlation_id", "-"),
            component=getattr(record, "component", "unknown"),
            message=record.getMessage(),
        )
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, sort_keys=True, default=str)


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    handler: logging.Handler
    if destination and destination.lower() != "stdout":
        target_path = Path(destination)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            target_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    formatter = (
        JsonFormatter(datefmt=DATE_FORMAT)
        if use_json
        else logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Replace any handlers on the project logger with a freshly built one."""
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    while logger.handlers:
        stale = logger.handlers.pop()
        stale.close()
    logger.addHandler(_build_handler(destination, numeric_level, use_json))

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": destination or "stdout",
            "use_json": use_json,
            "log_level": logging.getLevelName(numeric_level),
        },
    )
    return adapter
