from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

# npmx_connector/logging_config.py
# JSON log lines for the connector, tagged with the id of the HTTP request
# that produced them.

DEFAULT_LOG_FILE = "connector.log"
SECURITY_LOG_FILE = "security.log"
SECURITY_LOGGER = "npmx_connector.security"

_request_id: ContextVar[str | None] = ContextVar("npmx_request_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "request_id", "taskName"}


def set_request_id(value: str | None) -> Token:
    return _request_id.set(value)


def get_request_id() -> str | None:
    return _request_id.get()


def reset_request_id(token: Token) -> None:
    try:
        _request_id.reset(token)
    except ValueError:
        # Token minted in another context (e.g. a worker thread); nothing to undo.
        pass


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, extras."""

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = getattr(record, "request_id", None)
        if rid:
            line["request_id"] = rid
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            line["extra"] = extra
        return json.dumps(line, ensure_ascii=True)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        rid = get_request_id()
        if rid or not hasattr(record, "request_id"):
            record.request_id = rid
        return True


def default_log_dir() -> Path:
    override = os.getenv("NPMX_CONNECTOR_LOG_DIR")
    base = Path(override) if override else Path.home() / ".npmx-connector" / "logs"
    return base.expanduser().resolve()


def _handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    return handler


def init_logging(
    log_dir: str | os.PathLike[str] | None = None,
    *,
    level: str = "INFO",
    filename: str = DEFAULT_LOG_FILE,
) -> Path:
    """Route root logging to ``<log_dir>/<filename>`` and stderr as JSON lines.

    Rejected credentials additionally land in ``security.log`` next to it.
    Calling this again replaces the root handlers. Returns the main log path.
    """
    base = Path(log_dir).expanduser().resolve() if log_dir else default_log_dir()
    base.mkdir(parents=True, exist_ok=True)
    log_path = base / filename
    formatter = StructuredJsonFormatter()

    root = logging.getLogger()
    resolved = logging.getLevelName(str(level).upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.addHandler(
        _handler(
            RotatingFileHandler(
                log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
            ),
            formatter,
        )
    )
    root.addHandler(_handler(logging.StreamHandler(), formatter))

    security = logging.getLogger(SECURITY_LOGGER)
    security.setLevel(logging.INFO)
    for old in list(security.handlers):
        security.removeHandler(old)
        old.close()
    security.addHandler(
        _handler(
            RotatingFileHandler(
                base / SECURITY_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8"
            ),
            formatter,
        )
    )
    return log_path


__all__ = [
    "RequestContextFilter",
    "StructuredJsonFormatter",
    "get_request_id",
    "init_logging",
    "reset_request_id",
    "set_request_id",
]
