"""Structured logging for the service.

Every record leaving the process is a single JSON object (or a plain line
when LOG_FORMAT=plain) carrying the request id of the request that emitted
it. Two kinds of data never reach the output in clear text:

- fields whose name is listed in SENSITIVE_KEYS_DEFAULT (gateway keys, raw
  user ids, connection strings), at any nesting depth
- credentials embedded in connection URLs inside string values, which store
  drivers like to include in their error messages

Raw principal ids are logged as ``hash_for_log(...)`` digests instead.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from civicsync.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "secret",
        "token",
        "access_token",
        "gateway_key",
        "x-gateway-key",
        "app_gateway_keys",
        "x-user-id",
        "principal_id",
        "user_id",
        "redis_url",
        "mongo_uri",
    }
)

# user:password@ in redis://, rediss://, mongodb:// and mongodb+srv:// URLs
_URL_CREDENTIALS = re.compile(r"(?P<scheme>(?:rediss?|mongodb(?:\+srv)?)://)[^@/\s]+@")

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_for_log(value: str) -> str:
    """Return a short, stable digest of an identifier for log correlation."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def scrub_credentials(text: str) -> str:
    """Mask the userinfo part of store connection URLs in ``text``."""

    return _URL_CREDENTIALS.sub(rf"\g<scheme>{REDACTED}@", text)


def redact(value: Any, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Return ``value`` with sensitive keys masked and URL credentials scrubbed.

    Mappings, lists and tuples are walked recursively; key matching is
    case-insensitive.
    """

    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive_keys) for item in value)
    if isinstance(value, str):
        return scrub_credentials(value)
    return value


def extra_fields(record: LogRecord, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> dict[str, Any]:
    """Collect the ``extra=`` fields of a record, redacted."""

    extras = {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }
    return redact(extras, sensitive_keys)


class RequestIdFilter(logging.Filter):
    """Stamp the current request id on records that lack one."""

    def filter(self, record: LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact extra fields in place, so any formatter sees safe values."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:
        for key, value in extra_fields(record, self.sensitive_keys).items():
            setattr(record, key, value)
        if isinstance(record.msg, str):
            record.msg = scrub_credentials(record.msg)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    ``static_fields`` (service name, environment) are merged into every
    record; record extras win on conflicts.
    """

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        static_fields: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.static_fields = dict(static_fields or {})

    def format(self, record: LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": scrub_credentials(record.getMessage()),
            **self.static_fields,
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(extra_fields(record, self.sensitive_keys))

        if record.exc_info:
            payload["exc_info"] = scrub_credentials(self.formatException(record.exc_info))

        return json.dumps(payload, default=str)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(log_settings.file_path or "logs/civicsync.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the redacting handler on the root logger.

    Safe to call more than once; previous root handlers are replaced.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log
    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(
            JsonFormatter(static_fields={"service": "civicsync", "env": settings.app_env})
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # uvicorn installs its own handlers
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
    logging.getLogger("pymongo").setLevel(max(level, logging.INFO))
