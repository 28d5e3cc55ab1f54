"""Logging utilities for the permissionless engine.

This module provides:
- Logging configuration from EngineSettings
- Safe preview utilities for logged values
- Credential redaction (URL credentials, bearer tokens, api keys)
- Structured logging with user_id / role / action context
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import EngineSettings, LogLevel

# Config URLs may carry credentials; redact before logging.
# Group 1 of each pattern is kept, the rest is replaced.
SECRET_PATTERNS = [
    r"(://)[^/\s:@]+:[^/\s@]+(?=@)",  # user:password@host
    r"(?i)(bearer\s+)[a-zA-Z0-9._+/=-]+",
    r"(?i)([?&](?:token|key|api_key|access_token)=)[^&\s]+",
    r"(?i)(password\s*[:=]\s*)[\"']?[^\"'\s]+[\"']?",
]

CONTEXT_FIELDS = ("user_id", "role", "action")

_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", *CONTEXT_FIELDS,
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Single-line, length-bounded string form of ``value`` for logs."""
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())
    if len(s) > limit:
        return s[: limit - 1] + "…"
    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace credentials embedded in ``text`` with ``replacement``."""
    if not isinstance(text, str):
        return text
    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, lambda m: m.group(1) + replacement, result)
    return result


class PermissionlessFormatter(logging.Formatter):
    """Formatter emitting JSON (or plain text) with engine context.

    ``user_id``, ``role`` and ``action`` extras become top-level fields;
    any other extra is previewed and redacted.
    """

    def __init__(self, json_format: bool = True, redact: bool = True, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.json_format = json_format
        self.redact = redact

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.redact:
            message = redact_secrets(message)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                preview = safe_preview(value)
                log_data[key] = redact_secrets(preview) if self.redact else preview

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [f"[{log_data['timestamp']}]", log_data["level"], log_data["logger"]]
        parts.extend(f"{field}={log_data[field]}" for field in CONTEXT_FIELDS if field in log_data)
        parts.append(f": {log_data['message']}")
        if "exception" in log_data:
            parts.append("\n" + log_data["exception"])
        return " ".join(parts)


class PermissionlessLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps user_id / role onto every record.

    Usage:
        log = get_engine_logger(__name__, user_id=user.id, role=user.role)
        log.info("checked %s", key, action="has_permission")
    """

    def __init__(self, logger: logging.Logger, user_id: Optional[str] = None, role: Optional[str] = None):
        super().__init__(logger, {})
        self.user_id = user_id
        self.role = role

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        user_id = kwargs.pop("user_id", self.user_id)
        role = kwargs.pop("role", self.role)
        action = kwargs.pop("action", None)
        if user_id is not None:
            extra["user_id"] = user_id
        if role is not None:
            extra["role"] = role
        if action is not None:
            extra["action"] = action
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    settings: Optional[EngineSettings] = None,
    json_format: Optional[bool] = None,
    redact: bool = True,
) -> None:
    """Configure the root logger from ``settings``.

    Args:
        settings: EngineSettings (loaded from environment if None)
        json_format: Override ``settings.log_json``
        redact: Redact credentials from messages and extras
    """
    if settings is None:
        from .config import load_settings_from_env

        settings = load_settings_from_env()

    level = getattr(logging, LogLevel(settings.log_level).value, logging.INFO)
    use_json = settings.log_json if json_format is None else json_format

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(PermissionlessFormatter(json_format=use_json, redact=redact))
    root_logger.addHandler(console_handler)


def get_engine_logger(
    name: str,
    user_id: Optional[str] = None,
    role: Optional[str] = None,
) -> PermissionlessLoggerAdapter:
    """Logger adapter carrying user context (see PermissionlessLoggerAdapter)."""
    return PermissionlessLoggerAdapter(logging.getLogger(name), user_id=user_id, role=role)


__all__ = [
    "PermissionlessFormatter",
    "PermissionlessLoggerAdapter",
    "get_engine_logger",
    "redact_secrets",
    "safe_preview",
    "setup_logging",
]
