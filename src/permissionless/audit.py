"""Audit events and the JSONL file sink.

The engine notifies subscribers with an :class:`AuditEvent` after each
successful mutation or reload. :class:`JsonlAuditSink` is a subscriber
that appends one JSON record per line::

    {"timestamp": "2026-10-16T12:00:00Z", "action": "role_added",
     "details": {"role": "moderator", "permissions": [...], "inherits": [...]}}
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AuditAction:
    """Event names emitted by the engine."""

    ROLE_ADDED = "role_added"
    ROLE_REMOVED = "role_removed"
    PERMISSION_ADDED = "permission_added"
    CONFIG_RELOADED = "config_reloaded"

    ALL = frozenset({"role_added", "role_removed", "permission_added", "config_reloaded"})


class AuditEvent(BaseModel):
    """Timestamped structured record of an engine change."""

    model_config = {"frozen": True}

    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JsonlAuditSink:
    """Append-only JSON Lines audit file.

    Use as an engine subscriber::

        engine.subscribe(JsonlAuditSink("permissionless_audit.log"))
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.info("JsonlAuditSink writing to %s", self.path)

    def __call__(self, event: AuditEvent) -> None:
        line = event.model_dump_json()
        with self._lock, open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def __repr__(self) -> str:
        return f"JsonlAuditSink(path={str(self.path)!r})"


__all__ = [
    "AuditAction",
    "AuditEvent",
    "JsonlAuditSink",
]
