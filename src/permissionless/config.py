"""Engine settings for permissionless.

Pydantic-validated settings describing where the engine gets its
configuration document, where audit records go, and how it logs.
These are host settings, not the role/user configuration itself
(see :mod:`permissionless.models` for that).

Direct os.environ/os.getenv usage is limited to
:func:`load_settings_from_env`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = ".permissionless.json"
DEFAULT_AUDIT_LOG_PATH = "permissionless_audit.log"


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EngineSettings(BaseModel):
    """Host settings for a Permissionless engine.

    Environment variables:
        LOG_LEVEL                      : logging level
        LOG_JSON                       : JSON log format (true/false)
        PERMISSIONLESS_CONFIG_PATH     : JSON configuration document on disk
        PERMISSIONLESS_AUDIT_LOG_PATH  : JSONL audit file ("" disables)
        PERMISSIONLESS_CONFIG_URL      : remote configuration endpoint
        PERMISSIONLESS_FETCH_TIMEOUT   : remote fetch timeout in seconds
        PERMISSIONLESS_WATCH_INTERVAL  : file watch poll interval in seconds
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the engine",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Configuration sources
    config_path: str = Field(
        default=DEFAULT_CONFIG_PATH,
        description="Path of the JSON configuration document",
    )
    config_url: Optional[str] = Field(
        default=None,
        description="Remote configuration endpoint (http:// or https://)",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for remote configuration fetches",
    )
    watch_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Poll interval for the configuration file watcher",
    )

    # Audit
    audit_log_path: str = Field(
        default=DEFAULT_AUDIT_LOG_PATH,
        description="JSONL audit log path. Empty string disables the file sink.",
    )

    @field_validator("config_url")
    @classmethod
    def validate_config_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate remote configuration URL scheme."""
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("Config URL must start with http:// or https://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def load_settings_from_env() -> EngineSettings:
    """Load engine settings from environment variables.

    Returns:
        EngineSettings instance with values from environment or defaults.
    """
    import os

    return EngineSettings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        config_path=os.getenv("PERMISSIONLESS_CONFIG_PATH", DEFAULT_CONFIG_PATH),
        audit_log_path=os.getenv("PERMISSIONLESS_AUDIT_LOG_PATH", DEFAULT_AUDIT_LOG_PATH),
        config_url=os.getenv("PERMISSIONLESS_CONFIG_URL"),
        fetch_timeout_seconds=float(os.getenv("PERMISSIONLESS_FETCH_TIMEOUT", "10")),
        watch_interval_seconds=float(os.getenv("PERMISSIONLESS_WATCH_INTERVAL", "1.0")),
    )


__all__ = [
    "DEFAULT_AUDIT_LOG_PATH",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "LogLevel",
    "load_settings_from_env",
]
