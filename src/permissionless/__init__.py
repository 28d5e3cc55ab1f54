from .audit import AuditAction, AuditEvent, JsonlAuditSink
from .config import EngineSettings, LogLevel, load_settings_from_env
from .engine import Permissionless
from .exceptions import (
    CircularInheritance,
    ConfigSourceError,
    ConfigurationInvalid,
    PermissionlessError,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from .logging import (
    PermissionlessFormatter,
    PermissionlessLoggerAdapter,
    get_engine_logger,
    redact_secrets,
    safe_preview,
    setup_logging,
)
from .models import AccessDecision, PermissionConfig, RoleDefinition, User, UserOverride
from .permissions import Rule, RoleResolver, WildcardMatcher, matches_wildcard
from .sources import fetch_config, load_config_file, watch_config_file

__all__ = [
    'Permissionless',
    'User',
    'AccessDecision',
    'PermissionConfig',
    'RoleDefinition',
    'UserOverride',
    'Rule',
    'RoleResolver',
    'WildcardMatcher',
    'matches_wildcard',
    'PermissionlessError',
    'ConfigurationInvalid',
    'ConfigSourceError',
    'RoleNotFound',
    'RoleAlreadyExists',
    'RoleInUse',
    'CircularInheritance',
    'AuditAction',
    'AuditEvent',
    'JsonlAuditSink',
    'EngineSettings',
    'LogLevel',
    'load_settings_from_env',
    'load_config_file',
    'fetch_config',
    'watch_config_file',
    'PermissionlessFormatter',
    'PermissionlessLoggerAdapter',
    'get_engine_logger',
    'redact_secrets',
    'safe_preview',
    'setup_logging',
]
