"""Permissionless: in-process authorization decision engine.

Given a user (id + role) and a requested permission, optionally scoped
by a context, decides allow/deny from an owned, validated configuration:

    engine = Permissionless({
        "roles": {
            "viewer": {"permissions": ["read:articles"]},
            "editor": {"permissions": ["write:articles"], "inherits": ["viewer"]},
        },
        "users": {"42": {"denies": ["write:*"]}},
    })

    engine.has_permission(User(id="1", role="editor"), "read", "articles")   # True
    engine.has_permission(User(id="42", role="editor"), "write", "articles") # False

Every mutation and configuration replacement invalidates all cache tiers
before the next read. Misconfiguration (unknown role, inheritance cycle)
raises instead of returning ``False``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

import httpx
from pydantic import ValidationError

from .audit import AuditAction, AuditEvent, JsonlAuditSink
from .config import DEFAULT_CONFIG_PATH, EngineSettings, load_settings_from_env
from .exceptions import (
    ConfigSourceError,
    ConfigurationInvalid,
    PermissionlessError,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from .logging import get_engine_logger
from .models import AccessDecision, PermissionConfig, RoleDefinition, User
from .permissions.cache import PermissionCache
from .permissions.decision import DEFAULT_RULES, CheckRequest, Rule, RuleFn, decide, permission_key
from .permissions.inheritance import RoleResolver, find_dependents
from .sources import fetch_config, load_config_file, watch_config_file

logger = logging.getLogger(__name__)

Subscriber = Callable[[AuditEvent], Any]
ConfigSource = Callable[[], Awaitable[Any]]


def _role_definition(
    role_name: str,
    permissions: Iterable[str],
    inherits: Optional[Iterable[str]],
) -> RoleDefinition:
    for field, value in (("permissions", permissions), ("inherits", inherits)):
        if isinstance(value, (str, bytes)):
            raise ConfigurationInvalid(
                f"Role {role_name} {field} must be an array of strings", role=role_name, field=field
            )
    try:
        return RoleDefinition.model_validate({"permissions": list(permissions), "inherits": list(inherits or ())})
    except (TypeError, ValidationError) as e:
        raise ConfigurationInvalid(f"Role {role_name} definition is invalid", role=role_name) from e


class Permissionless:
    """Role-based permission engine with inheritance, wildcards and overrides.

    Thread-safe: one re-entrant lock guards the configuration and the
    three cache tiers, so a mutator has exclusive access for the whole
    invalidate + write step.

    Args:
        config: Validated ``PermissionConfig`` or a raw configuration
            document. The engine keeps its own copy.
        rules: Ordered decision rules (defaults to deny override, grant
            override, role grant).
        settings: Host settings, used as defaults for reload operations.
    """

    def __init__(
        self,
        config: PermissionConfig | Mapping[str, Any] | None = None,
        *,
        rules: tuple[RuleFn, ...] = DEFAULT_RULES,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self._config = PermissionConfig.from_document(config if config is not None else {"roles": {}})
        self._rules = rules
        self._settings = settings or EngineSettings()
        self._cache = PermissionCache()
        self._lock = threading.RLock()
        self._subscribers: list[tuple[Subscriber, Optional[frozenset[str]]]] = []

        logger.info(
            "Permissionless initialized with %d roles and %d user overrides",
            len(self._config.roles),
            len(self._config.users),
        )

    @classmethod
    def from_settings(cls, settings: Optional[EngineSettings] = None) -> "Permissionless":
        """Build an engine from the configuration file named in ``settings``.

        Attaches a :class:`JsonlAuditSink` when ``settings.audit_log_path``
        is non-empty. Settings are loaded from the environment if omitted.
        """
        settings = settings or load_settings_from_env()
        engine = cls(load_config_file(settings.config_path), settings=settings)
        if settings.audit_log_path:
            engine.subscribe(JsonlAuditSink(settings.audit_log_path))
        return engine

    # ── Resolution ──────────────────────────────────────

    def resolve_permissions(self, role_name: str) -> tuple[str, ...]:
        """Effective permissions of a role, including inherited ones.

        Raises:
            RoleNotFound: the role or one of its ancestors is undefined.
            CircularInheritance: the role's inheritance graph has a cycle.
        """
        with self._lock:
            return RoleResolver(self._config.roles, self._cache.roles).resolve(role_name)

    def get_permissions_for_role(self, role_name: str) -> list[str]:
        """List form of :meth:`resolve_permissions`."""
        return list(self.resolve_permissions(role_name))

    # ── Decisions ───────────────────────────────────────

    def evaluate(self, user: User, permission: str, context: Optional[str] = None) -> AccessDecision:
        """Decide a check and report which rule decided it.

        The decision is memoized per ``(user.id, user.role, permission, context)``.
        """
        cache_key = (user.id, user.role, permission, context)
        with self._lock:
            cached = self._cache.get_decision(cache_key)
            if cached is not None:
                return cached

            request = CheckRequest(
                user=user,
                key=permission_key(permission, context),
                override=self._config.users.get(user.id),
                role_permissions=lambda: RoleResolver(self._config.roles, self._cache.roles).resolve(user.role),
                matcher=self._cache.matcher,
            )
            decision = decide(request, self._rules)
            self._cache.put_decision(cache_key, decision)

        if decision.rule == Rule.DENY_OVERRIDE:
            get_engine_logger(__name__, user_id=user.id, role=user.role).debug(
                "Denied %s by user override %s", decision.key, decision.pattern
            )
        return decision

    def has_permission(self, user: User, permission: str, context: Optional[str] = None) -> bool:
        """Check if ``user`` may perform ``permission`` (in ``context``).

        Raises:
            RoleNotFound: the user's role (or an ancestor) is undefined.
            CircularInheritance: the user's role graph has a cycle.
        """
        return self.evaluate(user, permission, context).allowed

    def check_all(self, user: User, permissions: Iterable[str], context: Optional[str] = None) -> bool:
        """True if ``user`` has every permission. Stops at the first denial."""
        for permission in permissions:
            if not self.has_permission(user, permission, context):
                return False
        return True

    def check_any(self, user: User, permissions: Iterable[str], context: Optional[str] = None) -> bool:
        """True if ``user`` has at least one permission. Stops at the first grant."""
        for permission in permissions:
            if self.has_permission(user, permission, context):
                return True
        return False

    # ── Role management ─────────────────────────────────

    def add_role(self, role_name: str, permissions: Iterable[str], inherits: Optional[Iterable[str]] = None) -> None:
        """Define a new role.

        Raises:
            RoleAlreadyExists: a role named ``role_name`` is already defined.
            ConfigurationInvalid: ``permissions``/``inherits`` are not
                sequences of strings (a bare string is rejected too).
        """
        with self._lock:
            if role_name in self._config.roles:
                raise RoleAlreadyExists(role_name)
            role = _role_definition(role_name, permissions, inherits)
            self._config.roles[role_name] = role
            self._cache.clear()

        logger.info("Added role %s (inherits: %s)", role_name, role.inherits)
        self._emit(
            AuditAction.ROLE_ADDED,
            role=role_name,
            permissions=list(role.permissions),
            inherits=list(role.inherits),
        )

    def remove_role(self, role_name: str) -> None:
        """Delete a role that no other role inherits from.

        Raises:
            RoleNotFound: no such role.
            RoleInUse: other roles list it in ``inherits``.
        """
        with self._lock:
            if role_name not in self._config.roles:
                raise RoleNotFound(role_name, f"Role {role_name} does not exist")
            dependents = find_dependents(self._config.roles, role_name)
            if dependents:
                raise RoleInUse(role_name, dependents)
            del self._config.roles[role_name]
            self._cache.clear()

        logger.info("Removed role %s", role_name)
        self._emit(AuditAction.ROLE_REMOVED, role=role_name)

    def add_permission_to_role(self, role_name: str, permission: str) -> None:
        """Append ``permission`` to a role's own permissions.

        Duplicates are kept here; resolution collapses them.

        Raises:
            RoleNotFound: no such role.
        """
        with self._lock:
            role = self._config.roles.get(role_name)
            if role is None:
                raise RoleNotFound(role_name)
            role.permissions.append(permission)
            self._cache.clear()

        logger.info("Added permission %s to role %s", permission, role_name)
        self._emit(AuditAction.PERMISSION_ADDED, role=role_name, permission=permission)

    # ── Configuration replacement ───────────────────────

    def replace_configuration(
        self,
        config: PermissionConfig | Mapping[str, Any],
        *,
        source: str = "replace",
    ) -> None:
        """Swap in a whole new configuration.

        The new configuration is validated first; on failure the active
        configuration and caches are left untouched.

        Raises:
            ConfigurationInvalid: the new document is malformed.
        """
        new_config = PermissionConfig.from_document(config)
        with self._lock:
            self._config = new_config
            self._cache.clear()

        logger.info(
            "Configuration reloaded from %s: %d roles, %d user overrides",
            source,
            len(new_config.roles),
            len(new_config.users),
        )
        self._emit(
            AuditAction.CONFIG_RELOADED,
            source=source,
            roles=len(new_config.roles),
            users=len(new_config.users),
        )

    def reload_from_file(self, path: Optional[str] = None) -> None:
        """Replace the configuration with the JSON document at ``path``.

        Defaults to ``settings.config_path``.

        Raises:
            ConfigSourceError: the file is missing or not JSON.
            ConfigurationInvalid: the document is malformed.
        """
        file_path = str(path or self._settings.config_path or DEFAULT_CONFIG_PATH)
        self.replace_configuration(load_config_file(file_path), source=f"file:{file_path}")

    async def reload_from_url(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Fetch the configuration over HTTP, then swap it in.

        Defaults to ``settings.config_url``.

        Raises:
            ConfigSourceError: no URL configured, or the fetch failed.
            ConfigurationInvalid: the fetched document is malformed.
        """
        target = url or self._settings.config_url
        if not target:
            raise ConfigSourceError("No configuration URL given or configured")
        timeout = self._settings.fetch_timeout_seconds
        document = await fetch_config(target, timeout=timeout, client=client)
        self.replace_configuration(document, source=f"url:{target}")

    async def reload_from(self, source: ConfigSource, *, name: str = "custom") -> None:
        """Await any async configuration source, then swap in its document.

        Errors raised by the source other than PermissionlessError are
        wrapped in :class:`ConfigSourceError`.
        """
        try:
            document = await source()
        except PermissionlessError:
            raise
        except Exception as e:
            raise ConfigSourceError(f"Configuration source {name} failed: {e}", source=name) from e
        self.replace_configuration(document, source=name)

    def watch(self, path: Optional[str] = None, *, interval: Optional[float] = None) -> asyncio.Task:
        """Start a file watcher task on the running event loop."""
        file_path = path or self._settings.config_path
        poll = interval if interval is not None else self._settings.watch_interval_seconds
        return asyncio.create_task(watch_config_file(self, file_path, interval=poll))

    # ── Introspection ───────────────────────────────────

    def list_roles(self) -> list[str]:
        with self._lock:
            return list(self._config.roles)

    def list_users(self) -> list[str]:
        """Ids of users with explicit grants or denies."""
        with self._lock:
            return list(self._config.users)

    def has_role(self, role_name: str) -> bool:
        with self._lock:
            return role_name in self._config.roles

    def get_configuration(self) -> PermissionConfig:
        """Deep copy of the active configuration."""
        with self._lock:
            return self._config.model_copy(deep=True)

    def clear_cache(self) -> None:
        """Drop every cached role resolution, compiled pattern and decision."""
        with self._lock:
            self._cache.clear()

    def cache_stats(self) -> dict[str, int]:
        with self._lock:
            return self._cache.stats()

    # ── Events ──────────────────────────────────────────

    def subscribe(self, callback: Subscriber, events: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """Call ``callback`` with an :class:`AuditEvent` after each change.

        Args:
            callback: Receives the event; its exceptions are logged, never raised.
            events: Limit to these actions (see :class:`AuditAction`); a single
                action name is accepted too. None = all.

        Returns:
            A function that removes the subscription.
        """
        if isinstance(events, str):
            events = (events,)
        entry = (callback, frozenset(events) if events is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers = [entry for entry in self._subscribers if entry[0] != callback]

    def _emit(self, action: str, **details: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        event = AuditEvent(action=action, details=details)
        for callback, events in subscribers:
            if events is not None and action not in events:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, action)

    def __repr__(self) -> str:
        return f"Permissionless(roles={len(self._config.roles)}, users={len(self._config.users)})"


__all__ = ["Permissionless"]
