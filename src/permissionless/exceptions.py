"""Exception hierarchy for the permissionless decision engine.

All errors inherit from PermissionlessError. This module provides:
- Error kinds with stable codes and actionable details (role / user id)
- ErrorRegistry for protocol mapping
- gRPC status mapping for hosts that expose the engine over gRPC

Usage:
    from permissionless.exceptions import RoleNotFound

    try:
        engine.has_permission(user, "read", "articles")
    except RoleNotFound as e:
        logger.error("misconfigured user: %s", e.details["role"])

None of these are ever downgraded to a ``False`` decision: a denied request
returns ``False``, a misconfigured one raises.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "PermissionlessError",
    "ConfigurationInvalid",
    "ConfigSourceError",
    "RoleNotFound",
    "RoleAlreadyExists",
    "RoleInUse",
    "CircularInheritance",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # gRPC helpers
    "get_grpc_status_code",
]


# ---- Exception Hierarchy ----------------------------------------------------


class PermissionlessError(Exception):
    """Base exception for the decision engine.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "ROLE_NOT_FOUND").
        message: Human-readable error description.
        details: Additional context as keyword arguments (role, user_id, ...).
    """

    code: str = "PERMISSIONLESS_ERROR"
    message: str = "Permission engine error"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigurationInvalid(PermissionlessError):
    """Configuration document is missing ``roles`` or has malformed fields."""

    code: str = "CONFIGURATION_INVALID"
    message: str = "Configuration is invalid"


class ConfigSourceError(PermissionlessError):
    """A configuration source (file, remote endpoint) could not be read."""

    code: str = "CONFIG_SOURCE_ERROR"
    message: str = "Failed to load configuration"


class RoleNotFound(PermissionlessError):
    """A referenced role does not exist."""

    code: str = "ROLE_NOT_FOUND"

    def __init__(self, role: str, message: str | None = None) -> None:
        super().__init__(message or f"Role {role} not found", role=role)
        self.role = role


class RoleAlreadyExists(PermissionlessError):
    """A role with the same name is already defined."""

    code: str = "ROLE_ALREADY_EXISTS"

    def __init__(self, role: str) -> None:
        super().__init__(f"Role {role} already exists", role=role)
        self.role = role


class RoleInUse(PermissionlessError):
    """Role removal blocked because other roles inherit from it."""

    code: str = "ROLE_IN_USE"

    def __init__(self, role: str, dependents: Iterable[str]) -> None:
        self.role = role
        self.dependents = tuple(dependents)
        super().__init__(
            f"Cannot remove role {role} as it is inherited by roles: {', '.join(self.dependents)}",
            role=role,
            dependents=self.dependents,
        )


class CircularInheritance(PermissionlessError):
    """Role inheritance graph contains a cycle."""

    code: str = "CIRCULAR_INHERITANCE"

    def __init__(self, role: str) -> None:
        super().__init__(f"Circular inheritance detected in role: {role}", role=role)
        self.role = role


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[PermissionlessError])


class ErrorRegistry:
    """Registry for mapping error codes back to exception classes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[PermissionlessError]] = {}

    def register(self, code: str, error_cls: type[PermissionlessError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[PermissionlessError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[PermissionlessError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("TENANT_SUSPENDED")
        class TenantSuspended(PermissionlessError):
            code = "TENANT_SUSPENDED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


for _cls in (
    PermissionlessError,
    ConfigurationInvalid,
    ConfigSourceError,
    RoleNotFound,
    RoleAlreadyExists,
    RoleInUse,
    CircularInheritance,
):
    error_registry.register(_cls.code, _cls)


# ---- gRPC Status Mapping ----------------------------------------------------


def get_grpc_status_code(error: PermissionlessError):
    """Map a PermissionlessError to a ``grpc.StatusCode``.

    grpc is imported locally; install the ``grpc`` extra to use this.
    """
    import grpc

    error_to_status = {
        "CONFIGURATION_INVALID": grpc.StatusCode.INVALID_ARGUMENT,
        "CONFIG_SOURCE_ERROR": grpc.StatusCode.UNAVAILABLE,
        "ROLE_NOT_FOUND": grpc.StatusCode.NOT_FOUND,
        "ROLE_ALREADY_EXISTS": grpc.StatusCode.ALREADY_EXISTS,
        "ROLE_IN_USE": grpc.StatusCode.FAILED_PRECONDITION,
        "CIRCULAR_INHERITANCE": grpc.StatusCode.FAILED_PRECONDITION,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)
