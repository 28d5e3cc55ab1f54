"""Configuration and request models.

The configuration document is the aggregate root the engine owns::

    { "roles": { "<name>": { "permissions": [...], "inherits": [...]? } },
      "users": { "<id>": { "permissions": [...]?, "denies": [...]? } }? }

``RoleDefinition``, ``UserOverride`` and ``PermissionConfig`` validate
that shape with pydantic. ``User`` and ``AccessDecision`` are the
request/response records of a permission check.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationInvalid


class RoleDefinition(BaseModel):
    """A named bundle of permissions with optional parent roles."""

    model_config = {"extra": "ignore"}

    permissions: list[str]
    inherits: list[str] = Field(default_factory=list)

    @field_validator("inherits", mode="before")
    @classmethod
    def _none_inherits(cls, v: Any) -> Any:
        return [] if v is None else v


class UserOverride(BaseModel):
    """Per-user grants and denies that take precedence over the role."""

    model_config = {"extra": "ignore"}

    permissions: list[str] = Field(default_factory=list)
    denies: list[str] = Field(default_factory=list)

    @field_validator("permissions", "denies", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class PermissionConfig(BaseModel):
    """Validated role and user-override configuration."""

    model_config = {"extra": "ignore"}

    roles: dict[str, RoleDefinition]
    users: dict[str, UserOverride] = Field(default_factory=dict)

    @field_validator("users", mode="before")
    @classmethod
    def _none_users(cls, v: Any) -> Any:
        return {} if v is None else v

    @classmethod
    def from_document(cls, data: Any) -> "PermissionConfig":
        """Validate a raw configuration document.

        Raises:
            ConfigurationInvalid: ``roles`` is missing or not an object, or a
                role/user entry has non-array ``permissions``/``inherits``/``denies``.
        """
        if isinstance(data, PermissionConfig):
            return data.model_copy(deep=True)
        if not isinstance(data, Mapping):
            raise ConfigurationInvalid(f"Configuration must be an object, got {type(data).__name__}")
        if not isinstance(data.get("roles"), Mapping):
            raise ConfigurationInvalid("Configuration must include roles object")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise _invalid_from_validation(exc) from exc

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the persisted document layout."""
        return self.model_dump(mode="json")


def _invalid_from_validation(exc: ValidationError) -> ConfigurationInvalid:
    """Turn the first pydantic error into an actionable ConfigurationInvalid."""
    error = exc.errors()[0]
    loc = tuple(error.get("loc", ()))
    section = loc[0] if loc else None

    if section == "roles" and len(loc) >= 3:
        role, field = loc[1], loc[2]
        return ConfigurationInvalid(f"Role {role} {field} must be an array of strings", role=role, field=field)
    if section == "users" and len(loc) >= 3:
        user_id, field = loc[1], loc[2]
        return ConfigurationInvalid(
            f"User {user_id} {field} must be an array of strings", user_id=user_id, field=field
        )
    if section == "roles" and len(loc) == 2:
        return ConfigurationInvalid(f"Role {loc[1]} must be an object", role=loc[1])
    if section == "users" and len(loc) == 2:
        return ConfigurationInvalid(f"User {loc[1]} must be an object", user_id=loc[1])
    return ConfigurationInvalid(f"Invalid configuration: {error.get('msg', exc)}")


@dataclass(frozen=True)
class User:
    """Subject of a permission check.

    Only ``id`` and ``role`` are inspected. Application-specific user fields
    stay with the caller; use :meth:`from_mapping` to drop them.
    """

    id: str
    role: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "User":
        return cls(id=str(data["id"]), role=str(data["role"]))


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of a single permission check.

    Attributes:
        allowed: Final boolean decision.
        rule: Name of the rule that decided (``deny_override``,
            ``grant_override``, ``role_grant`` or ``default_deny``).
        key: Full permission key that was matched (``permission:context``).
        pattern: Granted/denied pattern that matched, if any.
    """

    allowed: bool
    rule: str
    key: str
    pattern: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


__all__ = [
    "AccessDecision",
    "PermissionConfig",
    "RoleDefinition",
    "User",
    "UserOverride",
]
