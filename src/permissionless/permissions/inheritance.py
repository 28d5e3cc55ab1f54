"""Role inheritance resolution.

Provides:
- ``RoleResolver``: flattens a role's own permissions with everything it
  inherits, transitively, detecting cycles and dangling references.
- ``find_dependents()``: roles that list a given role in ``inherits``.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from ..exceptions import CircularInheritance, RoleNotFound
from ..models import RoleDefinition


def find_dependents(roles: Mapping[str, RoleDefinition], role_name: str) -> list[str]:
    """Names of roles that directly inherit from ``role_name``, in config order."""
    return [name for name, role in roles.items() if name != role_name and role_name in role.inherits]


def _dedupe(permissions: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(permissions))


class RoleResolver:
    """Depth-first resolver over a role graph.

    Results are memoized in ``cache`` (role name → tuple of permissions,
    insertion-ordered, duplicates collapsed). A role is cached only after
    its whole subtree resolved, so a failed resolution never leaves a
    partial entry behind, while fully resolved dependencies reached on
    the way are kept for sibling lookups.

    Args:
        roles: Role definitions of the active configuration snapshot.
        cache: Memo table owned by the engine; cleared on every mutation.

    Example::

        resolver = RoleResolver(config.roles, {})
        resolver.resolve("editor")
        # ('write:articles', 'read:articles')
    """

    __slots__ = ("_roles", "_cache")

    def __init__(self, roles: Mapping[str, RoleDefinition], cache: dict[str, tuple[str, ...]]) -> None:
        self._roles = roles
        self._cache = cache

    def resolve(self, role_name: str) -> tuple[str, ...]:
        """Return the effective permissions of ``role_name``.

        Raises:
            RoleNotFound: ``role_name`` or a role it inherits from is undefined.
            CircularInheritance: the role (transitively) inherits from itself;
                names the role at which the cycle was detected.
        """
        return self._resolve(role_name, set())

    def _resolve(self, role_name: str, path: set[str]) -> tuple[str, ...]:
        cached = self._cache.get(role_name)
        if cached is not None:
            return cached

        role = self._roles.get(role_name)
        if role is None:
            raise RoleNotFound(role_name)

        # path holds the roles currently being expanded above this one;
        # diamonds (two parents sharing an ancestor) are not cycles.
        if role_name in path:
            raise CircularInheritance(role_name)

        path.add(role_name)
        collected: list[str] = list(role.permissions)
        for parent in role.inherits:
            collected.extend(self._resolve(parent, path))
        path.discard(role_name)

        result = _dedupe(collected)
        self._cache[role_name] = result
        return result


__all__ = [
    "RoleResolver",
    "find_dependents",
]
