"""Cache tiers for resolved roles, compiled patterns and decisions.

All three tiers are valid only for the configuration snapshot they were
computed from, and are cleared together.
"""

from __future__ import annotations

from typing import Optional

from ..models import AccessDecision
from .matcher import WildcardMatcher

DecisionKey = tuple[str, str, str, Optional[str]]


class PermissionCache:
    """Holds the per-role, per-pattern and per-decision memo tables.

    Decision keys are ``(user_id, role, permission, context)`` with ``context``
    kept as given, so ``None`` and ``""`` never collide with each other or
    with a present context value.
    """

    __slots__ = ("roles", "matcher", "decisions")

    def __init__(self) -> None:
        self.roles: dict[str, tuple[str, ...]] = {}
        self.matcher = WildcardMatcher()
        self.decisions: dict[DecisionKey, AccessDecision] = {}

    def get_decision(self, key: DecisionKey) -> AccessDecision | None:
        return self.decisions.get(key)

    def put_decision(self, key: DecisionKey, decision: AccessDecision) -> None:
        self.decisions[key] = decision

    def clear(self) -> None:
        """Invalidate every tier."""
        self.roles.clear()
        self.matcher.clear()
        self.decisions.clear()

    def stats(self) -> dict[str, int]:
        return {
            "roles": len(self.roles),
            "patterns": len(self.matcher),
            "decisions": len(self.decisions),
        }


__all__ = ["DecisionKey", "PermissionCache"]
