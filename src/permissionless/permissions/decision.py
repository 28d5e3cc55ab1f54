"""Ordered decision rules for a single permission check.

Decision logic (first rule that fires wins, later rules are not consulted):
1. ``deny_override``: a user deny pattern matches the key → DENY
2. ``grant_override``: a user grant pattern matches the key → ALLOW
3. ``role_grant``: a pattern in the role's effective set matches → ALLOW
4. otherwise → DENY (``default_deny``)

An explicit deny beats the same user's explicit grant and everything the
role provides. Each rule is a plain function so its precedence can be
tested on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ..models import AccessDecision, User, UserOverride
from .matcher import WildcardMatcher


class Rule:
    """Names of the decision rules, in evaluation order."""

    DENY_OVERRIDE = "deny_override"
    GRANT_OVERRIDE = "grant_override"
    ROLE_GRANT = "role_grant"
    DEFAULT_DENY = "default_deny"

    ORDER = ("deny_override", "grant_override", "role_grant")


def permission_key(permission: str, context: Optional[str] = None) -> str:
    """Build the key patterns are matched against.

    An empty context is treated like no context: ``"read"`` not ``"read:"``.
    """
    return f"{permission}:{context}" if context else permission


@dataclass(frozen=True)
class CheckRequest:
    """Everything a rule needs to decide one check.

    ``role_permissions`` is a callable so the role graph is only resolved
    when the override rules did not decide.
    """

    user: User
    key: str
    override: Optional[UserOverride]
    role_permissions: Callable[[], tuple[str, ...]]
    matcher: WildcardMatcher


RuleFn = Callable[[CheckRequest], Optional[AccessDecision]]


def deny_override(request: CheckRequest) -> Optional[AccessDecision]:
    if request.override is None:
        return None
    pattern = request.matcher.first_match(request.override.denies, request.key)
    if pattern is None:
        return None
    return AccessDecision(allowed=False, rule=Rule.DENY_OVERRIDE, key=request.key, pattern=pattern)


def grant_override(request: CheckRequest) -> Optional[AccessDecision]:
    if request.override is None:
        return None
    pattern = request.matcher.first_match(request.override.permissions, request.key)
    if pattern is None:
        return None
    return AccessDecision(allowed=True, rule=Rule.GRANT_OVERRIDE, key=request.key, pattern=pattern)


def role_grant(request: CheckRequest) -> Optional[AccessDecision]:
    # RoleNotFound / CircularInheritance propagate from here
    pattern = request.matcher.first_match(request.role_permissions(), request.key)
    if pattern is None:
        return None
    return AccessDecision(allowed=True, rule=Rule.ROLE_GRANT, key=request.key, pattern=pattern)


DEFAULT_RULES: tuple[RuleFn, ...] = (deny_override, grant_override, role_grant)


def decide(request: CheckRequest, rules: tuple[RuleFn, ...] = DEFAULT_RULES) -> AccessDecision:
    """Run ``rules`` in order and return the first decision, else deny."""
    for rule in rules:
        decision = rule(request)
        if decision is not None:
            return decision
    return AccessDecision(allowed=False, rule=Rule.DEFAULT_DENY, key=request.key)


__all__ = [
    "DEFAULT_RULES",
    "CheckRequest",
    "Rule",
    "RuleFn",
    "decide",
    "deny_override",
    "grant_override",
    "permission_key",
    "role_grant",
]
