"""Permission resolution core.

Defines:
- RoleResolver: flatten role inheritance with cycle detection
- WildcardMatcher: ``*`` pattern matching with compiled-pattern memo
- Decision rules: deny override → grant override → role grant
- PermissionCache: role / pattern / decision cache tiers
"""

from .cache import DecisionKey, PermissionCache
from .decision import (
    DEFAULT_RULES,
    CheckRequest,
    Rule,
    RuleFn,
    decide,
    deny_override,
    grant_override,
    permission_key,
    role_grant,
)
from .inheritance import RoleResolver, find_dependents
from .matcher import WILDCARD, WildcardMatcher, compile_pattern, matches_wildcard

__all__ = [
    "DEFAULT_RULES",
    "WILDCARD",
    "CheckRequest",
    "DecisionKey",
    "PermissionCache",
    "RoleResolver",
    "Rule",
    "RuleFn",
    "WildcardMatcher",
    "compile_pattern",
    "decide",
    "deny_override",
    "find_dependents",
    "grant_override",
    "matches_wildcard",
    "permission_key",
    "role_grant",
]
