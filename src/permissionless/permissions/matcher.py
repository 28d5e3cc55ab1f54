"""Wildcard matching of granted/denied patterns against requested keys.

A pattern without ``*`` matches by exact string equality. Each ``*``
matches any run of zero or more characters, and the pattern must cover
the whole requested key::

    matches_wildcard("write:articles.*", "write:articles.section1")  # True
    matches_wildcard("write:articles.*", "write:articles.")          # True
    matches_wildcard("write:articles.*", "write:articles")           # False

Matching is case-sensitive and knows nothing about the
``permission:context`` structure. Every other character in a pattern is
literal (``.`` matches a dot, not any character).
"""

from __future__ import annotations

import re

WILDCARD = "*"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a wildcard pattern to an anchored regular expression."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split(WILDCARD)), re.DOTALL)


class WildcardMatcher:
    """Matches patterns with a memo of compiled regular expressions.

    The memo is keyed by the literal pattern string, since the same
    granted/denied patterns are evaluated on every check. It is one of the
    engine's cache tiers and is cleared with the others.
    """

    __slots__ = ("_compiled",)

    def __init__(self) -> None:
        self._compiled: dict[str, re.Pattern[str]] = {}

    def matches(self, pattern: str, requested: str) -> bool:
        if WILDCARD not in pattern:
            return pattern == requested
        regex = self._compiled.get(pattern)
        if regex is None:
            regex = compile_pattern(pattern)
            self._compiled[pattern] = regex
        return regex.fullmatch(requested) is not None

    def first_match(self, patterns, requested: str) -> str | None:
        """Return the first pattern in ``patterns`` matching ``requested``."""
        for pattern in patterns:
            if self.matches(pattern, requested):
                return pattern
        return None

    def clear(self) -> None:
        self._compiled.clear()

    def __len__(self) -> int:
        return len(self._compiled)


def matches_wildcard(pattern: str, requested: str) -> bool:
    """Stateless form of :meth:`WildcardMatcher.matches`."""
    if WILDCARD not in pattern:
        return pattern == requested
    return compile_pattern(pattern).fullmatch(requested) is not None


__all__ = [
    "WILDCARD",
    "WildcardMatcher",
    "compile_pattern",
    "matches_wildcard",
]
