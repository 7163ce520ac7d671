"""
Path pattern compiler for the Route Guardian.

A pattern is literal text mixed with typed placeholders and the generic
wildcard. Placeholders are recognised as whole tokens ahead of ``*`` so the
wildcard's character class never sees their braces.
"""

import re
from functools import lru_cache
from typing import Dict, Pattern

from .models import WILDCARD


INTEGER_WILDCARD = "{int}"
DECIMAL_WILDCARD = "{dec}"
ALPHANUMERIC_WILDCARD = "{str}"
GUID_WILDCARD = "{guid}"

# Bounded so patterns dropped by a reload age out of the cache
MATCHER_CACHE_SIZE = 1024

# Order matters: typed placeholders first, generic wildcard last.
PLACEHOLDER_EXPRESSIONS: Dict[str, str] = {
    INTEGER_WILDCARD: r"[+-]?(?<!\.)\b[0-9]+\b(?!\.[0-9])",
    DECIMAL_WILDCARD: r"[+-]?(?:\d*\.)?\d+",
    ALPHANUMERIC_WILDCARD: r"[a-zA-Z0-9_-]+",
    GUID_WILDCARD: r"[{]?[0-9a-fA-F]{8}-([0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}[}]?",
    # Not a match-anything wildcard: only "/", "?", "+" and word characters.
    WILDCARD: r"[\/?\w+]*",
}

_TOKENIZER = re.compile("(" + "|".join(re.escape(token) for token in PLACEHOLDER_EXPRESSIONS) + ")")


class PathMatcher:
    """Anchored whole-path matcher for one pattern."""

    def __init__(self, pattern: str, expression: Pattern):
        self.pattern = pattern
        self.expression = expression

    def matches(self, path: str) -> bool:
        return self.expression.fullmatch(path.lower()) is not None

    def __repr__(self) -> str:
        return f"PathMatcher({self.pattern!r} -> {self.expression.pattern!r})"


def translate(pattern: str) -> str:
    """Translate a path pattern into an (unanchored) regular expression."""
    parts = []
    for index, chunk in enumerate(_TOKENIZER.split(pattern.lower())):
        if not chunk:
            continue
        # re.split with one capture group puts the tokens at odd indexes
        if index % 2:
            parts.append(PLACEHOLDER_EXPRESSIONS[chunk])
        else:
            parts.append(re.escape(chunk))
    return "".join(parts)


@lru_cache(maxsize=MATCHER_CACHE_SIZE)
def compile_pattern(pattern: str) -> PathMatcher:
    """Compile a path pattern into a cached matcher."""
    return PathMatcher(pattern, re.compile(translate(pattern)))
