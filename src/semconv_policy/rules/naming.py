"""
Identifier grammar and dotted-namespace helpers.

Attribute and metric names are lowercase segments of letters and digits,
separated by single ``.`` or ``_``, starting with a letter::

    ^[a-z][a-z0-9]*([._][a-z0-9]+)*$

Usage::

    from semconv_policy.rules.naming import is_valid_name, namespaces_of

    is_valid_name("http.request.method")   # True
    is_valid_name("1foo.bar")              # False
    namespaces_of("a.b.c")                 # ["a", "a.b"]
"""

from __future__ import annotations

import re

NAME_PATTERN = r"^[a-z][a-z0-9]*([._][a-z0-9]+)*$"
NAME_RE = re.compile(NAME_PATTERN)

NAMESPACE_SEPARATOR = "."


def is_valid_name(name: str) -> bool:
    # fullmatch: "$" alone would accept a trailing newline
    return bool(name) and NAME_RE.fullmatch(name) is not None


def namespaces_of(name: str) -> list[str]:
    """Every proper dotted prefix of *name*, shortest first."""
    parts = name.split(NAMESPACE_SEPARATOR)
    return [NAMESPACE_SEPARATOR.join(parts[:i]) for i in range(1, len(parts))]


def namespace_of(name: str) -> str | None:
    """The immediate namespace of *name*, or ``None`` for a bare name."""
    if NAMESPACE_SEPARATOR not in name:
        return None
    return name.rsplit(NAMESPACE_SEPARATOR, 1)[0]


def constant_key(name: str) -> str:
    """Key under which generated code exposes *name* as a constant."""
    return name.replace(".", "_")


def contains_word(text: str | None, word: str) -> bool:
    """Case-sensitive substring test; empty *text* or *word* never matches."""
    if not text or not word:
        return False
    return word in text
