"""Glob pattern matching with ``**`` (doublestar) and ``{a,b}`` support.

Patterns are matched segment by segment against ``/``-separated paths:

- ``*``      any run of characters inside one segment
- ``?``      exactly one character
- ``**``     zero or more whole segments
- ``{a,b}``  alternation, local to the segment it appears in

A pattern without ``/``, ``*`` or ``?`` is a *bare name*: it matches when any
segment of the path equals it, so ``.git`` ignores a git directory at any depth.

Each ``**`` tries every possible split of the remaining path. Patterns with
many ``**`` segments therefore get expensive quickly; that is fine for the
handful of segments found in real paths.
"""

from __future__ import annotations

import fnmatch
import os
import re
from collections.abc import Sequence


def to_slash(path: str) -> str:
    """Convert OS-native separators to ``/``."""
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    if os.altsep and os.altsep != "/":
        path = path.replace(os.altsep, "/")
    return path


def is_bare_name(pattern: str) -> bool:
    return "/" not in pattern and "*" not in pattern and "?" not in pattern


def match_pattern(pattern: str, path: str) -> bool:
    """Check a single glob pattern against a path."""
    pattern = to_slash(pattern)
    path = to_slash(path)

    if is_bare_name(pattern):
        return pattern in path.split("/")

    return _match_segments(pattern.split("/"), path.split("/"))


def _match_segments(pat_parts: Sequence[str], name_parts: Sequence[str]) -> bool:
    pi, ni = 0, 0

    while pi < len(pat_parts) and ni < len(name_parts):
        if pat_parts[pi] == "**":
            rest = pat_parts[pi + 1 :]
            for skip in range(ni, len(name_parts) + 1):
                if _match_segments(rest, name_parts[skip:]):
                    return True
            return False

        if not match_segment(pat_parts[pi], name_parts[ni]):
            return False

        pi += 1
        ni += 1

    # Trailing ** consumes whatever is left, including nothing
    while pi < len(pat_parts) and pat_parts[pi] == "**":
        pi += 1

    return pi == len(pat_parts) and ni == len(name_parts)


def match_segment(pattern: str, name: str) -> bool:
    """Match one pattern segment against one path segment."""
    start = pattern.find("{")
    if start >= 0:
        end = pattern.find("}", start)
        if end >= 0:
            prefix = pattern[:start]
            suffix = pattern[end + 1 :]
            return any(
                match_segment(prefix + alt + suffix, name)
                for alt in pattern[start + 1 : end].split(",")
            )

    try:
        return fnmatch.fnmatchcase(name, pattern)
    except re.error:
        return False


class Matcher:
    """Evaluates paths against ordered include and ignore patterns.

    Ignore patterns always win over include patterns, and a matcher with no
    include patterns never matches anything.
    """

    def __init__(self, includes: Sequence[str], ignores: Sequence[str] = ()) -> None:
        self._includes = tuple(includes)
        self._ignores = tuple(ignores)

    @property
    def includes(self) -> tuple[str, ...]:
        return self._includes

    @property
    def ignores(self) -> tuple[str, ...]:
        return self._ignores

    def is_ignored(self, path: str) -> bool:
        return any(match_pattern(ign, path) for ign in self._ignores)

    def match(self, path: str) -> bool:
        if self.is_ignored(path):
            return False
        return any(match_pattern(inc, path) for inc in self._includes)
