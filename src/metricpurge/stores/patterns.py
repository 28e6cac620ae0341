"""
Graphite-style path patterns.

A pattern is matched segment by segment. Within a segment:

- ``*`` matches any run of characters
- ``?`` matches one character
- ``[abc]`` / ``[a-z]`` / ``[!abc]`` match a character class
- ``{foo,bar}`` matches one of the alternatives

Wildcards never cross a ``.`` boundary.
"""

import re
from functools import lru_cache
from typing import Iterable

from ..models import split_path


def _segment_regex(segment: str) -> "re.Pattern[str]":
    out = []
    i = 0
    while i < len(segment):
        c = segment[i]
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[":
            end = segment.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = segment[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end
        elif c == "{":
            end = segment.find("}", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                alternatives = segment[i + 1 : end].split(",")
                out.append("(?:" + "|".join(re.escape(a) for a in alternatives) + ")")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out), re.DOTALL)


class PathPattern:
    """A compiled path pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._segments = tuple(_segment_regex(s) for s in split_path(pattern))

    @property
    def depth(self) -> int:
        return len(self._segments)

    def matches(self, segments: tuple[str, ...], limit_depth: bool = True) -> bool:
        """
        Test a path against the pattern.

        With ``limit_depth`` the path must have exactly the pattern's depth.
        Otherwise descendants of a matching prefix match as well.
        """
        if limit_depth and len(segments) != self.depth:
            return False
        if len(segments) < self.depth:
            return False
        return all(regex.fullmatch(seg) for regex, seg in zip(self._segments, segments))

    def __repr__(self) -> str:
        return f"PathPattern({self.pattern!r})"


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> PathPattern:
    return PathPattern(pattern)


def is_excluded(segments: tuple[str, ...], exclude_patterns: Iterable[str]) -> bool:
    """True if the path or one of its ancestors matches an exclude pattern."""
    return any(compile_pattern(p).matches(segments, limit_depth=False) for p in exclude_patterns)
