"""
PathMatcher — glob evaluation relative to a project root.

Supported syntax:
- ``**``     zero or more directories (must be a whole segment)
- ``*``      any run of characters inside one segment
- ``?``      one character inside one segment
- ``[abc]``  character class, ``[!abc]`` negated
- ``{a,b}``  alternation inside one segment

Matching is case-sensitive and anchored at both ends: ``*.py`` only matches
files at the project root, use ``**/*.py`` for any depth.
"""

import os
import posixpath
import re
from pathlib import Path
from typing import Iterable

from .errors import MatchError

__all__ = [
    "PathMatcher",
    "translate_glob",
    "validate_glob",
]


def _find_class_end(segment: str, start: int) -> int:
    """Index of the ']' closing the class opened at segment[start], or -1."""
    i = start + 1
    if i < len(segment) and segment[i] == "!":
        i += 1
    if i < len(segment) and segment[i] == "]":
        i += 1
    while i < len(segment):
        if segment[i] == "]":
            return i
        i += 1
    return -1


def _find_brace_end(segment: str, start: int) -> int:
    """Index of the '}' closing the brace opened at segment[start], or -1."""
    depth = 0
    for i in range(start, len(segment)):
        if segment[i] == "{":
            depth += 1
        elif segment[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_alternatives(body: str) -> list[str]:
    """Split a brace body on top-level commas."""
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in body:
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        current += ch
    parts.append(current)
    return parts


def _translate_segment(segment: str, pattern: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(segment):
        ch = segment[i]
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = _find_class_end(segment, i)
            if end < 0:
                raise MatchError("unbalanced '[' in glob", pattern)
            body = segment[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end
        elif ch == "{":
            end = _find_brace_end(segment, i)
            if end < 0:
                raise MatchError("unbalanced '{' in glob", pattern)
            alternatives = _split_alternatives(segment[i + 1:end])
            out.append(
                "(?:" + "|".join(_translate_segment(alt, pattern) for alt in alternatives) + ")"
            )
            i = end
        elif ch == "}":
            raise MatchError("unbalanced '}' in glob", pattern)
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def translate_glob(pattern: str) -> str:
    """Translate a glob into an anchored regular expression source.

    Raises:
        MatchError: If the pattern is empty, absolute or malformed.
    """
    if not pattern or not pattern.strip():
        raise MatchError("empty glob pattern", pattern)
    if pattern.startswith("/"):
        raise MatchError("glob must be relative to the project root", pattern)

    segments = pattern.split("/")
    parts: list[str] = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            parts.append(".*" if last else "(?:[^/]+/)*")
            continue
        if "**" in segment:
            raise MatchError("'**' must be a whole path segment", pattern)
        if not segment:
            raise MatchError("empty path segment in glob", pattern)
        parts.append(_translate_segment(segment, pattern) + ("" if last else "/"))

    return r"\A" + "".join(parts) + r"\Z"


def validate_glob(pattern: str) -> None:
    """Raise MatchError if the glob cannot be compiled."""
    try:
        re.compile(translate_glob(pattern))
    except re.error as e:
        raise MatchError(f"invalid glob ({e})", pattern) from e


class PathMatcher:
    """Evaluates file paths against glob patterns.

    Compiled patterns are cached per instance; a matcher is cheap to build
    and tests create one per project root.
    """

    def __init__(self, project_root: str | Path = ".") -> None:
        self.root = os.path.abspath(str(project_root))
        self._cache: dict[str, re.Pattern[str]] = {}

    def compile(self, pattern: str) -> re.Pattern[str]:
        """Compile (and cache) a glob.

        Raises:
            MatchError: If the glob is malformed.
        """
        compiled = self._cache.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(translate_glob(pattern))
            except re.error as e:
                raise MatchError(f"invalid glob ({e})", pattern) from e
            self._cache[pattern] = compiled
        return compiled

    def relativize(self, path: str | Path) -> str | None:
        """Return the path relative to the project root, '/'-separated.

        Returns None for paths outside the project root.
        """
        raw = str(path).replace("\\", "/")
        if not raw:
            return None
        if os.path.isabs(raw):
            rel = os.path.relpath(raw, self.root).replace("\\", "/")
        else:
            rel = posixpath.normpath(raw)
        if rel == ".." or rel.startswith("../") or rel == ".":
            return None
        return rel

    def matches(self, pattern: str, path: str | Path) -> bool:
        """True if the path matches the glob."""
        rel = self.relativize(path)
        if rel is None:
            return False
        return self.compile(pattern).match(rel) is not None

    def first_match(self, patterns: Iterable[str], path: str | Path) -> str | None:
        """Return the first pattern matching the path, or None.

        Patterns are OR-ed; the returned pattern explains the match.
        """
        rel = self.relativize(path)
        if rel is None:
            return None
        for pattern in patterns:
            if self.compile(pattern).match(rel) is not None:
                return pattern
        return None

    def matches_any(self, patterns: Iterable[str], path: str | Path) -> bool:
        return self.first_match(patterns, path) is not None
