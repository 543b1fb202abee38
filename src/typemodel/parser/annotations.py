"""Annotation comments.

Recognised forms (marker `sourcery`):

    // sourcery: skipEquality, name = "value", limit = 3
    /* sourcery: key */
    // sourcery:begin: key = 1          (applies until the matching end)
    // sourcery:begin:Scope: key        (named region)
    // sourcery:end
    // sourcery:end:Scope
    // sourcery:file: key               (file-level annotation)

Values are JSON-like: quoted strings, integers, floats, booleans, lists
`[a, b]` and maps `[k: v]` / `{k: v}`. Anything else is kept as text.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .scanning import find_matching, find_top_level, split_top_level

MARKER = "sourcery"

_MARKER_RE = re.compile(
    rf"^{MARKER}:(?:(?P<directive>begin|end|file)(?::(?P<scope>[A-Za-z_][\w.]*))?(?::|$)|(?!(?:begin|end|file|inline)\b))"
)
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?$")


class AnnotationDirective(str, Enum):
    INLINE = "inline"
    BEGIN = "begin"
    END = "end"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class AnnotationComment:
    directive: AnnotationDirective
    annotations: Dict[str, Any] = field(default_factory=dict)
    scope: Optional[str] = None


def parse_value(text: str) -> Any:
    """Parse one annotation value; malformed input comes back as a string."""
    value = text.strip()
    if not value:
        return ""
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    if value.startswith('"'):
        if value.endswith('"') and len(value) >= 2:
            try:
                return json.loads(value)
            except ValueError:
                return value[1:-1]
        return value
    if value[0] in "[{" and find_matching(value, 0, angle=False) == len(value) - 1:
        return _parse_collection(value)
    return value


def _parse_collection(value: str) -> Any:
    body = value[1:-1].strip()
    if body == ":":
        return {}
    if not body:
        return {} if value[0] == "{" else []
    items = split_top_level(body, angle=False)
    first_colon, _ = find_top_level(items[0], (":",), angle=False)
    if first_colon == -1 and value[0] == "[":
        return [parse_value(item) for item in items]
    result: Dict[str, Any] = {}
    for item in items:
        colon, _ = find_top_level(item, (":",), angle=False)
        if colon == -1:
            # Mixed list/map spelling; keep the text rather than guessing.
            return value
        key = parse_value(item[:colon])
        result[str(key)] = parse_value(item[colon + 1 :])
    return result


def parse_line(text: str) -> Dict[str, Any]:
    """Parse a `key, key = value` list. Later duplicates win."""
    annotations: Dict[str, Any] = {}
    for part in split_top_level(text, angle=False):
        eq, _ = find_top_level(part, ("=",), angle=False)
        if eq == -1:
            key, value = part.strip(), True
        else:
            key, value = part[:eq].strip(), parse_value(part[eq + 1 :])
        if key:
            annotations[key] = value
    return annotations


def parse_arguments(values: Iterable[str]) -> Dict[str, Any]:
    """Parse `--args` style values; each may itself be a comma list."""
    return parse_line(",".join(values))


def comment_lines(comment: str) -> List[str]:
    """Strip comment delimiters and return the content lines."""
    text = comment.strip()
    if text.startswith("/*"):
        text = text[2:]
        if text.endswith("*/"):
            text = text[:-2]
        lines = []
        for line in text.splitlines():
            line = line.strip()
            if line.startswith("*"):
                line = line.lstrip("*").strip()
            lines.append(line)
        return lines
    return [line.strip().lstrip("/").strip() for line in text.splitlines()]


def classify(comment: str) -> List[AnnotationComment]:
    """Return the annotation directives found in a comment, in order."""
    found: List[AnnotationComment] = []
    for line in comment_lines(comment):
        match = _MARKER_RE.match(line)
        if not match:
            continue
        directive = AnnotationDirective(match.group("directive") or "inline")
        payload = line[match.end() :]
        found.append(
            AnnotationComment(
                directive=directive,
                annotations=parse_line(payload),
                scope=match.group("scope"),
            )
        )
    return found


def is_documentation(comment: str) -> bool:
    stripped = comment.lstrip()
    return stripped.startswith("///") or (stripped.startswith("/**") and not stripped.startswith("/**/"))


def documentation_text(comments: Iterable[str]) -> Optional[str]:
    lines: List[str] = []
    for comment in comments:
        if not is_documentation(comment):
            continue
        for line in comment_lines(comment):
            if _MARKER_RE.match(line):
                continue
            lines.append(line)
    while lines and not lines[-1]:
        lines.pop()
    while lines and not lines[0]:
        lines.pop(0)
    return "\n".join(lines) if lines else None


@dataclass(slots=True)
class _Region:
    start: int
    end: Optional[int]
    scope: Optional[str]
    annotations: Dict[str, Any]


@dataclass(slots=True)
class AnnotationScopes:
    """Block regions and file-level annotations of one file.

    Built from the file's comments (offset, text) in source order.
    """

    regions: List[_Region] = field(default_factory=list)
    file_annotations: Dict[str, Any] = field(default_factory=dict)
    problems: List[Tuple[int, str]] = field(default_factory=list)

    @classmethod
    def from_comments(cls, comments: Iterable[Tuple[int, str]]) -> "AnnotationScopes":
        scopes = cls()
        open_regions: List[_Region] = []
        for offset, text in comments:
            for entry in classify(text):
                if entry.directive is AnnotationDirective.FILE:
                    scopes.file_annotations.update(entry.annotations)
                elif entry.directive is AnnotationDirective.BEGIN:
                    region = _Region(offset, None, entry.scope, entry.annotations)
                    open_regions.append(region)
                    scopes.regions.append(region)
                elif entry.directive is AnnotationDirective.END:
                    scopes._close(open_regions, offset, entry.scope)
        for region in open_regions:
            scopes.problems.append((region.start, "annotation block is never closed"))
        return scopes

    def _close(self, open_regions: List[_Region], offset: int, scope: Optional[str]) -> None:
        for idx in range(len(open_regions) - 1, -1, -1):
            if scope is None or open_regions[idx].scope == scope:
                for region in open_regions[idx:]:
                    region.end = offset
                del open_regions[idx:]
                return
        label = f" '{scope}'" if scope else ""
        self.problems.append((offset, f"annotation block end{label} has no matching begin"))

    def at(self, offset: int) -> Dict[str, Any]:
        """Annotations of every region enclosing `offset`; inner regions win."""
        merged: Dict[str, Any] = {}
        for region in self.regions:
            if region.start <= offset and (region.end is None or offset < region.end):
                merged.update(region.annotations)
        return merged
