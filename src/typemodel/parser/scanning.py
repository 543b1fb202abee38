"""Bracket-aware helpers for reading Swift declaration headers.

tree-sitter gives us the declaration skeleton; the header text of each
declaration (everything up to its body) is read with these helpers so the
extraction does not depend on grammar field names that shift between
tree-sitter-swift releases.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

OPENERS = {"(": ")", "[": "]", "{": "}", "<": ">"}
CLOSERS = {")", "]", "}", ">"}

IDENTIFIER_RE = re.compile(r"`[^`]+`|[A-Za-z_][\w]*")
QUALIFIED_RE = re.compile(r"(?:`[^`]+`|[A-Za-z_]\w*)(?:\s*\.\s*(?:`[^`]+`|[A-Za-z_]\w*))*")


def strip_comments(text: str) -> str:
    """Remove `//` and `/* */` comments, leaving string literals intact."""
    out: List[str] = []
    i = 0
    length = len(text)
    in_string = False
    while i < length:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            if end == -1:
                break
            i = end
            continue
        if text.startswith("/*", i):
            depth = 1
            j = i + 2
            while j < length and depth:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            out.append(" ")
            i = j
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _is_arrow(text: str, index: int) -> bool:
    return index > 0 and text[index] == ">" and text[index - 1] == "-"


def find_matching(text: str, start: int, angle: bool = True) -> int:
    """Return the index of the bracket closing the one at `start`, or -1."""
    stack: List[str] = []
    in_string = False
    i = start
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in OPENERS and (angle or ch != "<"):
            stack.append(OPENERS[ch])
        elif ch in CLOSERS and (angle or ch != ">"):
            if _is_arrow(text, i):
                i += 1
                continue
            if not stack or stack[-1] != ch:
                return -1
            stack.pop()
            if not stack:
                return i
        i += 1
    return -1


def split_top_level(text: str, separator: str = ",", angle: bool = True) -> List[str]:
    """Split on `separator` where it is not nested in brackets or strings."""
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    in_string = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            current.append(ch)
            if ch == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch in OPENERS and (angle or ch != "<"):
            depth += 1
        elif ch in CLOSERS and (angle or ch != ">"):
            if not _is_arrow(text, i):
                depth = max(depth - 1, 0)
        elif depth == 0 and text.startswith(separator, i):
            parts.append("".join(current))
            current = []
            i += len(separator)
            continue
        current.append(ch)
        i += 1
    tail = "".join(current)
    if tail.strip() or parts:
        parts.append(tail)
    return [part.strip() for part in parts if part.strip()]


def find_top_level(text: str, targets: Iterable[str], start: int = 0, angle: bool = True) -> Tuple[int, Optional[str]]:
    """Find the first top-level occurrence of any target token.

    Word targets (alphabetic) only match on word boundaries.
    """
    targets = tuple(targets)
    depth = 0
    in_string = False
    i = start
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if depth == 0:
            for target in targets:
                if not text.startswith(target, i):
                    continue
                if target[0].isalpha():
                    before = text[i - 1] if i > 0 else " "
                    after = text[i + len(target)] if i + len(target) < len(text) else " "
                    if before.isalnum() or before == "_" or after.isalnum() or after == "_":
                        continue
                if target == ">" and _is_arrow(text, i):
                    continue
                return i, target
        if ch == '"':
            in_string = True
        elif ch in OPENERS and (angle or ch != "<"):
            depth += 1
        elif ch in CLOSERS and (angle or ch != ">"):
            if not _is_arrow(text, i):
                depth = max(depth - 1, 0)
        i += 1
    return -1, None


def read_identifier(text: str, pos: int = 0) -> Tuple[Optional[str], int]:
    pos = skip_ws(text, pos)
    match = IDENTIFIER_RE.match(text, pos)
    if not match:
        return None, pos
    return match.group(0).strip("`"), match.end()


def read_qualified_name(text: str, pos: int = 0) -> Tuple[Optional[str], int]:
    pos = skip_ws(text, pos)
    match = QUALIFIED_RE.match(text, pos)
    if not match:
        return None, pos
    name = re.sub(r"\s+", "", match.group(0)).replace("`", "")
    return name, match.end()


def skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def read_balanced(text: str, pos: int) -> Tuple[Optional[str], int]:
    """Read a bracketed group starting at `pos`; returns inner text and end."""
    pos = skip_ws(text, pos)
    if pos >= len(text) or text[pos] not in OPENERS:
        return None, pos
    end = find_matching(text, pos)
    if end == -1:
        return None, pos
    return text[pos + 1 : end], end + 1


def collapse_ws(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def parse_inherited_types(clause: str) -> List[str]:
    """Split an inheritance clause (`A, B<C>, any D`) into cleaned names."""
    parts: List[str] = []
    for token in split_top_level(clause):
        candidate = collapse_ws(token)
        for prefix in ("any ", "some "):
            if candidate.startswith(prefix):
                candidate = candidate[len(prefix) :]
        while candidate.endswith("{"):
            candidate = candidate[:-1].rstrip()
        if candidate:
            parts.append(candidate)
    return parts
