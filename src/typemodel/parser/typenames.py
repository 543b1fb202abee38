from __future__ import annotations

from typing import List, Optional, Tuple

from ..models.records import ClosureSignature, TupleElement, TypeName, TypeNameKind
from .scanning import collapse_ws, find_matching, find_top_level, split_top_level

EXISTENTIAL_PREFIXES = ("some", "any", "inout", "borrowing", "consuming")


def _split_attributes(text: str) -> Tuple[List[str], str]:
    attributes: List[str] = []
    rest = text.strip()
    while True:
        if rest.startswith("@"):
            idx = 1
            while idx < len(rest) and (rest[idx].isalnum() or rest[idx] == "_"):
                idx += 1
            if idx < len(rest) and rest[idx] == "(":
                end = find_matching(rest, idx)
                idx = end + 1 if end != -1 else idx
            attributes.append(rest[:idx])
            rest = rest[idx:].lstrip()
            continue
        word = rest.split(None, 1)
        if len(word) == 2 and word[0] in EXISTENTIAL_PREFIXES:
            attributes.append(word[0])
            rest = word[1].lstrip()
            continue
        return attributes, rest


def _wraps_whole(text: str, opener: str) -> bool:
    return text.startswith(opener) and find_matching(text, 0) == len(text) - 1


def parse_type_name(raw: str) -> TypeName:
    """Parse a written Swift type into a structured TypeName."""
    attributes, text = _split_attributes(collapse_ws(raw))
    name = text
    is_optional = False
    is_iuo = False
    inner = text
    if text.endswith("?") or text.endswith("!"):
        is_optional = text.endswith("?")
        is_iuo = text.endswith("!")
        inner = text[:-1].rstrip()
    elif text.startswith("Optional<") and _wraps_whole(text[len("Optional") :], "<"):
        is_optional = True
        inner = text[len("Optional<") : -1].strip()

    # `(T)` and `(T)?` wrap a single type; keep the outer spelling.
    while _wraps_whole(inner, "(") and _single_unlabeled(inner[1:-1]):
        inner = inner[1:-1].strip()

    parsed = _parse_unwrapped(inner)
    return TypeName(
        name=name,
        kind=parsed.kind,
        is_optional=is_optional or parsed.is_optional,
        is_implicitly_unwrapped=is_iuo or parsed.is_implicitly_unwrapped,
        attributes=tuple(attributes) + parsed.attributes,
        base_name=parsed.base_name,
        element=parsed.element,
        key=parsed.key,
        value=parsed.value,
        elements=parsed.elements,
        closure=parsed.closure,
        generic_arguments=parsed.generic_arguments,
    )


def _single_unlabeled(inner: str) -> bool:
    parts = split_top_level(inner)
    if len(parts) != 1:
        return False
    idx, _ = find_top_level(parts[0], (":",))
    arrow, _ = find_top_level(parts[0], ("->",))
    return idx == -1 or (arrow != -1 and arrow < idx)


def _parse_unwrapped(text: str) -> TypeName:
    arrow, _ = find_top_level(text, ("->",))
    if arrow != -1:
        return _parse_closure(text, arrow)

    if _wraps_whole(text, "("):
        elements = []
        for part in split_top_level(text[1:-1]):
            label: Optional[str] = None
            colon, _ = find_top_level(part, (":",))
            if colon != -1:
                label = part[:colon].strip() or None
                part = part[colon + 1 :]
            elements.append(TupleElement(name=label, type_name=parse_type_name(part)))
        return TypeName(name=text, kind=TypeNameKind.TUPLE, elements=tuple(elements))

    if _wraps_whole(text, "["):
        body = text[1:-1]
        colon, _ = find_top_level(body, (":",))
        if colon != -1:
            return TypeName(
                name=text,
                kind=TypeNameKind.DICTIONARY,
                key=parse_type_name(body[:colon]),
                value=parse_type_name(body[colon + 1 :]),
            )
        return TypeName(name=text, kind=TypeNameKind.ARRAY, element=parse_type_name(body))

    lt = text.find("<")
    if lt > 0 and _wraps_whole(text[lt:], "<"):
        base = text[:lt].strip()
        args = tuple(parse_type_name(part) for part in split_top_level(text[lt + 1 : -1]))
        simple = base.split(".")[-1]
        if simple == "Array" and len(args) == 1:
            return TypeName(name=text, kind=TypeNameKind.ARRAY, element=args[0], base_name=base)
        if simple == "Set" and len(args) == 1:
            return TypeName(name=text, kind=TypeNameKind.SET, element=args[0], base_name=base)
        if simple == "Dictionary" and len(args) == 2:
            return TypeName(
                name=text,
                kind=TypeNameKind.DICTIONARY,
                key=args[0],
                value=args[1],
                base_name=base,
            )
        if simple == "Optional" and len(args) == 1:
            wrapped = args[0]
            return TypeName(
                name=text,
                kind=wrapped.kind,
                is_optional=True,
                base_name=wrapped.base_name,
                element=wrapped.element,
                key=wrapped.key,
                value=wrapped.value,
                elements=wrapped.elements,
                closure=wrapped.closure,
                generic_arguments=wrapped.generic_arguments,
            )
        return TypeName(
            name=text,
            kind=TypeNameKind.GENERIC,
            base_name=base,
            generic_arguments=args,
        )

    return TypeName(name=text)


def _parse_closure(text: str, arrow: int) -> TypeName:
    head = text[:arrow].strip()
    return_text = text[arrow + 2 :].strip()
    throws = False
    is_async = False
    # Effects sit between the parameter list and the arrow.
    while True:
        for effect in ("throws", "rethrows", "async"):
            if head.endswith(effect) and (len(head) == len(effect) or not head[-len(effect) - 1].isalnum()):
                if effect == "async":
                    is_async = True
                else:
                    throws = True
                head = head[: -len(effect)].rstrip()
                break
        else:
            break
    if head.endswith(")") and head.startswith("("):
        head = head[1:-1]
    params = tuple(parse_type_name(_drop_label(part)) for part in split_top_level(head))
    signature = ClosureSignature(
        parameters=params,
        return_type=parse_type_name(return_text) if return_text else None,
        throws=throws,
        is_async=is_async,
    )
    return TypeName(name=text, kind=TypeNameKind.CLOSURE, closure=signature)


def _drop_label(part: str) -> str:
    colon, _ = find_top_level(part, (":",))
    if colon == -1:
        return part
    return part[colon + 1 :]
