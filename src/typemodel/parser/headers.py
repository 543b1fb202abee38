"""Readers for the header text of Swift declarations.

Each function takes the comment-free text of one declaration node and
returns the structural facts spelled in it. Bodies are never evaluated.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models.records import (
    AssociatedValue,
    DeclarationKind,
    GenericParameter,
    GenericRequirement,
    Member,
    MemberKind,
    Parameter,
    TypeName,
)
from .scanning import (
    collapse_ws,
    find_matching,
    find_top_level,
    parse_inherited_types,
    read_balanced,
    read_identifier,
    read_qualified_name,
    skip_ws,
    split_top_level,
)
from .typenames import parse_type_name

VISIBILITY_KEYWORDS = ("open", "public", "package", "internal", "fileprivate", "private")

MODIFIER_WORDS = frozenset(
    {
        *VISIBILITY_KEYWORDS,
        "static",
        "final",
        "override",
        "mutating",
        "nonmutating",
        "lazy",
        "weak",
        "unowned",
        "dynamic",
        "optional",
        "required",
        "convenience",
        "indirect",
        "prefix",
        "postfix",
        "infix",
        "nonisolated",
        "isolated",
        "distributed",
    }
)

MEMBER_KEYWORDS = frozenset({"var", "let", "func", "init", "subscript", "typealias", "associatedtype"})

TYPE_KEYWORDS = {
    "class": DeclarationKind.CLASS,
    "struct": DeclarationKind.STRUCT,
    "enum": DeclarationKind.ENUM,
    "protocol": DeclarationKind.PROTOCOL,
    "extension": DeclarationKind.EXTENSION,
    "actor": DeclarationKind.ACTOR,
}

OPERATOR_CHARS = set("/=-+!*%<>&|^~?.")
_OBSERVER_RE = re.compile(r"\{\s*(?:willSet|didSet)\b")
_ACCESSOR_SET_RE = re.compile(r"\b(?:set|_modify|nonmutating\s+set)\b")
_INT_LITERAL_RE = re.compile(r"^-?\d[\d_]*$")
_FLOAT_LITERAL_RE = re.compile(r"^-?\d[\d_]*\.\d[\d_]*(?:[eE][+-]?\d+)?$")
_INIT_CALL_RE = re.compile(r"^(?P<type>[A-Z]\w*(?:\.[A-Z]\w*)*)(?:<[^()]*>)?\s*\(")


@dataclass(frozen=True, slots=True)
class Prefix:
    attributes: Tuple[str, ...]
    modifiers: Tuple[str, ...]
    end: int

    @property
    def access_level(self) -> Optional[str]:
        for modifier in self.modifiers:
            if modifier in VISIBILITY_KEYWORDS:
                return modifier
        return None


@dataclass(frozen=True, slots=True)
class TypeHeader:
    kind: DeclarationKind
    name: str
    prefix: Prefix
    generic_parameters: Tuple[GenericParameter, ...] = ()
    inherited_types: Tuple[str, ...] = ()
    generic_requirements: Tuple[GenericRequirement, ...] = ()


@dataclass(frozen=True, slots=True)
class AliasHeader:
    name: str
    prefix: Prefix
    aliased: Optional[TypeName]
    generic_parameters: Tuple[GenericParameter, ...] = ()


def _peek_word(text: str, pos: int) -> Optional[str]:
    word, _ = read_identifier(text, pos)
    return word


def read_prefix(text: str) -> Prefix:
    """Consume leading attributes and modifiers."""
    attributes: List[str] = []
    modifiers: List[str] = []
    pos = 0
    while True:
        pos = skip_ws(text, pos)
        if pos < len(text) and text[pos] == "@":
            end = pos + 1
            while end < len(text) and (text[end].isalnum() or text[end] in "_."):
                end += 1
            if end < len(text) and text[end] == "(":
                close = find_matching(text, end, angle=False)
                end = close + 1 if close != -1 else end
            attributes.append(collapse_ws(text[pos:end]))
            pos = end
            continue
        word, end = read_identifier(text, pos)
        if word is None:
            break
        if word == "class" and _peek_word(text, end) in (MEMBER_KEYWORDS | MODIFIER_WORDS):
            modifiers.append(word)
            pos = end
            continue
        if word not in MODIFIER_WORDS:
            break
        if end < len(text) and text[end] == "(":
            close = find_matching(text, end, angle=False)
            if close != -1:
                word = word + collapse_ws(text[end : close + 1]).replace(" ", "")
                end = close + 1
        modifiers.append(word)
        pos = end
    return Prefix(tuple(attributes), tuple(modifiers), pos)


def parse_generic_parameters(inner: str) -> Tuple[GenericParameter, ...]:
    params: List[GenericParameter] = []
    for part in split_top_level(inner):
        part = part.strip()
        if part.startswith("each "):
            part = part[len("each ") :]
        colon, _ = find_top_level(part, (":",))
        if colon == -1:
            params.append(GenericParameter(name=part.strip()))
        else:
            params.append(
                GenericParameter(
                    name=part[:colon].strip(),
                    constraint=parse_type_name(part[colon + 1 :]),
                )
            )
    return tuple(params)


def parse_requirements(clause: str) -> Tuple[GenericRequirement, ...]:
    requirements: List[GenericRequirement] = []
    for part in split_top_level(clause):
        idx, token = find_top_level(part, ("==", ":"))
        if idx == -1 or token is None:
            continue
        requirements.append(
            GenericRequirement(
                left=part[:idx].strip(),
                relation=token,
                right=parse_type_name(part[idx + len(token) :]),
            )
        )
    return tuple(requirements)


def parse_type_header(header: str) -> Optional[TypeHeader]:
    prefix = read_prefix(header)
    keyword, pos = read_identifier(header, prefix.end)
    kind = TYPE_KEYWORDS.get(keyword or "")
    if kind is None:
        return None
    name, pos = read_qualified_name(header, pos)
    if not name:
        return None
    generics: Tuple[GenericParameter, ...] = ()
    pos = skip_ws(header, pos)
    if header[pos : pos + 1] == "<":
        inner, pos = read_balanced(header, pos)
        if inner is not None and kind is not DeclarationKind.EXTENSION:
            generics = parse_generic_parameters(inner)
    rest = header[pos:]
    body, _ = find_top_level(rest, ("{",))
    if body != -1:
        rest = rest[:body]
    where, _ = find_top_level(rest, ("where",))
    clause = rest if where == -1 else rest[:where]
    requirements = parse_requirements(rest[where + len("where") :]) if where != -1 else ()
    inherited: List[str] = []
    clause = clause.strip()
    if clause.startswith(":"):
        inherited = parse_inherited_types(clause[1:])
    return TypeHeader(
        kind=kind,
        name=name,
        prefix=prefix,
        generic_parameters=generics,
        inherited_types=tuple(inherited),
        generic_requirements=requirements,
    )


def parse_typealias(text: str) -> Optional[AliasHeader]:
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    if keyword != "typealias":
        return None
    name, pos = read_identifier(text, pos)
    if not name:
        return None
    generics: Tuple[GenericParameter, ...] = ()
    pos = skip_ws(text, pos)
    if text[pos : pos + 1] == "<":
        inner, pos = read_balanced(text, pos)
        if inner is not None:
            generics = parse_generic_parameters(inner)
    rest = text[pos:].strip()
    aliased = parse_type_name(rest[1:]) if rest.startswith("=") and rest[1:].strip() else None
    return AliasHeader(name=name, prefix=prefix, aliased=aliased, generic_parameters=generics)


def parse_associated_type(text: str) -> Optional[GenericParameter]:
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    if keyword != "associatedtype":
        return None
    name, pos = read_identifier(text, pos)
    if not name:
        return None
    rest = text[pos:]
    where, _ = find_top_level(rest, ("where", "="))
    if where != -1:
        rest = rest[:where]
    rest = rest.strip()
    constraint = parse_type_name(rest[1:]) if rest.startswith(":") and rest[1:].strip() else None
    return GenericParameter(name=name, constraint=constraint)


def infer_type(value: str) -> Optional[TypeName]:
    """Best-effort type of a default value literal or initializer call."""
    value = value.strip()
    if value in ("true", "false"):
        return TypeName(name="Bool")
    if _INT_LITERAL_RE.match(value):
        return TypeName(name="Int")
    if _FLOAT_LITERAL_RE.match(value):
        return TypeName(name="Double")
    if value.startswith('"'):
        return TypeName(name="String")
    match = _INIT_CALL_RE.match(value)
    if match and find_matching(value, value.find("("), angle=False) == len(value) - 1:
        return parse_type_name(value[: value.find("(")])
    return None


def _split_observers(value: str) -> Tuple[str, Optional[str]]:
    start = 0
    while True:
        idx, _ = find_top_level(value, ("{",), start=start, angle=False)
        if idx == -1:
            return value, None
        if _OBSERVER_RE.match(value, idx):
            return value[:idx], value[idx:]
        close = find_matching(value, idx, angle=False)
        if close == -1:
            return value, None
        start = close + 1


def parse_variables(text: str, default_access: str = "internal") -> List[Member]:
    """Read `var`/`let` declarations; one Member per bound name."""
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    if keyword not in ("var", "let"):
        return []
    access = prefix.access_level or default_access
    bindings: List[dict] = []
    while pos < len(text):
        pos = skip_ws(text, pos)
        if text[pos : pos + 1] == ",":
            pos += 1
            continue
        name, pos = read_identifier(text, pos)
        if not name:
            break
        pos = skip_ws(text, pos)
        type_text: Optional[str] = None
        default: Optional[str] = None
        accessor: Optional[str] = None
        if text[pos : pos + 1] == ":":
            end, _ = find_top_level(text, ("=", "{", ","), start=pos + 1)
            end = len(text) if end == -1 else end
            type_text = text[pos + 1 : end].strip()
            pos = end
        if text[pos : pos + 1] == "=":
            end, _ = find_top_level(text, (",",), start=pos + 1, angle=False)
            end = len(text) if end == -1 else end
            default, accessor = _split_observers(text[pos + 1 : end])
            default = collapse_ws(default)
            pos = end
        elif text[pos : pos + 1] == "{":
            close = find_matching(text, pos, angle=False)
            close = len(text) - 1 if close == -1 else close
            accessor = text[pos : close + 1]
            pos = close + 1
        bindings.append({"name": name, "type": type_text, "default": default, "accessor": accessor})

    # `var a, b: Int` binds both names to Int.
    trailing_type: Optional[str] = None
    for binding in reversed(bindings):
        if binding["type"]:
            trailing_type = binding["type"]
        elif binding["default"] is None and trailing_type:
            binding["type"] = trailing_type

    members: List[Member] = []
    for binding in bindings:
        accessor = binding["accessor"]
        observers_only = accessor is not None and _OBSERVER_RE.match(accessor) is not None
        is_computed = accessor is not None and not observers_only
        if is_computed:
            is_mutable = keyword == "var" and bool(_ACCESSOR_SET_RE.search(accessor or ""))
        else:
            is_mutable = keyword == "var"
        if binding["type"]:
            type_name: Optional[TypeName] = parse_type_name(binding["type"])
        elif binding["default"]:
            type_name = infer_type(binding["default"])
        else:
            type_name = None
        members.append(
            Member(
                name=binding["name"],
                kind=MemberKind.VARIABLE,
                type_name=type_name,
                access_level=access,
                modifiers=prefix.modifiers,
                attributes=prefix.attributes,
                default_value=binding["default"],
                is_computed=is_computed,
                is_mutable=is_mutable,
            )
        )
    return members


def parse_parameters(inner: str, unlabeled_by_default: bool = False) -> Tuple[Parameter, ...]:
    params: List[Parameter] = []
    for part in split_top_level(inner):
        colon, _ = find_top_level(part, (":",))
        if colon == -1:
            params.append(Parameter(name=part.strip(), type_name=None))
            continue
        names = [token for token in part[:colon].split() if not token.startswith("@")]
        if not names:
            continue
        if len(names) >= 2:
            label: Optional[str] = names[0]
            name = names[1]
        else:
            name = names[0]
            label = None if unlabeled_by_default else name
        if label == "_":
            label = None
        remainder = part[colon + 1 :]
        eq, _ = find_top_level(remainder, ("=",))
        default = None
        if eq != -1:
            default = collapse_ws(remainder[eq + 1 :])
            remainder = remainder[:eq]
        type_text = remainder.strip()
        is_inout = False
        if type_text.startswith("inout "):
            is_inout = True
            type_text = type_text[len("inout ") :]
        is_variadic = type_text.endswith("...")
        if is_variadic:
            type_text = type_text[:-3]
        params.append(
            Parameter(
                name=name.strip("`"),
                type_name=parse_type_name(type_text),
                argument_label=label.strip("`") if label else None,
                default_value=default,
                is_variadic=is_variadic,
                is_inout=is_inout,
            )
        )
    return tuple(params)


def _effects(text: str) -> Tuple[bool, bool]:
    words = set(re.findall(r"[A-Za-z_]\w*", text))
    return bool(words & {"throws", "rethrows"}), "async" in words


def parse_function(text: str, default_access: str = "internal") -> Optional[Member]:
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    access = prefix.access_level or default_access
    is_failable = False
    if keyword == "func":
        pos = skip_ws(text, pos)
        if pos < len(text) and text[pos] in OPERATOR_CHARS:
            end = pos
            while end < len(text) and text[end] in OPERATOR_CHARS:
                end += 1
            name = text[pos:end]
            pos = end
        else:
            name, pos = read_identifier(text, pos)
            if not name:
                return None
    elif keyword == "init":
        name = "init"
        if text[pos : pos + 1] in ("?", "!"):
            is_failable = True
            pos += 1
    elif keyword == "deinit":
        return Member(
            name="deinit",
            kind=MemberKind.METHOD,
            access_level=access,
            modifiers=prefix.modifiers,
            attributes=prefix.attributes,
            selector_name="deinit",
            is_deinitializer=True,
        )
    else:
        return None

    generics: Tuple[GenericParameter, ...] = ()
    pos = skip_ws(text, pos)
    if text[pos : pos + 1] == "<":
        inner, pos = read_balanced(text, pos)
        if inner is not None:
            generics = parse_generic_parameters(inner)
    params_inner, pos = read_balanced(text, pos)
    if params_inner is None:
        return None
    parameters = parse_parameters(params_inner)

    rest = text[pos:]
    body, _ = find_top_level(rest, ("{",))
    if body != -1:
        rest = rest[:body]
    where, _ = find_top_level(rest, ("where",))
    if where != -1:
        rest = rest[:where]
    arrow, _ = find_top_level(rest, ("->",))
    effects_text = rest if arrow == -1 else rest[:arrow]
    throws, is_async = _effects(effects_text)
    return_type: Optional[TypeName] = None
    if arrow != -1 and rest[arrow + 2 :].strip():
        return_type = parse_type_name(rest[arrow + 2 :])
    elif keyword == "func":
        return_type = TypeName(name="Void")

    labels = "".join(f"{p.argument_label or '_'}:" for p in parameters)
    return Member(
        name=name,
        kind=MemberKind.METHOD,
        type_name=return_type,
        access_level=access,
        modifiers=prefix.modifiers,
        attributes=prefix.attributes,
        parameters=parameters,
        selector_name=f"{name}({labels})",
        generic_parameters=generics,
        throws=throws,
        is_async=is_async,
        is_initializer=keyword == "init",
        is_failable=is_failable,
    )


def parse_subscript(text: str, default_access: str = "internal") -> Optional[Member]:
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    if keyword != "subscript":
        return None
    generics: Tuple[GenericParameter, ...] = ()
    pos = skip_ws(text, pos)
    if text[pos : pos + 1] == "<":
        inner, pos = read_balanced(text, pos)
        if inner is not None:
            generics = parse_generic_parameters(inner)
    params_inner, pos = read_balanced(text, pos)
    if params_inner is None:
        return None
    parameters = parse_parameters(params_inner, unlabeled_by_default=True)
    rest = text[pos:]
    body, _ = find_top_level(rest, ("{",))
    accessor = rest[body:] if body != -1 else ""
    if body != -1:
        rest = rest[:body]
    where, _ = find_top_level(rest, ("where",))
    if where != -1:
        rest = rest[:where]
    arrow, _ = find_top_level(rest, ("->",))
    return_type = parse_type_name(rest[arrow + 2 :]) if arrow != -1 else None
    labels = "".join(f"{p.argument_label or '_'}:" for p in parameters)
    return Member(
        name="subscript",
        kind=MemberKind.SUBSCRIPT,
        type_name=return_type,
        access_level=prefix.access_level or default_access,
        modifiers=prefix.modifiers,
        attributes=prefix.attributes,
        parameters=parameters,
        selector_name=f"subscript({labels})",
        generic_parameters=generics,
        is_computed=True,
        is_mutable=bool(_ACCESSOR_SET_RE.search(accessor)),
    )


def parse_enum_cases(text: str, default_access: str = "internal") -> List[Member]:
    prefix = read_prefix(text)
    keyword, pos = read_identifier(text, prefix.end)
    if keyword != "case":
        return []
    cases: List[Member] = []
    for part in split_top_level(text[pos:]):
        name, cursor = read_identifier(part, 0)
        if not name:
            continue
        associated: Tuple[AssociatedValue, ...] = ()
        cursor = skip_ws(part, cursor)
        if part[cursor : cursor + 1] == "(":
            inner, cursor = read_balanced(part, cursor)
            if inner is not None:
                associated = _associated_values(inner)
        raw_value = None
        rest = part[cursor:].strip()
        if rest.startswith("="):
            raw_value = collapse_ws(rest[1:])
        cases.append(
            Member(
                name=name,
                kind=MemberKind.ENUM_CASE,
                access_level=default_access,
                modifiers=prefix.modifiers,
                attributes=prefix.attributes,
                associated_values=associated,
                raw_value=raw_value,
            )
        )
    return cases


def _associated_values(inner: str) -> Tuple[AssociatedValue, ...]:
    values: List[AssociatedValue] = []
    for part in split_top_level(inner):
        default = None
        eq, _ = find_top_level(part, ("=",))
        if eq != -1:
            default = collapse_ws(part[eq + 1 :])
            part = part[:eq]
        colon, _ = find_top_level(part, (":",))
        local_name: Optional[str] = None
        if colon != -1:
            local_name = part[:colon].strip().split()[-1] if part[:colon].strip() else None
            part = part[colon + 1 :]
        if local_name == "_":
            local_name = None
        values.append(
            AssociatedValue(local_name=local_name, type_name=parse_type_name(part), default_value=default)
        )
    return tuple(values)
