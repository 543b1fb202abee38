"""Composed model handed to renderers.

Everything here is built once per run by the composer and never mutated
afterwards. Cross references are qualified names looked up through
`Model.index`; a reference that did not resolve is simply `None`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter

from .records import (
    DeclarationKind,
    Diagnostic,
    GenericParameter,
    GenericRequirement,
    Import,
    Member,
    MemberKind,
    Severity,
    SourceLocation,
    TypeName,
)


@dataclass(frozen=True, slots=True)
class Typealias:
    name: str
    qualified_name: str
    aliased: Optional[TypeName]
    access_level: str = "internal"
    generic_parameters: Tuple[GenericParameter, ...] = ()
    annotations: Dict[str, Any] = field(default_factory=dict)
    documentation: Optional[str] = None
    location: Optional[SourceLocation] = None
    parent_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Type:
    name: str
    qualified_name: str
    kind: DeclarationKind
    access_level: str = "internal"
    is_external: bool = False
    modifiers: Tuple[str, ...] = ()
    attributes: Tuple[str, ...] = ()
    members: Tuple[Member, ...] = ()
    annotations: Dict[str, Any] = field(default_factory=dict)
    documentation: Optional[str] = None
    inherited_types: Tuple[TypeName, ...] = ()
    superclass: Optional[str] = None
    inherits: Tuple[str, ...] = ()
    implements: Tuple[str, ...] = ()
    based: Tuple[str, ...] = ()
    generic_parameters: Tuple[GenericParameter, ...] = ()
    generic_requirements: Tuple[GenericRequirement, ...] = ()
    associated_types: Tuple[GenericParameter, ...] = ()
    contained_types: Tuple["Type", ...] = ()
    typealiases: Tuple[Typealias, ...] = ()
    parent_name: Optional[str] = None
    location: Optional[SourceLocation] = None
    extension_locations: Tuple[SourceLocation, ...] = ()

    @property
    def is_generic(self) -> bool:
        return bool(self.generic_parameters)

    @property
    def extension_count(self) -> int:
        return len(self.extension_locations)

    @property
    def files(self) -> Tuple[str, ...]:
        locations = ([self.location] if self.location else []) + list(self.extension_locations)
        return tuple(sorted({location.file for location in locations}))

    def _members_of(self, kind: MemberKind) -> Tuple[Member, ...]:
        return tuple(member for member in self.members if member.kind is kind)

    @property
    def variables(self) -> Tuple[Member, ...]:
        return self._members_of(MemberKind.VARIABLE)

    @property
    def stored_variables(self) -> Tuple[Member, ...]:
        return tuple(v for v in self.variables if not v.is_computed and not v.is_static)

    @property
    def static_variables(self) -> Tuple[Member, ...]:
        return tuple(v for v in self.variables if v.is_static)

    @property
    def methods(self) -> Tuple[Member, ...]:
        return self._members_of(MemberKind.METHOD)

    @property
    def initializers(self) -> Tuple[Member, ...]:
        return tuple(m for m in self.methods if m.is_initializer)

    @property
    def subscripts(self) -> Tuple[Member, ...]:
        return self._members_of(MemberKind.SUBSCRIPT)

    @property
    def cases(self) -> Tuple[Member, ...]:
        return self._members_of(MemberKind.ENUM_CASE)

    def member(self, name: str) -> Optional[Member]:
        for candidate in self.members:
            if candidate.name == name or candidate.selector_name == name:
                return candidate
        return None

    def conforms_to(self, name: str) -> bool:
        return name in self.based


_TYPE_ADAPTER: TypeAdapter[Type] = TypeAdapter(Type)
_ALIAS_ADAPTER: TypeAdapter[Typealias] = TypeAdapter(Typealias)
_DIAGNOSTIC_ADAPTER: TypeAdapter[Diagnostic] = TypeAdapter(Diagnostic)
_IMPORT_ADAPTER: TypeAdapter[Import] = TypeAdapter(Import)


@dataclass(frozen=True, slots=True)
class Model:
    types: Tuple[Type, ...] = ()
    index: Dict[str, Type] = field(default_factory=dict)
    typealiases: Dict[str, Typealias] = field(default_factory=dict)
    file_annotations: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    imports: Dict[str, Tuple[Import, ...]] = field(default_factory=dict)
    diagnostics: Tuple[Diagnostic, ...] = ()
    has_parse_errors: bool = False
    arguments: Dict[str, Any] = field(default_factory=dict)

    def type(self, name: str) -> Optional[Type]:
        return self.index.get(name)

    def resolve(self, type_name: Optional[TypeName]) -> Optional[Type]:
        if type_name is None or type_name.resolved is None:
            return None
        return self.index.get(type_name.resolved)

    def all_types(self) -> List[Type]:
        return [self.index[name] for name in sorted(self.index)]

    def of_kind(self, kind: DeclarationKind) -> List[Type]:
        return [t for t in self.all_types() if t.kind is kind]

    @property
    def classes(self) -> List[Type]:
        return self.of_kind(DeclarationKind.CLASS)

    @property
    def structs(self) -> List[Type]:
        return self.of_kind(DeclarationKind.STRUCT)

    @property
    def enums(self) -> List[Type]:
        return self.of_kind(DeclarationKind.ENUM)

    @property
    def protocols(self) -> List[Type]:
        return self.of_kind(DeclarationKind.PROTOCOL)

    def implementing(self, protocol: str) -> List[Type]:
        return [t for t in self.all_types() if protocol in t.implements or protocol in t.based]

    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    def to_dict(self) -> Dict[str, Any]:
        """Stable JSON-compatible form; nested types appear under their parent."""
        return {
            "types": [_TYPE_ADAPTER.dump_python(t, mode="json") for t in self.types],
            "typealiases": {
                name: _ALIAS_ADAPTER.dump_python(alias, mode="json")
                for name, alias in sorted(self.typealiases.items())
            },
            "fileAnnotations": {path: self.file_annotations[path] for path in sorted(self.file_annotations)},
            "imports": {
                path: [_IMPORT_ADAPTER.dump_python(i, mode="json") for i in self.imports[path]]
                for path in sorted(self.imports)
            },
            "diagnostics": [_DIAGNOSTIC_ADAPTER.dump_python(d, mode="json") for d in self.diagnostics],
            "hasParseErrors": self.has_parse_errors,
            "arguments": self.arguments,
        }

