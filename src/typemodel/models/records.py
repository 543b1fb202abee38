from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class DeclarationKind(str, Enum):
    CLASS = "class"
    STRUCT = "struct"
    ENUM = "enum"
    PROTOCOL = "protocol"
    EXTENSION = "extension"
    TYPEALIAS = "typealias"
    ACTOR = "actor"


class MemberKind(str, Enum):
    VARIABLE = "variable"
    METHOD = "method"
    SUBSCRIPT = "subscript"
    ENUM_CASE = "enumCase"
    ASSOCIATED_VALUE = "associatedValue"


class TypeNameKind(str, Enum):
    SIMPLE = "simple"
    ARRAY = "array"
    DICTIONARY = "dictionary"
    SET = "set"
    TUPLE = "tuple"
    CLOSURE = "closure"
    GENERIC = "generic"


class Severity(str, Enum):
    NOTE = "note"
    WARNING = "warning"
    ERROR = "error"


class DiagnosticKind(str, Enum):
    PARSE_ERROR = "parseError"
    MERGE_CONFLICT = "mergeConflict"
    ANNOTATION = "annotation"
    ANNOTATION_CONFLICT = "annotationConflict"
    CACHE = "cache"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    severity: Severity
    kind: DiagnosticKind
    message: str
    file: Optional[str] = None
    offset: Optional[int] = None
    line: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """File-relative position of a declaration. Byte range is half-open."""

    file: str
    start_byte: int
    end_byte: int
    line: int


@dataclass(frozen=True, slots=True)
class TupleElement:
    name: Optional[str]
    type_name: "TypeName"


@dataclass(frozen=True, slots=True)
class ClosureSignature:
    parameters: Tuple["TypeName", ...] = ()
    return_type: Optional["TypeName"] = None
    throws: bool = False
    is_async: bool = False


@dataclass(frozen=True, slots=True)
class TypeName:
    """A type reference as written, plus the composer's resolution result.

    `kind` selects which of the payload fields is populated:
    ARRAY and SET use `element`, DICTIONARY uses `key`/`value`,
    TUPLE uses `elements`, CLOSURE uses `closure`, GENERIC uses
    `generic_arguments` on top of `base_name`.
    """

    name: str
    kind: TypeNameKind = TypeNameKind.SIMPLE
    is_optional: bool = False
    is_implicitly_unwrapped: bool = False
    attributes: Tuple[str, ...] = ()
    base_name: Optional[str] = None
    element: Optional["TypeName"] = None
    key: Optional["TypeName"] = None
    value: Optional["TypeName"] = None
    elements: Tuple[TupleElement, ...] = ()
    closure: Optional[ClosureSignature] = None
    generic_arguments: Tuple["TypeName", ...] = ()
    resolved: Optional[str] = None
    is_generic_parameter: bool = False

    @property
    def unwrapped_name(self) -> str:
        name = self.name
        if self.is_optional or self.is_implicitly_unwrapped:
            name = name[:-1] if name.endswith(("?", "!")) else name
            if name.startswith("Optional<") and name.endswith(">"):
                name = name[len("Optional<") : -1]
        return name.strip()

    @property
    def lookup_name(self) -> str:
        """Name used for index lookups: unwrapped and without generic arguments."""
        if self.kind is TypeNameKind.GENERIC and self.base_name:
            return self.base_name
        return self.unwrapped_name

    @property
    def is_resolved(self) -> bool:
        return self.resolved is not None


@dataclass(frozen=True, slots=True)
class GenericParameter:
    name: str
    constraint: Optional[TypeName] = None


@dataclass(frozen=True, slots=True)
class GenericRequirement:
    left: str
    relation: str
    right: TypeName


@dataclass(frozen=True, slots=True)
class Parameter:
    name: str
    type_name: Optional[TypeName]
    argument_label: Optional[str] = None
    default_value: Optional[str] = None
    is_variadic: bool = False
    is_inout: bool = False


@dataclass(frozen=True, slots=True)
class AssociatedValue:
    local_name: Optional[str]
    type_name: TypeName
    default_value: Optional[str] = None
    kind: MemberKind = MemberKind.ASSOCIATED_VALUE


@dataclass(frozen=True, slots=True)
class Member:
    """One member of a declaration. `kind` selects the relevant fields."""

    name: str
    kind: MemberKind
    type_name: Optional[TypeName] = None
    access_level: str = "internal"
    modifiers: Tuple[str, ...] = ()
    attributes: Tuple[str, ...] = ()
    default_value: Optional[str] = None
    parameters: Tuple[Parameter, ...] = ()
    annotations: Dict[str, Any] = field(default_factory=dict)
    block_annotations: Dict[str, Any] = field(default_factory=dict)
    documentation: Optional[str] = None
    location: Optional[SourceLocation] = None
    # methods
    selector_name: Optional[str] = None
    generic_parameters: Tuple[GenericParameter, ...] = ()
    throws: bool = False
    is_async: bool = False
    is_initializer: bool = False
    is_deinitializer: bool = False
    is_failable: bool = False
    # variables
    is_computed: bool = False
    is_mutable: bool = False
    # enum cases
    associated_values: Tuple[AssociatedValue, ...] = ()
    raw_value: Optional[str] = None

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers or "class" in self.modifiers

    @property
    def signature(self) -> Tuple[str, ...]:
        """Identity used to detect colliding members across declarations."""
        scope = "static" if self.is_static else "instance"
        # overloads differ by parameter types, so those are part of the identity
        parameters = ",".join(
            f"{p.argument_label or '_'}:{p.type_name.name if p.type_name else ''}" for p in self.parameters
        )
        if self.kind is MemberKind.METHOD:
            return (self.kind.value, scope, self.selector_name or self.name, parameters)
        if self.kind is MemberKind.SUBSCRIPT:
            return (self.kind.value, scope, parameters)
        return (self.kind.value, scope, self.name)


@dataclass(frozen=True, slots=True)
class Declaration:
    """A partial declaration as seen from a single file."""

    name: str
    kind: DeclarationKind
    qualified_name: str
    access_level: str = "internal"
    modifiers: Tuple[str, ...] = ()
    attributes: Tuple[str, ...] = ()
    inherited_types: Tuple[str, ...] = ()
    members: Tuple[Member, ...] = ()
    nested: Tuple["Declaration", ...] = ()
    generic_parameters: Tuple[GenericParameter, ...] = ()
    generic_requirements: Tuple[GenericRequirement, ...] = ()
    associated_types: Tuple[GenericParameter, ...] = ()
    annotations: Dict[str, Any] = field(default_factory=dict)
    block_annotations: Dict[str, Any] = field(default_factory=dict)
    documentation: Optional[str] = None
    location: Optional[SourceLocation] = None
    parent_name: Optional[str] = None
    aliased: Optional[TypeName] = None

    @property
    def is_extension(self) -> bool:
        return self.kind is DeclarationKind.EXTENSION

    def walk(self):
        """Yield this declaration and all nested declarations, depth first."""
        yield self
        for child in self.nested:
            yield from child.walk()


@dataclass(frozen=True, slots=True)
class Import:
    path: str
    kind: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FileParserResult:
    path: str
    declarations: Tuple[Declaration, ...] = ()
    imports: Tuple[Import, ...] = ()
    file_annotations: Dict[str, Any] = field(default_factory=dict)
    diagnostics: Tuple[Diagnostic, ...] = ()
    skipped: bool = False

    @property
    def has_errors(self) -> bool:
        return any(d.kind is DiagnosticKind.PARSE_ERROR for d in self.diagnostics)
