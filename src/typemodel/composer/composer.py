"""Cross-file composition of partial declarations into the Model.

Composition is a pure function of the set of per-file results: results are
ordered by path first and every later step is ordered explicitly, so the
outcome never depends on the order files were parsed in.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..models.records import (
    Declaration,
    DeclarationKind,
    Diagnostic,
    DiagnosticKind,
    FileParserResult,
    GenericRequirement,
    Member,
    MemberKind,
    Severity,
    SourceLocation,
    TypeName,
)
from ..models.types import Model, Type, Typealias
from ..parser.typenames import parse_type_name
from .resolution import ScopedResolver, TypeIndex

logger = get_logger(__name__)

CLASS_KINDS = (DeclarationKind.CLASS, DeclarationKind.ACTOR)


@dataclass(slots=True)
class _Part:
    declaration: Declaration
    qualified_name: str
    parent_name: Optional[str]
    path: str
    # annotations of the enclosing extension, below the part's own
    container: Dict[str, Any] = field(default_factory=dict)

    @property
    def order(self) -> Tuple[str, int]:
        start = self.declaration.location.start_byte if self.declaration.location else 0
        return (self.path, start)


@dataclass(slots=True)
class _Group:
    qualified_name: str
    base: Optional[_Part] = None
    contributors: List[_Part] = field(default_factory=list)

    @property
    def kind(self) -> DeclarationKind:
        return self.base.declaration.kind if self.base else DeclarationKind.EXTENSION

    @property
    def parts(self) -> List[_Part]:
        return ([self.base] if self.base else []) + self.contributors


@dataclass(slots=True)
class _Merged:
    members: List[Member]
    annotations: Dict[str, Any]
    inherited: List[str]
    requirements: List[GenericRequirement]


class Composer:
    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def compose(
        self,
        results: Iterable[FileParserResult],
        diagnostics: Sequence[Diagnostic] = (),
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Model:
        self._diagnostics = []
        ordered = sorted(results, key=lambda result: result.path)

        aliases, groups = self._group(ordered)
        index = self._index(groups, aliases)
        merged = {name: self._merge(group) for name, group in sorted(groups.items())}

        generics = {name: self._generic_names(name, groups) for name in groups}
        resolved_aliases = self._resolve_aliases(aliases, index, generics)
        inherited = {
            name: self._resolve_inherited(name, groups, merged[name], index, generics[name])
            for name in groups
        }
        based = self._closure(groups, inherited)
        superclasses = {name: self._superclass(groups[name], inherited[name], groups) for name in groups}

        children: Dict[Optional[str], List[str]] = {}
        for name in sorted(groups):
            children.setdefault(self._parent_of(name, groups), []).append(name)
        alias_children: Dict[Optional[str], List[Typealias]] = {}
        for alias in resolved_aliases.values():
            alias_children.setdefault(alias.parent_name, []).append(alias)

        built: Dict[str, Type] = {}

        def build(name: str) -> Type:
            if name in built:
                return built[name]
            contained = tuple(build(child) for child in children.get(name, []))
            built[name] = self._build_type(
                groups[name],
                merged[name],
                index,
                generics[name],
                inherited[name],
                based,
                superclasses,
                groups,
                contained,
                tuple(alias_children.get(name, [])),
                self._parent_of(name, groups),
            )
            return built[name]

        top_level = tuple(build(name) for name in children.get(None, []))
        for name in groups:
            build(name)

        all_diagnostics = [d for result in ordered for d in result.diagnostics]
        all_diagnostics.extend(diagnostics)
        all_diagnostics.extend(self._diagnostics)

        model = Model(
            types=top_level,
            index={name: built[name] for name in sorted(built)},
            typealiases=resolved_aliases,
            file_annotations={r.path: dict(r.file_annotations) for r in ordered if r.file_annotations},
            imports={r.path: r.imports for r in ordered if r.imports},
            diagnostics=tuple(all_diagnostics),
            has_parse_errors=any(result.has_errors for result in ordered),
            arguments=dict(arguments or {}),
        )
        logger.debug(
            "model composed",
            files=len(ordered),
            types=len(model.index),
            typealiases=len(model.typealiases),
            conflicts=len(self._diagnostics),
        )
        return model

    # --- grouping ---
    def _group(
        self, results: Sequence[FileParserResult]
    ) -> Tuple[Dict[str, _Part], Dict[str, _Group]]:
        declared: Set[str] = set()
        raw_aliases: Dict[str, Optional[TypeName]] = {}
        for result in results:
            for top in result.declarations:
                for declaration in top.walk():
                    if declaration.kind is DeclarationKind.TYPEALIAS:
                        raw_aliases.setdefault(declaration.qualified_name, declaration.aliased)
                    elif not declaration.is_extension:
                        declared.add(declaration.qualified_name)
        targets = TypeIndex(declared, raw_aliases, {})

        parts: List[_Part] = []
        for result in results:
            for top in result.declarations:
                self._flatten(top, None, result.path, targets, parts)
        parts.sort(key=lambda part: part.order)

        aliases: Dict[str, _Part] = {}
        groups: Dict[str, _Group] = {}
        for part in parts:
            declaration = part.declaration
            if declaration.kind is DeclarationKind.TYPEALIAS:
                if part.qualified_name in aliases:
                    self._conflict(
                        DiagnosticKind.MERGE_CONFLICT,
                        f"typealias {part.qualified_name} is declared more than once; keeping the first",
                        declaration.location,
                    )
                    continue
                aliases[part.qualified_name] = part
                continue
            group = groups.setdefault(part.qualified_name, _Group(part.qualified_name))
            if declaration.is_extension:
                group.contributors.append(part)
            elif group.base is None:
                group.base = part
            else:
                self._conflict(
                    DiagnosticKind.MERGE_CONFLICT,
                    f"{part.qualified_name} is declared more than once; merging the later declaration as an extension",
                    declaration.location,
                )
                group.contributors.append(part)

        for group in groups.values():
            group.contributors.sort(key=lambda part: part.order)
        return aliases, groups

    def _flatten(
        self,
        declaration: Declaration,
        parent: Optional[str],
        path: str,
        targets: TypeIndex,
        parts: List[_Part],
        container: Optional[Dict[str, Any]] = None,
    ) -> None:
        if declaration.is_extension:
            qualified = targets.canonical_extension_target(declaration.name)
            if qualified not in targets:
                qualified = targets.resolve_name(declaration.name, None) or qualified
        elif parent:
            qualified = f"{parent}.{declaration.name}"
        else:
            qualified = declaration.name
        owner = None if declaration.is_extension else parent
        parts.append(_Part(declaration, qualified, owner, path, dict(container or {})))
        inherited = declaration.annotations if declaration.is_extension else None
        for child in declaration.nested:
            self._flatten(child, qualified, path, targets, parts, inherited)

    def _index(self, groups: Dict[str, _Group], aliases: Dict[str, _Part]) -> TypeIndex:
        return TypeIndex(
            groups.keys(),
            {name: part.declaration.aliased for name, part in aliases.items()},
            {name: part.parent_name for name, part in aliases.items()},
        )

    @staticmethod
    def _parent_of(name: str, groups: Dict[str, _Group]) -> Optional[str]:
        if "." not in name:
            return None
        prefix = name.rsplit(".", 1)[0]
        return prefix if prefix in groups else None

    # --- merging ---
    def _merge(self, group: _Group) -> _Merged:
        members: List[Member] = []
        slots: Dict[Tuple[str, ...], int] = {}
        direct: Dict[str, Any] = {}
        container: Dict[str, Any] = {}
        block: Dict[str, Any] = {}
        inherited: List[str] = []
        requirements: List[GenericRequirement] = []

        for part in group.parts:
            declaration = part.declaration
            self._union(direct, declaration.annotations, group.qualified_name, declaration.location)
            self._union(container, part.container, group.qualified_name, declaration.location)
            self._union(block, declaration.block_annotations, group.qualified_name, declaration.location)
            for raw in declaration.inherited_types:
                if raw not in inherited:
                    inherited.append(raw)
            for requirement in declaration.generic_requirements:
                if requirement not in requirements:
                    requirements.append(requirement)

            enclosing = self._container_annotations(declaration)
            for member in declaration.members:
                member = self._propagate(member, enclosing, declaration.kind)
                signature = member.signature
                if signature in slots:
                    self._conflict(
                        DiagnosticKind.MERGE_CONFLICT,
                        f"{group.qualified_name}.{member.selector_name or member.name} is declared more than once; "
                        "the later declaration wins",
                        member.location,
                    )
                    members[slots[signature]] = member
                else:
                    slots[signature] = len(members)
                    members.append(member)

        annotations = dict(block)
        annotations.update(container)
        annotations.update(direct)
        return _Merged(members, annotations, inherited, requirements)

    @staticmethod
    def _container_annotations(declaration: Declaration) -> Dict[str, Any]:
        if declaration.is_extension or declaration.kind is DeclarationKind.ENUM:
            return declaration.annotations
        return {}

    @staticmethod
    def _propagate(member: Member, container: Dict[str, Any], kind: DeclarationKind) -> Member:
        if kind is DeclarationKind.ENUM and member.kind is not MemberKind.ENUM_CASE:
            container = {}
        if not container and not member.block_annotations:
            return member
        annotations = dict(member.block_annotations)
        annotations.update(container)
        annotations.update(member.annotations)
        return replace(member, annotations=annotations)

    def _union(
        self,
        target: Dict[str, Any],
        incoming: Dict[str, Any],
        owner: str,
        location: Optional[SourceLocation],
    ) -> None:
        for key, value in incoming.items():
            if key not in target:
                target[key] = value
            elif target[key] != value:
                self._conflict(
                    DiagnosticKind.ANNOTATION_CONFLICT,
                    f"annotation {key!r} on {owner} is {target[key]!r} elsewhere; ignoring {value!r}",
                    location,
                )

    def _conflict(self, kind: DiagnosticKind, message: str, location: Optional[SourceLocation]) -> None:
        self._diagnostics.append(
            Diagnostic(
                severity=Severity.WARNING,
                kind=kind,
                message=message,
                file=location.file if location else None,
                offset=location.start_byte if location else None,
                line=location.line if location else None,
            )
        )

    # --- resolution ---
    def _generic_names(self, name: str, groups: Dict[str, _Group]) -> frozenset:
        names: Set[str] = set()
        current: Optional[str] = name
        while current is not None:
            base = groups[current].base
            if base is not None:
                names.update(p.name for p in base.declaration.generic_parameters)
                names.update(p.name for p in base.declaration.associated_types)
            current = self._parent_of(current, groups)
        return frozenset(names)

    def _resolve_aliases(
        self,
        aliases: Dict[str, _Part],
        index: TypeIndex,
        generics: Dict[str, frozenset],
    ) -> Dict[str, Typealias]:
        resolved: Dict[str, Typealias] = {}
        for name in sorted(aliases):
            part = aliases[name]
            declaration = part.declaration
            scope_generics = generics.get(part.parent_name, frozenset()) if part.parent_name else frozenset()
            resolver = ScopedResolver(index, part.parent_name, scope_generics).with_generics(
                p.name for p in declaration.generic_parameters
            )
            annotations = dict(declaration.block_annotations)
            annotations.update(declaration.annotations)
            resolved[name] = Typealias(
                name=declaration.name,
                qualified_name=name,
                aliased=resolver.type_name(declaration.aliased),
                access_level=declaration.access_level,
                generic_parameters=resolver.generic_parameters(declaration.generic_parameters),
                annotations=annotations,
                documentation=declaration.documentation,
                location=declaration.location,
                parent_name=part.parent_name,
            )
        return resolved

    def _resolve_inherited(
        self,
        name: str,
        groups: Dict[str, _Group],
        merged: _Merged,
        index: TypeIndex,
        generics: frozenset,
    ) -> Tuple[TypeName, ...]:
        resolver = ScopedResolver(index, self._parent_of(name, groups), generics)
        resolved = []
        for raw in merged.inherited:
            type_name = resolver.type_name(parse_type_name(raw))
            if type_name.resolved == name:
                type_name = replace(type_name, resolved=None)
            resolved.append(type_name)
        return tuple(resolved)

    @staticmethod
    def _closure(
        groups: Dict[str, _Group], inherited: Dict[str, Tuple[TypeName, ...]]
    ) -> Dict[str, Set[str]]:
        based: Dict[str, Set[str]] = {
            name: {t.resolved or t.lookup_name for t in names} for name, names in inherited.items()
        }
        changed = True
        while changed:
            changed = False
            for name in sorted(based):
                current = based[name]
                extra: Set[str] = set()
                for parent in current:
                    if parent in based:
                        extra |= based[parent]
                if not extra <= current:
                    current |= extra
                    changed = True
        return based

    # --- building ---
    def _build_type(
        self,
        group: _Group,
        merged: _Merged,
        index: TypeIndex,
        generics: frozenset,
        inherited: Tuple[TypeName, ...],
        based: Dict[str, Set[str]],
        superclasses: Dict[str, Optional[str]],
        groups: Dict[str, _Group],
        contained: Tuple[Type, ...],
        typealiases: Tuple[Typealias, ...],
        parent_name: Optional[str],
    ) -> Type:
        name = group.qualified_name
        resolver = ScopedResolver(index, name, generics)
        base = group.base.declaration if group.base else None

        closure = based.get(name, set())
        implements = sorted(
            other for other in closure if other in groups and groups[other].kind is DeclarationKind.PROTOCOL
        )

        documentation = base.documentation if base else None
        if documentation is None:
            documentation = next(
                (p.declaration.documentation for p in group.contributors if p.declaration.documentation), None
            )

        return Type(
            name=name.rsplit(".", 1)[-1] if parent_name else name,
            qualified_name=name,
            kind=group.kind,
            access_level=base.access_level if base else "internal",
            is_external=base is None,
            modifiers=base.modifiers if base else (),
            attributes=base.attributes if base else (),
            members=tuple(resolver.member(member) for member in merged.members),
            annotations=merged.annotations,
            documentation=documentation,
            inherited_types=inherited,
            superclass=superclasses[name],
            inherits=self._class_chain(name, superclasses),
            implements=tuple(implements),
            based=tuple(sorted(closure)),
            generic_parameters=resolver.generic_parameters(base.generic_parameters) if base else (),
            generic_requirements=resolver.requirements(merged.requirements),
            associated_types=resolver.generic_parameters(base.associated_types) if base else (),
            contained_types=contained,
            typealiases=tuple(sorted(typealiases, key=lambda alias: alias.qualified_name)),
            parent_name=parent_name,
            location=base.location if base else None,
            extension_locations=tuple(
                p.declaration.location for p in group.contributors if p.declaration.location
            ),
        )

    @staticmethod
    def _superclass(
        group: _Group, inherited: Tuple[TypeName, ...], groups: Dict[str, _Group]
    ) -> Optional[str]:
        if group.kind not in CLASS_KINDS:
            return None
        first = next((t for t in inherited if t.resolved), None)
        if first is not None and groups[first.resolved].kind in CLASS_KINDS:
            return first.resolved
        return None

    @staticmethod
    def _class_chain(name: str, superclasses: Dict[str, Optional[str]]) -> Tuple[str, ...]:
        chain: List[str] = []
        current = superclasses.get(name)
        while current is not None and current != name and current not in chain:
            chain.append(current)
            current = superclasses.get(current)
        return tuple(chain)
