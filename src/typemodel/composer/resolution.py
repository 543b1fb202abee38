from __future__ import annotations

from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, Optional, Set

from ..models.records import (
    AssociatedValue,
    ClosureSignature,
    GenericParameter,
    GenericRequirement,
    Member,
    Parameter,
    TupleElement,
    TypeName,
    TypeNameKind,
)

SELF_NAMES = frozenset({"Self"})


class TypeIndex:
    """Name -> entity lookups for one composition run.

    Lookups walk outward from the scope a reference was written in:
    `Outer.Inner.X`, then `Outer.X`, then `X`. The first hit wins, so a
    nested declaration shadows a top-level type of the same name.
    Typealiases are followed to the type they name.
    """

    def __init__(
        self,
        names: Iterable[str],
        aliases: Dict[str, Optional[TypeName]],
        alias_scopes: Dict[str, Optional[str]],
    ) -> None:
        self._names: Set[str] = set(names)
        self._aliases = aliases
        self._alias_scopes = alias_scopes
        self._by_last_component: Dict[str, Set[str]] = {}
        for name in self._names:
            self._by_last_component.setdefault(name.rsplit(".", 1)[-1], set()).add(name)

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def canonical_extension_target(self, written: str) -> str:
        """Map the name an extension was written against to a declared type.

        An exact qualified match wins; otherwise a unique declared type whose
        last path component matches is used. Anything else stays as written.
        """
        if written in self._names:
            return written
        candidates = self._by_last_component.get(written.rsplit(".", 1)[-1], set())
        suffix_matches = sorted(name for name in candidates if name.endswith("." + written))
        if len(suffix_matches) == 1:
            return suffix_matches[0]
        return written

    def resolve_name(self, written: str, scope: Optional[str]) -> Optional[str]:
        return self._resolve(written.replace(" ", ""), scope, frozenset())

    def _resolve(self, written: str, scope: Optional[str], seen: FrozenSet[str]) -> Optional[str]:
        if not written:
            return None
        parts = scope.split(".") if scope else []
        for depth in range(len(parts), -1, -1):
            prefix = ".".join(parts[:depth])
            candidate = f"{prefix}.{written}" if prefix else written
            if candidate in self._names:
                return candidate
            if candidate in self._aliases:
                if candidate in seen:
                    return None
                aliased = self._aliases[candidate]
                if aliased is None:
                    return None
                return self._resolve(
                    aliased.lookup_name.replace(" ", ""),
                    self._alias_scopes.get(candidate),
                    seen | {candidate},
                )
        return None


class ScopedResolver:
    """Resolves every TypeName reachable from one declaration site."""

    def __init__(self, index: TypeIndex, scope: Optional[str], generic_names: FrozenSet[str]) -> None:
        self.index = index
        self.scope = scope
        self.generic_names = generic_names

    def with_generics(self, names: Iterable[str]) -> "ScopedResolver":
        extra = frozenset(names)
        if not extra:
            return self
        return ScopedResolver(self.index, self.scope, self.generic_names | extra)

    def type_name(self, type_name: Optional[TypeName]) -> Optional[TypeName]:
        if type_name is None:
            return None
        resolved: Optional[str] = None
        is_generic = False
        if type_name.kind in (TypeNameKind.SIMPLE, TypeNameKind.GENERIC):
            lookup = type_name.lookup_name
            head = lookup.split(".", 1)[0]
            if head in self.generic_names:
                is_generic = True
            elif lookup in SELF_NAMES:
                resolved = self.scope if self.scope in self.index else None
            else:
                resolved = self.index.resolve_name(lookup, self.scope)
        closure = type_name.closure
        if closure is not None:
            closure = ClosureSignature(
                parameters=tuple(self.type_name(p) for p in closure.parameters),
                return_type=self.type_name(closure.return_type),
                throws=closure.throws,
                is_async=closure.is_async,
            )
        return replace(
            type_name,
            resolved=resolved,
            is_generic_parameter=is_generic,
            element=self.type_name(type_name.element),
            key=self.type_name(type_name.key),
            value=self.type_name(type_name.value),
            elements=tuple(
                TupleElement(name=e.name, type_name=self.type_name(e.type_name)) for e in type_name.elements
            ),
            closure=closure,
            generic_arguments=tuple(self.type_name(arg) for arg in type_name.generic_arguments),
        )

    def generic_parameters(self, params: Iterable[GenericParameter]) -> tuple:
        return tuple(replace(p, constraint=self.type_name(p.constraint)) for p in params)

    def requirements(self, requirements: Iterable[GenericRequirement]) -> tuple:
        return tuple(replace(r, right=self.type_name(r.right)) for r in requirements)

    def parameter(self, parameter: Parameter) -> Parameter:
        return replace(parameter, type_name=self.type_name(parameter.type_name))

    def associated_value(self, value: AssociatedValue) -> AssociatedValue:
        return replace(value, type_name=self.type_name(value.type_name))

    def member(self, member: Member) -> Member:
        scoped = self.with_generics(p.name for p in member.generic_parameters)
        return replace(
            member,
            type_name=scoped.type_name(member.type_name),
            parameters=tuple(scoped.parameter(p) for p in member.parameters),
            generic_parameters=scoped.generic_parameters(member.generic_parameters),
            associated_values=tuple(scoped.associated_value(v) for v in member.associated_values),
        )
