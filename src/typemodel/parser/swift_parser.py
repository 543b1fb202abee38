from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tree_sitter import Language, Node, Parser
from tree_sitter_swift import language as swift_language

from ..models.records import (
    Declaration,
    DeclarationKind,
    Diagnostic,
    DiagnosticKind,
    FileParserResult,
    GenericParameter,
    Import,
    Member,
    Severity,
    SourceLocation,
)
from . import annotations as annotation_parser
from .base import ParserAdapter
from .headers import (
    TYPE_KEYWORDS,
    parse_associated_type,
    parse_enum_cases,
    parse_function,
    parse_subscript,
    parse_type_header,
    parse_typealias,
    parse_variables,
    read_prefix,
)
from .scanning import read_identifier, strip_comments

COMMENT_NODE_TYPES = {"comment", "multiline_comment"}
BODY_NODE_TYPES = {"class_body", "enum_class_body", "protocol_body"}

GENERATED_HEADER = "// Generated using typemodel"

IMPORT_RE = re.compile(
    r"^(?:@\w+\s+)*import\s+(?:(?P<kind>typealias|struct|class|enum|protocol|let|var|func)\s+)?(?P<path>[\w.]+)"
)


@dataclass(slots=True)
class _Comment:
    start: int
    end: int
    text: str
    trailing: bool


@dataclass(slots=True)
class _Scope:
    qualified_name: str
    kind: DeclarationKind
    access: str
    member_access: str


@dataclass(slots=True)
class _FileContext:
    path: str
    source: bytes
    comments: List[_Comment]
    scopes: annotation_parser.AnnotationScopes
    parse_documentation: bool
    diagnostics: List[Diagnostic] = field(default_factory=list)
    _comment_ends: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._comment_ends = [comment.end for comment in self.comments]

    def text(self, node: Node, end: Optional[int] = None) -> str:
        stop = node.end_byte if end is None else end
        return self.source[node.start_byte : stop].decode("utf-8", errors="replace")

    def location(self, node: Node) -> SourceLocation:
        return SourceLocation(
            file=self.path,
            start_byte=node.start_byte,
            end_byte=node.end_byte,
            line=node.start_point[0] + 1,
        )

    def leading_comments(self, start: int) -> List[_Comment]:
        """Contiguous run of own-line comments directly above `start`."""
        run: List[_Comment] = []
        idx = bisect_right(self._comment_ends, start) - 1
        boundary = start
        while idx >= 0:
            comment = self.comments[idx]
            gap = self.source[comment.end : boundary]
            if comment.trailing or gap.strip() or gap.count(b"\n") > 1:
                break
            run.append(comment)
            boundary = comment.start
            idx -= 1
        run.reverse()
        return run

    def trailing_comment(self, end: int) -> Optional[_Comment]:
        idx = bisect_right(self._comment_ends, end)
        if idx >= len(self.comments):
            return None
        comment = self.comments[idx]
        gap = self.source[end : comment.start]
        if b"\n" in gap or gap.strip(b" \t,;"):
            return None
        return comment

    def annotate(self, node: Node, inline: bool = False) -> Tuple[Dict[str, Any], Dict[str, Any], Optional[str]]:
        leading = self.leading_comments(node.start_byte)
        texts = [comment.text for comment in leading]
        if inline:
            trailing = self.trailing_comment(node.end_byte)
            if trailing is not None:
                texts.append(trailing.text)
        direct: Dict[str, Any] = {}
        for text in texts:
            for entry in annotation_parser.classify(text):
                if entry.directive is annotation_parser.AnnotationDirective.INLINE:
                    direct.update(entry.annotations)
        documentation = None
        if self.parse_documentation:
            documentation = annotation_parser.documentation_text(comment.text for comment in leading)
        return direct, self.scopes.at(node.start_byte), documentation


class SwiftParser(ParserAdapter):
    language = "swift"
    suffixes = (".swift",)

    def __init__(self, parse_documentation: bool = False) -> None:
        self._language = Language(swift_language())
        self._parser = Parser(self._language)
        self.parse_documentation = parse_documentation

    def parse(self, source: str | bytes, path: Path) -> FileParserResult:
        # byte offsets in locations refer to the file as stored
        source_bytes = source if isinstance(source, bytes) else source.encode("utf-8")
        tree = self._parser.parse(source_bytes)
        root = tree.root_node

        comments = self._collect_comments(root, source_bytes)
        scopes = annotation_parser.AnnotationScopes.from_comments(
            (comment.start, comment.text) for comment in comments
        )
        ctx = _FileContext(
            path=path.as_posix(),
            source=source_bytes,
            comments=comments,
            scopes=scopes,
            parse_documentation=self.parse_documentation,
        )
        for offset, message in scopes.problems:
            ctx.diagnostics.append(
                Diagnostic(
                    severity=Severity.WARNING,
                    kind=DiagnosticKind.ANNOTATION,
                    message=message,
                    file=ctx.path,
                    offset=offset,
                    line=source_bytes.count(b"\n", 0, offset) + 1,
                )
            )
        self._report_syntax_errors(root, ctx)

        declarations: List[Declaration] = []
        imports: List[Import] = []
        for node in self._top_level_nodes(root):
            if node.type == "import_declaration":
                parsed_import = self._parse_import(ctx.text(node))
                if parsed_import:
                    imports.append(parsed_import)
                continue
            declaration = self._parse_declaration(node, ctx, parent=None)
            if declaration is not None:
                declarations.append(declaration)

        return FileParserResult(
            path=ctx.path,
            declarations=tuple(declarations),
            imports=tuple(imports),
            file_annotations=dict(scopes.file_annotations),
            diagnostics=tuple(ctx.diagnostics),
        )

    # --- tree helpers ---
    def _iter_nodes(self, node: Node) -> Iterator[Node]:
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def _top_level_nodes(self, root: Node) -> Iterator[Node]:
        # Declarations that survive inside ERROR nodes are still recovered.
        for child in root.named_children:
            if child.type == "ERROR":
                yield from self._top_level_nodes(child)
            elif child.type not in COMMENT_NODE_TYPES:
                yield child

    def _body(self, node: Node) -> Optional[Node]:
        body = node.child_by_field_name("body")
        if body is not None:
            return body
        for child in node.children:
            if child.type in BODY_NODE_TYPES or child.type.endswith("_body"):
                return child
        return None

    def _collect_comments(self, root: Node, source: bytes) -> List[_Comment]:
        comments: List[_Comment] = []
        for node in self._iter_nodes(root):
            if node.type not in COMMENT_NODE_TYPES:
                continue
            line_start = source.rfind(b"\n", 0, node.start_byte) + 1
            comments.append(
                _Comment(
                    start=node.start_byte,
                    end=node.end_byte,
                    text=source[node.start_byte : node.end_byte].decode("utf-8", errors="replace"),
                    trailing=bool(source[line_start : node.start_byte].strip()),
                )
            )
        comments.sort(key=lambda comment: comment.start)
        return comments

    def _report_syntax_errors(self, root: Node, ctx: _FileContext) -> None:
        if not root.has_error:
            return
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "ERROR" or node.is_missing:
                snippet = ctx.text(node).strip().splitlines()
                what = f"missing '{node.type}'" if node.is_missing else "syntax error"
                if snippet and not node.is_missing:
                    what = f"{what} near '{snippet[0][:40]}'"
                ctx.diagnostics.append(
                    Diagnostic(
                        severity=Severity.ERROR,
                        kind=DiagnosticKind.PARSE_ERROR,
                        message=what,
                        file=ctx.path,
                        offset=node.start_byte,
                        line=node.start_point[0] + 1,
                    )
                )
                continue
            if node.has_error:
                stack.extend(reversed(node.children))
        ctx.diagnostics.sort(key=lambda diagnostic: diagnostic.offset or 0)

    # --- declarations ---
    def _keyword(self, text: str) -> Optional[str]:
        prefix = read_prefix(text)
        keyword, _ = read_identifier(text, prefix.end)
        return keyword

    def _parse_import(self, text: str) -> Optional[Import]:
        match = IMPORT_RE.match(strip_comments(text).strip())
        if not match:
            return None
        return Import(path=match.group("path"), kind=match.group("kind"))

    def _parse_declaration(
        self, node: Node, ctx: _FileContext, parent: Optional[_Scope]
    ) -> Optional[Declaration]:
        body = self._body(node)
        header = strip_comments(ctx.text(node, body.start_byte if body else None))
        keyword = self._keyword(header)
        if keyword == "typealias":
            return self._parse_typealias(node, header, ctx, parent)
        if keyword not in TYPE_KEYWORDS:
            return None
        parsed = parse_type_header(header)
        if parsed is None:
            return None

        if parsed.kind is DeclarationKind.EXTENSION or parent is None:
            qualified = parsed.name
        else:
            qualified = f"{parent.qualified_name}.{parsed.name}"
        access = parsed.prefix.access_level
        if parsed.kind is DeclarationKind.PROTOCOL or parsed.kind is DeclarationKind.EXTENSION:
            member_access = access or "internal"
        else:
            member_access = "internal"
        scope = _Scope(
            qualified_name=qualified,
            kind=parsed.kind,
            access=access or "internal",
            member_access=member_access,
        )

        direct, block, documentation = ctx.annotate(node)
        members: List[Member] = []
        nested: List[Declaration] = []
        associated: List[GenericParameter] = []
        if body is not None:
            self._parse_body(body, ctx, scope, members, nested, associated)

        return Declaration(
            name=parsed.name.split(".")[-1] if parsed.kind is not DeclarationKind.EXTENSION else parsed.name,
            kind=parsed.kind,
            qualified_name=qualified,
            access_level=access or "internal",
            modifiers=parsed.prefix.modifiers,
            attributes=parsed.prefix.attributes,
            inherited_types=parsed.inherited_types,
            members=tuple(members),
            nested=tuple(nested),
            generic_parameters=parsed.generic_parameters,
            generic_requirements=parsed.generic_requirements,
            associated_types=tuple(associated),
            annotations=direct,
            block_annotations=block,
            documentation=documentation,
            location=ctx.location(node),
            parent_name=parent.qualified_name if parent and parsed.kind is not DeclarationKind.EXTENSION else None,
        )

    def _parse_typealias(
        self, node: Node, header: str, ctx: _FileContext, parent: Optional[_Scope]
    ) -> Optional[Declaration]:
        alias = parse_typealias(header)
        if alias is None:
            return None
        qualified = f"{parent.qualified_name}.{alias.name}" if parent else alias.name
        direct, block, documentation = ctx.annotate(node, inline=True)
        return Declaration(
            name=alias.name,
            kind=DeclarationKind.TYPEALIAS,
            qualified_name=qualified,
            access_level=alias.prefix.access_level or (parent.member_access if parent else "internal"),
            modifiers=alias.prefix.modifiers,
            attributes=alias.prefix.attributes,
            generic_parameters=alias.generic_parameters,
            annotations=direct,
            block_annotations=block,
            documentation=documentation,
            location=ctx.location(node),
            parent_name=parent.qualified_name if parent else None,
            aliased=alias.aliased,
        )

    def _parse_body(
        self,
        body: Node,
        ctx: _FileContext,
        scope: _Scope,
        members: List[Member],
        nested: List[Declaration],
        associated: List[GenericParameter],
    ) -> None:
        for child in body.named_children:
            if child.type in COMMENT_NODE_TYPES:
                continue
            if child.type == "ERROR":
                self._parse_body(child, ctx, scope, members, nested, associated)
                continue
            text = strip_comments(ctx.text(child))
            keyword = self._keyword(text)
            if keyword in TYPE_KEYWORDS or keyword == "typealias":
                declaration = self._parse_declaration(child, ctx, scope)
                if declaration is not None:
                    nested.append(declaration)
                continue
            if keyword == "associatedtype":
                parameter = parse_associated_type(text)
                if parameter is not None:
                    associated.append(parameter)
                continue
            members.extend(self._parse_members(child, text, keyword, ctx, scope))

    def _parse_members(
        self, node: Node, text: str, keyword: Optional[str], ctx: _FileContext, scope: _Scope
    ) -> List[Member]:
        access = scope.member_access
        if keyword in ("var", "let"):
            parsed = parse_variables(text, access)
        elif keyword in ("func", "init", "deinit"):
            method = parse_function(text, access)
            parsed = [method] if method else []
        elif keyword == "subscript":
            subscript = parse_subscript(text, access)
            parsed = [subscript] if subscript else []
        elif keyword == "case" and scope.kind is DeclarationKind.ENUM:
            parsed = parse_enum_cases(text, scope.access)
        else:
            return []
        if not parsed:
            return []
        single_line = node.start_point[0] == node.end_point[0]
        direct, block, documentation = ctx.annotate(node, inline=single_line)
        location = ctx.location(node)
        return [
            replace(
                member,
                annotations=dict(direct),
                block_annotations=dict(block),
                documentation=documentation,
                location=location,
            )
            for member in parsed
        ]


def is_generated(source: str | bytes) -> bool:
    if isinstance(source, bytes):
        return source.lstrip().startswith(GENERATED_HEADER.encode("utf-8"))
    return source.lstrip().startswith(GENERATED_HEADER)

