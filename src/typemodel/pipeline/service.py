from __future__ import annotations

import os
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..cache.store import CacheStore, fingerprint
from ..composer.composer import Composer
from ..config import Settings
from ..errors import ConfigurationError
from ..logging import get_logger
from ..models.records import Diagnostic, DiagnosticKind, FileParserResult, Severity
from ..models.types import Model
from ..parser.base import ParserRegistry
from ..parser.swift_parser import SwiftParser, is_generated

logger = get_logger(__name__)

# one registry per worker process, keyed by parse_documentation
_REGISTRIES: Dict[bool, ParserRegistry] = {}


def build_registry(parse_documentation: bool = False) -> ParserRegistry:
    registry = ParserRegistry()
    registry.register(SwiftParser(parse_documentation=parse_documentation))
    return registry


def _registry(parse_documentation: bool) -> ParserRegistry:
    if parse_documentation not in _REGISTRIES:
        _REGISTRIES[parse_documentation] = build_registry(parse_documentation)
    return _REGISTRIES[parse_documentation]


def _parse_file(
    path: str, content: bytes, parse_documentation: bool, force_parse: Tuple[str, ...]
) -> FileParserResult:
    """Worker entry point; keeps one parser per process."""
    return _parse_with(_registry(parse_documentation), path, content, force_parse)


def _parse_with(
    registry: ParserRegistry, path: str, content: bytes, force_parse: Tuple[str, ...]
) -> FileParserResult:
    suffix = Path(path).suffix.lstrip(".")
    if is_generated(content) and suffix not in force_parse:
        return FileParserResult(path=path, skipped=True)
    adapter = registry.for_path(Path(path))
    try:
        return adapter.parse(content, Path(path))
    except Exception as exc:  # noqa: BLE001 - one bad file must not abort the run
        return FileParserResult(
            path=path,
            diagnostics=(
                Diagnostic(
                    severity=Severity.ERROR,
                    kind=DiagnosticKind.PARSE_ERROR,
                    message=f"parser failed: {exc}",
                    file=path,
                ),
            ),
        )


@dataclass(slots=True)
class SourceFile:
    path: str
    content: bytes
    fingerprint: str


@dataclass(slots=True)
class PipelineRun:
    """Bookkeeping for one pass, exposed for the command line."""

    model: Model
    parsed: List[str] = field(default_factory=list)
    cached: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    elapsed: float = 0.0


class PipelineService:
    def __init__(
        self,
        settings: Settings,
        registry: ParserRegistry | None = None,
        cache: CacheStore | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or build_registry(settings.parse_documentation)
        self.cache = cache or CacheStore(
            settings.cache_path,
            disabled=settings.disable_cache,
            max_entries_per_path=settings.max_entries_per_path,
        )
        self.composer = Composer()

    # --- public API ---
    def build_model(self) -> Model:
        return self.run().model

    def run(self) -> PipelineRun:
        started = time.perf_counter()
        sources = self.load_sources(self.collect_sources())

        notes: List[Diagnostic] = []
        results: Dict[str, FileParserResult] = {}
        pending: List[SourceFile] = []
        cached: List[str] = []
        for source in sources:
            hit = self.cache.lookup(source.path, source.fingerprint, sink=notes)
            if hit is not None:
                results[source.path] = hit
                cached.append(source.path)
            else:
                pending.append(source)

        for result in self.parse(pending):
            results[result.path] = result
        by_path = {source.path: source for source in pending}
        for path in sorted(by_path):
            result = results[path]
            if not result.skipped:
                self.cache.store(path, by_path[path].fingerprint, result)

        ordered = [results[path] for path in sorted(results)]
        model = self.composer.compose(ordered, diagnostics=notes, arguments=self.settings.arguments)
        elapsed = time.perf_counter() - started
        skipped = [result.path for result in ordered if result.skipped]
        logger.info(
            "scan finished",
            files=len(ordered),
            parsed=len(pending) - len(skipped),
            cached=len(cached),
            skipped=len(skipped),
            types=len(model.index),
            diagnostics=len(model.diagnostics),
            elapsed=round(elapsed, 3),
        )
        return PipelineRun(
            model=model,
            parsed=sorted(p.path for p in pending if not results[p.path].skipped),
            cached=sorted(cached),
            skipped=skipped,
            elapsed=elapsed,
        )

    def collect_sources(self) -> List[Path]:
        """Expand configured sources into the sorted list of files to parse."""
        suffixes = self.registry.suffixes()
        excludes = [path.resolve() for path in self.settings.exclude_sources]
        found: Dict[str, Path] = {}
        for source in self.settings.sources:
            if not source.exists():
                raise ConfigurationError.unreadable_path(source, "no such file or directory")
            if source.is_file():
                candidates: Iterable[Path] = [source] if source.suffix in suffixes else []
            else:
                candidates = (p for p in source.rglob("*") if p.is_file() and p.suffix in suffixes)
            for candidate in candidates:
                resolved = candidate.resolve()
                if _is_excluded(resolved, excludes):
                    continue
                found[resolved.as_posix()] = resolved
        if not found:
            raise ConfigurationError.no_sources()
        return [found[key] for key in sorted(found)]

    def load_sources(self, paths: Sequence[Path]) -> List[SourceFile]:
        sources = []
        for path in paths:
            try:
                content = path.read_bytes()
            except OSError as exc:
                raise ConfigurationError.unreadable_path(path, exc.strerror or str(exc)) from exc
            sources.append(
                SourceFile(
                    path=path.as_posix(),
                    content=content,
                    fingerprint=fingerprint(content),
                )
            )
        return sources

    def parse(self, sources: Sequence[SourceFile]) -> List[FileParserResult]:
        if not sources:
            return []
        workers = self._workers(len(sources))
        if self.settings.serial_parse or workers <= 1:
            results = self._sequential_parse(sources)
        else:
            results = self._parallel_parse(sources, workers)
        return sorted(results, key=lambda result: result.path)

    # --- internals ---
    def _force_parse(self) -> Tuple[str, ...]:
        return tuple(ext.lstrip(".") for ext in self.settings.force_parse)

    def _workers(self, count: int) -> int:
        configured = self.settings.workers or os.cpu_count() or 1
        return max(1, min(configured, count))

    def _sequential_parse(self, sources: Sequence[SourceFile]) -> List[FileParserResult]:
        force_parse = self._force_parse()
        return [_parse_with(self.registry, s.path, s.content, force_parse) for s in sources]

    def _parallel_parse(self, sources: Sequence[SourceFile], workers: int) -> List[FileParserResult]:
        force_parse = self._force_parse()
        documentation = self.settings.parse_documentation
        logger.debug("parsing in parallel", files=len(sources), workers=workers)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_parse_file, s.path, s.content, documentation, force_parse) for s in sources
            ]
            # barrier: every file is parsed before composition starts
            return [future.result() for future in futures]


def _is_excluded(path: Path, excludes: Optional[Sequence[Path]]) -> bool:
    for exclude in excludes or ():
        if path == exclude or exclude in path.parents:
            return True
    return False
