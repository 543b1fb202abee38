from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from ..models.records import FileParserResult


class ParserAdapter(ABC):
    language: str
    suffixes: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, source: str | bytes, path: Path) -> FileParserResult:
        """Return the partial declarations discovered in the given source."""


class ParserRegistry:
    def __init__(self) -> None:
        self._registry: dict[str, ParserAdapter] = {}

    def register(self, adapter: ParserAdapter) -> None:
        self._registry[adapter.language] = adapter

    def for_path(self, path: Path) -> ParserAdapter:
        for adapter in self._registry.values():
            if path.suffix in adapter.suffixes:
                return adapter
        raise ValueError(f"No parser registered for {path.suffix or path.name}")

    def suffixes(self) -> set[str]:
        return {suffix for adapter in self._registry.values() for suffix in adapter.suffixes}
