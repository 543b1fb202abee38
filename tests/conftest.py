"""Shared test fixtures for typemodel tests.

Swift sources are kept inline; `write_sources` lays them out on disk for the
pipeline and CLI tests.
"""
from pathlib import Path
from textwrap import dedent
from typing import Callable, Dict, List

import pytest

from typemodel.composer.composer import Composer
from typemodel.config import Settings
from typemodel.models.records import FileParserResult
from typemodel.models.types import Model
from typemodel.parser.swift_parser import SwiftParser


@pytest.fixture(scope="session")
def swift_parser() -> SwiftParser:
    return SwiftParser()


@pytest.fixture
def parse(swift_parser: SwiftParser) -> Callable[[str, str], FileParserResult]:
    def _parse(source: str, path: str = "Sources/File.swift") -> FileParserResult:
        return swift_parser.parse(dedent(source), Path(path))

    return _parse


@pytest.fixture
def parse_all(parse) -> Callable[[Dict[str, str]], List[FileParserResult]]:
    def _parse_all(files: Dict[str, str]) -> List[FileParserResult]:
        return [parse(source, path) for path, source in files.items()]

    return _parse_all


@pytest.fixture
def compose(parse_all) -> Callable[[Dict[str, str]], Model]:
    def _compose(files: Dict[str, str]) -> Model:
        return Composer().compose(parse_all(files))

    return _compose


@pytest.fixture
def write_sources(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    def _write(files: Dict[str, str]) -> Path:
        root = tmp_path / "project"
        for relative, source in files.items():
            target = root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(dedent(source))
        return root

    return _write


@pytest.fixture
def settings_for(tmp_path: Path) -> Callable[..., Settings]:
    def _settings(*sources: Path, **overrides) -> Settings:
        values = {
            "sources": list(sources),
            "cache_path": tmp_path / "cache",
            "serial_parse": True,
        }
        values.update(overrides)
        return Settings(**values)

    return _settings
