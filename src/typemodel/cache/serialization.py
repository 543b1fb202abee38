"""Versioned on-disk form of a FileParserResult.

Entries written by a different package version or schema are never read
back; bump SCHEMA_VERSION whenever a record in `models.records` changes.
"""
from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import CacheCorruptionError
from ..models.records import FileParserResult

SCHEMA_VERSION = 1


def _package_version() -> str:
    try:
        return version("swift-typemodel")
    except PackageNotFoundError:
        return "0+unknown"


VERSION_TAG = f"{_package_version()}/{SCHEMA_VERSION}"


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    path: str
    fingerprint: str
    result: FileParserResult


def dump(path: str, fingerprint: str, result: FileParserResult) -> str:
    entry = CacheEntry(version=VERSION_TAG, path=path, fingerprint=fingerprint, result=result)
    return entry.model_dump_json()


def load(payload: str | bytes, source: object = None) -> CacheEntry:
    try:
        return CacheEntry.model_validate_json(payload)
    except (ValidationError, ValueError) as exc:
        raise CacheCorruptionError.unreadable(source, str(exc).splitlines()[0]) from exc
