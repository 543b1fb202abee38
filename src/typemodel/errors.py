"""Error types raised by the pipeline.

Only configuration problems abort a run. Everything that goes wrong while
parsing or composing is reported as a Diagnostic on the Model instead.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict


class ExitCode(IntEnum):
    """Process exit codes used by the command line."""

    INVALID_PATH = 1
    INVALID_CONFIG = 2
    OTHER = 3


@dataclass(eq=False)
class TypeModelError(Exception):
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ConfigurationError(TypeModelError):
    """Fatal, raised before any file is parsed."""

    exit_code: ExitCode = ExitCode.OTHER

    @classmethod
    def no_sources(cls) -> "ConfigurationError":
        return cls(
            message="No source files found; pass --sources or set `sources` in the config file",
            exit_code=ExitCode.INVALID_PATH,
        )

    @classmethod
    def unreadable_path(cls, path: Any, reason: str) -> "ConfigurationError":
        return cls(
            message=f"Cannot read {path}: {reason}",
            details={"path": str(path), "reason": reason},
            exit_code=ExitCode.INVALID_PATH,
        )

    @classmethod
    def invalid_config(cls, path: Any, reason: str) -> "ConfigurationError":
        return cls(
            message=f"Invalid configuration in {path}: {reason}",
            details={"path": str(path), "reason": reason},
            exit_code=ExitCode.INVALID_CONFIG,
        )


@dataclass(eq=False)
class CacheCorruptionError(TypeModelError):
    """An unreadable cache entry. Callers treat it as a miss."""

    @classmethod
    def unreadable(cls, path: Any, reason: str) -> "CacheCorruptionError":
        return cls(
            message=f"Ignoring unreadable cache entry {path}: {reason}",
            details={"path": str(path), "reason": reason},
        )
