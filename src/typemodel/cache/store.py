"""Content-addressed cache of per-file parse results.

Layout: ``<cache_dir>/<sha1(path)>/<sha256(content)>.json``. Each path keeps
its most recent fingerprints, so reverting a file to earlier content is
still a hit. The cache is advisory: anything unreadable is a miss.
"""
from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import CacheCorruptionError
from ..logging import get_logger
from ..models.records import Diagnostic, DiagnosticKind, FileParserResult, Severity
from . import serialization

logger = get_logger(__name__)

ENTRY_SUFFIX = ".json"


def fingerprint(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class CacheStore:
    """Maps (path, content fingerprint) to a previously computed FileParserResult.

    Only the coordinating process reads and writes the store.
    """

    def __init__(self, cache_dir: Path, disabled: bool = False, max_entries_per_path: int = 4) -> None:
        self.cache_dir = Path(cache_dir)
        self.disabled = disabled
        self.max_entries_per_path = max(1, max_entries_per_path)
        self._hits = 0
        self._misses = 0
        self._corrupt = 0

    # --- public API ---
    def lookup(
        self,
        path: str,
        content_fingerprint: Optional[str] = None,
        sink: Optional[List[Diagnostic]] = None,
    ) -> Optional[FileParserResult]:
        """Return the cached result for `path` at the given content, if any.

        Without a fingerprint the file is read and hashed here. Corrupt
        entries are removed and reported to `sink` as a note.
        """
        if self.disabled:
            return None
        if content_fingerprint is None:
            try:
                content_fingerprint = fingerprint(Path(path).read_bytes())
            except OSError:
                self._misses += 1
                return None

        entry_path = self._entry_path(path, content_fingerprint)
        try:
            payload = entry_path.read_bytes()
        except FileNotFoundError:
            self._misses += 1
            return None

        try:
            entry = serialization.load(payload, entry_path)
        except CacheCorruptionError as exc:
            self._misses += 1
            self._corrupt += 1
            logger.debug("cache entry unreadable", path=path, entry=str(entry_path))
            if sink is not None:
                sink.append(
                    Diagnostic(
                        severity=Severity.NOTE,
                        kind=DiagnosticKind.CACHE,
                        message=exc.message,
                        file=path,
                    )
                )
            entry_path.unlink(missing_ok=True)
            return None

        if (
            entry.version != serialization.VERSION_TAG
            or entry.path != path
            or entry.fingerprint != content_fingerprint
        ):
            self._misses += 1
            return None

        self._hits += 1
        os.utime(entry_path)
        return entry.result

    def store(self, path: str, content_fingerprint: str, result: FileParserResult) -> None:
        if self.disabled:
            return
        entry_path = self._entry_path(path, content_fingerprint)
        _atomic_write_text(entry_path, serialization.dump(path, content_fingerprint, result))
        self._prune(entry_path.parent, keep=entry_path)

    def clear(self) -> int:
        """Delete every entry; returns how many path directories were removed."""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for child in self.cache_dir.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
                removed += 1
        return removed

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        entries = list(self.cache_dir.glob(f"*/*{ENTRY_SUFFIX}")) if self.cache_dir.exists() else []
        return {
            "hit_count": self._hits,
            "miss_count": self._misses,
            "corrupt_count": self._corrupt,
            "hit_rate": self._hits / total if total > 0 else 0.0,
            "entry_count": len(entries),
            "size_bytes": sum(entry.stat().st_size for entry in entries),
            "cache_dir": str(self.cache_dir),
            "disabled": self.disabled,
        }

    # --- internals ---
    def _entry_path(self, path: str, content_fingerprint: str) -> Path:
        bucket = hashlib.sha1(path.encode("utf-8")).hexdigest()
        return self.cache_dir / bucket / f"{content_fingerprint}{ENTRY_SUFFIX}"

    def _prune(self, bucket: Path, keep: Path) -> None:
        entries = [entry for entry in bucket.glob(f"*{ENTRY_SUFFIX}") if entry != keep]
        stale: List[Path] = []
        fresh: List[Path] = []
        for entry in entries:
            (fresh if self._has_current_version(entry) else stale).append(entry)
        fresh.sort(key=lambda entry: entry.stat().st_mtime, reverse=True)
        stale.extend(fresh[self.max_entries_per_path - 1 :])
        for entry in stale:
            entry.unlink(missing_ok=True)

    @staticmethod
    def _has_current_version(entry: Path) -> bool:
        try:
            return serialization.load(entry.read_bytes(), entry).version == serialization.VERSION_TAG
        except (OSError, CacheCorruptionError):
            return False


def _atomic_write_text(path: Path, content: str) -> None:
    """Atomically replace ``path`` with ``content``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=".tmp-",
        suffix=".partial",
        delete=False,
    ) as handle:
        handle.write(content)
        temp_path = Path(handle.name)
    os.replace(temp_path, path)
