"""Tests for the on-disk parse cache."""

import json
from pathlib import Path

import pytest

from typemodel.cache import serialization
from typemodel.cache.store import CacheStore, fingerprint
from typemodel.errors import CacheCorruptionError
from typemodel.models.records import DiagnosticKind, Severity

SOURCE = """\
// sourcery: skipEquality, tags = ["a", "b"]
struct Point: Equatable {
    var x: Int = 0
    func moved(by delta: Int) -> Point { self }
}
"""


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "cache", max_entries_per_path=2)


@pytest.fixture
def point_result(parse):
    return parse(SOURCE, "Sources/Point.swift")


def test_unchanged_content_is_a_hit_with_equal_declarations(store, point_result):
    key = fingerprint(SOURCE.encode("utf-8"))
    assert store.lookup("Sources/Point.swift", key) is None

    store.store("Sources/Point.swift", key, point_result)
    cached = store.lookup("Sources/Point.swift", key)

    assert cached == point_result
    stats = store.get_stats()
    assert stats["hit_count"] == 1
    assert stats["miss_count"] == 1
    assert stats["entry_count"] == 1


def test_one_changed_byte_misses(store, point_result):
    store.store("Sources/Point.swift", fingerprint(SOURCE.encode("utf-8")), point_result)
    changed = SOURCE.replace("x: Int = 0", "x: Int = 1").encode("utf-8")
    assert store.lookup("Sources/Point.swift", fingerprint(changed)) is None


def test_same_content_at_another_path_misses(store, point_result):
    key = fingerprint(SOURCE.encode("utf-8"))
    store.store("Sources/Point.swift", key, point_result)
    assert store.lookup("Sources/Other.swift", key) is None


def test_reverting_content_is_a_hit(store, parse):
    path = "Sources/Point.swift"
    original = SOURCE
    edited = SOURCE.replace("var x", "var y")
    store.store(path, fingerprint(original.encode()), parse(original, path))
    store.store(path, fingerprint(edited.encode()), parse(edited, path))

    reverted = store.lookup(path, fingerprint(original.encode()))
    assert reverted is not None
    assert reverted.declarations[0].members[0].name == "x"


def test_old_fingerprints_are_pruned(store, point_result, tmp_path):
    path = "Sources/Point.swift"
    for index in range(4):
        store.store(path, fingerprint(f"{SOURCE}// {index}".encode()), point_result)
    assert store.get_stats()["entry_count"] == 2


def test_corrupt_entry_is_a_miss_with_a_note(store, point_result):
    path = "Sources/Point.swift"
    key = fingerprint(SOURCE.encode("utf-8"))
    store.store(path, key, point_result)
    entry = next((store.cache_dir).glob("*/*.json"))
    entry.write_text("{not json")

    notes = []
    assert store.lookup(path, key, sink=notes) is None
    assert len(notes) == 1
    assert notes[0].severity is Severity.NOTE
    assert notes[0].kind is DiagnosticKind.CACHE
    assert not entry.exists()


def test_entries_from_another_version_are_ignored(store, point_result):
    path = "Sources/Point.swift"
    key = fingerprint(SOURCE.encode("utf-8"))
    store.store(path, key, point_result)
    entry = next(store.cache_dir.glob("*/*.json"))
    payload = json.loads(entry.read_text())
    payload["version"] = "0.0.0/0"
    entry.write_text(json.dumps(payload))

    assert store.lookup(path, key) is None


def test_disabled_cache_neither_reads_nor_writes(tmp_path, point_result):
    store = CacheStore(tmp_path / "cache", disabled=True)
    key = fingerprint(SOURCE.encode("utf-8"))
    store.store("Sources/Point.swift", key, point_result)
    assert store.lookup("Sources/Point.swift", key) is None
    assert not (tmp_path / "cache").exists()


def test_lookup_hashes_the_file_when_no_fingerprint_given(store, parse, tmp_path):
    source_file = tmp_path / "Point.swift"
    source_file.write_text(SOURCE)
    path = source_file.as_posix()
    store.store(path, fingerprint(source_file.read_bytes()), parse(SOURCE, path))
    assert store.lookup(path) is not None


def test_clear_removes_everything(store, point_result):
    store.store("Sources/Point.swift", fingerprint(b"a"), point_result)
    store.store("Sources/Other.swift", fingerprint(b"b"), point_result)
    assert store.clear() == 2
    assert store.get_stats()["entry_count"] == 0


def test_serialization_rejects_garbage():
    with pytest.raises(CacheCorruptionError):
        serialization.load(b"[]", "entry.json")
