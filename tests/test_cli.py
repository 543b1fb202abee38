import json

from typer.testing import CliRunner

from typemodel.cli.main import app

runner = CliRunner()

SOURCES = {
    "Point.swift": "// sourcery: skipEquality\nstruct Point {\n    var x: Int\n}\n",
    "Point+Y.swift": "extension Point {\n    var y: Int\n}\n",
}


def _common(root, tmp_path):
    return ["--sources", str(root), "--cache-base-path", str(tmp_path / "cache"), "--serial-parse"]


def test_scan_prints_types(write_sources, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = write_sources(SOURCES)
    result = runner.invoke(app, ["scan", *_common(root, tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Point" in result.output
    assert "2 parsed" in result.output


def test_scan_json_output(write_sources, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = write_sources(SOURCES)
    result = runner.invoke(app, ["scan", *_common(root, tmp_path), "--json", "--args", "env=prod"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    point = payload["types"][0]
    assert point["qualified_name"] == "Point"
    assert [m["name"] for m in point["members"]] == ["x", "y"]
    assert point["annotations"] == {"skipEquality": True}
    assert payload["arguments"] == {"env": "prod"}
    assert payload["hasParseErrors"] is False


def test_show_type(write_sources, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = write_sources(SOURCES)
    result = runner.invoke(
        app, ["show", "Point", "--sources", str(root), "--cache-base-path", str(tmp_path / "cache")]
    )
    assert result.exit_code == 0, result.output
    assert "skipEquality" in result.output

    missing = runner.invoke(
        app, ["show", "Nope", "--sources", str(root), "--cache-base-path", str(tmp_path / "cache")]
    )
    assert missing.exit_code == 1


def test_missing_sources_exit_with_invalid_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(
        app, ["scan", "--sources", str(tmp_path / "missing"), "--cache-base-path", str(tmp_path / "cache")]
    )
    assert result.exit_code == 1


def test_invalid_config_exits_with_code_two(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = tmp_path / "bad.yml"
    config.write_text("- not a mapping\n")
    result = runner.invoke(app, ["scan", "--config", str(config)])
    assert result.exit_code == 2


def test_cache_stats_and_clear(write_sources, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = write_sources(SOURCES)
    cache = str(tmp_path / "cache")
    runner.invoke(app, ["scan", *_common(root, tmp_path)])

    stats = runner.invoke(app, ["cache-stats", "--cache-base-path", cache])
    assert stats.exit_code == 0, stats.output
    assert "Entries" in stats.output

    cleared = runner.invoke(app, ["cache-clear", "--cache-base-path", cache])
    assert cleared.exit_code == 0
    assert "Cleared 2" in cleared.output
