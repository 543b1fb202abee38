from pathlib import Path

import pytest

from typemodel.config import Settings, load_settings
from typemodel.errors import ConfigurationError, ExitCode


def test_defaults_without_a_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = load_settings()
    assert settings.sources == []
    assert settings.disable_cache is False
    assert settings.cache_path.name == "typemodel"


def test_yaml_paths_resolve_against_the_config_directory(tmp_path):
    config = tmp_path / "conf" / ".typemodel.yml"
    config.parent.mkdir()
    config.write_text(
        "sources:\n  - ../Sources\nexclude_sources: ../Sources/Generated\n"
        "cache_path: .cache\nparse_documentation: true\nforce_parse: swift, h\n"
        "args:\n  - env = prod\n"
    )
    settings = load_settings(config)
    assert settings.sources == [(tmp_path / "Sources").resolve()]
    assert settings.exclude_sources == [(tmp_path / "Sources" / "Generated").resolve()]
    assert settings.cache_path == (config.parent / ".cache").resolve()
    assert settings.parse_documentation is True
    assert settings.force_parse == ["swift", "h"]
    assert settings.arguments == {"env": "prod"}


def test_overrides_replace_file_values(tmp_path):
    config = tmp_path / ".typemodel.yml"
    config.write_text("serial_parse: false\nsources: [A]\n")
    settings = load_settings(config, serial_parse=True, sources=[tmp_path / "B"], disable_cache=None)
    assert settings.serial_parse is True
    assert settings.sources == [tmp_path / "B"]
    assert settings.disable_cache is False


def test_missing_explicit_config_is_fatal(tmp_path):
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(tmp_path / "absent.yml")
    assert excinfo.value.exit_code is ExitCode.INVALID_CONFIG


@pytest.mark.parametrize("content", ["- just\n- a list\n", "workers: 0\n", "sources: [unclosed\n"])
def test_invalid_config_is_fatal(tmp_path, content):
    config = tmp_path / ".typemodel.yml"
    config.write_text(content)
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(config)
    assert excinfo.value.exit_code is ExitCode.INVALID_CONFIG


def test_settings_coerce_single_paths():
    settings = Settings(sources="Sources", force_parse=None)
    assert settings.sources == [Path("Sources")]
    assert settings.force_parse == []
