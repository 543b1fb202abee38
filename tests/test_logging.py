import logging

import pytest

from typemodel.logging import configure_logging, get_logger


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    logging.getLogger().handlers.clear()
    configure_logging(level="ERROR")
    logging.getLogger().handlers.clear()


def test_error_level_keeps_composition_quiet(compose, capsys):
    configure_logging(level="ERROR")
    compose({"One.swift": "struct One {\n    var a: Int\n}\n"})
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == ""


def test_module_loggers_follow_later_configuration(capsys):
    logger = get_logger("typemodel.example")
    configure_logging(level="DEBUG")
    logger.debug("cache warmed", entries=3)
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "cache warmed" in captured.err
    assert "typemodel.example" in captured.err

