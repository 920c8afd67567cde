import importlib
import logging

import pytest

# py_ecu re-exports the `logger` object, which shadows the submodule attribute on the package
logger_module = importlib.import_module('py_ecu.logger')
from py_ecu.definitions import UnitCategory, UnitDefinition
from py_ecu.logger import disable_file_logging, enable_file_logging, logger


@pytest.fixture
def info_level():
    previous = logger.level
    logger.setLevel(logging.INFO)
    yield
    disable_file_logging()
    logger.setLevel(previous)


class TestFileLogging:

    def test_registry_writes_reach_file(self, tmp_path, registry, info_level):
        path = tmp_path / 'units.log'
        enable_file_logging(str(path))
        assert logger.level == logging.DEBUG
        registry.register(UnitDefinition('ftm', 'fathom', UnitCategory.LENGTH, 1.8288))
        disable_file_logging()
        assert logger.level == logging.INFO
        assert logger_module.file_handler is None
        text = path.read_text(encoding='utf-8')
        assert "DEBUG:py_ecu:Registry updated (register ftm)" in text

    def test_level_filters_file(self, tmp_path, registry, info_level):
        path = tmp_path / 'units.log'
        enable_file_logging(str(path), level='WARNING')
        assert logger.level == logging.INFO
        registry.register(UnitDefinition('ftm', 'fathom', UnitCategory.LENGTH, 1.8288))
        logger.warning("unit table ignored")
        disable_file_logging()
        text = path.read_text(encoding='utf-8')
        assert "Registry updated" not in text
        assert "WARNING:py_ecu:unit table ignored" in text

    def test_replacing_handler(self, tmp_path, info_level):
        enable_file_logging(str(tmp_path / 'first.log'))
        first = logger_module.file_handler
        enable_file_logging(str(tmp_path / 'second.log'))
        assert logger_module.file_handler is not first
        assert first not in logger.handlers
        disable_file_logging()
        assert logger.level == logging.INFO

    def test_disable_without_enable(self, info_level):
        disable_file_logging()
        assert logger_module.file_handler is None
        assert logger.level == logging.INFO
