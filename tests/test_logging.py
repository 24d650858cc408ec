"""Logging configuration tests."""

import logging

import pytest
import structlog

from todo_api.core.logging import configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_lines(self, restore_logging, capsys):
        configure_logging("DEBUG", "json")
        structlog.get_logger("todo").info("todo_created", todo_id=7)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        assert '"event": "todo_created"' in line
        assert '"todo_id": 7' in line
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, restore_logging):
        configure_logging("chatty")
        assert logging.getLogger().level == logging.INFO

    def test_pool_logger_quieted(self, restore_logging):
        configure_logging("DEBUG")
        assert logging.getLogger("psycopg.pool").level == logging.WARNING
