import logging

import pytest

from dupguard.logging import get_logger


@pytest.fixture
def fresh_name(request):
    """A logger name no other test has configured."""
    name = f"dupguard.tests.{request.node.name}"
    yield name
    logging.getLogger(name).handlers.clear()


class TestGetLogger:
    def test_library_default_is_warning(self, fresh_name, monkeypatch):
        monkeypatch.delenv("DUPGUARD_LOG_LEVEL", raising=False)

        assert get_logger(fresh_name).level == logging.WARNING

    def test_cli_default_is_info(self, fresh_name, monkeypatch):
        monkeypatch.delenv("DUPGUARD_LOG_LEVEL", raising=False)

        assert get_logger(f"{fresh_name}.cli").level == logging.INFO
        logging.getLogger(f"{fresh_name}.cli").handlers.clear()

    def test_environment_override(self, fresh_name, monkeypatch):
        monkeypatch.setenv("DUPGUARD_LOG_LEVEL", "debug")

        assert get_logger(fresh_name).level == logging.DEBUG

    def test_unknown_level_falls_back(self, fresh_name, monkeypatch):
        monkeypatch.setenv("DUPGUARD_LOG_LEVEL", "chatty")

        assert get_logger(fresh_name).level == logging.WARNING

    def test_handler_added_once(self, fresh_name):
        logger = get_logger(fresh_name)

        assert get_logger(fresh_name) is logger
        assert len(logger.handlers) == 1
