"""
Unit tests for logging setup.
"""

import logging

import pytest

from dutch.utils.logger import DutchLogger, get_logger, setup_logging


@pytest.fixture
def restore_logging():
    yield
    setup_logging()


class TestLoggingSetup:
    """Tests for configuring the package logger."""

    def test_subsystem_loggers_are_namespaced(self):
        assert get_logger("ledger").name == "dutch.ledger"

    def test_setup_logging_reconfigures(self, tmp_path, restore_logging):
        log_dir = tmp_path / "logs"
        setup_logging(level=logging.DEBUG, log_dir=str(log_dir), log_to_file=True)

        package_logger = logging.getLogger("dutch")
        assert package_logger.level == logging.DEBUG
        assert any(isinstance(h, logging.FileHandler) for h in package_logger.handlers)

        get_logger("ledger").debug("written to file")
        for handler in package_logger.handlers:
            handler.flush()
        assert "written to file" in (log_dir / "dutch.log").read_text()

    def test_implicit_setup_keeps_existing_configuration(self, restore_logging):
        setup_logging(level=logging.WARNING)
        DutchLogger.setup(level=logging.DEBUG)
        assert logging.getLogger("dutch").level == logging.WARNING
