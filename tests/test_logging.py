"""Tests for configure_logging."""

import logging

import pytest
from stepwizard.utils import logging as wizard_logging


@pytest.fixture
def fresh_logger(monkeypatch):
    """Let configure_logging run again and undo its changes afterwards."""
    logger = logging.getLogger("stepwizard")
    monkeypatch.delattr(wizard_logging.configure_logging, "has_run", raising=False)
    monkeypatch.setattr(logger, "handlers", [])
    monkeypatch.setattr(logger, "level", logging.NOTSET)
    monkeypatch.setattr(logger, "propagate", True)
    yield logger
    if hasattr(wizard_logging.configure_logging, "has_run"):
        del wizard_logging.configure_logging.has_run


def test_explicit_level(fresh_logger):
    wizard_logging.configure_logging("DEBUG")

    assert fresh_logger.level == logging.DEBUG
    assert len(fresh_logger.handlers) == 1
    assert fresh_logger.propagate is False


def test_level_from_environment(fresh_logger, monkeypatch):
    monkeypatch.setenv("STEPWIZARD_LOG_LEVEL", "warning")

    wizard_logging.configure_logging()

    assert fresh_logger.level == logging.WARNING


def test_only_first_call_counts(fresh_logger):
    wizard_logging.configure_logging("ERROR")
    wizard_logging.configure_logging("DEBUG")

    assert fresh_logger.level == logging.ERROR
    assert len(fresh_logger.handlers) == 1
