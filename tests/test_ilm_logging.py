# test_ilm_logging.py - Tests for the logging setup

import logging

import pytest

from ilm_logging import ILM_LOGGER_NAMES, setup_logging


@pytest.fixture
def restore_loggers():
    """Puts the module loggers back as pytest expects them (propagating, no handlers)."""
    yield
    for name in ILM_LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


def test_setup_logging_configures_each_module(restore_loggers):
    setup_logging(logging.DEBUG)
    for name in ILM_LOGGER_NAMES:
        logger = logging.getLogger(name)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not logger.propagate


def test_setup_logging_twice_does_not_duplicate(restore_loggers):
    setup_logging(logging.INFO)
    setup_logging(logging.WARNING)
    logger = logging.getLogger("ilmsystem")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_setup_logging_to_file(restore_loggers, tmp_path):
    log_file = tmp_path / "ilm.log"
    setup_logging(logging.INFO, log_file=str(log_file), names=["ilmmatrix"])
    logging.getLogger("ilmmatrix").info("factorized")
    for handler in logging.getLogger("ilmmatrix").handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "Logging initialized." in text
    assert "ilmmatrix - INFO - factorized" in text
