from __future__ import annotations

import logging
from io import StringIO

import pytest

from fieldcheck.logging import init as log_init
from fieldcheck.logging.init import LabeledFormatter, get_logger, log_summary, set_debug, setup_logging


@pytest.fixture(autouse=True)
def _fresh_logger():
    log_init.reset_logging()
    yield
    log_init.reset_logging()


def _capture(logger: logging.Logger) -> StringIO:
    buf = StringIO()
    logger.handlers[0].setStream(buf)
    return buf


def test_setup_logging_creates_package_logger():
    logger = setup_logging()
    assert logger.name == "fieldcheck"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_is_idempotent():
    assert setup_logging() is setup_logging()
    assert get_logger() is setup_logging()
    assert len(get_logger().handlers) == 1


def test_labeled_prefixes():
    logger = setup_logging()
    buf = _capture(logger)
    logger.info("hello")
    logger.warning("careful")
    logger.error("boom")
    log_summary("columns=1/1")
    assert buf.getvalue().splitlines() == ["INFO hello", "WARN careful", "ERROR boom", "SUMMARY columns=1/1"]


def test_module_loggers_inherit_handler():
    logger = setup_logging()
    buf = _capture(logger)
    logging.getLogger("fieldcheck.services.engine").warning("from child")
    assert buf.getvalue() == "WARN from child\n"


def test_debug_toggle():
    logger = setup_logging()
    buf = _capture(logger)
    logger.debug("hidden")
    set_debug(True)
    logger.debug("shown")
    assert buf.getvalue() == "DEBUG shown\n"
    set_debug(False)
    assert logger.level == logging.INFO
