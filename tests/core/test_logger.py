"""Tests for the shared logger setup."""

import logging

from finscope.core.logger import CustomLogger, setup_logger


def test_setup_logger_returns_custom_logger_once_configured():
    logger = setup_logger("finscope.tests.logger")
    handler_count = len(logger.handlers)

    again = setup_logger("finscope.tests.logger")

    assert isinstance(logger, CustomLogger)
    assert again is logger
    assert len(again.handlers) == handler_count
    assert logger.propagate is False


def test_error_trace_attaches_exception_info():
    logger = setup_logger("finscope.tests.error_trace")
    records = []

    class _Collector(logging.Handler):
        def emit(self, record):
            records.append(record)

    collector = _Collector()
    logger.addHandler(collector)
    try:
        try:
            raise RuntimeError("store unavailable")
        except RuntimeError:
            logger.error_trace("Sync failed")
    finally:
        logger.removeHandler(collector)

    assert records[0].levelno == logging.ERROR
    assert records[0].exc_info[0] is RuntimeError
