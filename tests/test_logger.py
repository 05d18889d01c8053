"""Tests for logging setup."""

import logging

import pytest

from core.config import LoggingConfig
from core.logger import ROOT_LOGGER, TRADE_LOGGER, setup_logging


@pytest.fixture(autouse=True)
def restore_log_handlers():
    loggers = [logging.getLogger(ROOT_LOGGER), logging.getLogger(TRADE_LOGGER)]
    saved = [list(lg.handlers) for lg in loggers]
    yield
    for lg, handlers in zip(loggers, saved):
        for h in lg.handlers:
            if h not in handlers:
                h.close()
        lg.handlers = handlers


def test_writes_run_and_trade_logs(tmp_path):
    setup_logging(LoggingConfig(log_dir=str(tmp_path), level="DEBUG"))

    logging.getLogger("thetaline.engine.simulator").debug("walking AAPL")
    logging.getLogger(TRADE_LOGGER).info("AAPL call exit")
    for h in logging.getLogger(ROOT_LOGGER).handlers + logging.getLogger(TRADE_LOGGER).handlers:
        h.flush()

    assert "walking AAPL" in (tmp_path / "thetaline.log").read_text()
    assert "AAPL call exit" in (tmp_path / "trades.log").read_text()
    assert logging.getLogger(ROOT_LOGGER).level == logging.DEBUG


def test_repeated_setup_does_not_stack_handlers(tmp_path):
    setup_logging(LoggingConfig(log_dir=str(tmp_path / "first")))
    root_count = len(logging.getLogger(ROOT_LOGGER).handlers)
    trade_count = len(logging.getLogger(TRADE_LOGGER).handlers)

    log_dir = setup_logging(LoggingConfig(log_dir=str(tmp_path / "second")))

    assert log_dir == tmp_path / "second"
    assert len(logging.getLogger(ROOT_LOGGER).handlers) == root_count
    assert len(logging.getLogger(TRADE_LOGGER).handlers) == trade_count
    files = [h.baseFilename for h in logging.getLogger(ROOT_LOGGER).handlers
             if isinstance(h, logging.FileHandler)]
    assert files == [str(tmp_path / "second" / "thetaline.log")]


def test_foreign_handlers_are_kept(tmp_path):
    foreign = logging.NullHandler()
    logging.getLogger(ROOT_LOGGER).addHandler(foreign)

    setup_logging(LoggingConfig(log_dir=str(tmp_path)))
    setup_logging(LoggingConfig(log_dir=str(tmp_path)))

    assert logging.getLogger(ROOT_LOGGER).handlers.count(foreign) == 1
