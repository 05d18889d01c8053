"""
Thetaline — Logging Setup
Console output for the CLI, a rotating run log, and a trade audit log
fed by the simulator's `thetaline.trades` logger.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.config import LoggingConfig

ROOT_LOGGER = "thetaline"
TRADE_LOGGER = "thetaline.trades"

# Handler names owned by setup_logging(); replaced on every call
_HANDLER_PREFIX = "thetaline:"

_FILE_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FORMAT = logging.Formatter(
    "%(asctime)s │ %(levelname)-7s │ %(name)-28s │ %(message)s",
    datefmt="%H:%M:%S",
)


def _rotating(path: Path, config: LoggingConfig, name: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.set_name(_HANDLER_PREFIX + name)
    handler.setFormatter(_FILE_FORMAT)
    return handler


def _drop_owned_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if (handler.get_name() or "").startswith(_HANDLER_PREFIX):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(config: LoggingConfig) -> Path:
    """
    Configure the `thetaline` logger tree from `config`.

    Safe to call repeatedly: handlers installed by an earlier call are
    closed and replaced, so a second call (e.g. with another log_dir)
    never duplicates output. Returns the log directory.
    """
    log_path = Path(config.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger(ROOT_LOGGER)
    trades = logging.getLogger(TRADE_LOGGER)
    _drop_owned_handlers(root)
    _drop_owned_handlers(trades)

    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    console = logging.StreamHandler(sys.stdout)
    console.set_name(_HANDLER_PREFIX + "console")
    console.setLevel(logging.INFO)
    console.setFormatter(_CONSOLE_FORMAT)
    root.addHandler(console)

    run_log = _rotating(log_path / "thetaline.log", config, "run")
    run_log.setLevel(logging.DEBUG)
    root.addHandler(run_log)

    trades.addHandler(_rotating(log_path / "trades.log", config, "trades"))

    root.info("Logging initialized, level=%s, dir=%s", config.level, log_path)
    return log_path
