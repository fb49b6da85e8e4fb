# =============================================================================
# core/logger.py — Centralized Logging Utility
# Console shows LOG_CONSOLE_LEVEL and up; the dated file in LOGS_DIR keeps
# everything from LOG_FILE_LEVEL, including per-reset debug detail.
# =============================================================================

import logging
import os
from datetime import datetime
from config import (
    LOGS_DIR, LOG_FILE_PATTERN, LOG_CONSOLE_LEVEL, LOG_FILE_LEVEL,
    LOG_FORMAT, LOG_DATE_FORMAT,
)

_console_level = logging.getLevelName(LOG_CONSOLE_LEVEL)


def get_logger(name: str) -> logging.Logger:
    """
    Returns a named logger that writes to both console and a dated log file.
    Usage:  from core.logger import get_logger
            log = get_logger(__name__)
            log.info("Message")
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # Avoid adding duplicate handlers

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(_console_level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_path = os.path.join(LOGS_DIR, datetime.now().strftime(LOG_FILE_PATTERN))
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.getLevelName(LOG_FILE_LEVEL))
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def set_console_level(level: int) -> None:
    """
    Change console verbosity for every logger made by get_logger, including
    ones created later (e.g. `--debug` on the command line).
    """
    global _console_level
    _console_level = level
    for logger in logging.Logger.manager.loggerDict.values():
        if not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers:
            # FileHandler subclasses StreamHandler; leave it alone
            if type(handler) is logging.StreamHandler:
                handler.setLevel(level)
