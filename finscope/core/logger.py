"""Logging setup shared by every FinScope module."""

import logging
import sys
from logging.handlers import RotatingFileHandler

from finscope.config.env import ENABLE_LOGGING, LOG_DIR, LOG_FILE, LOG_LEVEL

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CustomLogger(logging.Logger):
    """Logger with helpers for logging a message together with its traceback."""

    def error_trace(self, msg, *args, **kwargs) -> None:
        """Log an error message with the current exception traceback."""
        kwargs.setdefault("exc_info", True)
        self.error(msg, *args, **kwargs)


logging.setLoggerClass(CustomLogger)


def _build_file_handler(formatter: logging.Formatter) -> logging.Handler | None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5)
    except OSError:
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str) -> CustomLogger:
    """Return a configured logger for ``name``.

    Handlers are attached only once per logger, so repeated calls (module
    reloads in tests) do not duplicate output.
    """
    logger = logging.getLogger(name)
    if not isinstance(logger, CustomLogger):
        # Created before the logger class was installed; rebuild it.
        logging.Logger.manager.loggerDict.pop(name, None)
        logger = logging.getLogger(name)

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    if logger.handlers:
        return logger  # type: ignore[return-value]

    formatter = logging.Formatter(_LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if ENABLE_LOGGING:
        file_handler = _build_file_handler(formatter)
        if file_handler is not None:
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger  # type: ignore[return-value]
