import logging
import os
import sys

# Cache of loggers already wired to the console handler
_loggers: dict[str, logging.Logger] = {}


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# Returns a logger that writes to stdout, level taken from LOG_LEVEL
def get_logger(name: str) -> logging.Logger:
    if name in _loggers:
        return _loggers[name]

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(ConsoleFormatter())
        logger.addHandler(handler)
        logger.propagate = False

    _loggers[name] = logger
    return logger
