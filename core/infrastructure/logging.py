"""
Logging infrastructure.

Provides logging utilities shared by the orchestration engine and core.
"""
import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_ROOT_LOGGERS = ("orchestration", "core")

# Level given to loggers created after configure_logging() ran
_level: int = logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance.

    Args:
        name: Logger name (usually module name)

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(_level)
    return logger


def configure_logging(level: str | int = "INFO") -> None:
    """
    Apply a log level to every logger created under the project namespaces.

    Args:
        level: Level name (e.g. "DEBUG") or numeric level
    """
    global _level

    if isinstance(level, str):
        level_name = level.upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level_name}")

    _level = level
    for root in _ROOT_LOGGERS:
        logging.getLogger(root).setLevel(level)

    for name, logger in logging.Logger.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and name.startswith(_ROOT_LOGGERS):
            logger.setLevel(level)
