"""
Logging configuration for the compilation service.
Console output only; the container runtime collects stdout.
"""
import logging

from app.core import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str | None = None) -> None:
    """
    Configure the root logger once.

    Args:
        log_level: Level name such as "INFO" or "DEBUG". Defaults to LOG_LEVEL.
    """
    level = logging.getLevelName(log_level or config.LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on reload
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("compiler").info("Logging initialized (level=%s)", logging.getLevelName(level))
