import sys
from loguru import logger

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

# Configure default logger
logger.remove()
logger.add(sys.stderr, format=LOG_FORMAT, level="INFO")


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Reset sinks to stderr at ``level`` and optionally mirror to ``log_file``."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
    if log_file:
        logger.add(log_file, format=LOG_FORMAT, level="DEBUG", rotation="10 MB")


def get_qc_logger(**extra):
    return logger.bind(component="flowqc", **extra)


__all__ = ["logger", "configure_logging", "get_qc_logger"]
