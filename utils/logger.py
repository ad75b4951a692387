# utils/logger.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_DEFAULT_FILE = os.getenv("LOG_FILE", "logs/engine.log")
_DEFAULT_MAX_MB = int(os.getenv("LOG_MAX_MB", "10"))     # 10 MB
_DEFAULT_BACKUPS = int(os.getenv("LOG_BACKUPS", "10"))   # keep 10 rotated files

_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# chatty third-party loggers
_QUIET = ("asyncio", "aiohttp", "httpx", "telegram")


def setup_logger(name: str,
                 level: Union[str, int] = _DEFAULT_LEVEL,
                 log_file: Optional[str] = _DEFAULT_FILE,
                 to_console: bool = True) -> logging.Logger:
    """
    Create/get a logger with console and rotating-file handlers.
    Re-using the same name returns the same configured logger (no duplicate handlers).
    An empty ``log_file`` disables the file handler.
    """
    logger = logging.getLogger(name)
    if logger.handlers:  # already configured
        return logger

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=_DEFAULT_MAX_MB * 1024 * 1024,
            backupCount=_DEFAULT_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    if to_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(level)
        logger.addHandler(stream_handler)

    for noisy in _QUIET:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
