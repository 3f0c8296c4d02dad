"""Logging setup for the habittimer package logger."""

import logging
import os
from logging.handlers import RotatingFileHandler

from habittimer.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "habittimer"


def configure_logging(
        settings: Settings,
        console: bool = False,
        max_bytes: int = 1024 * 1024,
        backup_count: int = 3,
) -> logging.Logger:
    """Attach the rotating file handler, and optionally a console handler, to the package logger.

    Handlers are named, so calling this again for the same settings adds nothing.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.propagate = False
    logger.setLevel(logging.DEBUG if console else settings.log_level)

    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # Persistent log, rotated once it grows past max_bytes. A handler left over from another config dir is replaced.
    file_handler_name = f"{ROOT_LOGGER}:file"
    log_path = os.path.abspath(settings.log_dir / f"{ROOT_LOGGER}.log")
    for h in list(logger.handlers):
        if h.get_name() == file_handler_name and getattr(h, "baseFilename", None) != log_path:
            logger.removeHandler(h)
            h.close()
    if not any(h.get_name() == file_handler_name for h in logger.handlers):
        try:
            settings.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
        except OSError:
            # Read-only home: carry on without a file log
            pass
        else:
            file_handler.setLevel(settings.log_level)
            file_handler.setFormatter(fmt)
            file_handler.set_name(file_handler_name)
            logger.addHandler(file_handler)

    # Console output for --verbose
    console_handler_name = f"{ROOT_LOGGER}:console"
    if console and not any(h.get_name() == console_handler_name for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(fmt)
        console_handler.set_name(console_handler_name)
        logger.addHandler(console_handler)

    return logger


def reset_logging() -> None:
    """Detach every handler :func:`configure_logging` added and restore propagation."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.propagate = True
    for handler in list(logger.handlers):
        if handler.get_name() and handler.get_name().startswith(f"{ROOT_LOGGER}:"):
            logger.removeHandler(handler)
            handler.close()
