# -*- coding: utf-8 -*-
"""Logging setup for command-line entry points."""

import logging
from typing import Optional


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach console (and optional file) handlers to the ``tradeval`` logger.

    Parameters
    ----------
    log_level : str, default "INFO"
        Level name, e.g. "DEBUG" or "WARNING"
    log_file : str or None, optional
        Path of a log file. No file handler is added when empty.

    Returns
    -------
    logging.Logger
        The configured package logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger("tradeval")
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
