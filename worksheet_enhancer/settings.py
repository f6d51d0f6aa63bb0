"""Runtime paths and logging setup for the worksheet enhancer CLI."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
BASE_DIR = os.path.dirname(PACKAGE_DIR)
LOG_DIR = os.path.abspath(os.environ.get("WORKSHEET_ENHANCER_LOG_DIR", os.path.join(BASE_DIR, "logs")))
LOG_FILE_NAME = "worksheet_enhancer.log"

LOGGER_NAME = "worksheet_enhancer"


def configure_logger(level: int = logging.INFO, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Attach console and file handlers to the package logger.

    Library modules log through ``logging.getLogger(__name__)`` and stay
    silent until this is called, normally by the CLI runner.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate handlers when called again
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    if sys.platform == "win32" and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8")

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - [%(funcName)s] - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(
        os.path.join(log_dir, LOG_FILE_NAME), mode="a", encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    return logger
