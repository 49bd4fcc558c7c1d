"""File and console logging for the guest and its CLI."""

import copy
import logging
import logging.config
import os
import sys
from datetime import datetime
from typing import Tuple  # noqa: UP035

from crisscross_guest.constants import LOG_DIR

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Package loggers whose level follows the requested level.
_APP_LOGGERS = (
    "crisscross_guest",
    "crisscross_guest.cache",
    "crisscross_guest.transport",
    "crisscross_guest.dispatch",
    "crisscross_guest.runtime",
)

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_file": {
            "format": ("%(asctime)s - %(name)30s:%(lineno)-4d - " "%(levelname)-7s - %(message)s"),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "console": {
            "format": "%(asctime)s | %(levelname)7s | %(name)s | %(message)s",
            "datefmt": "%H:%M:%S",
        },
    },
    "handlers": {
        "file_handler": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": "temp_log_name.log",
            "encoding": "utf-8",
        },
        "console_handler": {
            "class": "logging.StreamHandler",
            "level": "WARNING",
            "formatter": "console",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "httpx": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "websockets": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "uvicorn": {
            "handlers": ["file_handler", "console_handler"],
            "propagate": False,
            "level": "INFO",
        },
    },
    "root": {
        "handlers": ["file_handler"],
        "level": "WARNING",
    },
}


def setup_logging(
    log_lvl_str: str, *, console: bool = False, quiet: bool = False
) -> Tuple[str, str]:
    """Route package logs to a fresh file under ``logs/``.

    Args:
        log_lvl_str: Level name for the package loggers, any case.
        console: Also echo package records at that level to stderr.
        quiet: Do not print the status line.

    Returns:
        ``(log_file_path, level)`` where *level* is the level actually used.
    """
    log_lvl_valid = log_lvl_str.upper()
    if log_lvl_valid not in _VALID_LEVELS:
        if not quiet:
            print(f"Unknown log level '{log_lvl_str}', falling back to INFO.")
        log_lvl_valid = "INFO"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(LOG_DIR, exist_ok=True)
    log_fpath = os.path.join(LOG_DIR, f"guest_{ts}_{log_lvl_valid}.log")

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["handlers"]["file_handler"]["filename"] = log_fpath

    handlers = ["file_handler"]
    if console:
        handlers.append("console_handler")
        log_cfg["handlers"]["console_handler"]["level"] = log_lvl_valid

    for name in _APP_LOGGERS:
        log_cfg["loggers"][name] = {
            "handlers": handlers,
            "propagate": False,
            "level": log_lvl_valid,
        }

    if log_lvl_valid == "DEBUG":
        log_cfg["loggers"]["httpx"]["level"] = "INFO"
        log_cfg["root"]["level"] = "DEBUG"

    try:
        logging.config.dictConfig(log_cfg)
        if not quiet:
            print(f"Guest logs ({log_lvl_valid}) are written to {log_fpath}")
    except Exception as e_log_cfg:
        if not quiet:
            print(
                f"Could not configure logging: {e_log_cfg}",
                file=sys.stderr,
            )

    return log_fpath, log_lvl_valid
