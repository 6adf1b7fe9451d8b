"""
Logging configuration for daylog.

Quiet by default: the CLI prints its own messages, and log records go
to the per-store operations log.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path


def configure_quiet_mode(quiet: bool = True):
    """
    Keep library chatter off the terminal.

    Args:
        quiet: If True, suppress deprecation warnings and hold the daylog
            logger at WARNING unless something already set a level.
            If False, leave defaults alone.
    """
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        daylog_logger = logging.getLogger("daylog")
        if daylog_logger.level == logging.NOTSET:
            daylog_logger.setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    daylog_logger = logging.getLogger("daylog")
    daylog_logger.setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a daylog store.

    Writes to {store_path}/daylog-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    log_path = Path(store_path) / "daylog-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    daylog_logger = logging.getLogger("daylog")
    daylog_logger.addHandler(handler)
    # Ensure daylog logger allows INFO through even in quiet mode
    if daylog_logger.level == logging.NOTSET or daylog_logger.level > logging.INFO:
        daylog_logger.setLevel(logging.INFO)

    return handler
