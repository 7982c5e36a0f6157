"""
Logging configuration for ashval.

Quiet by default; --verbose (or ASHVAL_VERBOSE=1) turns on debug output.
"""

import logging
import sys
import warnings


def configure_quiet_mode(quiet: bool = True):
    """
    Keep library chatter out of the terminal.

    Args:
        quiet: If True, only warnings and above reach stderr.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("ashval").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.ERROR)


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

    logging.getLogger("ashval").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for an ashval store.

    Writes to {store_path}/ashval-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    from logging.handlers import RotatingFileHandler
    from pathlib import Path

    log_path = Path(store_path) / "ashval-ops.log"
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

    ashval_logger = logging.getLogger("ashval")
    ashval_logger.addHandler(handler)
    # INFO must reach the ops log even in quiet mode
    if ashval_logger.level == logging.NOTSET or ashval_logger.level > logging.INFO:
        ashval_logger.setLevel(logging.INFO)

    return handler
