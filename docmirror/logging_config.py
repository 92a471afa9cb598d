"""
Logging configuration for docmirror.

Quiet by default; debug output and a persistent operations log on request.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Chatty third-party loggers used by the HTTP fetcher
_LIBRARY_LOGGERS = ("urllib3", "requests", "charset_normalizer")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    # Re-enable warnings
    warnings.filterwarnings("default")

    # Configure root logger for debug output
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("docmirror").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a mirror store.

    Writes to {store_path}/docmirror-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close(), or None when the
    log file cannot be opened.
    """
    log_path = Path(store_path) / "docmirror-ops.log"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=1_000_000,
            backupCount=3,
        )
    except OSError as e:
        logging.getLogger(__name__).warning("Operations log unavailable: %s", e)
        return None
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    mirror_logger = logging.getLogger("docmirror")
    mirror_logger.addHandler(handler)
    # Ensure the package logger allows INFO through even in quiet mode
    if mirror_logger.level == logging.NOTSET or mirror_logger.level > logging.INFO:
        mirror_logger.setLevel(logging.INFO)

    return handler
