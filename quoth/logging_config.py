"""
Logging configuration for quoth.

Quiet by default: the ``quoth`` logger writes only to the store's
operations log. Set QUOTH_VERBOSE=1 for debug output on stderr.

Handlers hang off the ``quoth`` logger rather than the root logger, so an
application embedding quoth keeps control of its own logging.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "quoth-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

DEBUG_FORMAT = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
OPS_FORMAT = logging.Formatter("%(asctime)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

_DEBUG_HANDLER_NAME = "quoth-debug"
_OPS_HANDLER_PREFIX = "quoth-ops:"


def _package_logger() -> logging.Logger:
    return logging.getLogger("quoth")


def _find_handler(name: str):
    for handler in _package_logger().handlers:
        if handler.get_name() == name:
            return handler
    return None


def enable_debug_mode() -> logging.Handler:
    """Send every quoth record, DEBUG and up, to stderr. Safe to call twice."""
    quoth_logger = _package_logger()
    quoth_logger.setLevel(logging.DEBUG)

    handler = _find_handler(_DEBUG_HANDLER_NAME)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_DEBUG_HANDLER_NAME)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(DEBUG_FORMAT)
        quoth_logger.addHandler(handler)
    return handler


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Attach the operations log of an archive: ``{store_path}/quoth-ops.log``.

    The log rotates at OPS_LOG_MAX_BYTES and keeps OPS_LOG_BACKUPS old files.
    Handles opened on the same archive share one handler, counted by
    ``remove_ops_log``, so each write is logged once.

    Returns:
        The handler to pass to ``remove_ops_log`` on close
    """
    log_path = (Path(store_path) / OPS_LOG_FILENAME).resolve()
    name = _OPS_HANDLER_PREFIX + str(log_path)

    handler = _find_handler(name)
    if handler is not None:
        handler.users += 1
        return handler

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(log_path), maxBytes=OPS_LOG_MAX_BYTES, backupCount=OPS_LOG_BACKUPS)
    handler.set_name(name)
    handler.users = 1
    handler.setLevel(logging.INFO)
    handler.setFormatter(OPS_FORMAT)

    quoth_logger = _package_logger()
    quoth_logger.addHandler(handler)
    if quoth_logger.level == logging.NOTSET or quoth_logger.level > logging.INFO:
        quoth_logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: RotatingFileHandler) -> None:
    """Release a handler from ``configure_ops_log``; the last user closes it."""
    handler.users -= 1
    if handler.users > 0:
        return
    _package_logger().removeHandler(handler)
    handler.close()
