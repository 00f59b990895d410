"""Console logging for voxnote.

Every module logs through a child of the ``voxnote`` logger. The console
handler is installed once, on first use; ``configure_logging`` may be called
again to change how verbose voxnote is (the CLI passes ``VOXNOTE_LOG_LEVEL``)
without touching the levels of other libraries. httpx and httpcore announce
every summary request at INFO, so they are held at WARNING.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

PACKAGE_LOGGER = "voxnote"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_QUIET_LOGGERS = ("httpx", "httpcore")

_HANDLER_INSTALLED = False


def _install_handler() -> None:
    global _HANDLER_INSTALLED
    if _HANDLER_INSTALLED:
        return
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _HANDLER_INSTALLED = True


def configure_logging(level: Union[int, str, None] = None) -> None:
    """Install the console handler and set the level of voxnote's loggers.

    ``level`` may be a number or a level name such as ``"DEBUG"``; it
    defaults to INFO.
    """

    _install_handler()
    logging.getLogger(PACKAGE_LOGGER).setLevel(level or logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a voxnote logger, installing the console handler if needed."""

    _install_handler()
    return logging.getLogger(name or PACKAGE_LOGGER)


__all__ = ["PACKAGE_LOGGER", "configure_logging", "get_logger"]
