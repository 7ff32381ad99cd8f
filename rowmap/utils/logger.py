"""
rowmap/utils/logger.py
----------------------
Logging for the mapper. Every module logs under the ``rowmap`` namespace via
`get_logger(__name__)`, so host applications can tune or silence the engine
(statement echo included) through that single logger.
"""

import logging
import sys

from rowmap.config import LOG_LEVEL

PACKAGE_LOGGER = "rowmap"

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_initialized = False


def _init_logging() -> None:
    """Set the ``rowmap`` level from ``LOG_LEVEL``; add a stdout handler unless the host already logs."""
    global _initialized
    if _initialized:
        return
    package = logging.getLogger(PACKAGE_LOGGER)
    level = getattr(logging, LOG_LEVEL.upper(), None)
    package.setLevel(level if isinstance(level, int) else logging.INFO)
    if not package.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
        package.addHandler(handler)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the ``rowmap`` namespace.

    Args:
        name: Usually ``__name__`` of the calling module; names outside the
            package are nested under ``rowmap``.

    Returns:
        A configured logging.Logger.
    """
    _init_logging()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
