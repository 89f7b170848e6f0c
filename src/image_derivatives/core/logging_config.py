"""Logging setup for the ``image_derivatives`` logger tree.

Every logger the package uses lives under ``PACKAGE_LOGGER``: module loggers
from ``get_logger(__name__)``, the ``StructuredLogger`` built by
``LoggerFactory`` and the per-function loggers of the error decorators.
Only the package logger carries a handler; children propagate to it.
"""

import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGER = "image_derivatives"
HANDLER_NAME = "image_derivatives.stdout"

FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def resolve_level(level: Optional[str] = None) -> int:
    """Map a level name (or ``LOG_LEVEL``) to a logging level, INFO if unknown."""
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _stdout_handler(logger: logging.Logger) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if handler.get_name() == HANDLER_NAME:
            return handler
    return None


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Attach the stdout handler to ``name`` and set its level.

    Calling it again updates the level and format of the existing handler
    instead of adding a second one.

    Environment Variables:
        LOG_LEVEL: Level used when ``level`` is not given
        LOG_FORMAT: "structured" or "simple", overrides ``format_type``
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))

    format_name = os.getenv("LOG_FORMAT", format_type).lower()
    formatter = logging.Formatter(
        FORMATS.get(format_name, FORMATS["simple"]), datefmt="%Y-%m-%d %H:%M:%S"
    )

    handler = _stdout_handler(logger)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(HANDLER_NAME)
        logger.addHandler(handler)
    handler.setFormatter(formatter)

    # Lambda installs its own root handler; keep our records off it
    logger.propagate = False
    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Return a logger inside the package tree, configuring the tree on first use.

    Names outside the tree are nested under it, so ``get_logger("catalog")``
    is ``image_derivatives.catalog``.
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _stdout_handler(package_logger) is None:
        setup_logger(PACKAGE_LOGGER)
    return logging.getLogger(name)
