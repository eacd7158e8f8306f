"""Logging setup for the access-control engine.

The engine is a library, so it never touches the root logger. Everything
logs under the ``rideops_authz`` namespace; ``configure_logging`` installs
one stream handler on that namespace and can be called again to change the
level.

Key Features
------------
1. configure_logging(): install the package handler once, adjust level on later calls.
2. get_logger(name): logger under the package namespace, short names are prefixed.
"""

from __future__ import annotations

import logging
from typing import Final

from beartype import beartype

__all__: Final = [
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
]

PACKAGE_LOGGER: Final = "rideops_authz"
_DEFAULT_LOG_FORMAT: Final = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_handler: logging.Handler | None = None


@beartype
def configure_logging(
    *, level: int | None = None, fmt: str = _DEFAULT_LOG_FORMAT
) -> None:
    """Attach the package stream handler and optionally set the level.

    The handler is installed on the first call only; ``fmt`` is ignored
    afterwards. Records still propagate to the root logger.
    """
    global _handler
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(fmt))
        package_logger.addHandler(_handler)
        if level is None:
            level = logging.INFO
    if level is not None:
        package_logger.setLevel(level)


@beartype
def get_logger(name: str | None = None, *, level: int | None = None) -> logging.Logger:
    """Return a logger under the package namespace.

    ``get_logger("audit")`` and ``get_logger("rideops_authz.audit")`` name
    the same logger.
    """
    configure_logging()
    if not name:
        qualified = PACKAGE_LOGGER
    elif name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        qualified = name
    else:
        qualified = f"{PACKAGE_LOGGER}.{name}"
    logger = logging.getLogger(qualified)
    if level is not None:
        logger.setLevel(level)
    return logger
