"""
Logging setup.

Modules log through ``logging.getLogger(__name__)``; this installs
one stream handler on the package logger. Calling it again only
changes the level.
"""

import logging

LOGGER_NAME = "revenue_ledger"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not any(getattr(h, "_revenue_ledger", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._revenue_ledger = True
        logger.addHandler(handler)
    return logger
