"""
Shared service logger.

Every module logs through ``from query_service.logger import logger`` with
%-style arguments so formatting is deferred until a record is emitted.
"""

import logging

from query_service.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("query_service")

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
