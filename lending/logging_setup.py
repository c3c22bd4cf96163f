"""Root logging configuration for applications embedding the lending engine."""

from __future__ import annotations
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> int:
    """
    Configure the root logger. Unknown level names fall back to INFO.

    Returns:
        The numeric level applied.
    """
    numeric = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT, force=True)
    return numeric
