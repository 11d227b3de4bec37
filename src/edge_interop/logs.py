"""
Logging setup shared by the entry points.
"""
import logging
import os

LOG_FORMAT = '%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'


def setup_logging():
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    The level comes from the LOG_LEVEL environment variable (default INFO).
    """
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT
    )
