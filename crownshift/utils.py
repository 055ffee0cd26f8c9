"""General utility functions."""

import logging
import sys
import time
from functools import wraps

logger = logging.getLogger(__name__)


def time_function(func):
    """
    Decorator to log function execution time at DEBUG level.
    For recursive functions, only times the top-level call.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not hasattr(wrapper, '_in_call'):
            wrapper._in_call = False

        if not wrapper._in_call:
            wrapper._in_call = True
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = time.perf_counter() - start_time
                logger.debug("%s took %.6f seconds", func.__name__, elapsed)
                return result
            finally:
                wrapper._in_call = False
        else:
            return func(*args, **kwargs)

    return wrapper


def setup_logging(level=logging.INFO, log_file=None):
    """
    Configure the 'crownshift' logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to also write logs to
    """
    root = logging.getLogger("crownshift")
    root.setLevel(level)

    # Avoid duplicate handlers when called more than once
    if root.hasHandlers():
        root.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
