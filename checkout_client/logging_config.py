"""
logging_config.py — Centralized Logging Configuration for the Checkout Client

This module configures unified logging behavior for the checkout client.
All modules log through the standard `logging` package so that checkout
attempts can be followed from validation to order submission.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for HTTP and payment SDK libraries (httpx, stripe)
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'


def setup_logging(log_file: str = "checkout.log", level: int = logging.INFO):
    """
    Configures the global logging system for the checkout client.

    The configuration includes:
        - Log level: INFO (default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. File: 'checkout.log' (persistent log, skipped if log_file is None)
            2. Console (stdout)
        - Reduced verbosity for httpx and the Stripe SDK

    Args:
        log_file (str | None): Path of the log file.
        level (int): Root log level.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # Reduce verbosity from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)

