"""
logging_config.py — Centralized Logging Configuration for the Order Intake Service

This module configures unified logging behavior for the entire application.
It ensures that all modules log messages consistently.

Features:
    • Console output (stdout), compatible with serverless and container runtimes
    • Optional file output via ORDER_INTAKE_LOG_FILE
    • Process ID tagging for multi-process visibility
    • Reduced verbosity for external dependencies (httpx, httpcore)
"""

import logging
import os
import sys


def setup_logging(level=logging.INFO):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: INFO (default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. Console (stdout): real-time logs, picked up by the function runtime
            2. File: only if ORDER_INTAKE_LOG_FILE is set
        - Reduced verbosity for third-party HTTP libraries
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = os.environ.get("ORDER_INTAKE_LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=log_format, handlers=handlers)

    # httpx loggt jede Anfrage auf INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger instance for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
