"""
Service Logger Setup

Configures the standard logging module for a microservice from LoggingConfig.
"""

import logging
import sys
from typing import Optional

from .config import LoggingConfig


def setup_service_logger(
    service_name: str,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure root handlers once and return the service logger.

    Args:
        service_name: Logger name for the service
        config: Optional LoggingConfig (defaults to environment)
    """
    config = config or LoggingConfig.from_env()
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(config.log_format)

    root = logging.getLogger()
    if not getattr(root, "_isa_configured", False):
        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)
        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        root._isa_configured = True
    root.setLevel(level)

    logger = logging.getLogger(service_name)
    logger.setLevel(level)
    return logger
