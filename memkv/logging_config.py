"""
Logging setup for processes that embed memkv.

The library itself only creates module loggers; test harnesses and
tools call setup_logging() once to install a handler.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import BackendConfig


def setup_logging(config: BackendConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Backend configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
