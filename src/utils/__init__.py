"""Utility modules for the OSINT pulse service."""

from src.utils.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    source_log_context,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "source_log_context",
]
