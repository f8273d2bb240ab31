"""Observability module for flowpatch.

Provides structured logging backed by structlog and rich.
"""

from flowpatch.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
]
