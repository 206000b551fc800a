"""Utility helpers shared across the leastsquares package."""

from leastsquares.utils.logging import (
    configure_logging,
    get_logger,
    log_operation,
    log_performance,
)

__all__ = ["configure_logging", "get_logger", "log_operation", "log_performance"]
