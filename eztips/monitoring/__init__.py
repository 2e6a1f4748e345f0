"""
eztips - Monitoring Module

Structured logging setup and helpers shared by the payment and review paths.
"""

from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_duration,
    unbind_context,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "log_duration",
]
