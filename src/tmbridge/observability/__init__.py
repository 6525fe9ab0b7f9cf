"""
tmbridge Observability Module

Structured logging configuration shared by the API and scripts.
"""

from tmbridge.observability.logging import (
    configure_logging,
    bind_request_context,
    clear_request_context,
)

__all__ = [
    "configure_logging",
    "bind_request_context",
    "clear_request_context",
]
