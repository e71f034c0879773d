"""
Monitoring helpers for the gem scorer.

Components:
- Structured JSON logging with scan and symbol context
- Performance, business event and error log helpers
"""

from .structured_logger import (
    StructuredLogger,
    get_logger,
    log_business_event,
    log_context,
    log_error,
    log_performance,
    setup_service_logger,
)

__all__ = [
    "StructuredLogger",
    "get_logger",
    "log_business_event",
    "log_context",
    "log_error",
    "log_performance",
    "setup_service_logger",
]
