"""
Core Infrastructure
====================

Foundational components shared by the order service packages.

Components:
- exceptions: Unified error taxonomy (not found / validation / conflict)
- structured_log: JSON event logging
"""

from .exceptions import (
    OrderServiceError,
    NotFoundError,
    ValidationError,
    ConflictError,
)
from .structured_log import jlog, read_recent_logs, configure_event_log

__all__ = [
    # Exceptions
    'OrderServiceError',
    'NotFoundError',
    'ValidationError',
    'ConflictError',
    # Structured Logging
    'jlog',
    'read_recent_logs',
    'configure_event_log',
]
