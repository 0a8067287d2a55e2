"""
Utility modules for the Non-Decreasing Queue Check.

Provides common utilities including:
- Error handling with contextual logging
"""

from .error_handling import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    determine_severity,
    handle_error,
    log_network_error,
    log_filesystem_error,
)

__all__ = [
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'determine_severity',
    'handle_error',
    'log_network_error',
    'log_filesystem_error',
]
