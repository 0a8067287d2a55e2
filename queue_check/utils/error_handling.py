"""
Error Handling Utilities for the Non-Decreasing Queue Check

Provides consistent error reporting across the check with:
1. Detailed error logging with context
2. Error categorization and severity levels
3. Stack trace preservation

The check never retries: each invocation is a single best-effort attempt
and the scheduler re-invokes it on its own interval.

USAGE:
    from queue_check.utils.error_handling import handle_error, ErrorCategory

    try:
        store.save(registry)
    except RegistryWriteError as e:
        handle_error(e, "saving queue registry", ErrorCategory.FILESYSTEM)
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of errors for proper handling and reporting."""
    # Broker unreachable, timeouts, bad responses
    NETWORK = "network"

    # Management API rejected the credentials
    AUTH = "authentication"

    # Registry file could not be read or written
    FILESYSTEM = "filesystem"

    # Persisted registry exists but is unusable
    STATE = "state"

    # Invalid options or config file
    CONFIG = "configuration"

    # Unknown/uncategorized
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    # Informational - operation can continue
    INFO = "info"

    # Warning - something unexpected but recovered
    WARNING = "warning"

    # Error - operation failed
    ERROR = "error"

    # Critical - the check cannot produce a trustworthy result
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Detailed context information for an error."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stack_trace: str = ""
    additional_context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.error), self.error, self.error.__traceback__
            ))

    def format_log_message(self, include_trace: bool = False) -> str:
        """Format a detailed log message."""
        lines = [
            f"ERROR [{self.severity.value.upper()}] in {self.operation}",
            f"  Category: {self.category.value}",
            f"  Type: {type(self.error).__name__}",
            f"  Message: {self.error}",
            f"  Timestamp: {self.timestamp}",
        ]

        if self.additional_context:
            lines.append("  Context:")
            for key, value in self.additional_context.items():
                lines.append(f"    {key}: {value}")

        if include_trace and self.stack_trace:
            lines.append("  Stack Trace:")
            for line in self.stack_trace.split('\n'):
                if line.strip():
                    lines.append(f"    {line}")

        return '\n'.join(lines)


def determine_severity(
    error: Exception,
    category: ErrorCategory,
) -> ErrorSeverity:
    """
    Determine the severity level for an error based on type and category.
    """
    # A corrupt registry is recovered by re-initializing it
    if category == ErrorCategory.STATE:
        return ErrorSeverity.WARNING

    # An unreachable broker degrades the check but is not fatal
    if category in (ErrorCategory.NETWORK, ErrorCategory.AUTH):
        return ErrorSeverity.WARNING

    # Losing the registry makes the next run misclassify every queue
    if category == ErrorCategory.FILESYSTEM:
        return ErrorSeverity.CRITICAL

    if isinstance(error, FileNotFoundError):
        return ErrorSeverity.WARNING

    if 'timeout' in type(error).__name__.lower() or 'timed out' in str(error).lower():
        return ErrorSeverity.WARNING

    return ErrorSeverity.ERROR


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def handle_error(
    error: Exception,
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    severity: Optional[ErrorSeverity] = None,
    additional_context: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """
    Handle an error with contextual logging.

    Args:
        error: The exception that occurred
        operation: Name of the operation that failed
        category: Category of the error
        severity: Severity level (auto-determined if not provided)
        additional_context: Additional context information

    Returns:
        ErrorContext with full error details
    """
    if severity is None:
        severity = determine_severity(error, category)

    context = ErrorContext(
        error=error,
        category=category,
        severity=severity,
        operation=operation,
        additional_context=additional_context or {},
    )

    log_level = _LOG_LEVELS.get(severity, logging.ERROR)
    logger.log(
        log_level,
        context.format_log_message(include_trace=logger.isEnabledFor(logging.DEBUG)),
    )

    return context


def log_network_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a broker connectivity error."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.NETWORK,
        additional_context=context,
    )


def log_filesystem_error(
    error: Exception,
    operation: str,
    **context,
) -> ErrorContext:
    """Log a registry persistence error."""
    return handle_error(
        error,
        operation,
        category=ErrorCategory.FILESYSTEM,
        additional_context=context,
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
