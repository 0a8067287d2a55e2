"""
Logging Configuration for the Non-Decreasing Queue Check.

Provides centralized logging setup with a verbose toggle, per-module
logger names and text or JSON formatting.

Log records go to stderr: stdout is reserved for the single result line
the monitoring framework parses.

Usage:
    from queue_check.logging_config import setup_logging, get_logger

    setup_logging(verbose=True)

    logger = get_logger('queue_check.tracker')
    logger.log_with_data(logging.INFO, "Queue stuck", {'queue': 'depth'})
"""

import os
import sys
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any


# =============================================================================
# LOGGING LEVELS
# =============================================================================

VERBOSE = 15

logging.addLevelName(VERBOSE, 'VERBOSE')


# =============================================================================
# CUSTOM FORMATTER
# =============================================================================

class CheckFormatter(logging.Formatter):
    """Custom formatter with color support and structured output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'VERBOSE': '\033[94m',    # Light blue
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33;1m',  # Bold yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[31;1m', # Bold red
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True, json_format: bool = False):
        self.use_colors = use_colors and sys.stderr.isatty()
        self.json_format = json_format
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        if self.json_format:
            return self._format_json(record)
        return self._format_text(record)

    def _format_text(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        level_name = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level_name, '')
            reset = self.COLORS['RESET']
            level_str = f"{color}{level_name:8}{reset}"
        else:
            level_str = f"{level_name:8}"

        feature = self._extract_feature(record.name)
        feature_str = f"[{feature}]"

        msg = record.getMessage()

        extra_str = ""
        if getattr(record, 'extra_data', None):
            extra_items = [f"{k}={v}" for k, v in record.extra_data.items()]
            extra_str = f" | {', '.join(extra_items)}"

        line = f"{timestamp} {level_str} {feature_str:12} {msg}{extra_str}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _format_json(self, record: logging.LogRecord) -> str:
        data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'feature': self._extract_feature(record.name),
        }

        if getattr(record, 'extra_data', None):
            data['extra'] = record.extra_data

        if record.exc_info:
            data['exception'] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)

    def _extract_feature(self, logger_name: str) -> str:
        """Extract feature area from logger name."""
        parts = logger_name.split('.')
        if len(parts) >= 2 and parts[0] == 'queue_check':
            # queue_check.tracker -> tracker
            return parts[1]
        return parts[0] or 'core'


# =============================================================================
# CUSTOM LOGGER CLASS
# =============================================================================

class CheckLogger(logging.Logger):
    """Logger with a verbose level and structured-data helper."""

    def verbose(self, msg: str, *args, **kwargs):
        """Log at VERBOSE level."""
        if self.isEnabledFor(VERBOSE):
            self._log(VERBOSE, msg, args, **kwargs)

    def log_with_data(self, level: int, msg: str, data: Dict[str, Any], **kwargs):
        """Log with structured extra data."""
        extra = kwargs.get('extra', {})
        extra['extra_data'] = data
        kwargs['extra'] = extra
        if self.isEnabledFor(level):
            self._log(level, msg, (), **kwargs)


logging.setLoggerClass(CheckLogger)


# =============================================================================
# SETUP AND CONFIGURATION
# =============================================================================

def setup_logging(
    verbose: bool = False,
    debug: bool = False,
    log_file: Optional[str] = None,
    console: bool = True,
    json_format: bool = False,
) -> None:
    """
    Initialize the logging system.

    Args:
        verbose: Enable verbose logging (VERBOSE level)
        debug: Enable debug logging (implies verbose)
        log_file: Optional file path for log output
        console: Enable console output (stderr)
        json_format: Use JSON format for logs
    """
    if debug:
        base_level = logging.DEBUG
    elif verbose:
        base_level = VERBOSE
    else:
        base_level = logging.WARNING

    root = logging.getLogger()
    root.setLevel(base_level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(base_level)
        console_handler.setFormatter(CheckFormatter(
            use_colors=True,
            json_format=json_format
        ))
        root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(base_level)
        file_handler.setFormatter(CheckFormatter(
            use_colors=False,
            json_format=json_format
        ))
        root.addHandler(file_handler)

    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> CheckLogger:
    """
    Get a CheckLogger.

    Args:
        name: Logger name (e.g., 'queue_check.collector')

    Returns:
        CheckLogger instance
    """
    logging.setLoggerClass(CheckLogger)
    return logging.getLogger(name)


# =============================================================================
# ENVIRONMENT VARIABLE CONFIGURATION
# =============================================================================

def _env_true(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def configure_from_environment(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging from QUEUE_CHECK_* environment variables.

    Explicit arguments win over the environment when set.
    """
    setup_logging(
        verbose=verbose or _env_true('QUEUE_CHECK_VERBOSE'),
        debug=debug or _env_true('QUEUE_CHECK_DEBUG'),
        log_file=os.environ.get('QUEUE_CHECK_LOG_FILE'),
        console=not _env_true('QUEUE_CHECK_LOG_NO_CONSOLE'),
        json_format=_env_true('QUEUE_CHECK_LOG_JSON'),
    )


__all__ = [
    'VERBOSE',
    'setup_logging',
    'configure_from_environment',
    'get_logger',
    'CheckLogger',
    'CheckFormatter',
]
