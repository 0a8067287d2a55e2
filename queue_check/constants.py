"""
Centralized Constants Module for the Non-Decreasing Queue Check.

Defaults for thresholds, timeouts and paths live here so that the CLI,
the configuration loader and the tests agree on a single set of values.

Usage:
    from queue_check.constants import Thresholds, Timeouts, Paths

    requests.get(url, timeout=Timeouts.HTTP_REQUEST)
"""

import os
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUEUE_CHECK_"


# =============================================================================
# ENVIRONMENT VARIABLE OVERRIDE UTILITIES
# =============================================================================

T = TypeVar('T')


def _env_override(
    env_var: str,
    default: T,
    converter: Callable[[str], T] = str,
    min_value: Optional[T] = None,
) -> T:
    """Get a configuration value with environment variable override.

    Args:
        env_var: Environment variable name (will be prefixed with QUEUE_CHECK_)
        default: Default value if env var not set
        converter: Function to convert string to target type
        min_value: Optional minimum allowed value

    Returns:
        Configured value (from env var if valid, otherwise default)
    """
    full_env_var = f"{ENV_PREFIX}{env_var}"
    env_value = os.environ.get(full_env_var)

    if env_value is None:
        return default

    try:
        converted = converter(env_value)

        if min_value is not None and converted < min_value:
            logger.warning(
                f"{full_env_var}={env_value} below minimum {min_value}, using default"
            )
            return default

        logger.debug(f"Using {full_env_var}={converted} (override)")
        return converted

    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid value for {full_env_var}: {e}, using default")
        return default


def _env_override_list(
    env_var: str,
    default: Tuple[str, ...],
    separator: str = ",",
) -> Tuple[str, ...]:
    """Get a list configuration value with environment variable override."""
    full_env_var = f"{ENV_PREFIX}{env_var}"
    env_value = os.environ.get(full_env_var)

    if env_value is None:
        return default

    items = tuple(item.strip() for item in env_value.split(separator) if item.strip())
    logger.debug(f"Using {full_env_var}={items} (override)")
    return items


# =============================================================================
# EXIT CODES
# =============================================================================

class ExitCode(IntEnum):
    """Process exit codes of the Sensu/Nagios plugin convention."""
    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


# =============================================================================
# THRESHOLDS
# =============================================================================

@dataclass(frozen=True)
class Thresholds:
    """
    Default alerting thresholds.

    Minutes are compared against whole elapsed minutes since the last
    observed decrease of a queue's depth.
    """
    MAX_CRITICAL_MINUTES: int = 10
    MAX_WARNING_MINUTES: int = 3
    ACCEPTED_MAX_VALUE: int = 50

    # Message-count thresholds of the depth check
    WARN_MESSAGES: int = 250
    CRITICAL_MESSAGES: int = 500

    # 0 disables eviction of queues that vanished from the broker
    EVICT_AFTER_MINUTES: int = 0


# =============================================================================
# TIMEOUTS
# =============================================================================

@dataclass(frozen=True)
class Timeouts:
    """Timeout values in seconds."""
    HTTP_REQUEST: float = 10.0          # Management API call, connect + read
    HTTP_CONNECT: float = 5.0


# =============================================================================
# BROKER DEFAULTS
# =============================================================================

@dataclass(frozen=True)
class BrokerDefaults:
    """Connection defaults for the RabbitMQ management API."""
    HOST: str = "localhost"
    PORT: int = 15672
    USERNAME: str = "guest"
    PASSWORD: str = "guest"
    QUEUES_ENDPOINT: str = "/api/queues"
    CREDENTIALS_SECTION: str = "auth"


# =============================================================================
# PATH CONSTANTS
# =============================================================================

@dataclass(frozen=True)
class Paths:
    """
    Filesystem paths.

    The registry path defaults to the location the check has always used;
    give each independently configured instance its own path.
    """
    REGISTRY_FILE: str = _env_override(
        "REGISTRY_PATH", "/tmp/rabbitmq_queues_registry.log"
    )
    CORRUPT_SUFFIX: str = ".corrupt"
    TEMP_PREFIX: str = ".queue_registry."


class RuntimeConfig:
    """Runtime defaults that can be overridden via environment variables."""

    @staticmethod
    def get_request_timeout() -> float:
        return _env_override("REQUEST_TIMEOUT", Timeouts.HTTP_REQUEST, float, min_value=0.1)

    @staticmethod
    def get_excluded_queues() -> Tuple[str, ...]:
        return _env_override_list("EXCLUDED_QUEUES", ())

    @staticmethod
    def get_host() -> str:
        return _env_override("HOST", BrokerDefaults.HOST)

    @staticmethod
    def get_port() -> int:
        return _env_override("PORT", BrokerDefaults.PORT, int, min_value=1)


CHECK_NAME = "CheckRabbitMQNonDecreasing"


__all__ = [
    'ENV_PREFIX',
    'ExitCode',
    'Thresholds',
    'Timeouts',
    'BrokerDefaults',
    'Paths',
    'RuntimeConfig',
    'CHECK_NAME',
]
