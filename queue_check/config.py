"""
Configuration for the Non-Decreasing Queue Check.

Values are resolved in this order, later sources winning:
    1. built-in defaults (queue_check.constants, QUEUE_CHECK_* env overrides)
    2. an optional YAML file
    3. command line flags

YAML layout (every key optional):

    host: rabbit.internal
    port: 15671
    use_tls: true
    credentials_file: /etc/sensu/rabbitmq.ini
    queue_level: true
    excluded_queues: [dead-letters, audit]
    max_critical_minutes: 10
    max_warning_minutes: 3
    accepted_max_value: 50
    registry_path: /var/lib/queue-check/rabbit-internal.json
"""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Union

import yaml

from .constants import BrokerDefaults, Paths, RuntimeConfig, Thresholds
from .logging_config import get_logger

logger = get_logger(__name__)


class ConfigError(Exception):
    """Invalid configuration file or option value."""


def _split_queue_names(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = value
    else:
        raise ConfigError(f"excluded_queues must be a list or comma separated string, got {value!r}")
    return frozenset(str(item).strip() for item in items if str(item).strip())


@dataclass(frozen=True)
class CheckConfig:
    """Everything one invocation of the check needs."""
    # Management API
    host: str = field(default_factory=RuntimeConfig.get_host)
    port: int = field(default_factory=RuntimeConfig.get_port)
    username: str = BrokerDefaults.USERNAME
    password: str = field(default=BrokerDefaults.PASSWORD, repr=False)
    credentials_file: Optional[str] = None
    use_tls: bool = False
    verify_tls: bool = True
    vhost: Optional[str] = None
    request_timeout: float = field(default_factory=RuntimeConfig.get_request_timeout)

    # Depth check
    depth_check: bool = False
    warn_threshold: int = Thresholds.WARN_MESSAGES
    critical_threshold: int = Thresholds.CRITICAL_MESSAGES

    # Trend detection
    queue_level: bool = False
    excluded_queues: FrozenSet[str] = field(
        default_factory=lambda: frozenset(RuntimeConfig.get_excluded_queues())
    )
    max_critical_minutes: int = Thresholds.MAX_CRITICAL_MINUTES
    max_warning_minutes: int = Thresholds.MAX_WARNING_MINUTES
    accepted_max_value: int = Thresholds.ACCEPTED_MAX_VALUE

    # Registry
    registry_path: str = Paths.REGISTRY_FILE
    evict_after_minutes: int = Thresholds.EVICT_AFTER_MINUTES

    _INT_FIELDS = (
        'port', 'warn_threshold', 'critical_threshold', 'max_critical_minutes',
        'max_warning_minutes', 'accepted_max_value', 'evict_after_minutes',
    )
    _BOOL_FIELDS = ('use_tls', 'verify_tls', 'depth_check', 'queue_level')

    @classmethod
    def field_names(cls) -> FrozenSet[str]:
        return frozenset(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional['CheckConfig'] = None) -> 'CheckConfig':
        """Overlay a mapping of option values on base (or the defaults)."""
        unknown = set(data) - cls.field_names()
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

        values = {}
        for key, value in data.items():
            if value is None:
                continue
            values[key] = cls._coerce(key, value)

        config = replace(base or cls(), **values)
        config.validate()
        return config

    @classmethod
    def _coerce(cls, key: str, value: Any) -> Any:
        try:
            if key in cls._INT_FIELDS:
                if isinstance(value, bool):
                    raise ValueError("boolean given")
                return int(value)
            if key == 'request_timeout':
                return float(value)
            if key in cls._BOOL_FIELDS:
                if isinstance(value, str):
                    return value.strip().lower() in ('1', 'true', 'yes', 'on')
                return bool(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value for {key}: {value!r} ({e})") from e
        if key == 'excluded_queues':
            return _split_queue_names(value)
        return str(value) if not isinstance(value, str) else value

    def validate(self) -> None:
        """Raise ConfigError on values the check cannot work with."""
        for name in ('max_critical_minutes', 'max_warning_minutes', 'accepted_max_value',
                     'warn_threshold', 'critical_threshold', 'evict_after_minutes'):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be non-negative, got {getattr(self, name)}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if not self.registry_path:
            raise ConfigError("registry_path must not be empty")

        if self.max_warning_minutes > self.max_critical_minutes:
            logger.warning(
                f"max_warning_minutes ({self.max_warning_minutes}) exceeds "
                f"max_critical_minutes ({self.max_critical_minutes})"
            )
        if self.excluded_queues and not self.queue_level:
            logger.warning("excluded_queues only apply with queue_level enabled")

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['password'] = '***'
        data['excluded_queues'] = sorted(self.excluded_queues)
        return data


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML configuration file into a plain dict."""
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    logger.debug(f"Loaded {len(data)} settings from {path}")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> CheckConfig:
    """Defaults, then the YAML file at path, then overrides."""
    config = CheckConfig()
    if path:
        config = CheckConfig.from_dict(load_config_file(path), base=config)
    if overrides:
        config = CheckConfig.from_dict(overrides, base=config)
    return config


__all__ = [
    'CheckConfig',
    'ConfigError',
    'load_config',
    'load_config_file',
]
