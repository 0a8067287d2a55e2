"""
Non-Decreasing Queue Check - Core Components
"""

# Logging first so every package logger is a CheckLogger
from .logging_config import setup_logging, get_logger

from .constants import Thresholds, Timeouts, BrokerDefaults, Paths, ExitCode, CHECK_NAME
from .config import CheckConfig, ConfigError, load_config
from .collector import QueueObservation, ManagementApiCollector, CollectorConnectionError
from .registry import (
    QueueState,
    Registry,
    RegistryStore,
    JsonFileRegistryStore,
    InMemoryRegistryStore,
    RegistryLoadError,
    RegistryWriteError,
)
from .tracker import TrendTracker, TrendResult, QueueTrend, DepthResult, evaluate_depth
from .check import NonDecreasingQueueCheck, CheckResult, CheckStatus

__version__ = "1.0.0"

__all__ = [
    'setup_logging',
    'get_logger',
    'Thresholds',
    'Timeouts',
    'BrokerDefaults',
    'Paths',
    'ExitCode',
    'CHECK_NAME',
    'CheckConfig',
    'ConfigError',
    'load_config',
    'QueueObservation',
    'ManagementApiCollector',
    'CollectorConnectionError',
    'QueueState',
    'Registry',
    'RegistryStore',
    'JsonFileRegistryStore',
    'InMemoryRegistryStore',
    'RegistryLoadError',
    'RegistryWriteError',
    'TrendTracker',
    'TrendResult',
    'QueueTrend',
    'DepthResult',
    'evaluate_depth',
    'NonDecreasingQueueCheck',
    'CheckResult',
    'CheckStatus',
]
