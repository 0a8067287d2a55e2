"""
Check Runner - One invocation of the non-decreasing queue check.

    fetch queues -> load registry -> evaluate trend -> save registry -> report

Error mapping:
- broker unreachable / credentials rejected   -> WARNING, registry untouched
- registry missing or corrupt                 -> first run, OK once persisted
- registry cannot be written                  -> UNKNOWN
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .collector import ManagementApiCollector, QueueObservation
from .config import CheckConfig
from .constants import CHECK_NAME, ExitCode
from .logging_config import get_logger
from .registry import JsonFileRegistryStore, RegistryLoadError, RegistryStore, RegistryWriteError
from .tracker import DepthResult, TrendResult, TrendTracker, evaluate_depth
from .utils.error_handling import ErrorCategory, handle_error, log_filesystem_error, log_network_error

logger = get_logger(__name__)


class CheckStatus(Enum):
    """Result severities, ordered by urgency."""
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"

    @property
    def exit_code(self) -> int:
        return ExitCode[self.name].value


_SEVERITY_RANK = {
    CheckStatus.OK: 0,
    CheckStatus.WARNING: 1,
    CheckStatus.UNKNOWN: 2,
    CheckStatus.CRITICAL: 3,
}


@dataclass
class CheckResult:
    """Severity and human-readable message of one run."""
    status: CheckStatus
    message: str
    critical: Dict[str, int] = field(default_factory=dict)
    warning: Dict[str, int] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    def format_output(self, check_name: str = CHECK_NAME) -> str:
        return f"{check_name} {self.status.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'exit_code': self.exit_code,
            'message': self.message,
            'critical': dict(self.critical),
            'warning': dict(self.warning),
            'details': dict(self.details),
        }


ALL_OK_MESSAGE = "All Queues OK"


def generate_message(queues: Dict[str, int]) -> str:
    """'a: 1, b: 2' in snapshot order."""
    return ', '.join(f"{name}: {count}" for name, count in queues.items())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NonDecreasingQueueCheck:
    """
    Runs the check once.

    Args:
        config: Resolved CheckConfig
        collector: Object with fetch_queues(); built from config if omitted
        store: RegistryStore; a JsonFileRegistryStore at config.registry_path if omitted
        clock: Callable returning the current time
    """

    def __init__(
        self,
        config: CheckConfig,
        collector=None,
        store: Optional[RegistryStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.collector = collector or ManagementApiCollector.from_config(config)
        self.store = store or JsonFileRegistryStore(config.registry_path)
        self.clock = clock
        self.tracker = TrendTracker.from_config(config)

    def run(self) -> CheckResult:
        try:
            snapshot = self.collector.fetch_queues()
        except ConnectionError as e:
            if getattr(e, 'status_code', None) in (401, 403):
                handle_error(e, "fetching queues", ErrorCategory.AUTH,
                             additional_context={'user': self.config.username})
            else:
                log_network_error(e, "fetching queues", host=self.config.host, port=self.config.port)
            return CheckResult(CheckStatus.WARNING, f"Could not connect to rabbitmq: {e}")

        prior = self._load_registry()
        trend = self.tracker.evaluate(snapshot, prior, self.clock())

        try:
            self.store.save(trend.registry)
        except RegistryWriteError as e:
            log_filesystem_error(e, "saving queue registry", store=repr(self.store))
            return CheckResult(
                CheckStatus.UNKNOWN,
                f"Could not persist queue registry: {e}",
                details={'queues': len(snapshot)},
            )

        result = self._trend_result(trend, len(snapshot))
        if self.config.depth_check:
            result = self._merge_depth(result, snapshot)

        logger.verbose(f"{result.status.value}: {result.message}")
        return result

    def _load_registry(self):
        try:
            return self.store.load()
        except RegistryLoadError as e:
            if e.missing:
                logger.info(f"No queue registry yet, initializing: {e}")
            else:
                handle_error(e, "loading queue registry", ErrorCategory.STATE)
            return None

    def _trend_result(self, trend: TrendResult, queue_count: int) -> CheckResult:
        details = {
            'queues': queue_count,
            'stuck': sorted(trend.stuck_queues),
            'evicted': list(trend.evicted),
        }

        if trend.initialized:
            return CheckResult(
                CheckStatus.OK,
                f"Queue registry initialized ({queue_count} queues)",
                details=details,
            )

        if trend.critical:
            status = CheckStatus.CRITICAL
            message = (f"Queues non decreasing {generate_message(trend.critical)} "
                       f"for more than {self.config.max_critical_minutes} minutes")
        elif trend.warning:
            status = CheckStatus.WARNING
            message = (f"Queues non decreasing {generate_message(trend.warning)} "
                       f"for more than {self.config.max_warning_minutes} minutes")
        else:
            status = CheckStatus.OK
            message = ALL_OK_MESSAGE

        return CheckResult(
            status,
            message,
            critical=dict(trend.critical),
            warning=dict(trend.warning),
            details=details,
        )

    def _merge_depth(self, result: CheckResult, snapshot: List[QueueObservation]) -> CheckResult:
        depth: DepthResult = evaluate_depth(
            snapshot,
            warn_threshold=self.config.warn_threshold,
            critical_threshold=self.config.critical_threshold,
            queue_level=self.config.queue_level,
            excluded_queues=self.config.excluded_queues,
        )
        result.details['depth_critical'] = dict(depth.critical)
        result.details['depth_warning'] = dict(depth.warning)

        if depth.critical:
            status = CheckStatus.CRITICAL
            depth_message = (f"Messages over {self.config.critical_threshold}: "
                             f"{generate_message(depth.critical)}")
        elif depth.warning:
            status = CheckStatus.WARNING
            depth_message = (f"Messages over {self.config.warn_threshold}: "
                             f"{generate_message(depth.warning)}")
        else:
            return result

        if result.message == ALL_OK_MESSAGE:
            result.message = depth_message
        else:
            result.message = f"{result.message}; {depth_message}"
        if _SEVERITY_RANK[status] > _SEVERITY_RANK[result.status]:
            result.status = status
        return result


__all__ = [
    'CheckStatus',
    'CheckResult',
    'NonDecreasingQueueCheck',
    'generate_message',
    'ALL_OK_MESSAGE',
    'utc_now',
]
