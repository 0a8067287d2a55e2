"""
Trend Tracker - Detects queues whose backlog stopped shrinking.

Each run merges the current snapshot into the registry carried over from
the previous run:

- first sighting of a queue establishes a baseline and never alerts
- a depth at or below the accepted max value counts as healthy and
  refreshes the queue's last-decrease time
- a depth lower than the previous one refreshes the last-decrease time
- any other depth leaves the last-decrease time alone; once the whole
  minutes elapsed since it reach the warning or critical limit the queue
  is reported (both sets can hold the same queue)

Queues missing from the snapshot are carried forward untouched unless
eviction is enabled.

The message-count depth check is a separate evaluation that does not
look at the registry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Sequence

from .collector import QueueObservation
from .constants import Thresholds
from .logging_config import get_logger
from .registry import QueueState, Registry

logger = get_logger(__name__)


class QueueTrend(Enum):
    """Per-queue trend state after a run."""
    UNKNOWN = "unknown"     # Never observed
    HEALTHY = "healthy"     # First seen, decreased, or under the accepted max
    STUCK = "stuck"         # Not decreasing since last_decrease


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_minutes(since: datetime, now: datetime) -> int:
    """Whole minutes between two instants, truncated toward zero."""
    delta = _as_utc(now) - _as_utc(since)
    return int(delta.total_seconds() / 60)


def latest_counts(snapshot: Sequence[QueueObservation]) -> Dict[str, int]:
    """
    Message count per queue name.

    The same name can appear once per virtual host; the last observation
    wins so each name is compared against the registry exactly once.
    """
    counts: Dict[str, int] = {}
    for observation in snapshot:
        if observation.name in counts:
            logger.debug(f"Queue '{observation.name}' listed more than once, keeping the last count")
        counts[observation.name] = observation.message_count
    return counts


@dataclass
class TrendResult:
    """Outcome of one tracker evaluation."""
    registry: Registry
    critical: Dict[str, int] = field(default_factory=dict)
    warning: Dict[str, int] = field(default_factory=dict)
    states: Dict[str, QueueTrend] = field(default_factory=dict)
    initialized: bool = False
    evicted: Sequence[str] = field(default_factory=list)

    @property
    def stuck_queues(self) -> Dict[str, QueueTrend]:
        return {name: s for name, s in self.states.items() if s == QueueTrend.STUCK}


class TrendTracker:
    """
    Applies the non-decreasing detection to a snapshot.

    Args:
        max_critical_minutes: Stuck minutes before a queue is critical
        max_warning_minutes: Stuck minutes before a queue is a warning
        accepted_max_value: Depths at or below this never alert
        queue_level: Honour excluded_queues when alerting
        excluded_queues: Queue names that never alert in queue-level mode
        evict_after_minutes: Drop registry entries unseen for this long (0 = never)
    """

    def __init__(
        self,
        max_critical_minutes: int = Thresholds.MAX_CRITICAL_MINUTES,
        max_warning_minutes: int = Thresholds.MAX_WARNING_MINUTES,
        accepted_max_value: int = Thresholds.ACCEPTED_MAX_VALUE,
        queue_level: bool = False,
        excluded_queues: Iterable[str] = (),
        evict_after_minutes: int = Thresholds.EVICT_AFTER_MINUTES,
    ):
        self.max_critical_minutes = max_critical_minutes
        self.max_warning_minutes = max_warning_minutes
        self.accepted_max_value = accepted_max_value
        self.queue_level = queue_level
        self.excluded_queues: FrozenSet[str] = frozenset(excluded_queues)
        self.evict_after_minutes = evict_after_minutes

    @classmethod
    def from_config(cls, config) -> 'TrendTracker':
        return cls(
            max_critical_minutes=config.max_critical_minutes,
            max_warning_minutes=config.max_warning_minutes,
            accepted_max_value=config.accepted_max_value,
            queue_level=config.queue_level,
            excluded_queues=config.excluded_queues,
            evict_after_minutes=config.evict_after_minutes,
        )

    def alerts_enabled_for(self, name: str) -> bool:
        return not (self.queue_level and name in self.excluded_queues)

    def evaluate(
        self,
        snapshot: Sequence[QueueObservation],
        prior_registry: Optional[Registry],
        now: datetime,
    ) -> TrendResult:
        """
        Merge a snapshot into the prior registry.

        A prior registry of None means no usable state was found: every
        queue gets a baseline entry and nothing alerts.
        """
        now = _as_utc(now)
        initialized = prior_registry is None
        previous: Registry = dict(prior_registry or {})
        registry: Registry = dict(previous)
        result = TrendResult(registry=registry, initialized=initialized)

        for name, count in latest_counts(snapshot).items():
            prior = previous.get(name)

            if prior is None:
                registry[name] = QueueState(last_decrease=now, last_value=count, last_seen=now)
                result.states[name] = QueueTrend.HEALTHY
                logger.debug(f"Baseline for queue '{name}': {count} messages")
                continue

            if count <= self.accepted_max_value:
                registry[name] = QueueState(last_decrease=now, last_value=count, last_seen=now)
                result.states[name] = QueueTrend.HEALTHY
                continue

            if count >= prior.last_value:
                registry[name] = QueueState(
                    last_decrease=prior.last_decrease, last_value=count, last_seen=now
                )
                result.states[name] = QueueTrend.STUCK
                self._classify_stuck(name, count, prior, now, result)
                continue

            registry[name] = QueueState(last_decrease=now, last_value=count, last_seen=now)
            result.states[name] = QueueTrend.HEALTHY

        if self.evict_after_minutes > 0:
            result.evicted = self._evict_unseen(registry, snapshot, now)

        return result

    def _classify_stuck(
        self,
        name: str,
        count: int,
        prior: QueueState,
        now: datetime,
        result: TrendResult,
    ) -> None:
        minutes = elapsed_minutes(prior.last_decrease, now)

        if not self.alerts_enabled_for(name):
            logger.debug(f"Queue '{name}' stuck for {minutes}m but excluded from alerting")
            return

        if minutes >= self.max_critical_minutes:
            result.critical[name] = count
        if minutes >= self.max_warning_minutes:
            result.warning[name] = count

        if name in result.warning or name in result.critical:
            logger.log_with_data(
                logging.INFO,
                f"Queue '{name}' not decreasing for {minutes} minutes",
                {'queue': name, 'messages': count, 'previous': prior.last_value,
                 'critical': name in result.critical},
            )

    def _evict_unseen(
        self,
        registry: Registry,
        snapshot: Sequence[QueueObservation],
        now: datetime,
    ) -> list:
        seen = {observation.name for observation in snapshot}
        window = timedelta(minutes=self.evict_after_minutes)
        evicted = []

        for name, state in list(registry.items()):
            if name in seen:
                continue
            last_seen = _as_utc(state.last_seen or state.last_decrease)
            if now - last_seen >= window:
                del registry[name]
                evicted.append(name)

        if evicted:
            logger.info(f"Evicted {len(evicted)} queues unseen for {self.evict_after_minutes} minutes: "
                        f"{', '.join(sorted(evicted))}")
        return evicted


# =============================================================================
# DEPTH CHECK
# =============================================================================

AGGREGATE_KEY = "total"


@dataclass
class DepthResult:
    """Queues (or the aggregate) over the message-count thresholds."""
    critical: Dict[str, int] = field(default_factory=dict)
    warning: Dict[str, int] = field(default_factory=dict)


def evaluate_depth(
    snapshot: Sequence[QueueObservation],
    warn_threshold: int,
    critical_threshold: int,
    queue_level: bool = False,
    excluded_queues: Iterable[str] = (),
) -> DepthResult:
    """
    Compare message counts with fixed thresholds.

    In queue-level mode every non-excluded queue is compared on its own;
    otherwise the total over all queues is compared and reported under
    the key "total". A value lands in exactly one of the two sets.
    """
    result = DepthResult()

    if queue_level:
        excluded = frozenset(excluded_queues)
        counts = {o.name: o.message_count for o in snapshot if o.name not in excluded}
    else:
        counts = {AGGREGATE_KEY: sum(o.message_count for o in snapshot)}

    for name, count in counts.items():
        if count >= critical_threshold:
            result.critical[name] = count
        elif count >= warn_threshold:
            result.warning[name] = count

    return result


__all__ = [
    'QueueTrend',
    'TrendResult',
    'TrendTracker',
    'DepthResult',
    'evaluate_depth',
    'elapsed_minutes',
    'latest_counts',
    'AGGREGATE_KEY',
]
