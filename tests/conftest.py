"""
Pytest configuration and shared fixtures for the queue check tests.

This module provides common fixtures for testing the check components.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Dict, List, Optional

import pytest

# Add the parent directory to the path for imports
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from queue_check.collector import CollectorConnectionError, QueueObservation
from queue_check.config import CheckConfig
from queue_check.registry import InMemoryRegistryStore, QueueState


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# ===========================================================================
# Temporary Directory Fixtures
# ===========================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="queue_check_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def registry_path(temp_dir: Path) -> Path:
    """Provide a registry file path that does not exist yet."""
    return temp_dir / "registry.json"


# ===========================================================================
# Time Fixtures
# ===========================================================================

@pytest.fixture
def t0() -> datetime:
    """A fixed, timezone-aware reference instant."""
    return T0


class FakeClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ===========================================================================
# Collector / Store Fixtures
# ===========================================================================

class FakeCollector:
    """Collector returning preset snapshots, or raising a preset error."""

    def __init__(self, counts: Optional[Dict[str, int]] = None, error: Optional[Exception] = None):
        self.counts = dict(counts or {})
        self.error = error
        self.calls = 0

    def fetch_queues(self) -> List[QueueObservation]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return snapshot(self.counts)


def snapshot(counts: Dict[str, int]) -> List[QueueObservation]:
    """Build a snapshot from a name -> count mapping."""
    return [QueueObservation(name, count) for name, count in counts.items()]


@pytest.fixture
def fake_collector() -> FakeCollector:
    return FakeCollector({'depth': 120})


@pytest.fixture
def unreachable_collector() -> FakeCollector:
    return FakeCollector(error=CollectorConnectionError("cannot reach http://localhost:15672/api/queues"))


@pytest.fixture
def memory_store() -> InMemoryRegistryStore:
    """An in-memory store with nothing saved yet."""
    return InMemoryRegistryStore()


@pytest.fixture
def stuck_registry(t0: datetime) -> Dict[str, QueueState]:
    """One queue last seen at 600 messages, last decrease at T0."""
    return {'depth': QueueState(last_decrease=t0, last_value=600)}


@pytest.fixture
def config(registry_path: Path) -> CheckConfig:
    """Scenario thresholds: critical 10m, warning 3m, accepted max 50."""
    return CheckConfig(
        max_critical_minutes=10,
        max_warning_minutes=3,
        accepted_max_value=50,
        registry_path=str(registry_path),
    )


# ===========================================================================
# Utility Functions
# ===========================================================================

def write_registry_file(path: Path, data) -> None:
    """Write raw registry JSON (or text) to path."""
    with open(path, 'w') as f:
        if isinstance(data, str):
            f.write(data)
        else:
            json.dump(data, f)


def read_registry_file(path: Path) -> dict:
    with open(path, 'r') as f:
        return json.load(f)


# ===========================================================================
# Markers Registration
# ===========================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Tests touching the filesystem end to end")
