"""
Queue Registry - Persisted per-queue trend state.

The registry maps every queue name the check has ever observed to the
point in time its depth was last seen to drop, and the depth recorded on
the previous run. It is read at the start of every invocation and
replaced at the end.

File format (JSON, key names shared with earlier releases of the check):

    {
      "orders": {"last_decrease": "2024-05-01T12:00:00+00:00", "last_value": 640},
      "emails": {"last_decrease": "2024-05-01T11:52:00+00:00", "last_value": 12,
                 "last_seen": "2024-05-01T12:00:00+00:00"}
    }

Stores:
- JsonFileRegistryStore: single file, write-to-temp-then-rename
- InMemoryRegistryStore: process-local, for tests and embedding

Concurrent invocations against one file are not supported; the scheduler
is expected to serialize runs.
"""

import abc
import copy
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .constants import Paths
from .logging_config import get_logger

logger = get_logger(__name__)


class RegistryLoadError(Exception):
    """The persisted registry is missing, unreadable or malformed."""

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        self.missing = missing


class RegistryWriteError(Exception):
    """The updated registry could not be persisted."""


# =============================================================================
# DATA MODEL
# =============================================================================

def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; values without an offset are UTC."""
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    value = value.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """UTC, second precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


@dataclass
class QueueState:
    """Trend state of one queue, carried between runs."""
    last_decrease: datetime
    last_value: int
    last_seen: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'last_decrease': format_timestamp(self.last_decrease),
            'last_value': self.last_value,
        }
        if self.last_seen is not None:
            data['last_seen'] = format_timestamp(self.last_seen)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueueState':
        if not isinstance(data, dict):
            raise ValueError(f"queue entry must be an object, got {type(data).__name__}")

        last_value = data.get('last_value')
        # bool is an int subclass
        if not isinstance(last_value, int) or isinstance(last_value, bool):
            raise ValueError(f"last_value must be an integer, got {last_value!r}")
        if last_value < 0:
            raise ValueError(f"last_value must be non-negative, got {last_value}")

        if 'last_decrease' not in data:
            raise ValueError("missing last_decrease")
        last_decrease = parse_timestamp(data['last_decrease'])

        last_seen = data.get('last_seen')
        return cls(
            last_decrease=last_decrease,
            last_value=last_value,
            last_seen=parse_timestamp(last_seen) if last_seen is not None else None,
        )


Registry = Dict[str, QueueState]


def registry_to_dict(registry: Registry) -> Dict[str, Dict[str, Any]]:
    return {name: state.to_dict() for name, state in sorted(registry.items())}


def registry_from_dict(data: Any) -> Registry:
    """Build a Registry from decoded JSON, raising ValueError on bad shape."""
    if not isinstance(data, dict):
        raise ValueError(f"registry must be a JSON object, got {type(data).__name__}")

    registry: Registry = {}
    for name, entry in data.items():
        try:
            registry[name] = QueueState.from_dict(entry)
        except ValueError as e:
            raise ValueError(f"queue {name!r}: {e}") from e
    return registry


def serialize_registry(registry: Registry) -> str:
    return json.dumps(registry_to_dict(registry), indent=2)


def deserialize_registry(text: str) -> Registry:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    return registry_from_dict(data)


# =============================================================================
# STORES
# =============================================================================

class RegistryStore(abc.ABC):
    """Where the registry lives between invocations."""

    @abc.abstractmethod
    def load(self) -> Registry:
        """Return the persisted registry or raise RegistryLoadError."""

    @abc.abstractmethod
    def save(self, registry: Registry) -> None:
        """Persist the registry or raise RegistryWriteError."""


class JsonFileRegistryStore(RegistryStore):
    """
    Registry persisted as a single JSON file.

    Saves go through a temporary file in the same directory followed by an
    atomic rename, so a crash mid-write never leaves a truncated registry.
    A file that cannot be parsed is moved aside to <path>.corrupt.
    """

    def __init__(self, path: Union[str, Path, None] = None, file_mode: int = 0o644):
        self.path = Path(path or Paths.REGISTRY_FILE)
        self.file_mode = file_mode

    def __repr__(self) -> str:
        return f"JsonFileRegistryStore(path='{self.path}')"

    def load(self) -> Registry:
        if not self.path.exists():
            raise RegistryLoadError(f"registry file {self.path} does not exist", missing=True)

        try:
            text = self.path.read_text(encoding='utf-8')
        except OSError as e:
            raise RegistryLoadError(f"cannot read registry file {self.path}: {e}") from e

        try:
            registry = deserialize_registry(text)
        except ValueError as e:
            self._backup_corrupt_file()
            raise RegistryLoadError(f"corrupt registry file {self.path}: {e}") from e

        logger.debug(f"Loaded {len(registry)} queue entries from {self.path}")
        return registry

    def _backup_corrupt_file(self) -> None:
        backup_path = self.path.with_name(self.path.name + Paths.CORRUPT_SUFFIX)
        try:
            os.replace(self.path, backup_path)
            logger.warning(f"Moved corrupt registry to {backup_path}")
        except OSError as e:
            logger.error(f"Failed to back up corrupt registry {self.path}: {e}")

    def save(self, registry: Registry) -> None:
        payload = serialize_registry(registry)
        temp_path = None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=str(self.path.parent),
                prefix=Paths.TEMP_PREFIX,
                suffix='.tmp',
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, self.file_mode)
            os.replace(temp_path, self.path)
            temp_path = None
        except OSError as e:
            raise RegistryWriteError(f"cannot write registry file {self.path}: {e}") from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)

        logger.debug(f"Persisted {len(registry)} queue entries to {self.path}")


class InMemoryRegistryStore(RegistryStore):
    """Registry held in process memory; load() fails until the first save()."""

    def __init__(self, registry: Optional[Registry] = None):
        self._registry = copy.deepcopy(registry) if registry is not None else None
        self.save_count = 0

    def load(self) -> Registry:
        if self._registry is None:
            raise RegistryLoadError("no registry has been saved yet", missing=True)
        return copy.deepcopy(self._registry)

    def save(self, registry: Registry) -> None:
        self._registry = copy.deepcopy(registry)
        self.save_count += 1

    @property
    def registry(self) -> Optional[Registry]:
        return self._registry


__all__ = [
    'QueueState',
    'Registry',
    'RegistryLoadError',
    'RegistryWriteError',
    'RegistryStore',
    'JsonFileRegistryStore',
    'InMemoryRegistryStore',
    'parse_timestamp',
    'format_timestamp',
    'registry_to_dict',
    'registry_from_dict',
    'serialize_registry',
    'deserialize_registry',
]
