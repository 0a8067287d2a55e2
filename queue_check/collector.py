"""
Snapshot Collector - Queue depths from the RabbitMQ management API.

Lists every queue visible to the configured user through
GET /api/queues (or /api/queues/{vhost}) and reduces each item to its
name and current message count. Counts are point-in-time values as
reported by the management plugin; nothing here is transactional.

Every request carries a bounded timeout.
"""

import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union
from urllib.parse import quote

import requests

from .config import ConfigError
from .constants import BrokerDefaults, Timeouts
from .logging_config import get_logger

logger = get_logger(__name__)


class CollectorConnectionError(ConnectionError):
    """The management API is unreachable or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class QueueObservation:
    """Depth of one queue at fetch time."""
    name: str
    message_count: int

    @classmethod
    def from_api(cls, item: Any) -> 'QueueObservation':
        """Build from one element of the /api/queues response."""
        if not isinstance(item, dict) or 'name' not in item:
            raise ValueError(f"unexpected queue item: {item!r}")
        # Queues not yet sampled by the management plugin omit 'messages'
        messages = item.get('messages') or 0
        return cls(name=str(item['name']), message_count=max(int(messages), 0))


def load_credentials(path: Union[str, Path], section: str = BrokerDefaults.CREDENTIALS_SECTION) -> Tuple[str, str]:
    """
    Read username and password from an INI file.

    Expected layout:
        [auth]
        username = monitoring
        password = secret
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        read = parser.read(str(path), encoding='utf-8')
    except configparser.Error as e:
        raise ConfigError(f"invalid credentials file {path}: {e}") from e
    if not read:
        raise ConfigError(f"credentials file not found: {path}")
    if not parser.has_section(section):
        raise ConfigError(f"credentials file {path} has no [{section}] section")

    username = parser.get(section, 'username', fallback=None)
    password = parser.get(section, 'password', fallback=None)
    if username is None or password is None:
        raise ConfigError(f"[{section}] in {path} must define username and password")
    return username, password


class ManagementApiCollector:
    """
    Fetches queue observations from the management HTTP API.

    Args:
        host: Management API host
        port: Management API port
        username: API user
        password: API password
        use_tls: Use https instead of http
        verify_tls: Verify the server certificate when use_tls is set
        vhost: Restrict the listing to one virtual host
        timeout: Read timeout in seconds (connect timeout is capped separately)
        session: Optional requests.Session (tests inject a mock here)
    """

    def __init__(
        self,
        host: str = BrokerDefaults.HOST,
        port: int = BrokerDefaults.PORT,
        username: str = BrokerDefaults.USERNAME,
        password: str = BrokerDefaults.PASSWORD,
        use_tls: bool = False,
        verify_tls: bool = True,
        vhost: Optional[str] = None,
        timeout: float = Timeouts.HTTP_REQUEST,
        session: Optional[requests.Session] = None,
    ):
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.verify_tls = verify_tls
        self.vhost = vhost
        self.timeout = timeout
        self._auth = (username, password)
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config, session: Optional[requests.Session] = None) -> 'ManagementApiCollector':
        """Build from a CheckConfig, resolving a credentials file if one is set."""
        username, password = config.username, config.password
        if config.credentials_file:
            username, password = load_credentials(config.credentials_file)
        return cls(
            host=config.host,
            port=config.port,
            username=username,
            password=password,
            use_tls=config.use_tls,
            verify_tls=config.verify_tls,
            vhost=config.vhost,
            timeout=config.request_timeout,
            session=session,
        )

    @property
    def url(self) -> str:
        scheme = 'https' if self.use_tls else 'http'
        path = BrokerDefaults.QUEUES_ENDPOINT
        if self.vhost:
            path = f"{path}/{quote(self.vhost, safe='')}"
        return f"{scheme}://{self.host}:{self.port}{path}"

    def fetch_queues(self) -> List[QueueObservation]:
        """
        Return one observation per visible queue, in broker order.

        Raises:
            CollectorConnectionError: network failure, timeout, rejected
                credentials, non-2xx status or an unparseable body
        """
        url = self.url
        connect_timeout = min(Timeouts.HTTP_CONNECT, self.timeout)
        logger.debug(f"Fetching queues from {url}")

        try:
            response = self._session.get(
                url,
                auth=self._auth,
                headers={'Accept': 'application/json'},
                timeout=(connect_timeout, self.timeout),
                verify=self.verify_tls if self.use_tls else True,
            )
        except requests.exceptions.Timeout as e:
            raise CollectorConnectionError(f"timed out after {self.timeout}s contacting {url}") from e
        except requests.exceptions.RequestException as e:
            raise CollectorConnectionError(f"cannot reach {url}: {e}") from e

        if response.status_code in (401, 403):
            raise CollectorConnectionError(
                f"management API rejected credentials for user '{self._auth[0]}' "
                f"(HTTP {response.status_code})",
                status_code=response.status_code,
            )
        if not 200 <= response.status_code < 300:
            raise CollectorConnectionError(
                f"management API returned HTTP {response.status_code} for {url}",
                status_code=response.status_code,
            )

        try:
            items = response.json()
            if not isinstance(items, list):
                raise ValueError(f"expected a JSON list, got {type(items).__name__}")
            observations = [QueueObservation.from_api(item) for item in items]
        except (ValueError, TypeError) as e:
            raise CollectorConnectionError(f"unparseable response from {url}: {e}") from e

        logger.verbose(f"Fetched {len(observations)} queues from {self.host}:{self.port}")
        return observations


__all__ = [
    'QueueObservation',
    'CollectorConnectionError',
    'ManagementApiCollector',
    'load_credentials',
]
