"""
Tests for the Snapshot Collector module.

The management API is never contacted: a mocked requests.Session stands
in for the broker.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest
import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from queue_check.collector import (
    CollectorConnectionError,
    ManagementApiCollector,
    QueueObservation,
    load_credentials,
)
from queue_check.config import CheckConfig, ConfigError


def make_session(status_code=200, payload=None, json_error=None, get_error=None) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    if get_error is not None:
        session.get.side_effect = get_error
        return session

    response = MagicMock()
    response.status_code = status_code
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload if payload is not None else []
    session.get.return_value = response
    return session


# ===========================================================================
# QueueObservation Tests
# ===========================================================================

class TestQueueObservation:
    """Tests for building observations from API items."""

    def test_from_api(self):
        obs = QueueObservation.from_api({'name': 'orders', 'messages': 42, 'vhost': '/'})
        assert obs == QueueObservation('orders', 42)

    def test_missing_messages_is_zero(self):
        """Queues not yet sampled by the management plugin omit messages."""
        assert QueueObservation.from_api({'name': 'new'}).message_count == 0

    def test_null_messages_is_zero(self):
        assert QueueObservation.from_api({'name': 'new', 'messages': None}).message_count == 0

    def test_negative_clamped(self):
        assert QueueObservation.from_api({'name': 'odd', 'messages': -3}).message_count == 0

    def test_rejects_item_without_name(self):
        with pytest.raises(ValueError):
            QueueObservation.from_api({'messages': 3})


# ===========================================================================
# Fetch Tests
# ===========================================================================

class TestFetchQueues:
    """Tests for ManagementApiCollector.fetch_queues."""

    def test_returns_observations(self):
        session = make_session(payload=[
            {'name': 'orders', 'messages': 640},
            {'name': 'emails', 'messages': 3},
        ])
        collector = ManagementApiCollector(session=session)

        assert collector.fetch_queues() == [
            QueueObservation('orders', 640),
            QueueObservation('emails', 3),
        ]

    def test_request_is_bounded_and_authenticated(self):
        session = make_session()
        collector = ManagementApiCollector(
            host='rabbit', port=15671, username='mon', password='pw', timeout=7.0, session=session,
        )
        collector.fetch_queues()

        args, kwargs = session.get.call_args
        assert args[0] == 'http://rabbit:15671/api/queues'
        assert kwargs['auth'] == ('mon', 'pw')
        assert kwargs['timeout'] == (5.0, 7.0)

    def test_short_timeout_caps_connect(self):
        session = make_session()
        ManagementApiCollector(timeout=2.0, session=session).fetch_queues()
        assert session.get.call_args[1]['timeout'] == (2.0, 2.0)

    def test_tls_url_and_verify(self):
        session = make_session()
        collector = ManagementApiCollector(use_tls=True, verify_tls=False, session=session)
        collector.fetch_queues()

        args, kwargs = session.get.call_args
        assert args[0].startswith('https://')
        assert kwargs['verify'] is False

    def test_vhost_is_url_encoded(self):
        collector = ManagementApiCollector(vhost='/', session=make_session())
        assert collector.url == 'http://localhost:15672/api/queues/%2F'

    def test_timeout_raises_connection_error(self):
        session = make_session(get_error=requests.exceptions.ConnectTimeout("slow"))
        with pytest.raises(CollectorConnectionError, match="timed out"):
            ManagementApiCollector(session=session).fetch_queues()

    def test_network_failure_raises_connection_error(self):
        session = make_session(get_error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(ConnectionError):
            ManagementApiCollector(session=session).fetch_queues()

    @pytest.mark.parametrize("status", [401, 403])
    def test_rejected_credentials(self, status):
        session = make_session(status_code=status)
        with pytest.raises(CollectorConnectionError) as exc_info:
            ManagementApiCollector(username='bad', session=session).fetch_queues()
        assert exc_info.value.status_code == status
        assert 'bad' in str(exc_info.value)

    def test_server_error(self):
        session = make_session(status_code=503)
        with pytest.raises(CollectorConnectionError, match="503"):
            ManagementApiCollector(session=session).fetch_queues()

    def test_unparseable_body(self):
        session = make_session(json_error=ValueError("Expecting value"))
        with pytest.raises(CollectorConnectionError, match="unparseable"):
            ManagementApiCollector(session=session).fetch_queues()

    def test_non_list_body(self):
        session = make_session(payload={'error': 'Object Not Found'})
        with pytest.raises(CollectorConnectionError):
            ManagementApiCollector(session=session).fetch_queues()


# ===========================================================================
# Credentials Tests
# ===========================================================================

class TestCredentials:
    """Tests for INI credential files."""

    def test_load_credentials(self, temp_dir):
        ini = temp_dir / "rabbit.ini"
        ini.write_text("[auth]\nusername = monitor\npassword = p%ss\n")
        assert load_credentials(ini) == ('monitor', 'p%ss')

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_credentials(temp_dir / "absent.ini")

    def test_missing_section(self, temp_dir):
        ini = temp_dir / "rabbit.ini"
        ini.write_text("[other]\nusername = x\n")
        with pytest.raises(ConfigError, match=r"\[auth\]"):
            load_credentials(ini)

    def test_missing_password(self, temp_dir):
        ini = temp_dir / "rabbit.ini"
        ini.write_text("[auth]\nusername = x\n")
        with pytest.raises(ConfigError):
            load_credentials(ini)

    def test_from_config_prefers_credentials_file(self, temp_dir):
        ini = temp_dir / "rabbit.ini"
        ini.write_text("[auth]\nusername = from_ini\npassword = secret\n")
        config = CheckConfig(username='cli', password='cli', credentials_file=str(ini))
        session = make_session()

        ManagementApiCollector.from_config(config, session=session).fetch_queues()
        assert session.get.call_args[1]['auth'] == ('from_ini', 'secret')

    def test_from_config_copies_connection_settings(self):
        config = CheckConfig(host='rabbit', port=15671, use_tls=True, vhost='prod', request_timeout=3.0)
        collector = ManagementApiCollector.from_config(config, session=make_session())

        assert collector.url == 'https://rabbit:15671/api/queues/prod'
        assert collector.timeout == 3.0
