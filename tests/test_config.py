"""
Tests for the configuration module.

Tests defaults, YAML loading, override precedence and validation.
"""

import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from queue_check.config import CheckConfig, ConfigError, load_config, load_config_file
from queue_check.constants import Paths, Thresholds


# ===========================================================================
# Default Tests
# ===========================================================================

class TestDefaults:
    """Tests for CheckConfig defaults."""

    def test_threshold_defaults(self):
        config = CheckConfig()
        assert config.max_critical_minutes == 10
        assert config.max_warning_minutes == 3
        assert config.accepted_max_value == 50
        assert config.warn_threshold == 250
        assert config.critical_threshold == 500

    def test_connection_defaults(self, monkeypatch):
        monkeypatch.delenv('QUEUE_CHECK_HOST', raising=False)
        monkeypatch.delenv('QUEUE_CHECK_PORT', raising=False)
        config = CheckConfig()
        assert config.host == 'localhost'
        assert config.port == 15672
        assert config.username == 'guest'
        assert config.use_tls is False
        assert config.verify_tls is True

    def test_feature_defaults(self):
        config = CheckConfig()
        assert config.depth_check is False
        assert config.queue_level is False
        assert config.evict_after_minutes == 0
        assert config.registry_path == Paths.REGISTRY_FILE

    def test_env_override_host(self, monkeypatch):
        monkeypatch.setenv('QUEUE_CHECK_HOST', 'rabbit.internal')
        assert CheckConfig().host == 'rabbit.internal'

    def test_env_override_invalid_port_uses_default(self, monkeypatch):
        monkeypatch.setenv('QUEUE_CHECK_PORT', 'not-a-port')
        assert CheckConfig().port == 15672

    def test_env_excluded_queues(self, monkeypatch):
        monkeypatch.setenv('QUEUE_CHECK_EXCLUDED_QUEUES', 'a, b,,c')
        assert CheckConfig().excluded_queues == frozenset({'a', 'b', 'c'})

    def test_password_hidden(self):
        config = CheckConfig(password='hunter2')
        assert 'hunter2' not in repr(config)
        assert config.to_dict()['password'] == '***'


# ===========================================================================
# from_dict Tests
# ===========================================================================

class TestFromDict:
    """Tests for overlaying option mappings."""

    def test_coerces_types(self):
        config = CheckConfig.from_dict({
            'port': '15671',
            'use_tls': 'yes',
            'request_timeout': '2.5',
            'excluded_queues': 'audit,dead-letters',
        })
        assert config.port == 15671
        assert config.use_tls is True
        assert config.request_timeout == 2.5
        assert config.excluded_queues == frozenset({'audit', 'dead-letters'})

    def test_list_of_excluded_queues(self):
        config = CheckConfig.from_dict({'excluded_queues': ['a', 'b']})
        assert config.excluded_queues == frozenset({'a', 'b'})

    def test_none_values_ignored(self):
        config = CheckConfig.from_dict({'host': None, 'max_critical_minutes': None})
        assert config.max_critical_minutes == Thresholds.MAX_CRITICAL_MINUTES

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="unknown configuration keys: colour"):
            CheckConfig.from_dict({'colour': 'blue'})

    def test_bad_integer(self):
        with pytest.raises(ConfigError, match="max_warning_minutes"):
            CheckConfig.from_dict({'max_warning_minutes': 'three'})

    def test_boolean_rejected_for_integer(self):
        with pytest.raises(ConfigError):
            CheckConfig.from_dict({'accepted_max_value': True})

    def test_negative_threshold(self):
        with pytest.raises(ConfigError, match="non-negative"):
            CheckConfig.from_dict({'accepted_max_value': -1})

    def test_port_range(self):
        with pytest.raises(ConfigError, match="port"):
            CheckConfig.from_dict({'port': 70000})

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError):
            CheckConfig.from_dict({'request_timeout': 0})

    def test_base_is_preserved(self):
        base = CheckConfig(host='rabbit')
        config = CheckConfig.from_dict({'port': 1234}, base=base)
        assert config.host == 'rabbit'
        assert config.port == 1234


# ===========================================================================
# YAML Tests
# ===========================================================================

class TestYamlLoading:
    """Tests for YAML configuration files."""

    def test_load_file(self, temp_dir):
        path = temp_dir / "check.yaml"
        path.write_text(
            "host: rabbit.internal\n"
            "queue_level: true\n"
            "excluded_queues:\n"
            "  - audit\n"
            "max_critical_minutes: 20\n"
        )
        config = load_config(path)

        assert config.host == 'rabbit.internal'
        assert config.queue_level is True
        assert config.excluded_queues == frozenset({'audit'})
        assert config.max_critical_minutes == 20

    def test_overrides_win(self, temp_dir):
        path = temp_dir / "check.yaml"
        path.write_text("max_critical_minutes: 20\nhost: from-file\n")
        config = load_config(path, {'max_critical_minutes': 5})

        assert config.max_critical_minutes == 5
        assert config.host == 'from-file'

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert load_config_file(path) == {}

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="cannot read"):
            load_config_file(temp_dir / "absent.yaml")

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "bad.yaml"
        path.write_text("host: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config_file(path)

    def test_non_mapping(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config_file(path)

    def test_no_file_no_overrides(self):
        assert load_config() == CheckConfig()
