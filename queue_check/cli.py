#!/usr/bin/env python3
"""
queue-check - Non-decreasing RabbitMQ queue check

Meant to be run by Sensu, Nagios or cron on a fixed interval. Prints one
line to stdout and exits with the plugin convention:

    0 OK, 1 WARNING, 2 CRITICAL, 3 UNKNOWN

Usage:
    queue-check --host rabbit.internal --ssl --port 15671
    queue-check -i /etc/sensu/rabbitmq.ini -q -e dead-letters,audit
    queue-check --config /etc/queue-check/rabbit.yaml --registry /var/lib/queue-check/rabbit.json

Options (underscore names are kept for existing check definitions):
    --max_crit_nondecreasing_minutes N   Minutes without decrease before CRITICAL
    --max_warn_nondecreasing_minutes N   Minutes without decrease before WARNING
    --accepted_max_value N               Depths at or below N never alert
    --depth-check                        Also compare counts with -w/-c
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from .check import CheckResult, CheckStatus, NonDecreasingQueueCheck
from .config import ConfigError, load_config
from .constants import BrokerDefaults, CHECK_NAME
from .logging_config import configure_from_environment, get_logger
from .utils.error_handling import ErrorCategory, handle_error

logger = get_logger(__name__)

# argparse dest -> CheckConfig field
_OPTION_FIELDS = {
    'host': 'host',
    'port': 'port',
    'username': 'username',
    'password': 'password',
    'ini': 'credentials_file',
    'ssl': 'use_tls',
    'insecure': 'verify_tls',
    'vhost': 'vhost',
    'timeout': 'request_timeout',
    'warn': 'warn_threshold',
    'critical': 'critical_threshold',
    'depth_check': 'depth_check',
    'queuelevel': 'queue_level',
    'excluded': 'excluded_queues',
    'max_crit_minutes': 'max_critical_minutes',
    'max_warn_minutes': 'max_warning_minutes',
    'accepted_max_value': 'accepted_max_value',
    'registry': 'registry_path',
    'evict_after_minutes': 'evict_after_minutes',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='queue-check',
        description='Alert on RabbitMQ queues whose message count stops decreasing',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    conn = parser.add_argument_group('management API')
    conn.add_argument('--host', help=f'RabbitMQ management API host (default: {BrokerDefaults.HOST})')
    conn.add_argument('--port', type=int, help=f'RabbitMQ management API port (default: {BrokerDefaults.PORT})')
    conn.add_argument('--username', help='RabbitMQ management API user')
    conn.add_argument('--password', help='RabbitMQ management API password')
    conn.add_argument('-i', '--ini', metavar='FILE', help='INI file with an [auth] section holding username/password')
    conn.add_argument('--ssl', action='store_true', default=None, help='Enable SSL for connection to the API')
    conn.add_argument('--insecure', action='store_false', default=None,
                      help='Do not verify the server certificate')
    conn.add_argument('--vhost', help='Only check queues of this virtual host')
    conn.add_argument('--timeout', type=float, help='Request timeout in seconds')

    thresholds = parser.add_argument_group('thresholds')
    thresholds.add_argument('-w', '--warn', type=int, metavar='NUM_MESSAGES',
                            help='WARNING message count threshold (depth check)')
    thresholds.add_argument('-c', '--critical', type=int, metavar='NUM_MESSAGES',
                            help='CRITICAL message count threshold (depth check)')
    thresholds.add_argument('--depth-check', action='store_true', default=None,
                            help='Also alert on message counts over -w/-c')
    thresholds.add_argument('-q', '--queuelevel', action='store_true', default=None,
                            help='Evaluate queues individually and honour --excludedqueues')
    thresholds.add_argument('-e', '--excludedqueues', dest='excluded', metavar='QUEUES',
                            help='Comma separated list of queues to exclude when using queue level monitoring')
    thresholds.add_argument('--max_crit_nondecreasing_minutes', '--max-critical-minutes',
                            dest='max_crit_minutes', type=int, metavar='MINUTES',
                            help='CRITICAL queue non decreasing minutes')
    thresholds.add_argument('--max_warn_nondecreasing_minutes', '--max-warning-minutes',
                            dest='max_warn_minutes', type=int, metavar='MINUTES',
                            help='WARNING queue non decreasing minutes')
    thresholds.add_argument('--accepted_max_value', '--accepted-max-value',
                            dest='accepted_max_value', type=int, metavar='VALUE',
                            help='Max accepted non decreasing value')

    state = parser.add_argument_group('state')
    state.add_argument('--registry', metavar='PATH', help='Registry file location')
    state.add_argument('--evict-after-minutes', type=int, metavar='MINUTES',
                       help='Forget queues absent from the broker for this long (0 = never)')

    parser.add_argument('--config', metavar='FILE', help='YAML configuration file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging on stderr')
    parser.add_argument('--debug', action='store_true', help='Debug logging on stderr')
    return parser


def options_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Only options given on the command line override the config file."""
    overrides = {}
    for dest, config_field in _OPTION_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[config_field] = value
    return overrides


def run_check(args: argparse.Namespace) -> CheckResult:
    try:
        config = load_config(args.config, options_to_overrides(args))
        check = NonDecreasingQueueCheck(config)
    except ConfigError as e:
        handle_error(e, "loading configuration", ErrorCategory.CONFIG)
        return CheckResult(CheckStatus.UNKNOWN, f"Invalid configuration: {e}")

    return check.run()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_from_environment(verbose=args.verbose, debug=args.debug)

    try:
        result = run_check(args)
    except Exception as e:
        handle_error(e, "running queue check")
        result = CheckResult(CheckStatus.UNKNOWN, f"Check failed: {type(e).__name__}: {e}")

    print(result.format_output(CHECK_NAME))
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
