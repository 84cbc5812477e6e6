"""
Configuration Test Suite

Tests for config.conf loading, environment overrides, precedence and
validation.

Author: AuthSentry Project
License: GNU GPL v3
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from auth_defense import config as config_module
from auth_defense.config import (
    SecurityConfig, _parse_bool, get_config, load_config_file, reset_config,
)

SAMPLE_CONFIG = """
[brute_force]
max_attempts = 3              # tighter than default
lockout_duration = 120
progressive_delay = false

[monitoring]
alert_threshold_high = 7

[storage]
audit_backend = sqlite
database_path = /tmp/authsentry-test/audit.db

[unrelated]
max_attempts = 99
"""


def clean_environ():
    """Environment without any AUTHSENTRY_* variables."""
    return {k: v for k, v in os.environ.items() if not k.startswith('AUTHSENTRY_')}


class ConfigTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.tmpdir.name) / "config.conf"
        self.config_path.write_text(SAMPLE_CONFIG)
        reset_config()

    def tearDown(self):
        reset_config()
        self.tmpdir.cleanup()

    def env(self, **overrides):
        environ = clean_environ()
        environ.update(overrides)
        return patch.dict(os.environ, environ, clear=True)


class TestDefaults(ConfigTestCase):

    def test_defaults_without_config_file(self):
        with self.env(), patch.object(config_module, 'find_config_file', return_value=None):
            config = SecurityConfig()

        self.assertEqual(config.max_attempts, 5)
        self.assertEqual(config.lockout_duration, 900)
        self.assertEqual(config.base_delay, 1.0)
        self.assertEqual(config.max_delay, 30.0)
        self.assertEqual(config.reset_window, 3600)
        self.assertTrue(config.progressive_delay)
        self.assertEqual(config.cleanup_interval, 300)
        self.assertEqual(config.monitor_window, 300)
        self.assertEqual(config.alert_thresholds(), {'CRITICAL': 1, 'HIGH': 5, 'MEDIUM': 10, 'LOW': 50})
        self.assertEqual(config.escalation_threshold, 10)
        self.assertEqual(config.escalation_block_duration, 86400)
        self.assertEqual(config.audit_backend, 'memory')
        self.assertTrue(config.database_path.endswith('audit.db'))


class TestConfigFile(ConfigTestCase):

    def test_load_config_file_flattens_sections(self):
        values = load_config_file(self.config_path)

        self.assertEqual(values['AUTHSENTRY_MAX_ATTEMPTS'], '3')
        self.assertEqual(values['AUTHSENTRY_ALERT_THRESHOLD_HIGH'], '7')
        self.assertEqual(values['AUTHSENTRY_PROGRESSIVE_DELAY'], 'false')

    def test_unknown_sections_ignored(self):
        values = load_config_file(self.config_path)
        self.assertEqual(values['AUTHSENTRY_MAX_ATTEMPTS'], '3')

    def test_file_values_applied(self):
        with self.env(AUTHSENTRY_CONFIG_FILE=str(self.config_path)):
            config = SecurityConfig()

        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.lockout_duration, 120.0)
        self.assertFalse(config.progressive_delay)
        self.assertEqual(config.alert_threshold_high, 7)
        self.assertEqual(config.audit_backend, 'sqlite')
        self.assertEqual(config.database_path, '/tmp/authsentry-test/audit.db')

    def test_environment_overrides_file(self):
        with self.env(AUTHSENTRY_CONFIG_FILE=str(self.config_path), AUTHSENTRY_MAX_ATTEMPTS='8'):
            config = SecurityConfig()

        self.assertEqual(config.max_attempts, 8)
        self.assertEqual(config.lockout_duration, 120.0)

    def test_constructor_arguments_override_file(self):
        with self.env(AUTHSENTRY_CONFIG_FILE=str(self.config_path)):
            config = SecurityConfig(max_attempts=4, audit_backend='memory')

        self.assertEqual(config.max_attempts, 4)
        self.assertEqual(config.audit_backend, 'memory')
        self.assertEqual(config.lockout_duration, 120.0)

    def test_invalid_integer_is_ignored(self):
        self.config_path.write_text("[brute_force]\nmax_attempts = lots\n")
        with self.env(AUTHSENTRY_CONFIG_FILE=str(self.config_path)):
            config = SecurityConfig()

        self.assertEqual(config.max_attempts, 5)

    def test_missing_override_file_warns(self):
        missing = str(Path(self.tmpdir.name) / "missing.conf")
        with self.env(AUTHSENTRY_CONFIG_FILE=missing), \
                patch.object(Path, 'exists', return_value=False):
            with self.assertWarns(UserWarning):
                self.assertIsNone(config_module.find_config_file())


class TestValidation(ConfigTestCase):

    def _build(self, **kwargs):
        with self.env(), patch.object(config_module, 'find_config_file', return_value=None):
            return SecurityConfig(**kwargs)

    def test_rejects_non_positive_durations(self):
        with self.assertRaises(ValueError):
            self._build(lockout_duration=0)
        with self.assertRaises(ValueError):
            self._build(monitor_window=-1)

    def test_rejects_zero_attempts(self):
        with self.assertRaises(ValueError):
            self._build(max_attempts=0)

    def test_rejects_inverted_delays(self):
        with self.assertRaises(ValueError):
            self._build(base_delay=10, max_delay=5)

    def test_rejects_unknown_backend(self):
        with self.assertRaises(ValueError):
            self._build(audit_backend='redis')

    def test_invalid_boolean_in_file(self):
        self.config_path.write_text("[brute_force]\nprogressive_delay = maybe\n")
        with self.env(AUTHSENTRY_CONFIG_FILE=str(self.config_path)):
            with self.assertRaises(ValueError):
                SecurityConfig()


class TestParseBool(unittest.TestCase):

    def test_truthy_and_falsy(self):
        for value in ['true', 'TRUE', '1', 'yes', 'on']:
            self.assertTrue(_parse_bool(value))
        for value in ['false', '0', 'no', 'off', '']:
            self.assertFalse(_parse_bool(value))

    def test_invalid(self):
        with self.assertRaises(ValueError):
            _parse_bool('perhaps', 'progressive_delay')


class TestSingleton(ConfigTestCase):

    def test_get_config_is_cached(self):
        with self.env(), patch.object(config_module, 'find_config_file', return_value=None):
            first = get_config()
            second = get_config()
            reset_config()
            third = get_config()

        self.assertIs(first, second)
        self.assertIsNot(first, third)


if __name__ == '__main__':
    unittest.main()
