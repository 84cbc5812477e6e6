"""
Security Engine Test Suite

End-to-end tests for the composed engine and the authsentry CLI:
- Component wiring from one SecurityConfig
- Login guard flow raising a monitoring alert
- Lifecycle (start/stop, context manager)
- CLI queries against a SQLite audit trail

Author: AuthSentry Project
License: GNU GPL v3
"""

import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from auth_defense import config as config_module
from auth_defense.config import SecurityConfig
from auth_defense.main import SecurityEngine, build_audit_store, main
from auth_defense.managers.audit_logger import AuditLogger
from auth_defense.managers.audit_store import InMemoryAuditStore
from auth_defense.managers.database import SQLiteAuditStore
from auth_defense.models import SECURITY_ALERT_TRIGGERED, AuditEventType, AuditFilters, RiskLevel


class FakeClock:

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_config(**kwargs):
    environ = {k: v for k, v in os.environ.items() if not k.startswith('AUTHSENTRY_')}
    with patch.dict(os.environ, environ, clear=True), \
            patch.object(config_module, 'find_config_file', return_value=None):
        return SecurityConfig(**kwargs)


class EngineTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryAuditStore()
        self.engine = SecurityEngine(make_config(), audit_store=self.store, clock=self.clock)

    def tearDown(self):
        self.engine.stop(timeout=1)

    def events(self, event_type):
        return self.store.query(AuditFilters(event_type=event_type))


class TestWiring(EngineTestCase):

    def test_components_share_collaborators(self):
        engine = self.engine
        self.assertIs(engine.ip_management.audit_logger, engine.audit_logger)
        self.assertIs(engine.brute_force.audit_logger, engine.audit_logger)
        self.assertIs(engine.guard.ip_management, engine.ip_management)
        self.assertIs(engine.guard.brute_force, engine.brute_force)
        self.assertIs(engine.ip_management.scheduler, engine.scheduler)
        self.assertEqual(engine.scheduler.pending_count(), 0)

    def test_audit_timestamps_follow_engine_clock(self):
        entry = self.engine.audit_logger.log_system_event(AuditEventType.SECURITY_SCAN)

        self.assertEqual(entry.timestamp, datetime.fromtimestamp(self.clock.now, timezone.utc))

    def test_policy_built_from_config(self):
        engine = SecurityEngine(
            make_config(max_attempts=2, lockout_duration=30, alert_threshold_high=1),
            audit_store=InMemoryAuditStore(), clock=self.clock,
        )
        try:
            self.assertEqual(engine.brute_force.policy.max_attempts, 2)
            self.assertEqual(engine.brute_force.policy.lockout_duration, 30)
            self.assertEqual(engine.monitoring.thresholds['HIGH'], 1)
        finally:
            engine.stop(timeout=1)

    def test_builds_sqlite_store_from_config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = make_config(audit_backend='sqlite', database_path=str(Path(tmpdir) / 'audit.db'))
            self.assertIsInstance(build_audit_store(config), SQLiteAuditStore)

    def test_builds_memory_store_by_default(self):
        self.assertIsInstance(build_audit_store(make_config()), InMemoryAuditStore)


class TestGuardFlow(EngineTestCase):

    def test_lockout_raises_alert(self):
        guard = self.engine.guard
        for _ in range(4):
            self.assertTrue(guard.on_login_failure("198.51.100.7", ip="198.51.100.7").allowed)

        decision = guard.on_login_failure("198.51.100.7", ip="198.51.100.7")

        self.assertFalse(decision.allowed)
        self.assertEqual(len(self.events(AuditEventType.ACCOUNT_LOCKED)), 1)
        self.assertEqual(len(self.events(AuditEventType.BRUTE_FORCE_DETECTED)), 1)

        alerts = self.events(SECURITY_ALERT_TRIGGERED)
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].details['eventType'], 'BRUTE_FORCE_DETECTED')
        self.assertEqual(alerts[0].details['riskLevel'], 'CRITICAL')

        metrics = self.engine.monitoring.get_security_metrics()
        self.assertEqual(metrics['eventCounts'], {
            'MEDIUM:LOGIN_FAILURE': 5,
            'HIGH:ACCOUNT_LOCKED': 1,
            'CRITICAL:BRUTE_FORCE_DETECTED': 1,
        })
        self.assertEqual(metrics['lockedAccounts'], 1)

        self.assertFalse(guard.check_request("198.51.100.7").allowed)
        self.clock.advance(901)
        self.assertTrue(guard.check_request("198.51.100.7").allowed)

    def test_dashboard_reflects_engine_state(self):
        self.engine.ip_management.block_ip("192.0.2.50", "manual")
        self.engine.guard.on_login_success("alice", "alice", ip="192.0.2.51")

        overview = self.engine.dashboard.get_security_overview()

        self.assertEqual(overview['blockedIPs'], 1)
        self.assertEqual(overview['recentEvents'][0]['eventType'], 'LOGIN_SUCCESS')

    def test_detached_monitoring_stops_counting(self):
        self.engine.stop(timeout=1)

        self.engine.audit_logger.log_security_event(AuditEventType.SUSPICIOUS_ACTIVITY, {}, RiskLevel.CRITICAL)

        self.assertEqual(self.engine.monitoring.get_security_metrics()['eventCounts'], {})


class TestLifecycle(unittest.TestCase):

    def test_context_manager_starts_and_stops(self):
        store = InMemoryAuditStore()
        with patch.object(store, 'close') as close:
            with SecurityEngine(make_config(), audit_store=store) as engine:
                self.assertTrue(engine.scheduler.running)
            self.assertFalse(engine.scheduler.running)
            close.assert_called_once_with()

    def test_start_is_idempotent(self):
        engine = SecurityEngine(make_config(), audit_store=InMemoryAuditStore())
        try:
            engine.start()
            engine.start()
            self.assertTrue(engine.scheduler.running)
        finally:
            engine.stop(timeout=1)

    def test_close_failure_is_logged(self):
        store = InMemoryAuditStore()
        engine = SecurityEngine(make_config(), audit_store=store)
        with patch.object(store, 'close', side_effect=OSError("disk gone")):
            with self.assertLogs('auth_defense.main', level='ERROR'):
                engine.stop(timeout=1)


class TestCLI(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.tmpdir.name) / 'audit.db')
        self.config = make_config(audit_backend='sqlite', database_path=self.db_path)

        audit = AuditLogger(SQLiteAuditStore(self.db_path))
        audit.log_auth_event(AuditEventType.LOGIN_FAILURE, 'alice', '192.0.2.10')
        audit.log_auth_event(AuditEventType.LOGIN_SUCCESS, 'alice', '192.0.2.10')
        audit.log_security_event(AuditEventType.IP_BLOCKED, {'ip': '192.0.2.99'}, RiskLevel.HIGH)

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_cli(self, *argv, config=None):
        out = io.StringIO()
        with patch.object(sys, 'argv', ['authsentry', *argv]), \
                patch('auth_defense.main.get_config', return_value=config or self.config), \
                patch('auth_defense.main.setup_logging'), \
                redirect_stdout(out):
            with self.assertRaises(SystemExit) as ctx:
                main()
        return ctx.exception.code, out.getvalue()

    def test_no_action_prints_help(self):
        code, output = self.run_cli()

        self.assertEqual(code, 0)
        self.assertIn('--query-events', output)

    def test_query_events_with_risk_filter(self):
        code, output = self.run_cli('--query-events', '--risk-level', 'high')

        self.assertEqual(code, 0)
        self.assertIn('1 results', output)
        self.assertIn('IP_BLOCKED', output)
        self.assertNotIn('LOGIN_SUCCESS', output)

    def test_overview(self):
        code, output = self.run_cli('--overview')

        self.assertEqual(code, 0)
        self.assertIn('Security Overview', output)
        self.assertIn('Total Events:     3', output)

    def test_export_json(self):
        target = Path(self.tmpdir.name) / 'export.json'

        code, _ = self.run_cli('--export-json', str(target), '--user-id', 'alice')

        self.assertEqual(code, 0)
        exported = json.loads(target.read_text())
        self.assertEqual([e['eventType'] for e in exported], ['LOGIN_SUCCESS', 'LOGIN_FAILURE'])

    def test_export_with_no_matches_fails(self):
        code, output = self.run_cli('--export-json', str(Path(self.tmpdir.name) / 'x.json'),
                                    '--event-type', 'DATA_DELETED')

        self.assertEqual(code, 1)
        self.assertIn('No data to export', output)

    def test_requires_sqlite_backend(self):
        code, output = self.run_cli('--query-events', config=make_config())

        self.assertEqual(code, 1)
        self.assertIn('require database mode', output)

    def test_invalid_time_argument(self):
        code, output = self.run_cli('--query-events', '--since', 'yesterday-ish')

        self.assertEqual(code, 1)
        self.assertIn('Invalid time value', output)


if __name__ == '__main__':
    unittest.main()
