"""
Security Monitoring Test Suite

Tests for windowed event counting, level-triggered threshold alerts,
window reset and the audit listener hook.

Author: AuthSentry Project
License: GNU GPL v3
"""

import unittest
from unittest.mock import Mock

from auth_defense.core.monitoring import SecurityMonitoring
from auth_defense.managers.audit_logger import AuditLogger
from auth_defense.managers.audit_store import InMemoryAuditStore
from auth_defense.managers.brute_force import BruteForceProtection
from auth_defense.managers.ip_management import IPManagement
from auth_defense.models import SECURITY_ALERT_TRIGGERED, AuditEventType, AuditFilters, RiskLevel
from auth_defense.utils.logging import ALERT_LOGGER_NAME


class FakeClock:

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class MonitoringTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.audit = Mock()
        self.ip_management = Mock()
        self.ip_management.get_blocked_ips.return_value = []
        self.brute_force = Mock()
        self.brute_force.locked_count.return_value = 0
        self.monitor = SecurityMonitoring(
            self.audit, self.ip_management, self.brute_force, clock=self.clock,
        )

    def alert_calls(self):
        return [
            c for c in self.audit.log_system_event.call_args_list
            if c.args[0] == SECURITY_ALERT_TRIGGERED
        ]


class TestThresholds(MonitoringTestCase):

    def test_high_alerts_from_fifth_event(self):
        fired = [
            self.monitor.monitor_event(AuditEventType.IP_BLOCKED, RiskLevel.HIGH, {'n': i})
            for i in range(7)
        ]

        self.assertEqual(fired, [False, False, False, False, True, True, True])
        self.assertEqual(len(self.alert_calls()), 3)

    def test_alert_payload(self):
        for _ in range(5):
            self.monitor.monitor_event("ACCOUNT_LOCKED", RiskLevel.HIGH, {'identifier': 'x'})

        alert = self.alert_calls()[0].args[1]
        self.assertEqual(alert['type'], 'SECURITY_ALERT')
        self.assertEqual(alert['riskLevel'], 'HIGH')
        self.assertEqual(alert['eventType'], 'ACCOUNT_LOCKED')
        self.assertEqual(alert['count'], 5)
        self.assertEqual(alert['details'], {'identifier': 'x'})

    def test_critical_alerts_immediately(self):
        self.assertTrue(self.monitor.monitor_event(AuditEventType.BRUTE_FORCE_DETECTED, RiskLevel.CRITICAL))

    def test_default_thresholds(self):
        for risk, threshold in [(RiskLevel.MEDIUM, 10), (RiskLevel.LOW, 50)]:
            results = [self.monitor.monitor_event(f"EVT_{risk.value}", risk) for _ in range(threshold)]
            self.assertFalse(any(results[:-1]))
            self.assertTrue(results[-1])

    def test_counts_are_per_event_type(self):
        for _ in range(4):
            self.monitor.monitor_event("A", RiskLevel.HIGH)
            self.monitor.monitor_event("B", RiskLevel.HIGH)

        self.assertEqual(self.alert_calls(), [])
        self.assertEqual(self.monitor.get_security_metrics()['eventCounts'],
                         {'HIGH:A': 4, 'HIGH:B': 4})

    def test_custom_thresholds(self):
        monitor = SecurityMonitoring(
            self.audit, self.ip_management, self.brute_force,
            thresholds={'HIGH': 2}, clock=self.clock,
        )
        self.assertFalse(monitor.monitor_event("X", RiskLevel.HIGH))
        self.assertTrue(monitor.monitor_event("X", RiskLevel.HIGH))

    def test_alert_logged_at_critical(self):
        with self.assertLogs(ALERT_LOGGER_NAME, level='CRITICAL') as captured:
            self.monitor.monitor_event(AuditEventType.BRUTE_FORCE_DETECTED, RiskLevel.CRITICAL)

        self.assertTrue(captured.output[0].startswith(f"CRITICAL:{ALERT_LOGGER_NAME}:SECURITY_ALERT: {{"))


class TestWindow(MonitoringTestCase):

    def test_counts_cleared_after_window(self):
        for _ in range(4):
            self.monitor.monitor_event("A", RiskLevel.HIGH)

        self.clock.advance(301)
        fired = self.monitor.monitor_event("A", RiskLevel.HIGH)

        self.assertFalse(fired)
        metrics = self.monitor.get_security_metrics()
        self.assertEqual(metrics['eventCounts'], {'HIGH:A': 1})
        self.assertEqual(metrics['lastReset'], self.clock.now)

    def test_window_boundary_is_inclusive(self):
        for _ in range(4):
            self.monitor.monitor_event("A", RiskLevel.HIGH)

        self.clock.advance(300)

        self.assertTrue(self.monitor.monitor_event("A", RiskLevel.HIGH))

    def test_reset(self):
        self.monitor.monitor_event("A", RiskLevel.LOW)
        self.clock.advance(10)

        self.monitor.reset()

        metrics = self.monitor.get_security_metrics()
        self.assertEqual(metrics['eventCounts'], {})
        self.assertEqual(metrics['lastReset'], self.clock.now)

    def test_rejects_invalid_window(self):
        with self.assertRaises(ValueError):
            SecurityMonitoring(self.audit, self.ip_management, self.brute_force, window_size=0)


class TestMetrics(MonitoringTestCase):

    def test_metrics_read_live_state(self):
        self.ip_management.get_blocked_ips.return_value = ['10.0.0.1', '10.0.0.2']
        self.brute_force.locked_count.return_value = 3

        metrics = self.monitor.get_security_metrics()

        self.assertEqual(metrics['blockedIPs'], 2)
        self.assertEqual(metrics['lockedAccounts'], 3)

    def test_metrics_counts_are_a_copy(self):
        self.monitor.monitor_event("A", RiskLevel.LOW)
        self.monitor.get_security_metrics()['eventCounts']['A'] = 99

        self.assertNotIn('A', self.monitor.get_security_metrics()['eventCounts'])


class TestAuditHook(unittest.TestCase):
    """Monitoring attached to a real audit logger."""

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryAuditStore()
        self.audit = AuditLogger(self.store)
        self.ip_management = IPManagement(self.audit)
        self.brute_force = BruteForceProtection(self.audit, clock=self.clock)
        self.monitor = SecurityMonitoring(
            self.audit, self.ip_management, self.brute_force, clock=self.clock,
        )
        self.monitor.attach(self.audit)

    def tearDown(self):
        self.ip_management.scheduler.stop(timeout=1)

    def test_audit_entries_are_monitored(self):
        self.ip_management.block_ip("192.0.2.50", "test")

        self.assertEqual(self.monitor.get_security_metrics()['eventCounts'], {'HIGH:IP_BLOCKED': 1})
        self.assertEqual(self.monitor.get_security_metrics()['blockedIPs'], 1)

    def test_alerts_do_not_feed_back(self):
        for i in range(6):
            self.ip_management.block_ip(f"192.0.2.{i + 1}", "test")

        alerts = self.store.query(AuditFilters(event_type=SECURITY_ALERT_TRIGGERED))
        self.assertEqual(len(alerts), 2)
        self.assertNotIn(f"LOW:{SECURITY_ALERT_TRIGGERED}",
                         self.monitor.get_security_metrics()['eventCounts'])

    def test_detach(self):
        self.monitor.detach()
        self.ip_management.block_ip("192.0.2.60", "test")
        self.assertEqual(self.monitor.get_security_metrics()['eventCounts'], {})

    def test_locked_accounts_from_brute_force(self):
        for _ in range(5):
            self.brute_force.record_failed_attempt("acct")

        metrics = self.monitor.get_security_metrics()

        self.assertEqual(metrics['lockedAccounts'], 1)
        self.assertEqual(metrics['eventCounts'], {'HIGH:ACCOUNT_LOCKED': 1})


if __name__ == '__main__':
    unittest.main()
