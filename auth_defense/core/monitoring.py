"""
AuthSentry Security Monitoring

Windowed event tally with threshold alerts.

Events are counted per "RISK:EVENT" key inside a fixed window (5 minutes
by default). Whenever a key's count reaches the threshold for its risk
level an alert is raised: one CRITICAL line on the 'auth_defense.alerts'
logger and one SECURITY_ALERT_TRIGGERED system event in the audit trail.

Alerts are level-triggered: every event at or above the threshold fires
again until the window resets.

Author: AuthSentry Project
License: GNU GPL v3
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..models import SECURITY_ALERT_TRIGGERED, AuditEntry, EventName, RiskLevel, event_name
from ..utils.logging import ALERT_LOGGER_NAME

DEFAULT_THRESHOLDS = {
    RiskLevel.CRITICAL.value: 1,
    RiskLevel.HIGH.value: 5,
    RiskLevel.MEDIUM.value: 10,
    RiskLevel.LOW.value: 50,
}

DEFAULT_WINDOW_SIZE = 5 * 60


class SecurityMonitoring:
    """Event counter and alert dispatcher"""

    def __init__(self, audit_logger, ip_management, brute_force,
                 thresholds: Optional[Dict[str, int]] = None,
                 window_size: float = DEFAULT_WINDOW_SIZE,
                 clock: Callable[[], float] = time.time):
        """
        Initialize monitoring.

        Args:
            audit_logger: AuditLogger used to record SECURITY_ALERT_TRIGGERED
            ip_management: Source of the blocked IP count for metrics
            brute_force: Source of the locked account count for metrics
            thresholds: Alert threshold per risk level value
            window_size: Counting window in seconds
            clock: Callable returning epoch seconds
        """
        if window_size <= 0:
            raise ValueError("window_size must be positive")

        self.audit_logger = audit_logger
        self.ip_management = ip_management
        self.brute_force = brute_force
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self.thresholds.update({RiskLevel(k).value: int(v) for k, v in thresholds.items()})
        self.window_size = window_size
        self.clock = clock

        self.logger = logging.getLogger(__name__)
        self.alert_log = logging.getLogger(ALERT_LOGGER_NAME)

        self._lock = threading.Lock()
        self._event_counts: Dict[str, int] = {}
        self._last_reset = self.clock()
        self._attached_to = None

    @classmethod
    def from_config(cls, config, audit_logger, ip_management, brute_force,
                    clock: Callable[[], float] = time.time) -> 'SecurityMonitoring':
        return cls(
            audit_logger, ip_management, brute_force,
            thresholds=config.alert_thresholds(),
            window_size=config.monitor_window,
            clock=clock,
        )

    def monitor_event(self, event_type: EventName, risk_level: RiskLevel,
                      details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Count one event and raise an alert if its threshold is reached.

        Returns:
            True if an alert fired
        """
        name = event_name(event_type)
        risk = RiskLevel(risk_level)
        key = f"{risk.value}:{name}"

        with self._lock:
            now = self.clock()
            if now - self._last_reset > self.window_size:
                self._event_counts.clear()
                self._last_reset = now

            count = self._event_counts.get(key, 0) + 1
            self._event_counts[key] = count

        threshold = self.thresholds.get(risk.value)
        if threshold is None or count < threshold:
            return False

        self._trigger_alert(risk, name, count, details or {})
        return True

    def _trigger_alert(self, risk: RiskLevel, name: str, count: int, details: Dict[str, Any]):
        alert = {
            'type': 'SECURITY_ALERT',
            'riskLevel': risk.value,
            'eventType': name,
            'count': count,
            'details': details,
            'timestamp': self.clock(),
        }
        self.alert_log.critical(f"SECURITY_ALERT: {json.dumps(alert, default=str, sort_keys=True)}")
        self.audit_logger.log_system_event(SECURITY_ALERT_TRIGGERED, alert)

    def get_security_metrics(self) -> Dict[str, Any]:
        """
        Snapshot of window counters and current enforcement state.

        Returns:
            Dict with eventCounts, blockedIPs, lockedAccounts, lastReset
        """
        with self._lock:
            counts = dict(self._event_counts)
            last_reset = self._last_reset

        return {
            'eventCounts': counts,
            'blockedIPs': len(self.ip_management.get_blocked_ips()),
            'lockedAccounts': self.brute_force.locked_count(),
            'lastReset': last_reset,
        }

    def reset(self):
        """Clear all counters and restart the window."""
        with self._lock:
            self._event_counts.clear()
            self._last_reset = self.clock()

    # ========================================================================
    # AUDIT HOOK
    # ========================================================================

    def attach(self, audit_logger):
        """Monitor every entry recorded by audit_logger."""
        if self._attached_to is not None:
            self._attached_to.remove_listener(self._on_audit_entry)
        audit_logger.add_listener(self._on_audit_entry)
        self._attached_to = audit_logger

    def detach(self):
        if self._attached_to is not None:
            self._attached_to.remove_listener(self._on_audit_entry)
            self._attached_to = None

    def _on_audit_entry(self, entry: AuditEntry):
        # Alerts are not counted again, otherwise each alert would feed the next
        if entry.event_type == SECURITY_ALERT_TRIGGERED:
            return
        self.monitor_event(entry.event_type, entry.risk_level, entry.details)
