"""
AuthSentry Security Dashboard

Read-only aggregation over the audit trail and live protection state.

Author: AuthSentry Project
License: GNU GPL v3
"""

import logging
from typing import Any, Dict

from ..models import AuditFilters, RiskLevel

OVERVIEW_SAMPLE_SIZE = 1000
RECENT_EVENTS = 10
TOP_OFFENDERS = 10


class SecurityDashboard:
    """Reporting facade. Never mutates state."""

    def __init__(self, audit_logger, ip_management, brute_force):
        self.audit_logger = audit_logger
        self.ip_management = ip_management
        self.brute_force = brute_force
        self.logger = logging.getLogger(__name__)

    def get_security_overview(self) -> Dict[str, Any]:
        """
        Summarize recent audit activity.

        Returns:
            Dict with totalEvents, criticalEvents, blockedIPs, lockedAccounts,
            recentEvents (serialized entries, newest first) and riskDistribution
        """
        recent = self.audit_logger.get_audit_logs(AuditFilters(limit=RECENT_EVENTS))
        sample = self.audit_logger.get_audit_logs(AuditFilters(limit=OVERVIEW_SAMPLE_SIZE))

        risk_distribution: Dict[str, int] = {}
        for entry in sample:
            level = entry.risk_level.value
            risk_distribution[level] = risk_distribution.get(level, 0) + 1

        return {
            'totalEvents': len(sample),
            'criticalEvents': risk_distribution.get(RiskLevel.CRITICAL.value, 0),
            'blockedIPs': len(self.ip_management.get_blocked_ips()),
            'lockedAccounts': self.brute_force.locked_count(),
            'recentEvents': [entry.to_dict() for entry in recent],
            'riskDistribution': risk_distribution,
        }

    def get_brute_force_stats(self) -> Dict[str, Any]:
        """
        Aggregate brute force protection state.

        Returns:
            Dict with totalAttempts, lockedAccounts and topOffenders (top 10 by
            attempts, ties in insertion order)
        """
        records = self.brute_force.snapshot()
        now = self.brute_force.clock()

        # sorted() is stable, so equal counts keep insertion order
        ranked = sorted(records, key=lambda record: record.attempts, reverse=True)

        return {
            'totalAttempts': sum(record.attempts for record in records),
            'lockedAccounts': sum(1 for record in records if record.is_locked_at(now)),
            'topOffenders': [
                {'identifier': record.identifier, 'attempts': record.attempts}
                for record in ranked[:TOP_OFFENDERS]
            ],
        }
