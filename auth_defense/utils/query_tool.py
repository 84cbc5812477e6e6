"""
AuthSentry Audit Query Tool

Command-line views over the persisted audit trail.

Features:
- Filtered event listing (type, user, risk level, time range)
- Security overview summary
- JSON export of matching entries

Time arguments accept ISO-8601 ("2025-12-01", "2025-12-01T08:30:00")
or relative forms ("last 7 days", "last 12 hours", "last 30 minutes").

Author: AuthSentry Project
License: GNU GPL v3
"""

import json
import re
from datetime import datetime, timedelta
from typing import List, Optional

from ..models import AuditEntry, AuditFilters, as_utc, utcnow

_RELATIVE_RE = re.compile(r'^last\s+(\d+)\s+(minute|hour|day|week)s?$', re.IGNORECASE)


def parse_time_arg(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a CLI time argument into an aware UTC datetime.

    Raises:
        ValueError: If the value is neither ISO-8601 nor "last N <unit>"
    """
    if not value:
        return None

    value = value.strip()
    match = _RELATIVE_RE.match(value)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        now = now or utcnow()
        return now - timedelta(**{f"{unit}s": amount})

    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValueError(
            f"Invalid time value: {value!r}. "
            f"Use ISO-8601 (2025-12-01T08:30:00) or 'last N days/hours/minutes'"
        )


class QueryTool:
    """Audit trail reporting for the CLI."""

    def __init__(self, audit_logger, dashboard=None):
        """
        Initialize query tool.

        Args:
            audit_logger: AuditLogger reading from the configured store
            dashboard: Optional SecurityDashboard for overview output
        """
        self.audit_logger = audit_logger
        self.dashboard = dashboard

    def query_events(self, filters: AuditFilters) -> List[AuditEntry]:
        """
        Print audit entries matching filters, newest first.

        Returns:
            The entries that were printed
        """
        entries = self.audit_logger.get_audit_logs(filters)

        if not entries:
            print("No audit events match the given filters")
            return entries

        print(f"\nAudit Events ({len(entries)} results)")
        print("=" * 130)
        print(f"{'Timestamp':<20} {'Risk':<9} {'Event':<26} {'User':<20} {'IP':<40} {'Details'}")
        print("-" * 130)

        for entry in entries:
            timestamp = entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')
            user = (entry.user_id or '-')[:19]
            ip = (entry.ip or '-')[:39]
            details = json.dumps(entry.details, default=str, sort_keys=True)
            if len(details) > 60:
                details = details[:57] + '...'

            print(f"{timestamp:<20} {entry.risk_level.value:<9} {entry.event_type[:25]:<26} {user:<20} {ip:<40} {details}")

        print("=" * 130)
        return entries

    def show_overview(self):
        """Print the dashboard security overview."""
        if self.dashboard is None:
            print("ERROR: Overview requires a dashboard")
            return

        overview = self.dashboard.get_security_overview()

        print("\nSecurity Overview")
        print("=" * 80)
        print(f"  Total Events:     {overview['totalEvents']:,}")
        print(f"  Critical Events:  {overview['criticalEvents']:,}")
        print(f"  Blocked IPs:      {overview['blockedIPs']:,}")
        print(f"  Locked Accounts:  {overview['lockedAccounts']:,}")

        print("\nRisk Distribution:")
        distribution = overview['riskDistribution']
        if not distribution:
            print("  (no events)")
        for level in ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW'):
            if level in distribution:
                print(f"  {level:<10} {distribution[level]:>8,}")

        print("\nRecent Events:")
        for event in overview['recentEvents']:
            print(f"  {event['timestamp'][:19]}  {event['riskLevel']:<9} {event['eventType']}")

        print("=" * 80)

    def export_json(self, output_file: str, filters: AuditFilters) -> int:
        """
        Export matching audit entries to a JSON file.

        Returns:
            Number of entries written (0 on failure)
        """
        entries = self.audit_logger.get_audit_logs(filters)

        if not entries:
            print("ERROR: No data to export")
            return 0

        export_data = [entry.to_dict() for entry in entries]

        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(export_data, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            print(f"ERROR: Export failed: {e}")
            return 0

        print(f"Exported {len(export_data):,} audit events to {output_file}")
        return len(export_data)
