#!/usr/bin/env python3
"""
AuthSentry - Adaptive Authentication Defense & Security Telemetry

Main entry point for the authentication defense core.

This module wires the components together:
- Audit trail (AuditLogger over an in-memory or SQLite AuditStore)
- IP block/allow lists with automatic expiry
- Brute force lockouts with progressive delay
- Windowed security monitoring with threshold alerts
- Dashboard aggregation and the request-level LoginGuard

Applications embed SecurityEngine; the authsentry CLI inspects the
persisted audit trail.

Usage:
    authsentry --query-events                     # Latest audit events
    authsentry --query-events --risk-level HIGH   # Filter by risk level
    authsentry --query-events --since "last 7 days"
    authsentry --overview                         # Security overview
    authsentry --export-json FILE                 # Export matching events

Author: AuthSentry Project
License: GNU GPL v3
"""

import sys
import time
import argparse
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from auth_defense.config import SecurityConfig, get_config
from auth_defense.models import AuditFilters
from auth_defense.managers.attempt_store import AttemptStore, InMemoryAttemptStore
from auth_defense.managers.audit_store import AuditStore, InMemoryAuditStore
from auth_defense.managers.database import SQLiteAuditStore
from auth_defense.managers.audit_logger import AuditLogger
from auth_defense.managers.ip_management import IPManagement
from auth_defense.managers.brute_force import BruteForcePolicy, BruteForceProtection
from auth_defense.core.scheduler import BackgroundScheduler
from auth_defense.core.monitoring import SecurityMonitoring
from auth_defense.core.dashboard import SecurityDashboard
from auth_defense.core.login_guard import LoginGuard
from auth_defense.utils.logging import setup_logging


def build_audit_store(config: SecurityConfig) -> AuditStore:
    """Create the audit store selected by config.audit_backend."""
    if config.audit_backend == 'sqlite':
        return SQLiteAuditStore(config.database_path)
    return InMemoryAuditStore(capacity=config.memory_audit_capacity)


class SecurityEngine:
    """
    Composition root for the authentication defense core.

    Responsibilities:
    - Build every component from one SecurityConfig
    - Subscribe SecurityMonitoring to the audit trail
    - Own the background scheduler (auto-unblock timers, periodic cleanup)
    """

    def __init__(self, config: Optional[SecurityConfig] = None,
                 audit_store: Optional[AuditStore] = None,
                 attempt_store: Optional[AttemptStore] = None,
                 clock: Optional[Callable[[], float]] = None):
        """
        Initialize the engine.

        Args:
            config: Configuration (global config when omitted)
            audit_store: Audit persistence (built from config when omitted)
            attempt_store: Attempt record storage (in-memory when omitted)
            clock: Callable returning epoch seconds, shared by all components
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or get_config()

        self.clock = clock or time.time

        self.audit_store = audit_store if audit_store is not None else build_audit_store(self.config)
        self.attempt_store = attempt_store if attempt_store is not None else InMemoryAttemptStore()
        self.scheduler = BackgroundScheduler()

        self.audit_logger = AuditLogger(
            self.audit_store,
            clock=lambda: datetime.fromtimestamp(self.clock(), timezone.utc),
        )
        self.ip_management = IPManagement(self.audit_logger, self.scheduler)
        self.brute_force = BruteForceProtection(
            self.audit_logger,
            policy=BruteForcePolicy.from_config(self.config),
            store=self.attempt_store,
            clock=self.clock,
        )
        self.monitoring = SecurityMonitoring.from_config(
            self.config, self.audit_logger, self.ip_management, self.brute_force,
            clock=self.clock,
        )
        self.monitoring.attach(self.audit_logger)
        self.dashboard = SecurityDashboard(self.audit_logger, self.ip_management, self.brute_force)
        self.guard = LoginGuard.from_config(
            self.config, self.audit_logger, self.ip_management, self.brute_force,
        )

        self.scheduler.every(self.config.cleanup_interval, self.brute_force.cleanup, name="attempt-cleanup")
        self._started = False

    def start(self):
        """Start background maintenance."""
        if self._started:
            return
        self.scheduler.start()
        self._started = True
        self.logger.info(
            f"AuthSentry engine started (audit backend: {self.config.audit_backend}, "
            f"cleanup every {self.config.cleanup_interval}s)"
        )

    def stop(self, timeout: float = 5.0):
        """
        Stop background work and release the audit store.

        Pending automatic unblocks are cancelled; time-limited blocks stay
        in place until unblocked manually.
        """
        self.scheduler.stop(timeout=timeout)
        self.monitoring.detach()
        try:
            self.audit_store.close()
        except Exception as e:
            self.logger.error(f"Failed to close audit store: {e}")
        self._started = False
        self.logger.info("AuthSentry engine stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


def _build_filters(args) -> AuditFilters:
    from auth_defense.utils.query_tool import parse_time_arg

    return AuditFilters(
        event_type=args.event_type,
        user_id=args.user_id,
        risk_level=args.risk_level,
        start_date=parse_time_arg(args.since),
        end_date=parse_time_arg(args.until),
        limit=args.limit,
    )


def main():
    """
    CLI entry point with argument parsing.

    Supported operations:
    - Audit event queries (--query-events with filters)
    - Security overview (--overview)
    - JSON export (--export-json)
    """
    parser = argparse.ArgumentParser(description='AuthSentry - Adaptive Authentication Defense & Security Telemetry')
    parser.add_argument('--query-events', action='store_true', help='List audit events (newest first)')
    parser.add_argument('--event-type', type=str, metavar='TYPE', help='Filter by event type (e.g., LOGIN_FAILURE)')
    parser.add_argument('--user-id', type=str, metavar='USER', help='Filter by user id')
    parser.add_argument('--risk-level', type=str.upper, choices=['LOW', 'MEDIUM', 'HIGH', 'CRITICAL'], help='Filter by risk level')
    parser.add_argument('--since', type=str, metavar='TIME', help='Start of time range (ISO-8601 or "last N days")')
    parser.add_argument('--until', type=str, metavar='TIME', help='End of time range (ISO-8601 or "last N days")')
    parser.add_argument('--limit', type=int, default=100, help='Maximum number of events (default: 100)')
    parser.add_argument('--overview', action='store_true', help='Show security overview')
    parser.add_argument('--export-json', type=str, metavar='FILE', help='Export matching audit events to JSON file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    if not (args.query_events or args.overview or args.export_json):
        parser.print_help()
        sys.exit(0)

    config = get_config()

    if config.audit_backend != 'sqlite':
        print("ERROR: Query commands require database mode (audit_backend = sqlite in config)")
        sys.exit(1)

    try:
        filters = _build_filters(args)
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    from auth_defense.utils.query_tool import QueryTool

    store = SQLiteAuditStore(config.database_path)
    audit_logger = AuditLogger(store)
    ip_management = IPManagement(audit_logger)
    brute_force = BruteForceProtection(audit_logger, policy=BruteForcePolicy.from_config(config))
    query = QueryTool(audit_logger, SecurityDashboard(audit_logger, ip_management, brute_force))

    if args.overview:
        query.show_overview()
    elif args.export_json:
        if not query.export_json(args.export_json, filters):
            sys.exit(1)
    else:
        query.query_events(filters)

    sys.exit(0)


if __name__ == "__main__":
    main()
