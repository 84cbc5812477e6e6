"""
AuthSentry Audit Logger

Formats and records structured security events.

Every mutating operation in the library funnels through AuditLogger:
- Builds an immutable AuditEntry (timestamp, risk level, request metadata)
- Writes one structured AUDIT_LOG line to the 'auth_defense.audit' logger
- Persists the entry through the injected AuditStore
- Notifies listeners (SecurityMonitoring subscribes here)

Logging never blocks or fails the security decision that triggered it.
Store failures are converted into a PersistResult and reported on the
process log; the entry stays observable there even when durable storage
is down.

Author: AuthSentry Project
License: GNU GPL v3
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models import (
    AuditEntry, AuditFilters, EventName, PersistResult, RiskLevel,
    as_utc, event_name, utcnow,
)
from ..utils.logging import AUDIT_LOGGER_NAME
from .audit_store import AuditStore


# Process log level used for the AUDIT_LOG line of each risk level
_RISK_LOG_LEVELS = {
    RiskLevel.LOW: logging.INFO,
    RiskLevel.MEDIUM: logging.INFO,
    RiskLevel.HIGH: logging.WARNING,
    RiskLevel.CRITICAL: logging.ERROR,
}

AuditListener = Callable[[AuditEntry], None]


class AuditLogger:
    """
    Central audit trail writer.

    Thread-safe: entries are built without shared state and the store is
    called without holding any lock.
    """

    def __init__(self, store: AuditStore, clock: Callable = utcnow):
        """
        Initialize audit logger.

        Args:
            store: Persistence collaborator (insert/query)
            clock: Callable returning the current datetime (UTC)
        """
        self.store = store
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self.audit_log = logging.getLogger(AUDIT_LOGGER_NAME)

        self._listeners: List[AuditListener] = []
        self._listeners_lock = threading.Lock()

    # ========================================================================
    # LISTENERS
    # ========================================================================

    def add_listener(self, listener: AuditListener):
        """Register a callback invoked with every recorded AuditEntry."""
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: AuditListener):
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ========================================================================
    # CORE OPERATIONS
    # ========================================================================

    def log_security_event(self, event_type: EventName, details: Optional[Dict[str, Any]] = None,
                           risk_level: RiskLevel = RiskLevel.LOW,
                           user_id: Optional[str] = None,
                           ip: Optional[str] = None) -> AuditEntry:
        """
        Record a security event.

        Never raises because of persistence or listener problems.

        Args:
            event_type: AuditEventType member or system event name
            details: Arbitrary key-value payload (userAgent/sessionId are lifted out)
            risk_level: Severity of the event
            user_id: Optional user the event relates to
            ip: Optional network address the event relates to

        Returns:
            The recorded AuditEntry
        """
        details = dict(details) if details else {}
        risk_level = RiskLevel(risk_level)

        entry = AuditEntry(
            event_type=event_name(event_type),
            risk_level=risk_level,
            details=details,
            timestamp=as_utc(self.clock()),
            user_id=user_id,
            ip=ip,
            user_agent=details.get('userAgent') or 'unknown',
            session_id=details.get('sessionId'),
        )

        self._write_process_log(entry)

        result = self._persist(entry)
        if not result.ok:
            self.logger.error(
                f"Failed to persist audit event {entry.event_type}: {result.error} "
                f"(entry kept in process log only)"
            )

        self._notify(entry)
        return entry

    def log_auth_event(self, event_type: EventName, user_id: Optional[str], ip: Optional[str],
                       details: Optional[Dict[str, Any]] = None) -> AuditEntry:
        """
        Record an authentication event.

        Risk is MEDIUM for failure events, LOW otherwise.
        """
        name = event_name(event_type)
        payload = dict(details or {})
        payload.update({'userId': user_id, 'ip': ip})
        risk = RiskLevel.MEDIUM if 'FAILURE' in name else RiskLevel.LOW
        return self.log_security_event(name, payload, risk, user_id, ip)

    def log_data_event(self, event_type: EventName, user_id: Optional[str],
                       resource_type: str, resource_id: str,
                       details: Optional[Dict[str, Any]] = None) -> AuditEntry:
        """Record a data access/mutation event at LOW risk."""
        payload = dict(details or {})
        payload.update({'resourceType': resource_type, 'resourceId': resource_id})
        return self.log_security_event(event_type, payload, RiskLevel.LOW, user_id)

    def log_system_event(self, event_type: EventName,
                         details: Optional[Dict[str, Any]] = None) -> AuditEntry:
        """
        Record a system event.

        Risk is HIGH for error events, LOW otherwise.
        """
        name = event_name(event_type)
        risk = RiskLevel.HIGH if 'ERROR' in name else RiskLevel.LOW
        return self.log_security_event(name, details or {}, risk)

    def get_audit_logs(self, filters: Optional[AuditFilters] = None, **kwargs) -> List[AuditEntry]:
        """
        Retrieve audit entries, newest first.

        Args:
            filters: AuditFilters instance; alternatively pass the filter
                fields as keyword arguments (event_type, user_id, risk_level,
                start_date, end_date, limit)

        Returns:
            Matching entries, or an empty list if the store is unavailable

        Raises:
            ValueError: If the filters themselves are invalid
        """
        if filters is None:
            try:
                filters = AuditFilters(**kwargs)
            except ValidationError as e:
                raise ValueError(f"Invalid audit filters: {e}") from e
        elif kwargs:
            raise ValueError("Pass either an AuditFilters instance or keyword filters, not both")

        try:
            return self.store.query(filters)
        except Exception as e:
            self.logger.error(f"Failed to retrieve audit logs: {e}")
            return []

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _persist(self, entry: AuditEntry) -> PersistResult:
        """Write entry to the store, converting any failure into a result."""
        try:
            self.store.insert(entry)
            return PersistResult(ok=True)
        except Exception as e:
            return PersistResult(ok=False, error=f"{type(e).__name__}: {e}")

    def _write_process_log(self, entry: AuditEntry):
        level = _RISK_LOG_LEVELS.get(entry.risk_level, logging.INFO)
        try:
            line = json.dumps(entry.to_dict(), default=str, sort_keys=True)
        except (TypeError, ValueError):
            line = repr(entry.to_dict())
        self.audit_log.log(level, f"AUDIT_LOG: {line}")

    def _notify(self, entry: AuditEntry):
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(entry)
            except Exception as e:
                self.logger.error(f"Audit listener {listener!r} failed for {entry.event_type}: {e}")
