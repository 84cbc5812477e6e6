"""
AuthSentry Data Models

Core data structures used throughout the application.

This module defines:
- AuditEventType / RiskLevel: Fixed audit taxonomy and ordered severities
- AuditEntry: Immutable structured record of a security-relevant occurrence
- AttemptRecord: Per-identifier failed attempt tracking state
- AttemptResult: Outcome of recording a failed attempt
- AuditFilters: Validated query filters for audit log retrieval
- PersistResult: Outcome of an audit store write

Type safety: Records use dataclasses for automatic __init__, __repr__, etc.
Serialization: to_dict() and from_dict() methods for JSON/SQLite persistence

Author: AuthSentry Project
License: GNU GPL v3
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, model_validator


class AuditEventType(str, Enum):
    """
    Audit event taxonomy.

    Values are consumed verbatim by downstream tooling and must not change.

    Authentication Events:
        LOGIN_SUCCESS, LOGIN_FAILURE, LOGOUT, PASSWORD_CHANGE,
        ACCOUNT_LOCKED, ACCOUNT_UNLOCKED

    Authorization Events:
        ACCESS_GRANTED, ACCESS_DENIED, PERMISSION_CHANGE, ROLE_CHANGE

    Security Events:
        BRUTE_FORCE_DETECTED, SUSPICIOUS_ACTIVITY, RATE_LIMIT_EXCEEDED,
        IP_BLOCKED, IP_UNBLOCKED

    Data Events:
        DATA_CREATED, DATA_UPDATED, DATA_DELETED, DATA_EXPORTED

    System Events:
        SYSTEM_ERROR, CONFIGURATION_CHANGE, SECURITY_SCAN
    """
    # Authentication Events
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILURE = "LOGIN_FAILURE"
    LOGOUT = "LOGOUT"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"

    # Authorization Events
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    PERMISSION_CHANGE = "PERMISSION_CHANGE"
    ROLE_CHANGE = "ROLE_CHANGE"

    # Security Events
    BRUTE_FORCE_DETECTED = "BRUTE_FORCE_DETECTED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    IP_BLOCKED = "IP_BLOCKED"
    IP_UNBLOCKED = "IP_UNBLOCKED"

    # Data Events
    DATA_CREATED = "DATA_CREATED"
    DATA_UPDATED = "DATA_UPDATED"
    DATA_DELETED = "DATA_DELETED"
    DATA_EXPORTED = "DATA_EXPORTED"

    # System Events
    SYSTEM_ERROR = "SYSTEM_ERROR"
    CONFIGURATION_CHANGE = "CONFIGURATION_CHANGE"
    SECURITY_SCAN = "SECURITY_SCAN"


# System event emitted by SecurityMonitoring when a threshold is met.
# Not part of the AuditEventType taxonomy.
SECURITY_ALERT_TRIGGERED = "SECURITY_ALERT_TRIGGERED"


_RISK_ORDER = {"LOW": 0, "MEDIUM": 1, "HIGH": 2, "CRITICAL": 3}


class RiskLevel(str, Enum):
    """
    Ordered severity attached to every audit event.

    Values:
        LOW: Routine activity (successful logins, whitelisting)
        MEDIUM: Worth reviewing (login failures, unlocks, unblocks)
        HIGH: Defensive action taken (lockouts, IP blocks, system errors)
        CRITICAL: Active attack in progress (brute force detected)
    """
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_ORDER[self.value]

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank


EventName = Union[AuditEventType, str]


def event_name(event_type: EventName) -> str:
    """Return the wire string for an event type enum member or plain string."""
    if isinstance(event_type, AuditEventType):
        return event_type.value
    return str(event_type)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Coerce a datetime to timezone-aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditEntry:
    """
    Immutable record of a security-relevant occurrence.

    Created and owned by AuditLogger; persisted through an AuditStore.

    Attributes:
        event_type: Taxonomy value (see AuditEventType) or system event name
        risk_level: Severity of the event
        details: Opaque key-value payload
        timestamp: When the event was recorded (UTC)
        user_id: Optional user the event relates to
        ip: Optional network address the event relates to
        user_agent: Client user agent ("unknown" when not supplied)
        session_id: Optional session identifier
    """
    event_type: str
    risk_level: RiskLevel
    details: Dict[str, Any]
    timestamp: datetime
    user_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: str = "unknown"
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON storage."""
        return {
            'eventType': self.event_type,
            'riskLevel': self.risk_level.value,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
            'userId': self.user_id,
            'ip': self.ip,
            'userAgent': self.user_agent,
            'sessionId': self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuditEntry':
        """Deserialize from dictionary."""
        return cls(
            event_type=data['eventType'],
            risk_level=RiskLevel(data['riskLevel']),
            details=data.get('details') or {},
            timestamp=datetime.fromisoformat(data['timestamp']),
            user_id=data.get('userId'),
            ip=data.get('ip'),
            user_agent=data.get('userAgent') or 'unknown',
            session_id=data.get('sessionId'),
        )


@dataclass
class AttemptRecord:
    """
    Failed attempt tracking state for one identifier.

    Attributes:
        identifier: Opaque key (IP, account id or composite)
        attempts: Consecutive failures since the last reset
        last_attempt_at: Epoch seconds of the most recent failure
        locked_until: Epoch seconds when the active lockout ends, or None
        current_delay: Suggested wait (seconds) returned with the last failure
    """
    identifier: str
    attempts: int = 0
    last_attempt_at: float = 0.0
    locked_until: Optional[float] = None
    current_delay: float = 0.0

    def is_locked_at(self, now: float) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def copy(self) -> 'AttemptRecord':
        return replace(self)

    def to_dict(self) -> dict:
        return {
            'identifier': self.identifier,
            'attempts': self.attempts,
            'lastAttemptAt': self.last_attempt_at,
            'lockedUntil': self.locked_until,
            'currentDelay': self.current_delay,
        }


@dataclass(frozen=True)
class AttemptResult:
    """
    Outcome of BruteForceProtection.record_failed_attempt().

    Attributes:
        is_locked: True once the identifier is (or remains) locked out
        remaining_attempts: Failures left before lockout (0 when locked)
        delay: Suggested wait in seconds before the next attempt
        attempts: Failure count after this attempt
        lockout_duration: Configured lockout length in seconds (only when locked)
        locked_until: Epoch seconds when the lockout ends (only when locked)
    """
    is_locked: bool
    remaining_attempts: int
    delay: float
    attempts: int
    lockout_duration: Optional[float] = None
    locked_until: Optional[float] = None


@dataclass(frozen=True)
class PersistResult:
    """Outcome of an audit store write. Never raised, always inspected."""
    ok: bool
    error: Optional[str] = None


class AuditFilters(BaseModel):
    """
    Validated filters for audit log queries.

    All filters are optional and combined with AND. Results are always
    returned newest first and capped at ``limit``.
    """
    event_type: Optional[str] = None
    user_id: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(default=100, gt=0, le=10000)

    model_config = {'extra': 'forbid'}

    @model_validator(mode='before')
    @classmethod
    def _normalize_event_type(cls, data):
        if isinstance(data, dict) and isinstance(data.get('event_type'), AuditEventType):
            data = dict(data)
            data['event_type'] = data['event_type'].value
        return data

    @model_validator(mode='after')
    def _check_range(self):
        # Naive datetimes are treated as UTC so they compare with stored entries
        if self.start_date:
            self.start_date = as_utc(self.start_date)
        if self.end_date:
            self.end_date = as_utc(self.end_date)
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def matches(self, entry: AuditEntry) -> bool:
        """Check whether an entry satisfies every filter except limit."""
        if self.event_type and entry.event_type != self.event_type:
            return False
        if self.user_id and entry.user_id != self.user_id:
            return False
        if self.risk_level and entry.risk_level != self.risk_level:
            return False
        if self.start_date and entry.timestamp < self.start_date:
            return False
        if self.end_date and entry.timestamp > self.end_date:
            return False
        return True
