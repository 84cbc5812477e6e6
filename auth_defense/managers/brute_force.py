"""
AuthSentry Brute Force Protection

Per-identifier failed attempt tracking with lockouts and progressive delay.

Behavior:
- Each failure increments the identifier's counter and computes a suggested
  delay: base_delay * 2^(attempts-1), capped at max_delay
- Reaching max_attempts locks the identifier for lockout_duration
- Failures during an active lock do not extend it
- Success deletes the record; the periodic cleanup() evicts records idle
  longer than reset_window
- A failure on an unlocked record idle longer than reset_window starts a
  new count, whether or not cleanup() has run

Identifiers are opaque strings (IP, account id, or "ip:account").

Author: AuthSentry Project
License: GNU GPL v3
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..models import AttemptRecord, AttemptResult, AuditEventType, RiskLevel
from ..utils.validators import validate_identifier
from .attempt_store import AttemptStore, InMemoryAttemptStore
from .audit_logger import AuditLogger


@dataclass(frozen=True)
class BruteForcePolicy:
    """Immutable lockout policy. Durations are in seconds."""
    max_attempts: int = 5
    lockout_duration: float = 15 * 60
    base_delay: float = 1.0
    max_delay: float = 30.0
    reset_window: float = 60 * 60
    progressive_delay: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.lockout_duration <= 0 or self.reset_window <= 0:
            raise ValueError("lockout_duration and reset_window must be positive")
        if self.base_delay < 0 or self.max_delay < self.base_delay:
            raise ValueError("delays must satisfy 0 <= base_delay <= max_delay")

    @classmethod
    def from_config(cls, config) -> 'BruteForcePolicy':
        return cls(
            max_attempts=config.max_attempts,
            lockout_duration=config.lockout_duration,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            reset_window=config.reset_window,
            progressive_delay=config.progressive_delay,
        )

    def delay_for(self, attempts: int) -> float:
        """Suggested wait after the given number of consecutive failures."""
        if not self.progressive_delay:
            return self.base_delay
        # Cap the exponent so huge attempt counts never overflow
        exponent = min(max(attempts - 1, 0), 64)
        return min(self.base_delay * (2 ** exponent), self.max_delay)


class BruteForceProtection:
    """
    Lockout and backoff state machine over an AttemptStore.

    Every read-modify-write runs under one lock covering the whole store.
    Audit events are emitted after the lock is released.
    """

    def __init__(self, audit_logger: AuditLogger,
                 policy: Optional[BruteForcePolicy] = None,
                 store: Optional[AttemptStore] = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize brute force protection.

        Args:
            audit_logger: Receives ACCOUNT_LOCKED / ACCOUNT_UNLOCKED events
            policy: Lockout policy (defaults apply when omitted)
            store: Attempt record storage (in-memory when omitted)
            clock: Callable returning epoch seconds
        """
        self.audit_logger = audit_logger
        self.policy = policy or BruteForcePolicy()
        self.store = store if store is not None else InMemoryAttemptStore()
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()

    def _is_stale(self, record: AttemptRecord, now: float) -> bool:
        # Records with an active lock are never stale
        if record.is_locked_at(now):
            return False
        return now - record.last_attempt_at > self.policy.reset_window

    def is_locked(self, identifier: str) -> bool:
        """
        Check whether identifier is currently locked out.

        Stale, unlocked records are evicted as a side effect.
        """
        identifier = validate_identifier(identifier)

        with self._lock:
            now = self.clock()
            record = self.store.get(identifier)
            if record is None:
                return False

            if record.is_locked_at(now):
                return True

            if self._is_stale(record, now):
                self.store.delete(identifier)

            return False

    def record_failed_attempt(self, identifier: str) -> AttemptResult:
        """
        Record one failed authentication attempt.

        Args:
            identifier: Opaque key being protected

        Returns:
            AttemptResult describing lock state and suggested delay
        """
        identifier = validate_identifier(identifier)
        policy = self.policy
        newly_locked = False

        with self._lock:
            now = self.clock()
            record = self.store.get(identifier)
            # Idle past reset_window: count from scratch even if no sweep ran yet
            if record is None or self._is_stale(record, now):
                record = AttemptRecord(identifier=identifier)

            record.attempts += 1
            record.last_attempt_at = now
            record.current_delay = policy.delay_for(record.attempts)

            if record.attempts >= policy.max_attempts:
                if not record.is_locked_at(now):
                    record.locked_until = now + policy.lockout_duration
                    newly_locked = True
                result = AttemptResult(
                    is_locked=True,
                    remaining_attempts=0,
                    delay=record.current_delay,
                    attempts=record.attempts,
                    lockout_duration=policy.lockout_duration,
                    locked_until=record.locked_until,
                )
            else:
                result = AttemptResult(
                    is_locked=False,
                    remaining_attempts=policy.max_attempts - record.attempts,
                    delay=record.current_delay,
                    attempts=record.attempts,
                )

            self.store.set(record)

        if newly_locked:
            self.logger.warning(
                f"Locked {identifier} after {result.attempts} failed attempts "
                f"for {policy.lockout_duration}s"
            )
            self.audit_logger.log_security_event(
                AuditEventType.ACCOUNT_LOCKED,
                {
                    'identifier': identifier,
                    'attempts': result.attempts,
                    'lockoutDuration': policy.lockout_duration,
                },
                RiskLevel.HIGH,
            )
        else:
            self.logger.debug(f"Failed attempt {result.attempts} for {identifier}")

        return result

    def record_successful_attempt(self, identifier: str):
        """Clear all failure state for identifier."""
        identifier = validate_identifier(identifier)
        with self._lock:
            self.store.delete(identifier)

    def get_attempt_count(self, identifier: str) -> int:
        identifier = validate_identifier(identifier)
        record = self.store.get(identifier)
        return record.attempts if record else 0

    def get_lockout_remaining(self, identifier: str) -> float:
        """Seconds until the lockout ends, 0 when not locked."""
        identifier = validate_identifier(identifier)
        now = self.clock()
        record = self.store.get(identifier)
        if record is None or not record.is_locked_at(now):
            return 0.0
        return record.locked_until - now

    def unlock(self, identifier: str) -> bool:
        """
        Manually clear a lockout and reset the counter.

        Returns:
            True if a record existed (and an ACCOUNT_UNLOCKED event was logged)
        """
        identifier = validate_identifier(identifier)

        with self._lock:
            record = self.store.get(identifier)
            if record is None:
                return False
            record.locked_until = None
            record.attempts = 0
            record.current_delay = 0.0
            self.store.set(record)

        self.logger.info(f"Unlocked {identifier}")
        self.audit_logger.log_security_event(
            AuditEventType.ACCOUNT_UNLOCKED,
            {'identifier': identifier},
            RiskLevel.MEDIUM,
        )
        return True

    def cleanup(self) -> int:
        """
        Evict records idle longer than reset_window.

        Returns:
            Number of records removed
        """
        with self._lock:
            now = self.clock()
            removed = self.store.sweep(lambda record: self._is_stale(record, now))

        if removed:
            self.logger.info(f"Cleanup removed {removed} stale attempt record(s)")
        return removed

    def snapshot(self) -> List[AttemptRecord]:
        """Copies of all attempt records in insertion order."""
        return self.store.records()

    def locked_count(self) -> int:
        """Number of identifiers with an active lock."""
        now = self.clock()
        return sum(1 for record in self.store.records() if record.is_locked_at(now))
