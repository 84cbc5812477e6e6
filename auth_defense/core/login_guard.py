"""
AuthSentry Login Guard

Framework-agnostic composition of the checks a login handler performs.

Request flow:
1. check_request(ip) before the credential check
   - whitelisted IPs always pass
   - blocked IPs are denied (ACCESS_DENIED, HIGH)
   - locked identifiers are denied with a retry-after hint
2. on_login_failure() / on_login_success() after the credential check
   - failures feed BruteForceProtection; a lockout is reported as
     BRUTE_FORCE_DETECTED (CRITICAL)
   - an IP reaching the escalation threshold is blocked outright

The guard returns GuardDecision values; translating them into HTTP
responses (403/429, Retry-After) is left to the caller.

Author: AuthSentry Project
License: GNU GPL v3
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..models import AuditEventType, RiskLevel
from ..utils.validators import require_ip

ESCALATION_REASON = "Excessive brute force attempts"

# Decision reasons
ALLOWED = "ALLOWED"
WHITELISTED = "WHITELISTED"
IP_BLOCKED = "IP_BLOCKED"
LOCKED = "LOCKED"
LOGIN_FAILED = "LOGIN_FAILED"
LOGIN_SUCCEEDED = "LOGIN_SUCCEEDED"


@dataclass(frozen=True)
class GuardDecision:
    """
    Outcome of a guard check.

    Attributes:
        allowed: Whether the caller may proceed
        reason: One of the module-level reason constants
        retry_after: Whole seconds until a retry can succeed (denials only)
        delay: Suggested wait before the next attempt, in seconds
    """
    allowed: bool
    reason: str
    retry_after: Optional[int] = None
    delay: float = 0.0


class LoginGuard:
    """Request-level entry point over IPManagement and BruteForceProtection"""

    def __init__(self, audit_logger, ip_management, brute_force,
                 escalation_threshold: int = 10,
                 escalation_block_duration: float = 24 * 60 * 60):
        self.audit_logger = audit_logger
        self.ip_management = ip_management
        self.brute_force = brute_force
        self.escalation_threshold = escalation_threshold
        self.escalation_block_duration = escalation_block_duration
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config, audit_logger, ip_management, brute_force) -> 'LoginGuard':
        return cls(
            audit_logger, ip_management, brute_force,
            escalation_threshold=config.escalation_threshold,
            escalation_block_duration=config.escalation_block_duration,
        )

    def _retry_after(self, identifier: str) -> int:
        return max(1, math.ceil(self.brute_force.get_lockout_remaining(identifier)))

    def check_request(self, ip: str) -> GuardDecision:
        """
        Pre-authentication check for a client address.

        Raises:
            ValueError: If ip is not a valid address
        """
        ip = require_ip(ip)

        if self.ip_management.is_whitelisted(ip):
            return GuardDecision(allowed=True, reason=WHITELISTED)

        if self.ip_management.is_blocked(ip):
            self.logger.info(f"Denied request from blocked IP {ip}")
            self.audit_logger.log_security_event(
                AuditEventType.ACCESS_DENIED,
                {'ip': ip, 'reason': IP_BLOCKED},
                RiskLevel.HIGH,
                ip=ip,
            )
            return GuardDecision(allowed=False, reason=IP_BLOCKED)

        if self.brute_force.is_locked(ip):
            return GuardDecision(allowed=False, reason=LOCKED, retry_after=self._retry_after(ip))

        return GuardDecision(allowed=True, reason=ALLOWED)

    def on_login_failure(self, identifier: str, ip: Optional[str] = None,
                         user_id: Optional[str] = None,
                         details: Optional[Dict[str, Any]] = None) -> GuardDecision:
        """
        Record a failed credential check.

        Args:
            identifier: Key being protected (usually the client IP)
            ip: Client address, used for audit and escalation
            user_id: Claimed user, "unknown" when absent
            details: Extra audit payload (e.g. reason, userAgent)

        Returns:
            Deny decision with retry_after when locked, otherwise an allow
            decision carrying the suggested delay
        """
        if ip is not None:
            ip = require_ip(ip)

        self.audit_logger.log_auth_event(
            AuditEventType.LOGIN_FAILURE, user_id or 'unknown', ip, details,
        )

        result = self.brute_force.record_failed_attempt(identifier)

        if ip is not None and result.attempts >= self.escalation_threshold:
            self._escalate(ip, result.attempts)

        if not result.is_locked:
            return GuardDecision(allowed=True, reason=LOGIN_FAILED, delay=result.delay)

        self.audit_logger.log_security_event(
            AuditEventType.BRUTE_FORCE_DETECTED,
            {'ip': ip, 'identifier': identifier, 'attempts': result.attempts},
            RiskLevel.CRITICAL,
            ip=ip,
        )
        return GuardDecision(
            allowed=False,
            reason=LOCKED,
            retry_after=self._retry_after(identifier),
            delay=result.delay,
        )

    def _escalate(self, ip: str, attempts: int):
        if self.ip_management.is_whitelisted(ip) or self.ip_management.is_blocked(ip):
            return
        self.logger.warning(f"Escalating {ip} to IP block after {attempts} failed attempts")
        self.ip_management.block_ip(ip, ESCALATION_REASON, self.escalation_block_duration)

    def on_login_success(self, identifier: str, user_id: str, ip: Optional[str] = None,
                         details: Optional[Dict[str, Any]] = None) -> GuardDecision:
        """Reset failure state and record the successful login."""
        if ip is not None:
            ip = require_ip(ip)

        self.brute_force.record_successful_attempt(identifier)
        self.audit_logger.log_auth_event(AuditEventType.LOGIN_SUCCESS, user_id, ip, details)
        return GuardDecision(allowed=True, reason=LOGIN_SUCCEEDED)
