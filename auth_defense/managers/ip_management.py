"""
AuthSentry IP Management

Maintains the blocked and whitelisted IP sets.

Supports:
- Manual and time-limited blocks (auto-unblock on a scheduler timer)
- Whitelisting of trusted addresses
- O(1) membership tests for request-path checks

Whitelisting does not remove an existing block; callers decide which
set takes precedence (LoginGuard lets whitelisted IPs through).

Automatic unblocks live only on the scheduler. Stopping the scheduler
(SecurityEngine.stop) cancels them: time-limited blocks then stay in
place and no IP_UNBLOCKED event is recorded for them. Blocks are process
state, so they are gone anyway once the process exits.

Author: AuthSentry Project
License: GNU GPL v3
"""

import logging
import threading
from typing import Dict, List, Optional, Set

from ..core.scheduler import BackgroundScheduler, ScheduledTask
from ..models import AuditEventType, RiskLevel
from ..utils.validators import require_ip
from .audit_logger import AuditLogger

AUTO_UNBLOCK_REASON = "Automatic unblock after duration"


class IPManagement:
    """Thread-safe block/allow lists with audited mutations"""

    def __init__(self, audit_logger: AuditLogger, scheduler: Optional[BackgroundScheduler] = None):
        """
        Initialize IP management.

        Args:
            audit_logger: Receives IP_BLOCKED/IP_UNBLOCKED/ACCESS_* events
            scheduler: Runs automatic unblocks; a private one is created if omitted
        """
        self.audit_logger = audit_logger
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._blocked: Set[str] = set()
        self._whitelisted: Set[str] = set()
        self._expiry_tasks: Dict[str, ScheduledTask] = {}
        self._block_generation: Dict[str, int] = {}

    def block_ip(self, ip: str, reason: str, duration: Optional[float] = None):
        """
        Block an IP address.

        Args:
            ip: IPv4/IPv6 address
            reason: Free-form reason recorded in the audit trail
            duration: Seconds until automatic unblock, None for permanent

        Raises:
            ValueError: If ip is invalid or duration is not positive
        """
        ip = require_ip(ip)
        if duration is not None and duration <= 0:
            raise ValueError(f"Block duration must be positive, got {duration}")

        with self._lock:
            self._blocked.add(ip)
            generation = self._block_generation.get(ip, 0) + 1
            self._block_generation[ip] = generation
            previous = self._expiry_tasks.pop(ip, None)
            if duration is not None:
                self._expiry_tasks[ip] = self.scheduler.call_later(
                    duration,
                    lambda: self._expire_block(ip, generation),
                    name=f"unblock-{ip}",
                )

        if previous is not None:
            self.scheduler.cancel(previous)

        self.logger.info(f"Blocked {ip}: {reason}" + (f" for {duration}s" if duration else ""))
        self.audit_logger.log_security_event(
            AuditEventType.IP_BLOCKED,
            {'ip': ip, 'reason': reason, 'duration': duration},
            RiskLevel.HIGH,
            ip=ip,
        )

    def unblock_ip(self, ip: str, reason: str):
        """
        Remove an IP from the block list.

        Idempotent: unblocking an IP that is not blocked still records the
        request in the audit trail.
        """
        ip = require_ip(ip)

        with self._lock:
            was_blocked = ip in self._blocked
            self._blocked.discard(ip)
            pending = self._expiry_tasks.pop(ip, None)

        if pending is not None:
            self.scheduler.cancel(pending)

        if was_blocked:
            self.logger.info(f"Unblocked {ip}: {reason}")

        self.audit_logger.log_security_event(
            AuditEventType.IP_UNBLOCKED,
            {'ip': ip, 'reason': reason},
            RiskLevel.MEDIUM,
            ip=ip,
        )

    def _expire_block(self, ip: str, generation: int):
        with self._lock:
            # A later block_ip() or unblock_ip() superseded this timer
            if self._block_generation.get(ip) != generation or ip not in self._expiry_tasks:
                return
            self._expiry_tasks.pop(ip)
        self.unblock_ip(ip, AUTO_UNBLOCK_REASON)

    def is_blocked(self, ip: str) -> bool:
        """Raises ValueError if ip is not an IP address."""
        return require_ip(ip) in self._blocked

    def is_whitelisted(self, ip: str) -> bool:
        return require_ip(ip) in self._whitelisted

    def whitelist_ip(self, ip: str):
        """Add an IP to the whitelist."""
        ip = require_ip(ip)

        with self._lock:
            self._whitelisted.add(ip)

        self.logger.info(f"Whitelisted {ip}")
        self.audit_logger.log_security_event(
            AuditEventType.ACCESS_GRANTED,
            {'ip': ip, 'action': 'WHITELISTED'},
            RiskLevel.LOW,
            ip=ip,
        )

    def remove_from_whitelist(self, ip: str) -> bool:
        """
        Remove an IP from the whitelist.

        Returns:
            True if the IP was whitelisted
        """
        ip = require_ip(ip)

        with self._lock:
            present = ip in self._whitelisted
            self._whitelisted.discard(ip)

        if not present:
            return False

        self.logger.info(f"Removed {ip} from whitelist")
        self.audit_logger.log_security_event(
            AuditEventType.ACCESS_DENIED,
            {'ip': ip, 'action': 'WHITELIST_REMOVED'},
            RiskLevel.LOW,
            ip=ip,
        )
        return True

    def get_blocked_ips(self) -> List[str]:
        with self._lock:
            return sorted(self._blocked)

    def get_whitelisted_ips(self) -> List[str]:
        with self._lock:
            return sorted(self._whitelisted)

    def blocked_count(self) -> int:
        return len(self._blocked)
