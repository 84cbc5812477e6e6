"""
auth_defense/managers/__init__.py

State and persistence managers
"""

from .attempt_store import AttemptStore, InMemoryAttemptStore
from .audit_store import AuditStore, InMemoryAuditStore
from .database import SQLiteAuditStore
from .audit_logger import AuditLogger
from .ip_management import IPManagement
from .brute_force import BruteForcePolicy, BruteForceProtection


__all__ = [
    # Storage
    'AttemptStore',
    'InMemoryAttemptStore',
    'AuditStore',
    'InMemoryAuditStore',
    'SQLiteAuditStore',

    # Managers
    'AuditLogger',
    'IPManagement',
    'BruteForcePolicy',
    'BruteForceProtection',
]
