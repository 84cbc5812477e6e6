"""
AuthSentry - Adaptive Authentication Defense & Security Telemetry

Author: AuthSentry Project
License: GNU GPL v3
"""

__version__ = "1.0.0"

from .models import AuditEventType, RiskLevel, AuditEntry, AuditFilters
from .main import SecurityEngine

__all__ = [
    'AuditEventType',
    'RiskLevel',
    'AuditEntry',
    'AuditFilters',
    'SecurityEngine',
]
