"""
AuthSentry Core Framework

Components that sit on top of the managers.

Key features:
- Background scheduling of timers and periodic maintenance
- Windowed security monitoring with threshold alerts
- Read-only dashboard aggregation
- Request-level login guard

Author: AuthSentry Project
License: GNU GPL v3
"""

from .scheduler import BackgroundScheduler, ScheduledTask
from .monitoring import SecurityMonitoring
from .dashboard import SecurityDashboard
from .login_guard import LoginGuard, GuardDecision

__all__ = [
    'BackgroundScheduler',
    'ScheduledTask',
    'SecurityMonitoring',
    'SecurityDashboard',
    'LoginGuard',
    'GuardDecision',
]
