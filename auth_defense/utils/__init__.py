from .validators import validate_ip, require_ip, validate_identifier
from .logging import setup_logging, AUDIT_LOGGER_NAME, ALERT_LOGGER_NAME

__all__ = [
    'validate_ip',
    'require_ip',
    'validate_identifier',
    'setup_logging',
    'AUDIT_LOGGER_NAME',
    'ALERT_LOGGER_NAME',
]
