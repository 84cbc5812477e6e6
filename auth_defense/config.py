"""
AuthSentry Configuration Module

Centralized configuration management using INI-style config.conf file.

Configuration precedence (highest to lowest):
1. Environment variables (AUTHSENTRY_* prefix)
2. config.conf file (INI format)
3. Default values

Config file search locations (first found wins):
1. Path specified in AUTHSENTRY_CONFIG_FILE environment variable
2. /etc/authsentry/config.conf (system-wide)
3. ~/.local/share/authsentry/config.conf (user-specific, XDG standard)
4. ./config.conf (current directory)
5. Built-in defaults (if no config file found)

All values are read once at startup. Components derive immutable policy
objects from the loaded config, so later changes have no effect on a
running engine.

Author: AuthSentry Project
License: GNU GPL v3
"""

from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import Dict, Optional
from pathlib import Path
import logging
import os
import warnings
import configparser


ENV_PREFIX = 'AUTHSENTRY_'

# INI sections whose keys map onto SecurityConfig fields
CONFIG_SECTIONS = ['brute_force', 'monitoring', 'ip_management', 'storage', 'logs', 'guard']


def find_config_file() -> Optional[Path]:
    """
    Search for config.conf in standard locations.

    Returns:
        Path to config file if found, None otherwise
    """
    # Priority 1: Environment variable override
    env_config = os.environ.get('AUTHSENTRY_CONFIG_FILE')
    if env_config:
        path = Path(env_config)
        if path.exists():
            return path
        warnings.warn(f"AUTHSENTRY_CONFIG_FILE={env_config} does not exist")

    # Priority 2-4: Standard locations
    search_paths = [
        Path('/etc/authsentry/config.conf'),
        Path.home() / '.local' / 'share' / 'authsentry' / 'config.conf',
        Path('config.conf'),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_file: Optional[Path] = None) -> Dict[str, str]:
    """
    Load configuration from config.conf file.

    Args:
        config_file: Explicit file to read; searched for when omitted

    Returns:
        Dictionary mapping AUTHSENTRY_<KEY> to raw string values
    """
    logger = logging.getLogger(__name__)

    if config_file is None:
        config_file = find_config_file()

    if not config_file:
        logger.debug("No config.conf file found. Using environment variables and defaults.")
        return {}

    parser = configparser.ConfigParser(
        interpolation=configparser.ExtendedInterpolation()
    )

    try:
        parser.read(config_file)
        logger.info(f"Loaded configuration from: {config_file}")
    except configparser.Error as e:
        logger.warning(f"Failed to parse {config_file}: {e}. Using defaults.")
        return {}

    config = {}
    for section in CONFIG_SECTIONS:
        if parser.has_section(section):
            for key, value in parser.items(section):
                # Strip inline comments (anything after #)
                value = value.split('#')[0].strip()
                config[f'{ENV_PREFIX}{key.upper()}'] = os.path.expanduser(value)

    return config


def _parse_bool(value: str, field_name: str = "field") -> bool:
    """
    Parse boolean value from string with validation.

    Args:
        value: String value to parse
        field_name: Name of field for error messages

    Returns:
        Boolean value

    Raises:
        ValueError: If value is not a valid boolean string
    """
    value_lower = value.lower().strip()
    if value_lower in ('true', '1', 'yes', 'on'):
        return True
    elif value_lower in ('false', '0', 'no', 'off', ''):
        return False
    else:
        raise ValueError(
            f"Invalid boolean value for {field_name}: '{value}'. "
            f"Use: true/false, 1/0, yes/no, on/off"
        )


def _get_from_sources(key: str, config_dict: dict) -> Optional[str]:
    """
    Get configuration value from multiple sources with precedence.

    Args:
        key: Configuration key (lowercase with underscores)
        config_dict: Configuration from config.conf file

    Returns:
        Configuration value or None
    """
    env_key = f"{ENV_PREFIX}{key.upper()}"

    # Priority 1: Environment variable
    env_value = os.environ.get(env_key)
    if env_value is not None:
        return env_value

    # Priority 2: Config file
    return config_dict.get(env_key)


class SecurityConfig(BaseSettings):
    """
    Main configuration with validation.

    Configuration is loaded from:
    1. Environment variables (highest priority)
    2. config.conf file
    3. Default values (lowest priority)

    Durations are expressed in seconds.
    """

    # === Brute Force Protection ===
    max_attempts: int = 5
    lockout_duration: float = 15 * 60
    base_delay: float = 1.0
    max_delay: float = 30.0
    reset_window: float = 60 * 60
    progressive_delay: bool = True
    cleanup_interval: float = 5 * 60

    # === Security Monitoring ===
    monitor_window: float = 5 * 60
    alert_threshold_critical: int = 1
    alert_threshold_high: int = 5
    alert_threshold_medium: int = 10
    alert_threshold_low: int = 50

    # === Login Guard Escalation ===
    escalation_threshold: int = 10
    escalation_block_duration: float = 24 * 60 * 60

    # === Storage Backend ===
    audit_backend: str = "memory"  # memory | sqlite
    database_path: Optional[str] = None
    memory_audit_capacity: int = 10000

    # === Logs ===
    log_file: Optional[str] = None
    log_max_bytes: int = 10485760  # 10MB default
    log_backup_count: int = 5

    # Pydantic-settings reads AUTHSENTRY_* env vars directly; the validator
    # below layers config.conf values underneath them.
    model_config = {
        'env_prefix': ENV_PREFIX,
        'case_sensitive': False,
        'extra': 'ignore',
    }

    @model_validator(mode='after')
    def apply_config_file(self):
        """Fill fields from config.conf where no environment override exists."""
        logger = logging.getLogger(__name__)
        config_dict = load_config_file()
        explicit = self.model_fields_set

        def _lookup(field):
            # Constructor arguments and env vars already populated these
            if field in explicit:
                return None
            return _get_from_sources(field, config_dict)

        int_fields = [
            'max_attempts', 'alert_threshold_critical', 'alert_threshold_high',
            'alert_threshold_medium', 'alert_threshold_low', 'escalation_threshold',
            'memory_audit_capacity', 'log_max_bytes', 'log_backup_count',
        ]
        float_fields = [
            'lockout_duration', 'base_delay', 'max_delay', 'reset_window',
            'cleanup_interval', 'monitor_window', 'escalation_block_duration',
        ]

        for field in int_fields:
            value_str = _lookup(field)
            if value_str is not None:
                try:
                    setattr(self, field, int(value_str))
                    logger.debug(f"CONFIG: {field} = {value_str}")
                except ValueError:
                    logger.warning(f"Invalid integer value for {field}: {value_str}")

        for field in float_fields:
            value_str = _lookup(field)
            if value_str is not None:
                try:
                    setattr(self, field, float(value_str))
                    logger.debug(f"CONFIG: {field} = {value_str}")
                except ValueError:
                    logger.warning(f"Invalid number value for {field}: {value_str}")

        value_str = _lookup('progressive_delay')
        if value_str is not None:
            self.progressive_delay = _parse_bool(value_str, 'progressive_delay')

        for field in ['audit_backend', 'database_path', 'log_file']:
            value_str = _lookup(field)
            if value_str:
                setattr(self, field, value_str)

        if self.database_path is None:
            self.database_path = str(
                Path.home() / '.local' / 'state' / 'authsentry' / 'audit.db'
            )

        self._validate_ranges()
        return self

    def _validate_ranges(self):
        """Reject values that would make the policy meaningless."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        for field in ['lockout_duration', 'base_delay', 'max_delay', 'reset_window',
                      'cleanup_interval', 'monitor_window', 'escalation_block_duration']:
            if getattr(self, field) <= 0:
                raise ValueError(f"{field} must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")
        if self.audit_backend not in ('memory', 'sqlite'):
            raise ValueError(f"Unknown audit_backend: {self.audit_backend}")

    def alert_thresholds(self) -> Dict[str, int]:
        """Per-risk-level alert thresholds keyed by RiskLevel value."""
        return {
            'CRITICAL': self.alert_threshold_critical,
            'HIGH': self.alert_threshold_high,
            'MEDIUM': self.alert_threshold_medium,
            'LOW': self.alert_threshold_low,
        }


# Global configuration instance (singleton pattern)
_config_instance = None


def get_config() -> SecurityConfig:
    """
    Get global configuration instance with lazy initialization.

    Ensures configuration is loaded once and shared across modules.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecurityConfig()
    return _config_instance


def reset_config():
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
