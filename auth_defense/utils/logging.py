"""
AuthSentry Logging Configuration

Centralized logging setup for the application.

Configures:
- File logging with automatic rotation and gzip compression
- Console output to stdout
- Log level management (INFO/DEBUG)
- Dedicated audit and alert channels

The audit trail is written to the 'auth_defense.audit' logger and security
alerts to 'auth_defense.alerts'. Both always stay at INFO or above so the
degraded-mode trail survives even when the audit store is unavailable.

Author: AuthSentry Project
License: GNU GPL v3
"""

import logging
import logging.handlers
import sys
import os
import gzip
import shutil
from pathlib import Path

AUDIT_LOGGER_NAME = 'auth_defense.audit'
ALERT_LOGGER_NAME = 'auth_defense.alerts'


def _gzip_rotator(source, dest):
    """
    Custom rotator to compress rotated log files with gzip.

    dest already carries the .gz suffix added by _gzip_namer, so
    RotatingFileHandler shifts the compressed backups itself.

    Args:
        source: Source log file path
        dest: Destination path for rotated log
    """
    with open(source, 'rb') as f_in:
        with gzip.open(dest, 'wb') as f_out:
            shutil.copyfileobj(f_in, f_out)
    os.remove(source)


def _gzip_namer(name):
    return name + '.gz'


def setup_logging(level=logging.INFO, log_file=None):
    """
    Configure application-wide logging with file rotation and console handlers.

    Sets up dual logging:
    - Rotating file handler: Automatic rotation with gzip compression
      (size and backup count taken from config)
    - Console handler: stdout

    Args:
        level: Logging level (logging.INFO, logging.DEBUG, etc.)
        log_file: Optional log file path; falls back to config, then none

    Example:
        >>> setup_logging(level=logging.DEBUG)  # Verbose mode
        >>> setup_logging()  # Normal mode (INFO)
    """
    max_bytes = 10485760
    backup_count = 5

    try:
        from ..config import get_config
        config = get_config()
        if log_file is None and config.log_file:
            log_file = config.log_file
        max_bytes = config.log_max_bytes
        backup_count = config.log_backup_count
    except (ImportError, ValueError) as e:
        print(f"Warning: Could not load logging config: {e}", file=sys.stderr)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handlers = [
        logging.StreamHandler(sys.stdout)
    ]

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count
            )
            file_handler.namer = _gzip_namer
            file_handler.rotator = _gzip_rotator
            handlers.append(file_handler)
        except (PermissionError, OSError) as e:
            print(f"Warning: Could not create log file {log_file}: {e}", file=sys.stderr)
            print("Logging to console only", file=sys.stderr)

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True
    )

    # Audit and alert channels are never quieter than INFO
    for name in (AUDIT_LOGGER_NAME, ALERT_LOGGER_NAME):
        channel = logging.getLogger(name)
        if channel.getEffectiveLevel() > logging.INFO:
            channel.setLevel(logging.INFO)
