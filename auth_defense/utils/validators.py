"""
AuthSentry Input Validators

Identifier and IP address validation utilities.

Provides validation functions for:
- IPv4 and IPv6 address validation
- Opaque identifier validation (IP, account id or composite key)
- Guard functions that reject caller misuse before shared state is touched

Author: AuthSentry Project
License: GNU GPL v3
"""

import ipaddress

# Upper bound on identifier length; longer keys are almost certainly garbage
MAX_IDENTIFIER_LENGTH = 512


def validate_ip(ip_str: str) -> bool:
    """
    Validate if string is a valid IP address (IPv4 or IPv6).

    Args:
        ip_str: String to validate as IP address

    Returns:
        True if valid IP address, False otherwise

    Example:
        >>> validate_ip("192.168.1.1")
        True
        >>> validate_ip("invalid")
        False
    """
    if not isinstance(ip_str, str):
        return False
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def require_ip(ip_str: str) -> str:
    """
    Return the canonical form of an IP address string.

    Args:
        ip_str: IP address supplied by the caller

    Returns:
        Canonical string form (e.g. compressed IPv6)

    Raises:
        ValueError: If ip_str is empty or not an IP address
    """
    if not isinstance(ip_str, str) or not ip_str.strip():
        raise ValueError("IP address must be a non-empty string")
    try:
        return str(ipaddress.ip_address(ip_str.strip()))
    except ValueError:
        raise ValueError(f"Invalid IP address: {ip_str!r}")


def validate_identifier(identifier: str) -> str:
    """
    Check a brute-force tracking identifier.

    Identifiers are opaque to this library: an IP, an account id or a
    composite key chosen by the caller. Only emptiness and length are checked.

    Args:
        identifier: Key supplied by the caller

    Returns:
        The identifier with surrounding whitespace removed

    Raises:
        ValueError: If identifier is not a non-empty string of sane length
    """
    if not isinstance(identifier, str):
        raise ValueError(f"Identifier must be a string, got {type(identifier).__name__}")
    identifier = identifier.strip()
    if not identifier:
        raise ValueError("Identifier must not be empty")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"Identifier longer than {MAX_IDENTIFIER_LENGTH} characters")
    return identifier
