"""
Identifier generation utilities.
"""

import secrets


def generate_session_id() -> str:
    """
    Generate a unique planning session ID.

    Returns:
        A random 16-byte hex string prefixed with 'session_'
    """
    return f"session_{secrets.token_hex(16)}"


def generate_id(prefix: str = "") -> str:
    """
    Generate a short identifier for requirements, suggestions, tickets and entries.

    Args:
        prefix: Optional prefix such as 'req' or 'ticket'

    Returns:
        A random 6-byte hex string, joined to the prefix with '_' when given
    """
    token = secrets.token_hex(6)
    return f"{prefix}_{token}" if prefix else token


def generate_request_id() -> str:
    """
    Generate a unique request ID for tracing.

    Returns:
        A random 8-byte hex string prefixed with 'req_'
    """
    return f"req_{secrets.token_hex(8)}"
