"""
Utility Functions Module

Provides trace ID generation and bearer credential extraction.
"""

import uuid
from typing import Optional


def generate_trace_id() -> str:
    """
    Generate request trace ID

    Uses UUID4 to generate a unique identifier, used to correlate logs of the same request.

    Example:
        >>> len(generate_trace_id())
        36
    """
    return str(uuid.uuid4())


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the credential from an ``Authorization: Bearer <token>`` value

    Examples:
        >>> extract_bearer_token("Bearer sk-123")
        'sk-123'
        >>> extract_bearer_token("bearer   ") is None
        True
        >>> extract_bearer_token(None) is None
        True
    """
    if not authorization:
        return None
    value = authorization.strip()
    if value[:7].lower() == "bearer ":
        value = value[7:].strip()
    return value or None
