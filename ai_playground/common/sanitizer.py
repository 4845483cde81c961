"""
Credential Masking

Masks provider credentials in headers and in free text, so that upstream
requests, upstream error messages and log records never carry the
caller's key in clear.
"""

import logging
import re
from typing import Any

# Header names that carry a provider credential (lowercase)
SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "api-key", "x-goog-api-key"})


def mask_credential(value: str) -> str:
    """
    Mask a credential value

    Keeps an optional Bearer prefix and never reveals more than the first
    four and last two characters of the token.

    Examples:
        >>> mask_credential("Bearer sk-1234567890abcdef")
        'Bearer sk-1***...***ef'
        >>> mask_credential("short")
        '***'
    """
    if not value:
        return value

    prefix = ""
    token = value
    if value.lower().startswith("bearer "):
        prefix = "Bearer "
        token = value[7:]

    if len(token) <= 8:
        return f"{prefix}***"

    return f"{prefix}{token[:4]}***...***{token[-2:]}"


def sanitize_headers(headers: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``headers`` with every credential header masked.

    Examples:
        >>> sanitize_headers({"x-api-key": "sk-ant-0123456789", "accept": "text/event-stream"})
        {'x-api-key': 'sk-a***...***89', 'accept': 'text/event-stream'}
    """
    if not headers:
        return {}

    sanitized = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS and isinstance(value, str):
            sanitized[key] = mask_credential(value)
        else:
            sanitized[key] = value
    return sanitized


# Credential shapes of the supported providers (Anthropic, OpenRouter, Google)
CREDENTIAL_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_-]{10,}"),
    re.compile(r"\bAIza[0-9A-Za-z_-]{20,}"),
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._-]{8,}"),
)


def redact_text(text: str) -> str:
    """
    Mask every credential-looking token inside free text

    Examples:
        >>> redact_text("upstream said: invalid key sk-ant-api03-abcdefghijkl")
        'upstream said: invalid key sk-a***...***kl'
    """
    for pattern in CREDENTIAL_PATTERNS:
        text = pattern.sub(lambda m: mask_credential(m.group(0)), text)
    return text


class CredentialRedactingFilter(logging.Filter):
    """Logging filter that masks credentials in the rendered message"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_text(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
