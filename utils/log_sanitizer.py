"""Log sanitizer - keeps diary text out of log files.

Reminder titles and bodies are copied from personal diary entries, so
anything that reaches the log goes through here first.
"""

import re
from typing import Union

# Patterns to detect and redact sensitive data
SENSITIVE_PATTERNS = [
    # Email addresses
    (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b', '[EMAIL]'),

    # Card-like digit groups (before phones, which would also match)
    (r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b', '[CARD]'),

    # International / local phone numbers
    (r'(?<!\w)\+?\d[\d\s().-]{8,}\d\b', '[PHONE]'),

    # Secrets in key=value form
    (r'\b(password|passcode|pin|secret|token)["\s:=]+[^\s,}"\']{4,}', r'\1=[REDACTED]'),

    # Long opaque strings (keys, recovery codes)
    (r'\b[A-Za-z0-9]{32,}\b', '[LONG_TOKEN]'),
]

_COMPILED_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in SENSITIVE_PATTERNS]


def sanitize_log(text: str) -> str:
    """Remove sensitive data from text for safe logging.

    Args:
        text: The text to sanitize

    Returns:
        Sanitized text with sensitive data replaced by placeholders
    """
    if not text:
        return text

    result = text
    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


def sanitize_for_log(value: Union[str, bytes, None], max_length: int = 60) -> str:
    """Sanitize and truncate diary text for logging.

    Args:
        value: Entry title, reminder body or payload
        max_length: Maximum length of returned string

    Returns:
        Sanitized, single-line, truncated string
    """
    if value is None:
        return "<None>"

    if isinstance(value, bytes):
        text = value.decode('utf-8', errors='replace')
    else:
        text = str(value)

    sanitized = " ".join(sanitize_log(text).split())

    if len(sanitized) > max_length:
        return sanitized[:max_length] + f"... [{len(text)} chars]"

    return sanitized
