"""Utility functions for VerseFeed.

This module provides common helpers for timestamps, credential redaction
and display-name derivation.
"""

import time
from datetime import UTC, datetime
from typing import Any

ANONYMOUS = "Anonymous"


def utc_now() -> datetime:
    """Get current UTC timestamp as timezone-aware datetime."""
    return datetime.now(UTC)


def epoch_millis() -> float:
    """Get current time as milliseconds since the Unix epoch.

    Used as the creation timestamp of stored records; the feed sorts on it.

    Example:
        >>> epoch_millis() > 1_700_000_000_000
        True
    """
    return time.time() * 1000.0


def redact_token(token: str | None) -> str:
    """Redact sensitive tokens for safe logging.

    Example:
        >>> redact_token("abcdefghijklmnop")
        'abcdefgh...mnop'
        >>> redact_token("short")
        '***'
        >>> redact_token(None)
        'None'
    """
    if not token:
        return "None"
    return f"{token[:8]}...{token[-4:]}" if len(token) > 12 else "***"


def blank_to_none(value: str | None) -> str | None:
    """Return None for None or whitespace-only strings, the value otherwise.

    Example:
        >>> blank_to_none("  ")
        >>> blank_to_none("poet")
        'poet'
    """
    if value is None or not value.strip():
        return None
    return value


def email_local_part(email: str | None) -> str | None:
    """Extract the part of an email address before the '@'.

    Example:
        >>> email_local_part("ada@example.com")
        'ada'
        >>> email_local_part(None)
    """
    if not email:
        return None
    local = email.split("@", 1)[0]
    return local or None


def display_author_name(name: str | None, email: str | None) -> str:
    """Author attribution shown on a poem: name, then email, then Anonymous."""
    return blank_to_none(name) or blank_to_none(email) or ANONYMOUS


def derive_username(name: str | None, email: str | None) -> str:
    """Default display handle: name, then email local part, then Anonymous.

    Example:
        >>> derive_username(None, "ada@example.com")
        'ada'
        >>> derive_username("Ada", "ada@example.com")
        'Ada'
    """
    return blank_to_none(name) or email_local_part(email) or ANONYMOUS


def safe_get(data: Any, *keys: str, default: Any = None) -> Any:
    """Safely navigate nested dictionary structure.

    Example:
        >>> data = {"error": {"description": "Bad amount"}}
        >>> safe_get(data, "error", "description")
        'Bad amount'
        >>> safe_get(data, "error", "code", default="n/a")
        'n/a'
    """
    for key in keys:
        if isinstance(data, dict):
            data = data.get(key)
            if data is None:
                return default
        else:
            return default
    return data
