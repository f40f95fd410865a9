"""Helpers for structured log events.

- serialize_event: Pydantic event model -> dict for logging
- hash_sensitive_id: Stable short hash for identifiers (log correlation without PII)
- mask_email: Partially masked email address for human-readable logs
"""

from __future__ import annotations

__all__ = [
    "hash_sensitive_id",
    "mask_email",
    "serialize_event",
]

import hashlib
from typing import Any

from pydantic import BaseModel


def serialize_event(event: BaseModel) -> dict[str, Any]:
    """Serialize a Pydantic event model for logging.

    Excludes the 'time' field (added by ISO8601Formatter at log time) and
    None values for cleaner logs.

    Args:
        event: Pydantic model instance (e.g., AuthEvent).

    Returns:
        dict: JSON-compatible event data.
    """
    return event.model_dump(mode="json", exclude={"time"}, exclude_none=True)


def hash_sensitive_id(value: str, prefix_length: int = 8) -> str:
    """Hash an identifier for logging while keeping it correlatable.

    The hash is deterministic, so the same identity always produces the
    same value across log lines.

    Args:
        value: The identifier to hash (e.g., identity id).
        prefix_length: Number of hex characters to keep.

    Returns:
        str: Hashed value in format "sha256:<prefix>".

    Example:
        >>> hash_sensitive_id("")
        'sha256:empty'
    """
    if not value:
        return "sha256:empty"

    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"sha256:{digest[:prefix_length]}"


def mask_email(email: str) -> str:
    """Mask the local part of an email address.

    Example:
        >>> mask_email("teacher@school.org")
        't***@school.org'
        >>> mask_email("not-an-email")
        '***'
    """
    local, sep, domain = email.partition("@")
    if not sep or not local or not domain:
        return "***"
    return f"{local[0]}***@{domain}"
