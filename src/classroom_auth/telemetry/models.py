"""Pydantic models for the authentication audit log.

The 'time' field is None when a model is created; ISO8601Formatter adds the
timestamp during serialization so there is a single source of truth for it.
"""

from __future__ import annotations

__all__ = [
    "AuthEvent",
    "AuthEventType",
]

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

AuthEventType = Literal[
    "sign_up",
    "sign_in",
    "sign_out",
    "session_restored",
    "profile_verification_failed",
    "passive_session_change",
]


class AuthEvent(BaseModel):
    """One authentication log entry (logs/audit/auth.jsonl).

    Identity ids are hashed and emails masked before an event is built.
    """

    time: str | None = Field(
        None,
        description="ISO 8601 timestamp, added by formatter during serialization",
    )

    event_type: AuthEventType
    status: Literal["Success", "Failure"]
    message: str | None = None

    # --- identity ---
    identity_id: str | None = None  # sha256:<prefix>
    email: str | None = None  # masked

    # --- reconciliation ---
    phase: str | None = None  # SessionPhase after the operation
    provider_event: str | None = None  # AuthChangeEvent for passive changes

    # --- errors / extra details ---
    error_type: str | None = None
    error_message: str | None = None
    details: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")
