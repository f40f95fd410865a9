"""Data models at the identity-provider and profile-store boundary.

Identity and Session are owned by the identity provider; the reconciler only
reads them. Profile is the teacher row owned by the profile store. The
remaining classroom rows (students, attendance, rewards) are carried so the
backend schema is described in one place; this package does not manage them.
"""

from __future__ import annotations

__all__ = [
    "Attendance",
    "AuthChangeEvent",
    "Identity",
    "Profile",
    "Reward",
    "Session",
    "SignUpResult",
    "Student",
    "StudentReward",
    "parse_session_response",
]

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from classroom_auth.constants import DEFAULT_SESSION_EXPIRES_IN_SECONDS


class AuthChangeEvent(str, Enum):
    """Session-change events pushed by the identity provider."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class Identity(BaseModel):
    """Authenticated principal as reported by the identity provider.

    Attributes:
        id: Opaque provider id (profile rows are keyed by it).
        email: Login email.
        user_metadata: Provider-managed metadata (e.g. username given at sign-up).
        created_at: When the identity was created, if reported.
    """

    id: str = Field(min_length=1)
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")


class Session(BaseModel):
    """Provider session: tokens plus the identity they belong to."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_at: datetime
    user: Identity

    model_config = ConfigDict(frozen=True)

    @property
    def is_expired(self) -> bool:
        """Check if the access token has expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def seconds_until_expiry(self) -> float:
        """Seconds until the access token expires (negative if expired)."""
        return (self.expires_at - datetime.now(timezone.utc)).total_seconds()

    def to_json(self) -> str:
        """Serialize for session storage."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Session":
        """Deserialize from session storage."""
        return cls.model_validate_json(data)


class SignUpResult(BaseModel):
    """Outcome of identity creation.

    session is None when the provider requires email confirmation before the
    first sign-in.
    """

    identity: Identity
    session: Session | None = None


class Profile(BaseModel):
    """Teacher profile row, keyed by identity id."""

    id: str
    username: str
    created_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")


def parse_session_response(data: dict[str, Any]) -> Session:
    """Parse a token-endpoint response into a Session.

    Handles the standard fields: access_token (required), refresh_token,
    token_type, expires_at (unix seconds) or expires_in, and user.

    Args:
        data: JSON body from the provider's token or sign-up endpoint.

    Returns:
        Session ready for storage.

    Raises:
        KeyError: If access_token or user is missing.
        ValueError: If data is not a JSON object or a field is invalid.
    """
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    if data.get("expires_at"):
        expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
    else:
        expires_in = int(data.get("expires_in") or DEFAULT_SESSION_EXPIRES_IN_SECONDS)
        expires_at = datetime.fromtimestamp(datetime.now(timezone.utc).timestamp() + expires_in, tz=timezone.utc)

    return Session(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        token_type=data.get("token_type") or "bearer",
        expires_at=expires_at,
        user=Identity.model_validate(data["user"]),
    )


# ============================================================================
# Classroom rows (not managed by the reconciler)
# ============================================================================


class Student(BaseModel):
    """Student belonging to a teacher, with a running point total."""

    id: str
    teacher_id: str
    name: str
    points: int = 0
    created_at: datetime | None = None


class Attendance(BaseModel):
    """Daily attendance mark for a student."""

    id: str
    student_id: str
    date: str
    on_time: bool
    created_at: datetime | None = None


class Reward(BaseModel):
    """Reward a teacher offers for a number of points."""

    id: str
    teacher_id: str
    name: str
    description: str = ""
    points_required: int
    icon: str = ""
    created_at: datetime | None = None


class StudentReward(BaseModel):
    """Reward assigned to a student, optionally redeemed."""

    id: str
    student_id: str
    reward_id: str
    assigned_at: datetime | None = None
    redeemed: bool = False
    redeemed_at: datetime | None = None
    reward: Reward | None = None
