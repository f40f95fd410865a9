"""Tests for the auth audit logger and logging helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from classroom_auth.exceptions import ProfileMissingError
from classroom_auth.identity.models import Identity
from classroom_auth.telemetry.auth_logger import AuthLogger, create_auth_logger
from classroom_auth.utils.logging.logging_helpers import hash_sensitive_id, mask_email


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "auth.jsonl"


@pytest.fixture
def auth_logger(log_path: Path) -> AuthLogger:
    return create_auth_logger(log_path)


@pytest.fixture
def identity() -> Identity:
    return Identity(id="user-1", email="teacher@school.org")


def read_entries(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestAuthLogger:
    """Tests for audit entries."""

    def test_sign_in_success(self, auth_logger: AuthLogger, log_path: Path, identity: Identity) -> None:
        """Success entries carry hashed id and masked email, never the raw values."""
        # Act
        auth_logger.log_sign_in(email=identity.email or "", identity=identity, phase="authenticated")

        # Assert
        entry = read_entries(log_path)[-1]
        assert entry["event_type"] == "sign_in"
        assert entry["status"] == "Success"
        assert entry["level"] == "INFO"
        assert entry["identity_id"] == hash_sensitive_id("user-1")
        assert entry["email"] == "t***@school.org"
        assert "time" in entry
        assert "teacher@school.org" not in log_path.read_text()

    def test_failure_records_error(self, auth_logger: AuthLogger, log_path: Path, identity: Identity) -> None:
        auth_logger.log_sign_in(email="teacher@school.org", identity=identity, error=ProfileMissingError())

        entry = read_entries(log_path)[-1]
        assert entry["status"] == "Failure"
        assert entry["level"] == "WARNING"
        assert entry["error_type"] == "ProfileMissingError"
        assert entry["error_message"] == "Account not correctly configured"

    def test_forced_sign_out_reason(self, auth_logger: AuthLogger, log_path: Path, identity: Identity) -> None:
        auth_logger.log_sign_out(identity=identity, phase="unauthenticated", reason="profile_missing")

        assert read_entries(log_path)[-1]["details"] == {"reason": "profile_missing"}

    def test_restore_without_session(self, auth_logger: AuthLogger, log_path: Path) -> None:
        auth_logger.log_session_restored(identity=None, phase="unauthenticated")

        entry = read_entries(log_path)[-1]
        assert entry["event_type"] == "session_restored"
        assert entry["message"] == "No stored session"
        assert "identity_id" not in entry

    def test_passive_change(self, auth_logger: AuthLogger, log_path: Path, identity: Identity) -> None:
        auth_logger.log_passive_change(provider_event="TOKEN_REFRESHED", identity=identity, phase="authenticated")

        entry = read_entries(log_path)[-1]
        assert entry["event_type"] == "passive_session_change"
        assert entry["provider_event"] == "TOKEN_REFRESHED"


class TestLoggingHelpers:
    def test_hash_is_stable_and_short(self) -> None:
        assert hash_sensitive_id("user-1") == hash_sensitive_id("user-1")
        assert len(hash_sensitive_id("user-1")) == len("sha256:") + 8
        assert hash_sensitive_id("") == "sha256:empty"

    @pytest.mark.parametrize(
        "email,expected",
        [("teacher@school.org", "t***@school.org"), ("nope", "***"), ("@school.org", "***")],
    )
    def test_mask_email(self, email: str, expected: str) -> None:
        assert mask_email(email) == expected
