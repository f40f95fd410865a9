"""Tests for session storage backends."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from classroom_auth.config import StorageConfig
from classroom_auth.exceptions import SessionStorageError
from classroom_auth.identity.models import Identity, Session
from classroom_auth.identity.session_storage import (
    EncryptedFileSessionStorage,
    KeychainSessionStorage,
    MemorySessionStorage,
    create_session_storage,
    get_session_storage_info,
)


@pytest.fixture
def session() -> Session:
    return Session(
        access_token="access-token",
        refresh_token="refresh-token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        user=Identity(id="user-1", email="a@x.com"),
    )


class TestSessionModel:
    """Tests for Session helpers used by storage."""

    def test_json_round_trip(self, session: Session) -> None:
        assert Session.from_json(session.to_json()) == session

    def test_expiry(self, session: Session) -> None:
        expired = session.model_copy(update={"expires_at": datetime.now(timezone.utc) - timedelta(seconds=1)})

        assert not session.is_expired
        assert expired.is_expired
        assert expired.seconds_until_expiry < 0


class TestMemorySessionStorage:
    def test_save_load_delete(self, session: Session) -> None:
        storage = MemorySessionStorage()

        storage.save(session)
        assert storage.exists()
        assert storage.load() == session

        storage.delete()
        assert storage.load() is None
        storage.delete()


class TestEncryptedFileSessionStorage:
    """Tests for the encrypted file fallback."""

    def test_save_and_load(self, tmp_path: Path, session: Session) -> None:
        """Saved session decrypts to the same value."""
        # Arrange
        storage = EncryptedFileSessionStorage(tmp_path / "session.enc")

        # Act
        storage.save(session)

        # Assert
        assert storage.exists()
        assert storage.load() == session

    def test_file_is_not_plaintext(self, tmp_path: Path, session: Session) -> None:
        path = tmp_path / "session.enc"
        EncryptedFileSessionStorage(path).save(session)

        assert b"access-token" not in path.read_bytes()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path: Path, session: Session) -> None:
        path = tmp_path / "session.enc"
        EncryptedFileSessionStorage(path).save(session)

        assert path.stat().st_mode & 0o777 == 0o600

    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        assert EncryptedFileSessionStorage(tmp_path / "missing.enc").load() is None

    def test_corrupted_file_raises(self, tmp_path: Path) -> None:
        """Garbage in the file is a storage error, not a crash."""
        # Arrange
        path = tmp_path / "session.enc"
        path.write_bytes(b"not-a-fernet-token")

        # Act / Assert
        with pytest.raises(SessionStorageError):
            EncryptedFileSessionStorage(path).load()

    def test_delete_is_idempotent(self, tmp_path: Path, session: Session) -> None:
        storage = EncryptedFileSessionStorage(tmp_path / "session.enc")
        storage.save(session)

        storage.delete()
        storage.delete()

        assert not storage.exists()


class TestKeychainSessionStorage:
    """Tests for the keychain backend with keyring mocked."""

    def test_save_and_load(self, session: Session) -> None:
        stored: dict[tuple[str, str], str] = {}

        with (
            patch("keyring.set_password", side_effect=lambda s, u, p: stored.__setitem__((s, u), p)),
            patch("keyring.get_password", side_effect=lambda s, u: stored.get((s, u))),
        ):
            storage = KeychainSessionStorage()
            storage.save(session)

            assert storage.load() == session
            assert ("classroom-auth", "supabase_session") in stored

    def test_keyring_failure_raises_storage_error(self, session: Session) -> None:
        with patch("keyring.set_password", side_effect=RuntimeError("locked")):
            with pytest.raises(SessionStorageError):
                KeychainSessionStorage().save(session)


class TestCreateSessionStorage:
    """Tests for backend selection."""

    def test_explicit_backends(self) -> None:
        assert isinstance(create_session_storage(StorageConfig(backend="memory")), MemorySessionStorage)
        assert isinstance(create_session_storage(StorageConfig(backend="keychain")), KeychainSessionStorage)
        assert isinstance(create_session_storage(StorageConfig(backend="file")), EncryptedFileSessionStorage)

    def test_auto_falls_back_to_file(self) -> None:
        with patch("classroom_auth.identity.session_storage.is_keyring_available", return_value=False):
            storage = create_session_storage(StorageConfig())

        assert isinstance(storage, EncryptedFileSessionStorage)

    def test_auto_prefers_keychain(self) -> None:
        with patch("classroom_auth.identity.session_storage.is_keyring_available", return_value=True):
            storage = create_session_storage(StorageConfig(backend="auto"))

        assert isinstance(storage, KeychainSessionStorage)

    def test_storage_info(self, tmp_path: Path) -> None:
        info = get_session_storage_info(EncryptedFileSessionStorage(tmp_path / "s.enc"))

        assert info == {"backend": "encrypted_file", "location": str(tmp_path / "s.enc")}
        assert get_session_storage_info(MemorySessionStorage()) == {"backend": "memory"}
