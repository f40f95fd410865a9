"""Persistent storage for the provider session.

The backend client persists its session and refreshes tokens automatically,
so a teacher stays logged in across restarts. Three backends:

1. KeychainSessionStorage (preferred): OS keychain via keyring
   - macOS: Keychain
   - Windows: Credential Locker
   - Linux: Secret Service (GNOME Keyring, KDE Wallet)

2. EncryptedFileSessionStorage (fallback): Fernet-encrypted file in the
   config directory, key derived from machine-specific identifiers

3. MemorySessionStorage: process lifetime only (tests, ephemeral runs)

Sessions are never written in plaintext.
"""

from __future__ import annotations

__all__ = [
    "EncryptedFileSessionStorage",
    "KeychainSessionStorage",
    "MemorySessionStorage",
    "SessionStorage",
    "create_session_storage",
    "get_session_storage_info",
    "is_keyring_available",
]

import base64
import hashlib
import platform
import socket
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from classroom_auth.constants import APP_NAME, CONFIG_DIR
from classroom_auth.exceptions import SessionStorageError
from classroom_auth.identity.models import Session
from classroom_auth.telemetry.system_logger import get_system_logger
from classroom_auth.utils.file_helpers import ensure_secure_directory, set_secure_permissions

if TYPE_CHECKING:
    from cryptography.fernet import Fernet

    from classroom_auth.config import StorageConfig

# Service name for keyring storage
KEYRING_SERVICE = APP_NAME

# Username key for keyring (one teacher per client install)
KEYRING_USERNAME = "supabase_session"

# Encrypted file storage location (inside CONFIG_DIR)
ENCRYPTED_SESSION_FILE = "session.enc"


class SessionStorage(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    def save(self, session: Session) -> None:
        """Persist the session.

        Raises:
            SessionStorageError: If save fails.
        """

    @abstractmethod
    def load(self) -> Session | None:
        """Load the persisted session.

        Returns:
            Session if found, None if nothing stored.

        Raises:
            SessionStorageError: If load fails (corruption, decryption error).
        """

    @abstractmethod
    def delete(self) -> None:
        """Delete the persisted session. Deleting nothing is not an error.

        Raises:
            SessionStorageError: If delete fails.
        """

    @abstractmethod
    def exists(self) -> bool:
        """Check if a session is stored."""


class MemorySessionStorage(SessionStorage):
    """Session storage for the lifetime of the process only."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    def save(self, session: Session) -> None:
        self._session = session

    def load(self) -> Session | None:
        return self._session

    def delete(self) -> None:
        self._session = None

    def exists(self) -> bool:
        return self._session is not None


class KeychainSessionStorage(SessionStorage):
    """Session storage using the OS keychain via keyring."""

    def __init__(self) -> None:
        self._service = KEYRING_SERVICE
        self._username = KEYRING_USERNAME

    def save(self, session: Session) -> None:
        """Save session to keychain."""
        import keyring

        try:
            keyring.set_password(self._service, self._username, session.to_json())
        except Exception as e:
            raise SessionStorageError(f"Failed to save session to keychain: {e}") from e

    def load(self) -> Session | None:
        """Load session from keychain."""
        import keyring

        try:
            data = keyring.get_password(self._service, self._username)
        except Exception as e:
            raise SessionStorageError(f"Failed to access keychain: {e}") from e

        if data is None:
            return None

        try:
            return Session.from_json(data)
        except ValueError as e:
            raise SessionStorageError(f"Failed to parse stored session (may be corrupted): {e}") from e

    def delete(self) -> None:
        """Delete session from keychain."""
        import keyring
        from keyring.errors import PasswordDeleteError

        try:
            keyring.delete_password(self._service, self._username)
        except PasswordDeleteError:
            pass  # Nothing stored
        except Exception as e:
            raise SessionStorageError(f"Failed to delete session from keychain: {e}") from e

    def exists(self) -> bool:
        """Check if a session exists in keychain."""
        import keyring

        try:
            return keyring.get_password(self._service, self._username) is not None
        except Exception:
            return False


class EncryptedFileSessionStorage(SessionStorage):
    """Fallback session storage using a Fernet-encrypted file.

    The key is derived from machine-specific identifiers (machine id,
    hostname) so the file is useless when copied to another machine. Less
    secure than the keychain, but works where no keyring backend exists.
    """

    def __init__(self, storage_path: Path | None = None) -> None:
        """Initialize encrypted file storage.

        Args:
            storage_path: Override for the session file (default: CONFIG_DIR/session.enc).
        """
        self._storage_path = storage_path or Path(CONFIG_DIR) / ENCRYPTED_SESSION_FILE
        self._key: bytes | None = None

    @property
    def path(self) -> Path:
        return self._storage_path

    def _get_machine_id(self) -> str:
        if platform.system() == "Linux":
            for path in ("/etc/machine-id", "/var/lib/dbus/machine-id"):
                try:
                    with open(path) as f:
                        return f.read().strip()
                except OSError:
                    continue
        # Hostname is less unique but always available
        return socket.gethostname()

    def _derive_key(self) -> bytes:
        """Derive the Fernet key with PBKDF2 over machine identifiers."""
        if self._key is not None:
            return self._key

        combined = f"{self._get_machine_id()}:{socket.gethostname()}:{APP_NAME}-session-storage"
        salt = f"{APP_NAME}-v1".encode()
        key = hashlib.pbkdf2_hmac("sha256", combined.encode(), salt, iterations=100_000, dklen=32)

        # Fernet requires URL-safe base64 encoded key
        self._key = base64.urlsafe_b64encode(key)
        return self._key

    def _get_fernet(self) -> "Fernet":
        from cryptography.fernet import Fernet

        return Fernet(self._derive_key())

    def save(self, session: Session) -> None:
        """Save session to encrypted file."""
        try:
            encrypted = self._get_fernet().encrypt(session.to_json().encode())
            ensure_secure_directory(self._storage_path.parent)
            self._storage_path.write_bytes(encrypted)
            set_secure_permissions(self._storage_path)
        except OSError as e:
            raise SessionStorageError(f"Failed to save encrypted session: {e}") from e

    def load(self) -> Session | None:
        """Load session from encrypted file."""
        from cryptography.fernet import InvalidToken

        if not self._storage_path.exists():
            return None

        try:
            decrypted = self._get_fernet().decrypt(self._storage_path.read_bytes())
        except (InvalidToken, OSError) as e:
            raise SessionStorageError(
                f"Failed to decrypt session file (may be corrupted or key changed): {e}"
            ) from e

        try:
            return Session.from_json(decrypted.decode())
        except ValueError as e:
            raise SessionStorageError(f"Failed to parse stored session (may be corrupted): {e}") from e

    def delete(self) -> None:
        """Delete encrypted session file."""
        try:
            self._storage_path.unlink(missing_ok=True)
        except OSError as e:
            raise SessionStorageError(f"Failed to delete encrypted session: {e}") from e

    def exists(self) -> bool:
        return self._storage_path.exists()


def is_keyring_available(test_service_suffix: str = "session-test") -> bool:
    """Check if a keyring backend is available and functional.

    Performs a test write/read/delete cycle.

    Args:
        test_service_suffix: Suffix for the throwaway service name.

    Returns:
        True if keyring can store/retrieve secrets.
    """
    logger = get_system_logger()

    try:
        import keyring
        from keyring.backends.fail import Keyring as FailKeyring
        from keyring.errors import KeyringError

        backend = keyring.get_keyring()
        if isinstance(backend, FailKeyring):
            logger.debug(
                {
                    "event": "keyring_unavailable",
                    "reason": "fail_backend",
                    "message": "Keyring using FailKeyring backend (no usable backend found)",
                }
            )
            return False

        test_service = f"{APP_NAME}-{test_service_suffix}"
        keyring.set_password(test_service, "availability-check", "test")
        result = keyring.get_password(test_service, "availability-check")
        keyring.delete_password(test_service, "availability-check")

        return result == "test"

    except (KeyringError, ImportError) as e:
        logger.debug(
            {
                "event": "keyring_unavailable",
                "reason": "keyring_error",
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return False
    except Exception as e:
        # DBus errors on Linux, permission issues: availability check never crashes
        logger.debug(
            {
                "event": "keyring_unavailable",
                "reason": "unexpected_error",
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return False


def create_session_storage(config: "StorageConfig | None" = None) -> SessionStorage:
    """Create the session storage backend selected by config.

    "auto" (the default) prefers the keychain and falls back to the
    encrypted file.

    Args:
        config: Storage configuration.

    Returns:
        SessionStorage instance.
    """
    backend = config.backend if config is not None else "auto"

    if backend == "memory":
        return MemorySessionStorage()
    if backend == "keychain":
        return KeychainSessionStorage()
    if backend == "file":
        return EncryptedFileSessionStorage()
    if is_keyring_available():
        return KeychainSessionStorage()
    return EncryptedFileSessionStorage()


def get_session_storage_info(storage: SessionStorage) -> dict[str, str]:
    """Describe a storage backend for status display."""
    if isinstance(storage, KeychainSessionStorage):
        import keyring

        return {
            "backend": "keychain",
            "keyring_backend": type(keyring.get_keyring()).__name__,
            "service": KEYRING_SERVICE,
        }
    if isinstance(storage, EncryptedFileSessionStorage):
        return {"backend": "encrypted_file", "location": str(storage.path)}
    return {"backend": "memory"}
