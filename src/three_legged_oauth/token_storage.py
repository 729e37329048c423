"""
Token storage for the three-legged OAuth handshake.

The state machine depends only on the TokenStore interface. Backends:

- InMemoryTokenStore: process-local, thread-safe
- SessionTokenStore: namespaced keys inside any mutable mapping
  (a web framework session, for instance)
- JsonFileTokenStore: plaintext JSON file with user-only permissions
- SqlAlchemyTokenStore: database rows (see database.py)

Persisted shape: {token, secret, status (0-3), last_exception}.
"""

import json
import logging
import threading
import weakref
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Hashable, MutableMapping, Optional

from .exceptions import TokenStorageError
from .models import AuthorizationStatus, Token

logger = logging.getLogger(__name__)

_shared_locks: "weakref.WeakValueDictionary[Hashable, Any]" = weakref.WeakValueDictionary()
_shared_locks_guard = threading.Lock()


def shared_lock(key: Hashable) -> Any:
    """
    Return the lock shared by every store instance addressing ``key``.

    Locks are dropped once no store holds them. They serialize threads
    of one process only.
    """
    with _shared_locks_guard:
        lock = _shared_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _shared_locks[key] = lock
        return lock


def coerce_status(value: Any) -> Optional[AuthorizationStatus]:
    """Convert a persisted status value, returning None for missing or unknown values."""
    if value is None:
        return None
    try:
        return AuthorizationStatus(int(value))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unknown stored status {value!r}")
        return None


class TokenStore(ABC):
    """
    Durable storage for the current token, its secret and the status.

    Implementations must give read-after-write consistency. Backends
    shared between concurrent requests should override compare_and_set
    with an atomic version.
    """

    @abstractmethod
    def get_token(self) -> Optional[str]:
        """Current token key, or None."""

    @abstractmethod
    def set_token(self, token: Optional[str]) -> "TokenStore":
        """Store the token key (None clears it)."""

    @abstractmethod
    def get_secret(self) -> Optional[str]:
        """Current token secret, or None."""

    @abstractmethod
    def set_secret(self, secret: Optional[str]) -> "TokenStore":
        """Store the token secret (None clears it)."""

    @abstractmethod
    def get_status(self) -> Optional[AuthorizationStatus]:
        """Stored status, or None if no status was ever stored."""

    @abstractmethod
    def set_status(self, status: AuthorizationStatus) -> "TokenStore":
        """Store the status."""

    @abstractmethod
    def get_last_exception(self) -> Optional[str]:
        """Message of the most recent recorded failure, or None."""

    @abstractmethod
    def set_last_exception(self, message: Optional[str]) -> "TokenStore":
        """Record a failure message (None clears it)."""

    def initialise(self) -> "TokenStore":
        """Ensure a status exists, defaulting to NOT_STARTED."""
        if self.get_status() is None:
            self.set_status(AuthorizationStatus.NOT_STARTED)
        return self

    def has_token_data(self) -> bool:
        """True if both a token and a secret are stored."""
        return bool(self.get_token() and self.get_secret())

    def load_token(self) -> Optional[Token]:
        """Stored token as a Token, or None if either part is missing."""
        key = self.get_token()
        secret = self.get_secret()
        if key and secret:
            return Token(key, secret)
        return None

    def save(self, token: Optional[Token], status: AuthorizationStatus) -> "TokenStore":
        """Store token and status together."""
        self.set_token(token.key if token else None)
        self.set_secret(token.secret if token else None)
        self.set_status(status)
        return self

    def clear(self) -> "TokenStore":
        """Remove token data and reset status to NOT_STARTED."""
        return self.save(None, AuthorizationStatus.NOT_STARTED)

    def pop_last_exception(self) -> Optional[str]:
        """Return the recorded failure message once, then clear it."""
        message = self.get_last_exception()
        if message is not None:
            self.set_last_exception(None)
        return message

    def compare_and_set(
        self,
        expected_status: Optional[AuthorizationStatus],
        expected_token: Optional[str],
        token: Optional[Token],
        status: AuthorizationStatus,
    ) -> bool:
        """
        Store token and status only if status and token key are unchanged.

        This fallback is not atomic across processes or threads.

        Args:
            expected_status: Status read before the exchange started
            expected_token: Token key read before the exchange started
            token: New token (None clears token data)
            status: New status

        Returns:
            True if the write happened, False if the stored state had changed
        """
        if self.get_status() != expected_status or self.get_token() != expected_token:
            return False
        self.save(token, status)
        return True


class InMemoryTokenStore(TokenStore):
    """Process-local token storage guarded by a lock."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def _get(self, key: str) -> Any:
        with self._lock:
            return self._data.get(key)

    def _set(self, key: str, value: Any) -> "InMemoryTokenStore":
        with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
        return self

    def get_token(self) -> Optional[str]:
        return self._get("token")

    def set_token(self, token: Optional[str]) -> "InMemoryTokenStore":
        return self._set("token", token)

    def get_secret(self) -> Optional[str]:
        return self._get("secret")

    def set_secret(self, secret: Optional[str]) -> "InMemoryTokenStore":
        return self._set("secret", secret)

    def get_status(self) -> Optional[AuthorizationStatus]:
        return coerce_status(self._get("status"))

    def set_status(self, status: AuthorizationStatus) -> "InMemoryTokenStore":
        return self._set("status", int(status))

    def get_last_exception(self) -> Optional[str]:
        return self._get("last_exception")

    def set_last_exception(self, message: Optional[str]) -> "InMemoryTokenStore":
        return self._set("last_exception", message)

    def save(self, token: Optional[Token], status: AuthorizationStatus) -> "InMemoryTokenStore":
        with self._lock:
            super().save(token, status)
        return self

    def pop_last_exception(self) -> Optional[str]:
        with self._lock:
            return super().pop_last_exception()

    def compare_and_set(self, expected_status, expected_token, token, status) -> bool:
        with self._lock:
            return super().compare_and_set(expected_status, expected_token, token, status)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the persisted shape, for diagnostics."""
        with self._lock:
            return {
                "token": self._data.get("token"),
                "secret": self._data.get("secret"),
                "status": self._data.get("status"),
                "last_exception": self._data.get("last_exception"),
            }


class SessionTokenStore(TokenStore):
    """
    Token storage inside a session mapping.

    All values live in a dict under ``namespace`` so they do not collide
    with other session keys. The namespaced dict is reassigned on every
    write so that session backends which only track top-level assignment
    notice the change.

    Stores on the same session object and namespace share one lock, so
    their compare_and_set calls are serialized within the process.
    """

    SESSION_NAMESPACE = "oauth"

    def __init__(self, session: MutableMapping[str, Any], namespace: str = SESSION_NAMESPACE):
        """
        Initialize session storage.

        Args:
            session: Session mapping (e.g. request.session)
            namespace: Session key holding the OAuth values
        """
        self.session = session
        self.namespace = namespace
        self._lock = shared_lock(("session", id(session), namespace))

    def _values(self) -> Dict[str, Any]:
        return dict(self.session.get(self.namespace) or {})

    def _get(self, key: str) -> Any:
        return self._values().get(key)

    def _set(self, key: str, value: Any) -> "SessionTokenStore":
        with self._lock:
            values = self._values()
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value
            self.session[self.namespace] = values
        return self

    def get_token(self) -> Optional[str]:
        return self._get("token")

    def set_token(self, token: Optional[str]) -> "SessionTokenStore":
        return self._set("token", token)

    def get_secret(self) -> Optional[str]:
        return self._get("secret")

    def set_secret(self, secret: Optional[str]) -> "SessionTokenStore":
        return self._set("secret", secret)

    def get_status(self) -> Optional[AuthorizationStatus]:
        return coerce_status(self._get("status"))

    def set_status(self, status: AuthorizationStatus) -> "SessionTokenStore":
        return self._set("status", int(status))

    def get_last_exception(self) -> Optional[str]:
        return self._get("last_exception")

    def set_last_exception(self, message: Optional[str]) -> "SessionTokenStore":
        return self._set("last_exception", message)

    def compare_and_set(self, expected_status, expected_token, token, status) -> bool:
        with self._lock:
            return super().compare_and_set(expected_status, expected_token, token, status)


class JsonFileTokenStore(TokenStore):
    """
    File-based token storage (plaintext JSON).

    The whole persisted shape is read and rewritten on every access, so a
    file shared by several processes always reflects the last write. A
    missing or corrupted file reads as empty.

    Stores on the same resolved path share one lock, so compare_and_set
    is atomic between threads of one process. Separate processes writing
    the same file are not serialized; use SqlAlchemyTokenStore for that.
    """

    def __init__(self, token_file: str):
        """
        Initialize file storage.

        Args:
            token_file: Path of the JSON token file
        """
        self.token_file = Path(token_file)
        self._lock = shared_lock(("file", str(self.token_file.resolve())))
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Create parent directory if needed."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)

    def _set_secure_permissions(self) -> None:
        """Set file permissions to user-only read/write (600)."""
        try:
            self.token_file.chmod(0o600)
            logger.debug(f"Set secure permissions (600) on {self.token_file}")
        except (OSError, PermissionError) as e:
            logger.warning(f"Could not set secure permissions: {e}")

    def _read(self) -> Dict[str, Any]:
        if not self.token_file.exists():
            logger.debug(f"No token file found at {self.token_file}")
            return {}

        try:
            with open(self.token_file, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid token file at {self.token_file}, treating as empty: {e}")
            return {}
        except (IOError, OSError) as e:
            logger.warning(f"Could not read token file: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Invalid token file at {self.token_file}, treating as empty")
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            with open(self.token_file, "w") as f:
                json.dump(data, f, indent=2)
            self._set_secure_permissions()
        except (IOError, OSError) as e:
            logger.error(f"Failed to save tokens: {e}")
            raise TokenStorageError(f"Failed to save tokens: {e}") from e

    def _get(self, key: str) -> Any:
        with self._lock:
            return self._read().get(key)

    def _set(self, key: str, value: Any) -> "JsonFileTokenStore":
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
        return self

    def get_token(self) -> Optional[str]:
        return self._get("token")

    def set_token(self, token: Optional[str]) -> "JsonFileTokenStore":
        return self._set("token", token)

    def get_secret(self) -> Optional[str]:
        return self._get("secret")

    def set_secret(self, secret: Optional[str]) -> "JsonFileTokenStore":
        return self._set("secret", secret)

    def get_status(self) -> Optional[AuthorizationStatus]:
        return coerce_status(self._get("status"))

    def set_status(self, status: AuthorizationStatus) -> "JsonFileTokenStore":
        return self._set("status", int(status))

    def get_last_exception(self) -> Optional[str]:
        return self._get("last_exception")

    def set_last_exception(self, message: Optional[str]) -> "JsonFileTokenStore":
        return self._set("last_exception", message)

    def save(self, token: Optional[Token], status: AuthorizationStatus) -> "JsonFileTokenStore":
        with self._lock:
            data = self._read()
            data.update(
                token=token.key if token else None,
                secret=token.secret if token else None,
                status=int(status),
            )
            self._write(data)
        logger.info(f"Tokens saved to {self.token_file}")
        return self

    def pop_last_exception(self) -> Optional[str]:
        with self._lock:
            return super().pop_last_exception()

    def compare_and_set(self, expected_status, expected_token, token, status) -> bool:
        with self._lock:
            return super().compare_and_set(expected_status, expected_token, token, status)

    def delete(self) -> bool:
        """
        Delete the token file.

        Returns:
            True if file was deleted, False if file didn't exist
        """
        with self._lock:
            if not self.token_file.exists():
                logger.debug(f"Token file does not exist: {self.token_file}")
                return False
            try:
                self.token_file.unlink()
            except (OSError, PermissionError) as e:
                logger.error(f"Failed to delete token file: {e}")
                raise TokenStorageError(f"Failed to delete token file: {e}") from e
        logger.info(f"Token file deleted: {self.token_file}")
        return True
