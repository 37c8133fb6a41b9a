"""
fn-shortcut - Authentication Module
===================================
Single-admin password authentication for the control console.

Security model:
- One admin password for the whole appliance (no user accounts)
- Password verifier derived with bcrypt-pbkdf and stored as hex salt/hash
  in <data_dir>/password.json
- Opaque 256-bit session tokens kept in memory, sent as the HttpOnly
  "sessionId" cookie, valid for 24 hours after the last request

First-time setup flow:
    1. No password.json -> GET / renders the registration page
    2. POST /register stores the verifier and opens a session
    3. The session cookie lets the browser reach the control page

Subsequent visits:
    1. password.json exists, cookie missing or expired -> login page
    2. POST /login verifies the password and opens a new session
"""

import hmac
import json
import os
import secrets
import tempfile
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import bcrypt
from fastapi import Cookie, HTTPException

from fnshortcut.files import PRIVATE_DIR_MODE


SESSION_COOKIE = "sessionId"
SESSION_LIFETIME_HOURS = 24
MIN_PASSWORD_LENGTH = 6

SALT_BYTES = 16
HASH_BYTES = 64
KDF_ROUNDS = 64


@dataclass(frozen=True)
class CredentialRecord:
    """Password verifier: random salt plus the derived key."""
    salt: bytes
    hash: bytes

    def to_dict(self) -> dict:
        return {"salt": self.salt.hex(), "hash": self.hash.hex()}

    @classmethod
    def from_dict(cls, data: dict) -> "CredentialRecord":
        return cls(salt=bytes.fromhex(data["salt"]), hash=bytes.fromhex(data["hash"]))


class CredentialStore:
    """
    Persists the single admin credential.

    Attributes:
        password_file: Path to password.json.
        rounds:        bcrypt-pbkdf rounds used for new and verified hashes.
    """

    def __init__(
        self,
        data_dir: str,
        rounds: int = KDF_ROUNDS,
        log: Callable[[str], object] | None = None,
    ):
        """
        Args:
            data_dir: Private directory holding password.json.
            rounds:   Key-derivation rounds (bcrypt warns below 50).
            log:      Optional sink for load/save failures.
        """
        self.password_file = os.path.join(data_dir, "password.json")
        self.rounds = rounds
        self._log = log or (lambda message: None)

    def is_registered(self) -> bool:
        return self.load() is not None

    def load(self) -> CredentialRecord | None:
        """
        Read the stored credential.

        Returns:
            The record, or None when unregistered or unreadable.
        """
        if not os.path.exists(self.password_file):
            return None
        try:
            with open(self.password_file, "r", encoding="utf-8") as f:
                return CredentialRecord.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._log(f"Failed to load password file: {e}")
            return None

    def save(self, record: CredentialRecord) -> bool:
        """
        Persist the credential (temp file + rename, so a previous good
        record survives a failed write).

        Returns:
            True on success, False if the file could not be written.
        """
        directory = os.path.dirname(self.password_file)
        tmp_path = None
        try:
            if not os.path.isdir(directory):
                os.makedirs(directory, mode=PRIVATE_DIR_MODE, exist_ok=True)
                os.chmod(directory, PRIVATE_DIR_MODE)

            data = record.to_dict()
            data["created_at"] = datetime.now(timezone.utc).isoformat()

            fd, tmp_path = tempfile.mkstemp(prefix=".password-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.password_file)
            return True
        except OSError as e:
            self._log(f"Failed to save password file: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return False

    def reset(self) -> bool:
        """Delete the stored credential. Returns True if one existed."""
        if not os.path.exists(self.password_file):
            return False
        os.unlink(self.password_file)
        return True

    def hash_password(self, password: str, salt: bytes | None = None) -> CredentialRecord:
        """Derive a verifier, generating a fresh random salt if none is given."""
        if salt is None:
            salt = secrets.token_bytes(SALT_BYTES)
        derived = bcrypt.kdf(
            password=password.encode("utf-8"),
            salt=salt,
            desired_key_bytes=HASH_BYTES,
            rounds=self.rounds,
        )
        return CredentialRecord(salt=salt, hash=derived)

    def verify(self, password: str, record: CredentialRecord) -> bool:
        """Recompute the derivation with the stored salt and compare."""
        if not password:
            return False
        candidate = self.hash_password(password, record.salt)
        return hmac.compare_digest(candidate.hash, record.hash)


class SessionRegistry:
    """
    In-memory session tokens with a sliding lifetime.

    Expired sessions are evicted lazily on lookup and purged whenever a new
    session is created.
    """

    def __init__(
        self,
        lifetime_hours: float = SESSION_LIFETIME_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.lifetime = lifetime_hours * 3600
        self._clock = clock
        self._sessions: dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self) -> str:
        """Open a new session and return its token."""
        with self._lock:
            now = self._clock()
            self._purge(now)
            token = secrets.token_hex(32)
            while token in self._sessions:
                token = secrets.token_hex(32)
            self._sessions[token] = now
            return token

    def validate(self, token: str | None) -> bool:
        """
        Check a token and refresh its last-seen time.

        An expired token is removed from the registry.
        """
        if not token:
            return False
        with self._lock:
            last_seen = self._sessions.get(token)
            if last_seen is None:
                return False
            now = self._clock()
            if now - last_seen > self.lifetime:
                del self._sessions[token]
                return False
            self._sessions[token] = now
            return True

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _purge(self, now: float) -> None:
        expired = [t for t, seen in self._sessions.items() if now - seen > self.lifetime]
        for token in expired:
            del self._sessions[token]


def require_session(sessions: SessionRegistry):
    """
    Create a FastAPI dependency that requires a valid session cookie.

    Usage in routes:
        @router.post("/install", dependencies=[Depends(require_session(sessions))])
        async def install(): ...

    Args:
        sessions: The SessionRegistry to validate against.

    Returns:
        A FastAPI dependency function.
    """
    async def _verify(session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE)):
        if not sessions.validate(session_id):
            raise HTTPException(status_code=401, detail="Login required")
        return True

    return _verify
