"""PIN hashing, session tokens and lockout handling for parent access."""

from __future__ import annotations

import hashlib
import secrets
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional

from .models import SessionRecord, utc_now

DEFAULT_PIN_SALT = "_chores_salt"


def hash_pin(pin: str, salt: str = DEFAULT_PIN_SALT) -> str:
    """SHA-256 hex digest of ``pin`` followed by ``salt``."""

    return hashlib.sha256((pin + salt).encode("utf-8")).hexdigest()


def verify_pin(pin: str, pin_hash: str, salt: str = DEFAULT_PIN_SALT) -> bool:
    return secrets.compare_digest(hash_pin(pin, salt), pin_hash)


def generate_session_token() -> str:
    return secrets.token_hex(32)


def generate_access_code() -> str:
    """Four digit code a child uses to open their read-only view."""

    return f"{secrets.randbelow(10000):04d}"


class AuthManager:
    """Rate-limit PIN attempts and mint parent sessions."""

    def __init__(
        self,
        *,
        salt: str = DEFAULT_PIN_SALT,
        max_attempts: int = 5,
        lockout_minutes: int = 15,
        remember_days: int = 30,
    ) -> None:
        self.salt = salt
        self._max_attempts = max_attempts
        self._lockout_window = timedelta(minutes=lockout_minutes)
        self._remember_duration = timedelta(days=remember_days)
        self._pin_attempts: Dict[str, Deque[datetime]] = {}

    def hash(self, pin: str) -> str:
        return hash_pin(pin, self.salt)

    def verify(self, pin: str, pin_hash: str) -> bool:
        return verify_pin(pin, pin_hash, self.salt)

    # ------------------------------------------------------------------
    # Rate limiting helpers
    # ------------------------------------------------------------------
    def record_pin_attempt(self, user_id: str, *, success: bool, at: Optional[datetime] = None) -> bool:
        """Record a PIN verification attempt and return whether more attempts are allowed."""

        now = at or utc_now()
        bucket = self._pin_attempts.setdefault(user_id, deque())
        self._prune(bucket, now)
        if success:
            bucket.clear()
            return True
        bucket.append(now)
        return len(bucket) < self._max_attempts

    def is_locked(self, user_id: str, *, at: Optional[datetime] = None) -> bool:
        now = at or utc_now()
        bucket = self._pin_attempts.get(user_id)
        if not bucket:
            return False
        self._prune(bucket, now)
        return len(bucket) >= self._max_attempts

    def _prune(self, bucket: Deque[datetime], now: datetime) -> None:
        while bucket and now - bucket[0] > self._lockout_window:
            bucket.popleft()

    # ------------------------------------------------------------------
    # Session handling helpers
    # ------------------------------------------------------------------
    def new_session(
        self,
        *,
        session_duration_days: int,
        remember_me: bool = False,
        at: Optional[datetime] = None,
    ) -> SessionRecord:
        now = at or utc_now()
        duration = self._remember_duration if remember_me else timedelta(days=session_duration_days)
        return SessionRecord(token=generate_session_token(), expires_at=now + duration)


__all__ = [
    "AuthManager",
    "DEFAULT_PIN_SALT",
    "generate_access_code",
    "generate_session_token",
    "hash_pin",
    "verify_pin",
]
