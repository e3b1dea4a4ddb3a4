"""Current session token and cached user profile, with token inspection.

Token inspection decodes the JWT claims WITHOUT verifying the signature. It is a client-side
hint for scheduling refreshes only; the server remains authoritative about validity.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import jwt

from skaftin.client import DEFAULT_TOKEN_STORAGE_KEY, DEFAULT_USER_STORAGE_KEY
from skaftin.client.internal.credential_storage import MemoryTokenStorage, TokenStorage

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(
        self,
        storage: Optional[TokenStorage] = None,
        *,
        token_key: str = DEFAULT_TOKEN_STORAGE_KEY,
        user_key: str = DEFAULT_USER_STORAGE_KEY,
    ):
        self._storage = storage if storage is not None else MemoryTokenStorage()
        self.token_key = token_key
        self.user_key = user_key

    @property
    def storage(self) -> TokenStorage:
        return self._storage

    def set_storage(self, storage: TokenStorage) -> None:
        """Switch the backing store. Values already in the old store are not copied."""
        self._storage = storage

    def get_token(self) -> Optional[str]:
        return self._storage.get(self.token_key) or None

    def set_token(self, token: str) -> None:
        self._storage.set(self.token_key, token)

    def has_token(self) -> bool:
        return self.get_token() is not None

    def clear_token(self) -> None:
        self._storage.delete(self.token_key)

    def get_user(self) -> Optional[dict]:
        raw = self._storage.get(self.user_key)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.debug("Discarding unreadable cached user profile")
            return None
        return user if isinstance(user, dict) else None

    def set_user(self, user: Any) -> None:
        self._storage.set(self.user_key, json.dumps(user))

    def clear_user(self) -> None:
        self._storage.delete(self.user_key)

    def clear_all(self) -> None:
        self.clear_token()
        self.clear_user()

    def parse_token(self, token: Optional[str] = None) -> Optional[dict]:
        """Decode the token claims without verification. Returns None for absent or malformed tokens."""
        token = token or self.get_token()
        if not token:
            return None
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return None
        return claims if isinstance(claims, dict) else None

    def _expiry_timestamp(self) -> Optional[float]:
        claims = self.parse_token()
        if not claims:
            return None
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        return float(exp)

    def is_expired(self, buffer_seconds: float = 0) -> bool:
        """True if the token is absent, malformed, has no expiry, or expires within ``buffer_seconds``."""
        exp = self._expiry_timestamp()
        if exp is None:
            return True
        return time.time() >= exp - buffer_seconds

    def token_expiry(self) -> Optional[datetime]:
        exp = self._expiry_timestamp()
        if exp is None:
            return None
        try:
            return datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    def time_until_expiry(self) -> Optional[float]:
        """Seconds until the token expires, never negative. None if the expiry cannot be read."""
        exp = self._expiry_timestamp()
        if exp is None:
            return None
        return max(0.0, exp - time.time())
