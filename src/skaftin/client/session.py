"""Login, logout and keep-alive for an AsyncApiClient session.

Credential changes made here go through the coordinator's credentials lock, so a login or logout
never interleaves with a token refresh.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional

import httpx

from skaftin.client.errors import ApiError
from skaftin.client.httpx.client import AsyncApiClient
from skaftin.client.serde import unwrap
from skaftin.client.signals import Signal, auth_logout

logger = logging.getLogger(__name__)

PROACTIVE_REFRESH_INTERVAL = 60.0


@dataclass
class SessionUser:
    id: Any
    email: str
    name: str
    role: str = ""
    roles: List[dict] = field(default_factory=list)
    organisation_id: Optional[int] = None
    organisation_name: str = ""
    is_admin: bool = False

    @classmethod
    def from_auth_response(cls, data: dict) -> "SessionUser":
        user = data["user"]
        organisation = data.get("organisation") or {}
        roles = user.get("roles") or []
        first_name = user.get("name") or user.get("full_name") or ""
        full_name = " ".join(part for part in (first_name, user.get("last_name")) if part).strip()
        return cls(
            id=user.get("id"),
            email=user.get("email", ""),
            name=full_name or user.get("email", ""),
            role=roles[0].get("role_key", "") if roles else "",
            roles=roles,
            organisation_id=data.get("organisation_id", organisation.get("id")),
            organisation_name=data.get("organisation_name") or organisation.get("name", ""),
            is_admin=bool(data.get("is_admin", organisation.get("is_admin", False))),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "SessionUser":
        return cls(**data)

    def has_role(self, role_key: str) -> bool:
        wanted = role_key.strip().lower()
        if self.roles:
            return any((r.get("role_key") or "").strip().lower() == wanted for r in self.roles)
        return self.role.strip().lower() == wanted


class SessionLifecycle:
    def __init__(self, client: AsyncApiClient, *, logout_signal: Signal = auth_logout):
        self._client = client
        self._logout_signal = logout_signal
        self._tasks: List[asyncio.Task] = []
        self._user: Optional[SessionUser] = None
        self.logout_reason: Optional[str] = None

        cached = client.store.get_user()
        if cached and client.store.has_token():
            try:
                self._user = SessionUser.from_dict(cached)
            except TypeError:
                logger.debug("Ignoring cached user profile with unexpected fields")

        logout_signal.connect(self._on_forced_logout)

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._client.store.has_token()

    async def login(self, username: str, password: str, method: str = "email") -> SessionUser:
        endpoints = self._client.config.endpoints
        resp = await self._client.post(
            endpoints.login, {"username": username, "password": password, "method": method}
        )
        data = unwrap(resp)
        if not isinstance(data, dict) or not data.get("user") or not (data.get("session") or {}).get("accessToken"):
            raise ValueError("Invalid login response")

        user = SessionUser.from_auth_response(data)
        async with self._client.coordinator.credentials_lock:
            self._client.store.set_token(data["session"]["accessToken"])
            self._client.store.set_user(asdict(user))
        self._user = user
        self.logout_reason = None
        logger.info("Logged in as user id=%s", user.id)
        return user

    async def logout(self) -> None:
        """End the session on the server if possible, and always locally."""
        if self._client.store.has_token():
            try:
                await self._client.post(self._client.config.endpoints.logout)
            except (ApiError, httpx.TransportError) as e:
                logger.debug("Server logout failed, clearing local session anyway: %s", e)
        async with self._client.coordinator.credentials_lock:
            self._client.store.clear_all()
        self._user = None
        self.logout_reason = "user"
        logger.info("Logged out")

    async def verify_session(self) -> bool:
        """Check with the server that the session is still valid, repairing an expired token if needed."""
        if not self._client.store.has_token():
            return False
        try:
            await self._client.get(self._client.config.endpoints.verify)
        except ApiError as e:
            logger.info("Session verification failed: %s", e)
            return False
        return True

    async def refresh_if_expiring(self, buffer_seconds: Optional[float] = None) -> bool:
        """Refresh the token ahead of expiry. Returns False only when a needed refresh failed.

        A failure here keeps the credentials; the next 401 decides whether the session is over.
        """
        if buffer_seconds is None:
            buffer_seconds = self._client.config.token_refresh_buffer
        store = self._client.store
        if not store.has_token() or not store.is_expired(buffer_seconds):
            return True
        logger.debug("Token expiring within %ss, refreshing", buffer_seconds)
        return await self._client.coordinator.refresh_ahead() is not None

    def start(self) -> None:
        """Start periodic session verification and proactive refresh on the running loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self._client.config.session_check_interval, self.verify_session)),
            asyncio.create_task(self._every(PROACTIVE_REFRESH_INTERVAL, self.refresh_if_expiring)),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _every(self, interval: float, check) -> None:
        while True:
            if self.is_authenticated:
                try:
                    await check()
                except httpx.TransportError as e:
                    # Network trouble; the next round tries again
                    logger.debug("Periodic %s failed: %s", check.__name__, e)
                except Exception:
                    logger.exception("Periodic %s failed", check.__name__)
            await asyncio.sleep(interval)

    def _on_forced_logout(self, reason: str) -> None:
        self._user = None
        self.logout_reason = reason
        logger.warning("Session ended: %s", reason)

    def close(self) -> None:
        self._logout_signal.disconnect(self._on_forced_logout)
