"""Single-flight session token refresh for the asyncio pipeline.

Any number of requests may discover at once that the session token has expired. The first one
starts a refresh cycle; the others park on that cycle and all of them observe its single outcome:
either every caller retries with the same new token, or every caller fails with
SessionExpiredError and ``auth:logout`` is sent once.

Coordination state is only touched between suspension points. The check-and-set of the current
cycle happens before the first ``await``, so no lock is needed to keep refreshes single-flight on
one event loop.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Tuple

import httpx

from skaftin.client._request import bearer_token, refreshed_token
from skaftin.client.config import ClientConfig
from skaftin.client.credential_store import CredentialStore
from skaftin.client.errors import ApiError, SessionExpiredError
from skaftin.client.httpx.executor import AsyncRequestExecutor
from skaftin.client.signals import Signal, auth_logout

logger = logging.getLogger(__name__)


class _RefreshCycle:
    def __init__(self, loop: asyncio.AbstractEventLoop, quiet: bool):
        # Settled with the new token, or None when the refresh failed
        self.outcome: asyncio.Future = loop.create_future()
        self.waiters = 0
        # A quiet cycle keeps credentials on failure; any 401-driven caller joining makes it strict
        self.quiet = quiet


class AsyncRefreshCoordinator:
    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        executor: AsyncRequestExecutor,
        *,
        logout_signal: Signal = auth_logout,
    ):
        self._config = config
        self._store = store
        self._executor = executor
        self._logout_signal = logout_signal
        self._cycle: Optional[_RefreshCycle] = None
        self._credentials_lock = asyncio.Lock()
        # Token a failed cycle tried to refresh, so late 401s for it fail the same way
        self._rejected_token: Optional[str] = None

    @property
    def refresh_in_progress(self) -> bool:
        return self._cycle is not None

    @property
    def waiting(self) -> int:
        """Number of callers parked on the current refresh cycle."""
        return self._cycle.waiters if self._cycle is not None else 0

    @property
    def credentials_lock(self) -> asyncio.Lock:
        """Held while credentials are replaced. Login and logout must acquire it too."""
        return self._credentials_lock

    async def handle_unauthorized(
        self,
        endpoint: str,
        method: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        *,
        unauthorized: Optional[ApiError] = None,
    ) -> Optional[httpx.Response]:
        """Repair the session after a 401 and retry the request once.

        Returns the retried response, or None when the endpoint is an authentication endpoint and
        the 401 must surface as is.

        Raises:
            SessionExpiredError: The refresh failed, for this caller and every parked caller alike.
        """
        if self._config.is_auth_endpoint(endpoint):
            logger.debug("401 from auth endpoint %s, not refreshing", endpoint)
            return None

        try:
            token = await self.refresh(self._sent_token(unauthorized))
        except SessionExpiredError as e:
            raise SessionExpiredError(unauthorized) from e.__cause__

        return await self._executor.execute(endpoint, method, headers=headers, body=body, override_token=token)

    async def refresh(self, sent_token: Optional[str] = None) -> str:
        """Join the running refresh cycle, or start one. Returns the new token.

        ``sent_token`` is the token the rejected request carried. When a finished cycle already
        replaced it, the current token is returned without a new refresh; when a finished cycle
        failed on it, the call fails the same way that cycle did.

        Raises:
            SessionExpiredError: The refresh failed.
        """
        token, error = await self._refresh(sent_token, quiet=False)
        if token is None:
            raise SessionExpiredError() from error
        return token

    async def refresh_ahead(self) -> Optional[str]:
        """Refresh before the token expires. Returns the new token, or None on failure.

        Shares the running cycle like ``refresh``. When this call starts the cycle and it fails,
        credentials are kept and no logout is signalled, unless a 401-driven caller joined it.
        """
        token, _ = await self._refresh(None, quiet=True)
        return token

    async def _refresh(
        self, sent_token: Optional[str], quiet: bool
    ) -> Tuple[Optional[str], Optional[Exception]]:
        cycle = self._cycle
        if cycle is not None:
            cycle.waiters += 1
            cycle.quiet = cycle.quiet and quiet
            logger.debug("Refresh already in progress, waiting (%d parked)", cycle.waiters)
            # Shielded so a cancelled waiter cannot cancel the outcome shared with everyone else
            return await asyncio.shield(cycle.outcome), None

        if sent_token:
            current_token = self._store.get_token()
            if current_token and current_token != sent_token:
                logger.debug("Token replaced since the request was sent, retrying without refresh")
                return current_token, None
            if not current_token and sent_token == self._rejected_token:
                logger.debug("Token already rejected by a failed refresh, not refreshing again")
                return None, None

        cycle = self._cycle = _RefreshCycle(asyncio.get_running_loop(), quiet)
        token = None
        error = None
        failed = False
        try:
            async with self._credentials_lock:
                refreshing = self._store.get_token()
                token, error = await self._request_token(refreshing)
                if token is not None:
                    self._store.set_token(token)
                    self._rejected_token = None
                elif not cycle.quiet:
                    self._store.clear_all()
                    self._rejected_token = refreshing
                    failed = True
        finally:
            # Parked callers see None if this task was cancelled before the refresh settled
            self._cycle = None
            cycle.outcome.set_result(token)

        if failed:
            logger.warning("Session refresh failed, credentials cleared (%d waiting callers)", cycle.waiters)
            self._logout_signal.send(reason="session_expired")
        elif token is None:
            logger.warning("Early session refresh failed, keeping credentials until the next 401")
        else:
            logger.info("Session token refreshed (%d waiting callers resumed)", cycle.waiters)
        return token, error

    async def _request_token(self, current_token: Optional[str]) -> Tuple[Optional[str], Optional[Exception]]:
        try:
            resp = await self._executor.execute(self._config.refresh_endpoint, "POST", override_token=current_token)
        except Exception as e:
            logger.warning("Refresh call to %s failed: %s", self._config.refresh_endpoint, e)
            return None, e
        token = refreshed_token(resp)
        if token is None:
            logger.warning("Refresh endpoint %s returned no access token", self._config.refresh_endpoint)
        return token, None

    @staticmethod
    def _sent_token(unauthorized: Optional[ApiError]) -> Optional[str]:
        request = getattr(getattr(unauthorized, "response", None), "request", None)
        return bearer_token(getattr(request, "headers", None))
