"""Single-flight session token refresh for multithreaded callers.

Same contract as the asyncio coordinator, but callers are real threads: the check-and-set of the
current cycle and its settlement are guarded by a mutex, and parked threads block on an event.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Tuple

import requests

from skaftin.client._request import bearer_token, refreshed_token
from skaftin.client.config import ClientConfig
from skaftin.client.credential_store import CredentialStore
from skaftin.client.errors import ApiError, SessionExpiredError
from skaftin.client.requests.executor import RequestExecutor
from skaftin.client.signals import Signal, auth_logout

logger = logging.getLogger(__name__)


class _RefreshCycle:
    def __init__(self, quiet: bool) -> None:
        self.settled = threading.Event()
        self.token: Optional[str] = None
        self.waiters = 0
        # A quiet cycle keeps credentials on failure; any 401-driven caller joining makes it strict
        self.quiet = quiet


class RefreshCoordinator:
    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        executor: RequestExecutor,
        *,
        logout_signal: Signal = auth_logout,
    ):
        self._config = config
        self._store = store
        self._executor = executor
        self._logout_signal = logout_signal
        self._cycle: Optional[_RefreshCycle] = None
        self._guard = threading.Lock()
        self._credentials_lock = threading.RLock()
        # Token a failed cycle tried to refresh, so late 401s for it fail the same way
        self._rejected_token: Optional[str] = None

    @property
    def refresh_in_progress(self) -> bool:
        with self._guard:
            return self._cycle is not None

    @property
    def waiting(self) -> int:
        with self._guard:
            return self._cycle.waiters if self._cycle is not None else 0

    @property
    def credentials_lock(self) -> threading.RLock:
        """Held while credentials are replaced. Login and logout must acquire it too."""
        return self._credentials_lock

    def handle_unauthorized(
        self,
        endpoint: str,
        method: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        *,
        unauthorized: Optional[ApiError] = None,
    ) -> Optional[requests.Response]:
        """Repair the session after a 401 and retry the request once.

        Returns the retried response, or None for authentication endpoints.

        Raises:
            SessionExpiredError: The refresh failed.
        """
        if self._config.is_auth_endpoint(endpoint):
            logger.debug("401 from auth endpoint %s, not refreshing", endpoint)
            return None

        request = getattr(getattr(unauthorized, "response", None), "request", None)
        try:
            token = self.refresh(bearer_token(getattr(request, "headers", None)))
        except SessionExpiredError as e:
            raise SessionExpiredError(unauthorized) from e.__cause__

        return self._executor.execute(endpoint, method, headers=headers, body=body, override_token=token)

    def refresh(self, sent_token: Optional[str] = None) -> str:
        """Join the running refresh cycle, or start one. Returns the new token.

        ``sent_token`` is the token the rejected request carried; see
        ``AsyncRefreshCoordinator.refresh``.

        Raises:
            SessionExpiredError: The refresh failed.
        """
        token, error = self._refresh(sent_token, quiet=False)
        if token is None:
            raise SessionExpiredError() from error
        return token

    def refresh_ahead(self) -> Optional[str]:
        """Refresh before the token expires, keeping credentials if a refresh of its own fails."""
        token, _ = self._refresh(None, quiet=True)
        return token

    def _refresh(self, sent_token: Optional[str], quiet: bool) -> Tuple[Optional[str], Optional[Exception]]:
        # The stale-token checks and the cycle check-and-set happen under one guard, and a cycle
        # updates the store before it is detached, so a finished cycle is never missed.
        with self._guard:
            cycle = self._cycle
            if cycle is None and sent_token:
                current_token = self._store.get_token()
                if current_token and current_token != sent_token:
                    logger.debug("Token replaced since the request was sent, retrying without refresh")
                    return current_token, None
                if not current_token and sent_token == self._rejected_token:
                    logger.debug("Token already rejected by a failed refresh, not refreshing again")
                    return None, None
            owner = cycle is None
            if owner:
                cycle = self._cycle = _RefreshCycle(quiet)
            else:
                cycle.waiters += 1
                cycle.quiet = cycle.quiet and quiet

        if not owner:
            logger.debug("Refresh already in progress, waiting")
            cycle.settled.wait()
            return cycle.token, None

        token = None
        error = None
        failed = False
        try:
            with self._credentials_lock:
                refreshing = self._store.get_token()
                token, error = self._request_token(refreshing)
                with self._guard:
                    if token is not None:
                        self._store.set_token(token)
                        self._rejected_token = None
                    elif not cycle.quiet:
                        self._store.clear_all()
                        self._rejected_token = refreshing
                        failed = True
                    cycle.token = token
                    self._cycle = None
        finally:
            with self._guard:
                if self._cycle is cycle:
                    self._cycle = None
            cycle.settled.set()

        if failed:
            logger.warning("Session refresh failed, credentials cleared (%d waiting callers)", cycle.waiters)
            self._logout_signal.send(reason="session_expired")
        elif token is None:
            logger.warning("Early session refresh failed, keeping credentials until the next 401")
        else:
            logger.info("Session token refreshed (%d waiting callers resumed)", cycle.waiters)
        return token, error

    def _request_token(self, current_token: Optional[str]) -> Tuple[Optional[str], Optional[Exception]]:
        try:
            resp = self._executor.execute(self._config.refresh_endpoint, "POST", override_token=current_token)
        except Exception as e:
            logger.warning("Refresh call to %s failed: %s", self._config.refresh_endpoint, e)
            return None, e
        token = refreshed_token(resp)
        if token is None:
            logger.warning("Refresh endpoint %s returned no access token", self._config.refresh_endpoint)
        return token, None
