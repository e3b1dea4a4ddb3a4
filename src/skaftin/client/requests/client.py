"""Skaftin API client using requests, safe to share between threads."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

import requests

if TYPE_CHECKING:
    from typing import Self

from skaftin.client import DEFAULT_ENV_CONFIG_FILE_PATH
from skaftin.client._request import Multipart, with_query
from skaftin.client.config import ClientConfig, resolve_config
from skaftin.client.credential_store import CredentialStore
from skaftin.client.errors import ApiError
from skaftin.client.internal.credential_storage import TokenStorage, make_storage
from skaftin.client.requests.coordinator import RefreshCoordinator
from skaftin.client.requests.executor import RequestExecutor
from skaftin.client.signals import Signal, auth_logout

logger = logging.getLogger(__name__)


class ApiClient:
    """Client for the Skaftin API with transparent session token refresh.

    Behaves like AsyncApiClient, for code running in threads instead of an event loop. Concurrent
    threads that hit 401 share one refresh call.

    Example:
        with ApiClient(ClientConfig(api_key="pk_live_...")) as client:
            response = client.get("/app-api/database/tables/items/select", params={"limit": 10})
            items = unwrap(response)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        store: Optional[CredentialStore] = None,
        storage: Union[str, TokenStorage] = "memory",
        client_name: Optional[str] = "auto",
        logout_signal: Signal = auth_logout,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            config: Client configuration. Defaults to ClientConfig.from_environ().
            store: Credential store to share with other clients. Built from ``storage`` when omitted.
            storage: Storage mode (see make_storage) or TokenStorage instance backing a new store.
            client_name: Name added to User-Agent. Use "auto" for class name, None for no name.
            logout_signal: Signal sent when the session cannot be repaired.
            session: requests Session to send with. A retrying session is created when omitted.
            timeout: Timeout in seconds passed to every request.

        Raises:
            ValueError: If neither an API key nor an access token is configured.
        """
        self.config = (config or ClientConfig.from_environ()).validate()

        if client_name == "auto":
            client_name = self.__class__.__name__

        if store is None:
            backing = make_storage(storage) if isinstance(storage, str) else storage
            store = CredentialStore(
                backing, token_key=self.config.token_storage_key, user_key=self.config.user_storage_key
            )
        self.store = store
        self.executor = RequestExecutor(
            self.config, self.store, session=session, client_name=client_name, timeout=timeout
        )
        self.coordinator = RefreshCoordinator(self.config, self.store, self.executor, logout_signal=logout_signal)

    @property
    def project_id(self) -> Optional[str]:
        return self.config.project_id

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
    ) -> requests.Response:
        method = method.upper()
        try:
            return self.executor.execute(endpoint, method, headers=headers, body=body)
        except ApiError as e:
            if e.status != 401:
                raise
            logger.debug("401 from %s %s, handing over to the refresh coordinator", method, endpoint)
            resp = self.coordinator.handle_unauthorized(endpoint, method, headers, body, unauthorized=e)
            if resp is None:
                raise
            return resp

    def get(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        return self.request(with_query(endpoint, params), "GET", headers=headers)

    def post(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return self.request(endpoint, "POST", headers=headers, body=body)

    def put(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return self.request(endpoint, "PUT", headers=headers, body=body)

    def patch(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return self.request(endpoint, "PATCH", headers=headers, body=body)

    def delete(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return self.request(endpoint, "DELETE", headers=headers, body=body)

    def post_multipart(
        self, endpoint: str, body: Multipart, *, headers: Optional[Mapping[str, str]] = None
    ) -> requests.Response:
        return self.request(endpoint, "POST", headers=headers, body=body)

    @classmethod
    def from_env(
        cls,
        env: str,
        *,
        env_config_path: Union[str, os.PathLike] = "",
        **kwargs,
    ) -> Self:
        """Create a client from a named environment in the environments file.

        Args:
            env: Environment name to look up in the config file.
            env_config_path: Path to config file. Defaults to ~/.config/skaftin/environments.json.
            **kwargs: Additional arguments passed to the constructor (e.g. storage, client_name).
        """
        config = resolve_config(env, env_config_path or DEFAULT_ENV_CONFIG_FILE_PATH)
        return cls(config, **kwargs)

    def close(self) -> None:
        self.executor.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
