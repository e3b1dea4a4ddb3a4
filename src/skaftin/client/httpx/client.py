"""Async Skaftin API client using httpx."""

import logging
import os
from typing import Any, Mapping, Optional, Union

import httpx

from skaftin.client import DEFAULT_ENV_CONFIG_FILE_PATH
from skaftin.client._request import Multipart, with_query
from skaftin.client.config import ClientConfig, resolve_config
from skaftin.client.credential_store import CredentialStore
from skaftin.client.errors import ApiError
from skaftin.client.httpx.coordinator import AsyncRefreshCoordinator
from skaftin.client.httpx.executor import AsyncRequestExecutor
from skaftin.client.internal.credential_storage import TokenStorage, make_storage
from skaftin.client.signals import Signal, auth_logout

logger = logging.getLogger(__name__)


class AsyncApiClient:
    """Async client for the Skaftin API with transparent session token refresh.

    Every call carries the platform API key (or static access token) and the current bearer token.
    When a call fails with 401, the session token is refreshed once for all concurrent callers and
    the call is retried with the new token. If the refresh fails, credentials are cleared,
    ``auth:logout`` is sent and callers get SessionExpiredError.

    Calls return the httpx response object. Use response.json(), or serde.unwrap(response) for the
    ``data`` envelope.

    Example:
        async with AsyncApiClient(ClientConfig(api_key="pk_live_...")) as client:
            response = await client.get("/app-api/database/tables/invoices/select", params={"limit": 10})
            invoices = unwrap(response)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        store: Optional[CredentialStore] = None,
        storage: Union[str, TokenStorage] = "memory",
        client_name: Optional[str] = "auto",
        logout_signal: Signal = auth_logout,
        **kwargs,
    ):
        """
        Args:
            config: Client configuration. Defaults to ClientConfig.from_environ().
            store: Credential store to share with other clients. Built from ``storage`` when omitted.
            storage: Storage mode (see make_storage) or TokenStorage instance backing a new store.
            client_name: Name added to User-Agent. Use "auto" for class name, None for no name.
            logout_signal: Signal sent when the session cannot be repaired.
            **kwargs: Additional arguments passed to httpx.AsyncClient (e.g. timeout, verify, transport).

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
        self.executor = AsyncRequestExecutor(self.config, self.store, client_name=client_name, **kwargs)
        self.coordinator = AsyncRefreshCoordinator(
            self.config, self.store, self.executor, logout_signal=logout_signal
        )

    @property
    def project_id(self) -> Optional[str]:
        return self.config.project_id

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
    ) -> httpx.Response:
        method = method.upper()
        try:
            return await self.executor.execute(endpoint, method, headers=headers, body=body)
        except ApiError as e:
            if e.status != 401:
                raise
            logger.debug("401 from %s %s, handing over to the refresh coordinator", method, endpoint)
            resp = await self.coordinator.handle_unauthorized(endpoint, method, headers, body, unauthorized=e)
            if resp is None:
                raise
            return resp

    async def get(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        return await self.request(with_query(endpoint, params), "GET", headers=headers)

    async def post(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return await self.request(endpoint, "POST", headers=headers, body=body)

    async def put(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return await self.request(endpoint, "PUT", headers=headers, body=body)

    async def patch(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return await self.request(endpoint, "PATCH", headers=headers, body=body)

    async def delete(self, endpoint: str, body: Any = None, *, headers: Optional[Mapping[str, str]] = None):
        return await self.request(endpoint, "DELETE", headers=headers, body=body)

    async def post_multipart(
        self, endpoint: str, body: Multipart, *, headers: Optional[Mapping[str, str]] = None
    ) -> httpx.Response:
        """Upload a multipart body. The transport sets Content-Type with the boundary."""
        return await self.request(endpoint, "POST", headers=headers, body=body)

    @classmethod
    def from_env(
        cls,
        env: str,
        *,
        env_config_path: Union[str, os.PathLike] = "",
        **kwargs,
    ) -> "AsyncApiClient":
        """Create a client from a named environment in the environments file.

        Args:
            env: Environment name to look up in the config file.
            env_config_path: Path to config file. Defaults to ~/.config/skaftin/environments.json.
            **kwargs: Additional arguments passed to the constructor (e.g. storage, client_name).
        """
        config = resolve_config(env, env_config_path or DEFAULT_ENV_CONFIG_FILE_PATH)
        return cls(config, **kwargs)

    async def close(self) -> None:
        await self.executor.close()

    async def __aenter__(self) -> "AsyncApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
