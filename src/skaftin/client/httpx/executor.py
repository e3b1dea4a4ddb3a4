"""Performs single Skaftin API calls with httpx."""

import logging
from typing import Any, Mapping, Optional

import httpx

from skaftin.client._request import Multipart, build_headers, error_from_response
from skaftin.client._user_agent import get_user_agent
from skaftin.client.config import ClientConfig
from skaftin.client.credential_store import CredentialStore
from skaftin.client.serde import encode_body

logger = logging.getLogger(__name__)


class AsyncRequestExecutor:
    """Sends one request, attaching credentials, and raises ApiError for non-2xx responses.

    Knows nothing about token refresh; see AsyncRefreshCoordinator for that.
    """

    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        *,
        client_name: Optional[str] = None,
        **kwargs,
    ):
        """
        Args:
            config: Client configuration (base URL and platform credentials)
            store: Credential store providing the bearer token
            client_name: Name added to User-Agent
            **kwargs: Additional arguments passed to httpx.AsyncClient (e.g. timeout, verify, transport).
        """
        self._config = config
        self._store = store

        # Use a custom transport to set the number of retries for connection errors
        kwargs.setdefault("transport", httpx.AsyncHTTPTransport(retries=3))

        headers = kwargs.pop("headers", {})
        headers.setdefault("User-Agent", get_user_agent(f"python-httpx/{httpx.__version__}", client_name))
        self._http = httpx.AsyncClient(base_url=config.api_url, headers=headers, **kwargs)

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        override_token: Optional[str] = None,
    ) -> httpx.Response:
        multipart = isinstance(body, Multipart)
        token = override_token or self._store.get_token()
        request_headers = build_headers(
            self._config, token, headers, multipart=multipart, override=override_token is not None
        )

        if multipart:
            data, files = body.parts()
            resp = await self._http.request(method, endpoint, headers=request_headers, data=data, files=files)
        else:
            resp = await self._http.request(method, endpoint, headers=request_headers, content=encode_body(body))

        logger.debug("[%s] %s -> %s", method, endpoint, resp.status_code)
        if not resp.is_success:
            raise error_from_response(resp, method, endpoint)
        return resp

    async def close(self) -> None:
        await self._http.aclose()
