"""Performs single Skaftin API calls with requests."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter, Retry

from skaftin.client._request import Multipart, build_headers, error_from_response, join_url
from skaftin.client._user_agent import get_user_agent
from skaftin.client.config import ClientConfig
from skaftin.client.credential_store import CredentialStore
from skaftin.client.serde import encode_body

logger = logging.getLogger(__name__)

# Connection errors only; HTTP statuses are never retried at this layer
DEFAULT_RETRY = Retry(total=3, connect=3, read=0, status=0, backoff_factor=0.5)


def create_session(client_name: Optional[str] = None) -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = get_user_agent(f"requests/{requests.__version__}", client_name)
    session.mount("http://", HTTPAdapter(max_retries=DEFAULT_RETRY))
    session.mount("https://", HTTPAdapter(max_retries=DEFAULT_RETRY))
    return session


class RequestExecutor:
    """Sends one request, attaching credentials, and raises ApiError for non-2xx responses."""

    def __init__(
        self,
        config: ClientConfig,
        store: CredentialStore,
        *,
        session: Optional[requests.Session] = None,
        client_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._config = config
        self._store = store
        self._timeout = timeout
        self.session = session if session is not None else create_session(client_name)

    def execute(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        override_token: Optional[str] = None,
    ) -> requests.Response:
        multipart = isinstance(body, Multipart)
        token = override_token or self._store.get_token()
        request_headers = build_headers(
            self._config, token, headers, multipart=multipart, override=override_token is not None
        )
        url = join_url(self._config.api_url, endpoint)

        if multipart:
            data, files = body.parts()
            resp = self.session.request(
                method, url, headers=request_headers, data=data, files=files, timeout=self._timeout
            )
        else:
            content = encode_body(body)
            if isinstance(content, str):
                content = content.encode("utf-8")
            resp = self.session.request(method, url, headers=request_headers, data=content, timeout=self._timeout)

        logger.debug("[%s] %s -> %s", method, endpoint, resp.status_code)
        if not 200 <= resp.status_code < 300:
            raise error_from_response(resp, method, endpoint)
        return resp

    def close(self) -> None:
        self.session.close()
