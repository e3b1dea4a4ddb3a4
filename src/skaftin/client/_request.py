"""Transport-independent pieces of a Skaftin API call: headers, bodies, query strings and errors."""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

from skaftin.client.config import ClientConfig
from skaftin.client.errors import ApiError
from skaftin.client.serde import stringify_params

API_KEY_HEADER = "X-API-Key"
ACCESS_TOKEN_HEADER = "x-access-token"
AUTHORIZATION_HEADER = "Authorization"
CONTENT_TYPE_HEADER = "Content-Type"
JSON_CONTENT_TYPE = "application/json"

REFRESH_SUCCESS_STATUS = "OK"


@dataclass
class Multipart:
    """An already-multipart request body.

    ``fields`` are plain form fields, ``files`` map a field name to anything the transport accepts
    as a file (a file object, bytes, or a ``(filename, content, content_type)`` tuple). The
    transport computes the Content-Type and boundary; none is ever set explicitly.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, Any] = field(default_factory=dict)

    def parts(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """The ``data`` and ``files`` arguments for httpx or requests.

        Both libraries fall back to form-urlencoding when ``files`` is empty, so field-only bodies
        are sent as file parts without a filename, which encodes them as plain form-data fields.
        """
        if self.files:
            return self.fields, self.files
        return {}, {name: (None, str(value)) for name, value in self.fields.items()}


def _header_key(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key in headers:
        if key.lower() == lowered:
            return key
    return None


def build_headers(
    config: ClientConfig,
    token: Optional[str],
    custom_headers: Optional[Mapping[str, str]] = None,
    *,
    multipart: bool = False,
    override: bool = False,
) -> Dict[str, str]:
    """Merge platform credentials, caller headers and the bearer token.

    The bearer token replaces a caller-supplied Authorization header only when ``override`` is set,
    which is how retries after a refresh carry the new token.
    """
    headers: Dict[str, str] = {}
    if config.api_key:
        headers[API_KEY_HEADER] = config.api_key
    elif config.access_token:
        headers[ACCESS_TOKEN_HEADER] = config.access_token
    headers.update(custom_headers or {})

    auth_key = _header_key(headers, AUTHORIZATION_HEADER)
    if token and (override or auth_key is None):
        if auth_key is not None:
            del headers[auth_key]
        headers[AUTHORIZATION_HEADER] = f"Bearer {token}"

    content_type_key = _header_key(headers, CONTENT_TYPE_HEADER)
    if multipart:
        if content_type_key is not None:
            del headers[content_type_key]
    elif content_type_key is None:
        headers[CONTENT_TYPE_HEADER] = JSON_CONTENT_TYPE
    return headers


def bearer_token(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    """Return the token of a ``Bearer`` Authorization header, if any."""
    if not headers:
        return None
    value = headers.get(AUTHORIZATION_HEADER) or headers.get(AUTHORIZATION_HEADER.lower())
    if not value or not value.startswith("Bearer "):
        return None
    return value[len("Bearer ") :] or None


def with_query(endpoint: str, params: Optional[Mapping[str, Any]]) -> str:
    flat = stringify_params(params)
    if not flat:
        return endpoint
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(flat)}"


def join_url(api_url: str, endpoint: str) -> str:
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    return f"{api_url.rstrip('/')}/{endpoint.lstrip('/')}"


def parse_response_body(response: Any) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def error_from_response(response: Any, method: str, endpoint: str) -> ApiError:
    """Build an ApiError with the message taken from the body's message/error field."""
    data = parse_response_body(response)
    message = None
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
    if not message or not isinstance(message, str):
        message = f"Request failed: {response.status_code}"
    return ApiError(
        message,
        status=response.status_code,
        data=data,
        method=method,
        endpoint=endpoint,
        response=response,
    )


def refreshed_token(response: Any) -> Optional[str]:
    """Return the access token of a successful refresh response, or None for any other shape."""
    data = parse_response_body(response)
    if not isinstance(data, dict) or data.get("status") != REFRESH_SUCCESS_STATUS:
        return None
    token = data.get("accessToken")
    if not isinstance(token, str) or not token:
        return None
    return token
