"""Error types raised by the request pipeline."""

from typing import Any, Optional

SESSION_EXPIRED_MESSAGE = "Session expired"


class ApiError(Exception):
    """A non-2xx response from the Skaftin API.

    Attributes:
        status: HTTP status code of the response
        data: Parsed response body (JSON when possible, otherwise text)
        method: HTTP method of the failed call
        endpoint: Endpoint path of the failed call
        response: The underlying transport response object, when there is one
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        data: Any = None,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data
        self.method = method
        self.endpoint = endpoint
        self.response = response

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(status={self.status}, method={self.method}, endpoint={self.endpoint})"


class SessionExpiredError(ApiError):
    """The session token could not be repaired and local credentials were cleared."""

    def __init__(self, unauthorized: Optional[ApiError] = None):
        super().__init__(
            SESSION_EXPIRED_MESSAGE,
            status=401,
            data=unauthorized.data if unauthorized is not None else None,
            method=unauthorized.method if unauthorized is not None else None,
            endpoint=unauthorized.endpoint if unauthorized is not None else None,
            response=unauthorized.response if unauthorized is not None else None,
        )
