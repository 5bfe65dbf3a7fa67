"""
Transport - JSON over HTTP for couch-do.

Sends a relative path, an HTTP method, an optional JSON body and query
parameters to the store and returns the decoded JSON reply. Error
statuses are turned into the exception hierarchy from ``types``.
"""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any, Awaitable, Mapping, TypeVar

import httpx

from .types import (
    BadRequestError,
    ConflictError,
    ConnectionError,
    CouchError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    RequestError,
    UnauthorizedError,
    ValidationError,
    ViewNotFoundError,
)

__all__ = ["Transport", "encode_params", "error_from_response", "soft_fail"]

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}

_STATUS_ERRORS: dict[int, type[RequestError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    412: PreconditionFailedError,
}

_VIEW_REASONS = {"missing_named_view", "missing", "deleted"}


def encode_params(params: Mapping[str, Any] | None) -> dict[str, str]:
    """
    Encode query parameters the way the store expects them.

    Booleans become ``true``/``false``, lists and dicts are JSON encoded
    and ``None`` values are dropped.
    """
    encoded: dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple, dict)):
            encoded[key] = json.dumps(value)
        else:
            encoded[key] = str(value)
    return encoded


async def soft_fail(awaitable: Awaitable[T], default: Any = None) -> T | Any:
    """
    Await a throwing call and collapse store errors to ``default``.

    Validation errors are never swallowed, they always reach the caller.
    """
    try:
        return await awaitable
    except ValidationError:
        raise
    except CouchError as e:
        logger.debug("Soft failure collapsed to %r: %s", default, e)
        return default


def error_from_response(status: int, body: Any, path: str = "") -> RequestError:
    """Build the exception matching an error reply from the store."""
    error = reason = None
    if isinstance(body, Mapping):
        error = body.get("error")
        reason = body.get("reason")
    error_class = _STATUS_ERRORS.get(status, RequestError)
    if error_class is NotFoundError and "/_view/" in path and reason in _VIEW_REASONS:
        error_class = ViewNotFoundError
    message = f"{status} {error or 'error'}: {reason or 'request failed'} ({path or '/'})"
    return error_class(message, status=status, error=error, reason=reason, body=body)


class Transport:
    """
    HTTP transport bound to one server base URL.

    Wraps a single ``httpx.AsyncClient``; it holds no per-request state,
    so concurrent calls may share it.

    Example:
        transport = Transport("http://localhost:5984", auth=("admin", "secret"))
        info = await transport.send("mydb")
        await transport.aclose()
    """

    __slots__ = ("_base_url", "_client")

    def __init__(
        self,
        base_url: str,
        auth: tuple[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: Server URL without credentials.
            auth: Optional (user, password) for basic authentication.
            headers: Extra headers sent with every request.
            timeout: Request timeout in seconds, None for no deadline.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self._base_url = base_url.rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=auth,
            headers={**DEFAULT_HEADERS, **(headers or {})},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """Get the base URL requests are made against."""
        return self._base_url

    async def send(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        raw: bool = False,
    ) -> Any:
        """
        Send a request to the server.

        Args:
            path: Path relative to the base URL.
            method: HTTP method (GET, POST, PUT, DELETE, HEAD, COPY).
            body: JSON-serializable request body.
            params: Query parameters.
            headers: Extra headers for this request.
            raw: Return the httpx.Response instead of the decoded body.

        Returns:
            The decoded JSON body, or the response when raw is True.

        Raises:
            ConnectionError: If no response was received.
            RequestError: If the server answered with an error status.
        """
        method = method.upper()
        path = path.lstrip("/")
        query = encode_params(params)
        logger.debug("%s /%s %s", method, path, query or "")

        kwargs: dict[str, Any] = {"params": query}
        if body is not None:
            kwargs["json"] = body
        if headers:
            kwargs["headers"] = dict(headers)

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise ConnectionError(
                f"No response from {self._base_url}{path}: {e}"
            ) from e

        if response.status_code >= 400:
            data = self._decode(response)
            logger.debug("%s /%s -> %s %s", method, path, response.status_code, data)
            raise error_from_response(response.status_code, data, path)

        if raw or method == "HEAD":
            return response
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            if response.status_code >= 400:
                return response.text
            raise CouchError(
                f"Invalid JSON in reply from {response.request.url}",
                status=response.status_code,
                body=response.text,
            ) from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"Transport({self._base_url!r})"
