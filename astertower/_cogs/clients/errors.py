"""
The errors of the API calls, as classified by the HTTP statuses.

The errors of the HTTP client itself (connectivity, SSL, timeouts) are not
wrapped: they are not about the objects, but about the network. The API
errors carry the server's Status payload if there was one, and chain
the client's own error as their cause.

The in-memory store raises the same errors for the same situations,
so that the engine reacts the same way regardless of the store's nature:
most notably, on the optimistic-concurrency conflicts of the writes.
"""
import collections.abc
import json
from typing import Any

import aiohttp
from typing_extensions import Literal, TypedDict


class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: dict[str, Any]


class APIError(Exception):
    """ A failed API call: the HTTP status, and the server's explanation if any. """

    def __init__(self, payload: RawStatus | None, *, status: int) -> None:
        self.payload = payload
        self.status = status
        super().__init__(self.message, payload)

    @property
    def code(self) -> int | None:
        return self.payload.get('code') if self.payload else None

    @property
    def message(self) -> str | None:
        return self.payload.get('message') if self.payload else None


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


_SPECIFIC_ERRORS: dict[int, type[APIError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
}


def make_status(code: int, reason: str, message: str) -> RawStatus:
    """ Build a failure payload as the API server does it. """
    return RawStatus(apiVersion='v1', kind='Status', status='Failure',
                     code=code, reason=reason, message=message)


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise an API error if the response is a failure; leave the body unread otherwise.

    Only the Status payloads are kept in the errors. Other payloads can
    contain anything, including sensitive data, so they are not exposed.
    """
    if response.status < 400:
        return

    payload: Any
    try:
        payload = await response.json(content_type=None)
    except (json.JSONDecodeError, aiohttp.ClientConnectionError):
        payload = None
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    default_cls = APIClientError if response.status < 500 else APIServerError
    cls = _SPECIFIC_ERRORS.get(response.status, default_cls)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
