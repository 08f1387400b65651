"""
The thin HTTP layer over the API server: plain JSON requests and JSON-lines streams.

Nothing is retried here. The failed requests are escalated to the callers:
the reconciliation is retried by the queue with its own backoffs, and
the watching reconnects by itself.
"""
import json
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from astertower._cogs.clients import auth, errors
from astertower._cogs.configs import configuration
from astertower._cogs.helpers import typedefs


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.OperatorSettings,
        payload: object | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        context: auth.APIContext | None = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Send a request and check its status; the response's body is left unread.
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API context is not injected by the decorator.")

    url = context.make_url(url)
    timeout = timeout or aiohttp.ClientTimeout(
        total=settings.networking.request_timeout,
        sock_connect=settings.networking.connect_timeout,
    )
    logger.debug(f"Requesting: {method.upper()} {url}")
    response = await context.session.request(method, url, json=payload, timeout=timeout)
    await errors.check_response(response)
    return response


async def get(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> Any:
    async with await request('get', url, settings=settings, logger=logger) as response:
        return await response.json()


async def put(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        payload: object,
        logger: typedefs.Logger,
) -> Any:
    async with await request('put', url, payload=payload, settings=settings, logger=logger) as response:
        return await response.json()


async def stream(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        timeout: aiohttp.ClientTimeout | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """ Yield the parsed JSON documents of a stream, one per line. """
    async with await request('get', url, timeout=timeout, settings=settings, logger=logger) as response:
        async for line in iter_lines(response.content):
            yield json.loads(line)


async def iter_lines(content: aiohttp.StreamReader) -> AsyncIterator[bytes]:
    """
    Split the stream into the non-empty lines, regardless of the lines' lengths.

    The stream reader's own line iteration fails on the lines above its buffer's
    limit (128 KiB), while the objects' bodies can be much bigger.
    """
    tail = b''
    async for chunk in content.iter_any():
        *lines, tail = (tail + chunk).split(b'\n')
        for line in lines:
            if line.strip():
                yield line
    if tail.strip():
        yield tail
