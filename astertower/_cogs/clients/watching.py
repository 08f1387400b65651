"""
The watch-streams of the objects' changes.

Every stream begins with a full listing, framed by the bookmarks, so that
the consumers can rebuild their caches from scratch, and notice the objects
deleted while nobody was watching. Then the changes are watched starting from
the listing's resource version, and the watching is resumed from the last seen
version after every disconnect. Once the server forgets that version
("410 Gone"), the listing is repeated.
"""
import asyncio
import enum
import logging
from collections.abc import AsyncIterator

import aiohttp

from astertower._cogs.clients import api, errors, fetching
from astertower._cogs.configs import configuration
from astertower._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

# The errors after which the listing or watching is simply repeated.
TRANSIENT_ERRORS = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
    errors.APIServerError,
)


class WatchingError(Exception):
    """ Raised when the watch-stream reports an error other than an expired version. """


class Bookmark(enum.Enum):
    """ The markers of the listing's beginning and end in the stream. """
    LISTING = enum.auto()
    LISTED = enum.auto()


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: str | None,
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """
    Stream the listings & changes until cancelled; fail only on non-transient errors.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while True:
            async for raw_event in continuous_watch(settings=settings, resource=resource, namespace=namespace):
                yield raw_event
            await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: str | None,
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """
    Stream one listing and the changes after it, until the version is expired.

    The listed objects are yielded as the events with no type.
    """
    try:
        objs, resource_version = await fetching.list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            logger=logger,
        )
    except TRANSIENT_ERRORS as e:
        logger.warning(f"Listing of {resource} has failed; will retry: {e!r}")
        return

    yield Bookmark.LISTING
    for obj in objs:
        yield {'type': None, 'object': obj}
    yield Bookmark.LISTED

    while True:
        try:
            async for raw_input in watch_objs(
                settings=settings,
                resource=resource,
                namespace=namespace,
                since=resource_version,
            ):
                match raw_input:
                    case {'type': 'ERROR', 'object': {'code': 410}}:
                        logger.debug(f"The resource version {resource_version} is gone; re-listing.")
                        return
                    case {'type': 'ERROR', 'object': raw_error}:
                        raise WatchingError(f"Error in the watch-stream: {raw_error}")
                    case {'type': 'ADDED' | 'MODIFIED' | 'DELETED', 'object': raw_body}:
                        metadata = raw_body.get('metadata', {})
                        resource_version = metadata.get('resourceVersion', resource_version)
                        yield raw_input  # type: ignore[misc]
                    case _:
                        logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Watching of {resource} is disconnected; will resume: {e!r}")
            await asyncio.sleep(settings.watching.reconnect_backoff)


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: str | None,
        since: str | None = None,
) -> AsyncIterator[bodies.RawInput]:
    """
    Stream the raw changes of the objects, as long as the server keeps the stream open.
    """
    params = {'watch': 'true'}
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    timeout = aiohttp.ClientTimeout(
        total=settings.watching.client_timeout,
        sock_connect=settings.watching.connect_timeout or settings.networking.connect_timeout,
    )
    async for raw_input in api.stream(
        resource.get_url(namespace=namespace, params=params),
        settings=settings,
        timeout=timeout,
        logger=logger,
    ):
        yield raw_input
