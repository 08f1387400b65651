"""
The sources of the objects' changes and the stores of the objects' states.

The engine does not depend on any specific technology of watching or storing:
it only consumes the protocols declared here. Two implementations are shipped:
the in-memory one (:mod:`astertower._kits.memstore`), and the cluster one
(:class:`Informer` with :class:`ClusterStore`) backed by the API client.

The informer keeps a cache of the watched objects fed by the watch-stream.
The cache is replaced on every (re-)listing of the stream: the objects that
have vanished from the listing are reported as deleted with their last known
state wrapped into a tombstone, since their final state was never seen.
"""
import dataclasses
import logging
from typing import Protocol

from astertower._cogs.clients import updating, watching
from astertower._cogs.configs import configuration
from astertower._cogs.structs import bodies, keys, references

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """
    A tombstone: an object was deleted, but its final state is not known.

    This happens when the deletion happened while the watch-stream was down,
    and was only noticed on the next listing as an absence of the object.
    The object is the last state seen before the disconnection (if any).
    """
    key: keys.ObjectKey
    obj: bodies.ManagedObject | None = None


class EventHandler(Protocol):
    async def on_added(self, obj: bodies.ManagedObject) -> None: ...
    async def on_updated(self, old: bodies.ManagedObject, new: bodies.ManagedObject) -> None: ...
    async def on_deleted(self, obj: bodies.ManagedObject | DeletedFinalStateUnknown) -> None: ...


class WatchSource(Protocol):

    def subscribe(self, handler: EventHandler) -> None:
        """ Register the handler for all the future notifications. """
        ...

    def has_synced(self) -> bool:
        """ Whether the initial full state of the objects has been delivered. """
        ...

    async def watch(self) -> None:
        """ Deliver the notifications to the handlers until cancelled. """
        ...


class ObjectStore(Protocol):

    async def get(self, namespace: str | None, name: str) -> bodies.ManagedObject | None:
        """
        Read the current state of an object; ``None`` if it does not exist.

        The state can be slightly stale (e.g. when served from a cache).
        The returned object is never shared with the store and can be mutated.
        """
        ...

    async def update(self, obj: bodies.ManagedObject) -> bodies.ManagedObject:
        """
        Persist the object if its resource version is still the current one.

        Raise :class:`astertower.APIConflictError` if the object has been
        changed since it was read, i.e. if the resource version is stale.
        """
        ...


class Informer:
    """
    A cache of the watched objects with the change notifications.

    Only one watch-stream is maintained for all the subscribed handlers.
    The cache is not usable until :meth:`has_synced` reports so.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            resource: references.Resource,
            namespace: str | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.resource = resource
        self.namespace = namespace
        self._cache: dict[keys.ObjectKey, bodies.ManagedObject] = {}
        self._listing: dict[keys.ObjectKey, bodies.ManagedObject] | None = None
        self._handlers: list[EventHandler] = []
        self._synced = False

    def __repr__(self) -> str:
        where = f'in {self.namespace!r}' if self.namespace is not None else 'cluster-wide'
        return f'<{self.__class__.__name__}: {self.resource!r} {where}: {len(self._cache)} objects>'

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def has_synced(self) -> bool:
        return self._synced

    def lookup(self, namespace: str | None, name: str) -> bodies.ManagedObject | None:
        obj = self._cache.get(keys.make_key(namespace, name))
        return obj.copy() if obj is not None else None

    async def watch(self) -> None:
        stream = watching.infinite_watch(
            settings=self.settings,
            resource=self.resource,
            namespace=self.namespace,
        )
        async for raw_event in stream:
            await self.process_raw_event(raw_event)

    async def process_raw_event(self, raw_event: watching.Bookmark | bodies.RawEvent) -> None:
        if raw_event is watching.Bookmark.LISTING:
            self._listing = {}
            return

        if raw_event is watching.Bookmark.LISTED:
            await self._replace(self._listing or {})
            self._listing = None
            if not self._synced:
                logger.debug(f"The cache is synced: {self!r}")
            self._synced = True
            return

        assert not isinstance(raw_event, watching.Bookmark)  # for type-checking
        obj = bodies.ManagedObject.from_raw(raw_event['object'])
        match raw_event['type']:
            case None:
                if self._listing is not None:
                    self._listing[obj.key] = obj
            case 'ADDED' | 'MODIFIED':
                old = self._cache.get(obj.key)
                self._cache[obj.key] = obj
                if old is None:
                    await self._notify_added(obj)
                else:
                    await self._notify_updated(old, obj)
            case 'DELETED':
                self._cache.pop(obj.key, None)
                await self._notify_deleted(obj)

    async def _replace(self, listed: dict[keys.ObjectKey, bodies.ManagedObject]) -> None:
        vanished = {key: obj for key, obj in self._cache.items() if key not in listed}
        for key, obj in vanished.items():
            del self._cache[key]
            await self._notify_deleted(DeletedFinalStateUnknown(key=key, obj=obj))
        for key, obj in listed.items():
            old = self._cache.get(key)
            self._cache[key] = obj
            if old is None:
                await self._notify_added(obj)
            else:
                await self._notify_updated(old, obj)

    # The handlers get their own copies, so that they cannot corrupt the cache.
    async def _notify_added(self, obj: bodies.ManagedObject) -> None:
        for handler in self._handlers:
            await handler.on_added(obj.copy())

    async def _notify_updated(self, old: bodies.ManagedObject, new: bodies.ManagedObject) -> None:
        for handler in self._handlers:
            await handler.on_updated(old.copy(), new.copy())

    async def _notify_deleted(self, obj: bodies.ManagedObject | DeletedFinalStateUnknown) -> None:
        for handler in self._handlers:
            await handler.on_deleted(obj)


class ClusterStore:
    """
    An object store that reads from the informer's cache and writes to the API.

    The writes are replacements of the whole object with the resource version
    as it was read, so the stale writes are rejected by the API as conflicts.
    """

    def __init__(
            self,
            *,
            informer: Informer,
            settings: configuration.OperatorSettings | None = None,
    ) -> None:
        super().__init__()
        self.informer = informer
        self.settings = settings if settings is not None else informer.settings

    async def get(self, namespace: str | None, name: str) -> bodies.ManagedObject | None:
        return self.informer.lookup(namespace, name)

    async def update(self, obj: bodies.ManagedObject) -> bodies.ManagedObject:
        raw = await updating.replace_obj(
            settings=self.settings,
            resource=self.informer.resource,
            namespace=obj.namespace,
            name=obj.name,
            body=obj.to_raw(),
            logger=logger,
        )
        return bodies.ManagedObject.from_raw(raw)
