"""
An in-memory store of the objects with the change notifications.

It behaves like a tiny API server for one resource: the objects are versioned,
the stale writes are rejected as conflicts, the deletions are blocked while
there are finalizers on the objects, and every change is delivered to
the subscribed handlers. It is both a source and a store for the controller,
so a controller can be embedded into any application or used in tests
without any cluster at all.
"""
import asyncio
import datetime
import itertools
import uuid

from astertower._cogs.clients import errors
from astertower._cogs.structs import bodies, keys
from astertower._core.reactor import informing


class MemoryStore:

    def __init__(self) -> None:
        super().__init__()
        self._objects: dict[keys.ObjectKey, bodies.ManagedObject] = {}
        self._handlers: list[informing.EventHandler] = []
        self._versions = itertools.count(1)
        self._lock = asyncio.Lock()
        self._watching = False
        self._synced = False

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {len(self._objects)} objects>'

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def subscribe(self, handler: informing.EventHandler) -> None:
        self._handlers.append(handler)

    def has_synced(self) -> bool:
        return self._synced

    async def watch(self) -> None:
        """
        Deliver the existing objects as added, then the changes as they happen.

        Until the watching is started, the changes are not delivered at all.
        """
        async with self._lock:
            self._watching = True
            for obj in self._objects.values():
                await self._notify_added(obj)
            self._synced = True
        try:
            await asyncio.Event().wait()
        finally:
            self._watching = False

    async def get(self, namespace: str | None, name: str) -> bodies.ManagedObject | None:
        obj = self._objects.get(keys.make_key(namespace, name))
        return obj.copy() if obj is not None else None

    async def create(self, obj: bodies.ManagedObject) -> bodies.ManagedObject:
        async with self._lock:
            if obj.key in self._objects:
                raise errors.APIConflictError(errors.make_status(
                    409, 'AlreadyExists', f"Object {obj.key!r} already exists."), status=409)
            new = obj.copy()
            new.uid = new.uid if new.uid is not None else str(uuid.uuid4())
            new.resource_version = self._next_version()
            new.deletion_timestamp = None
            self._objects[new.key] = new
            await self._notify_added(new)
            return new.copy()

    async def update(self, obj: bodies.ManagedObject) -> bodies.ManagedObject:
        """
        Persist the object if it is not changed since it was read.

        The deletion mark cannot be set or removed by the updates, only by
        :meth:`request_deletion`. If the deletion is requested and there are
        no finalizers left, the object is purged from the store.
        """
        async with self._lock:
            old = self._get_or_fail(obj.key)
            if obj.resource_version != old.resource_version:
                raise errors.APIConflictError(errors.make_status(
                    409, 'Conflict',
                    f"Object {obj.key!r} has been modified: version {obj.resource_version!r} "
                    f"is stale, the current one is {old.resource_version!r}."), status=409)
            new = obj.copy()
            new.uid = old.uid
            new.deletion_timestamp = old.deletion_timestamp
            new.resource_version = self._next_version()
            if new.deletion_timestamp is not None and not new.finalizers:
                del self._objects[new.key]
                await self._notify_deleted(new)
            else:
                self._objects[new.key] = new
                await self._notify_updated(old, new)
            return new.copy()

    async def request_deletion(self, namespace: str | None, name: str) -> bodies.ManagedObject | None:
        """
        Mark the object for deletion, or delete it at once if nothing blocks it.

        Return the object as marked, or ``None`` if it is deleted immediately.
        """
        async with self._lock:
            old = self._get_or_fail(keys.make_key(namespace, name))
            if not old.finalizers:
                del self._objects[old.key]
                await self._notify_deleted(old)
                return None
            if old.deletion_timestamp is not None:
                return old.copy()
            new = old.copy()
            new.deletion_timestamp = datetime.datetime.now(datetime.timezone.utc)
            new.resource_version = self._next_version()
            self._objects[new.key] = new
            await self._notify_updated(old, new)
            return new.copy()

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _get_or_fail(self, key: keys.ObjectKey) -> bodies.ManagedObject:
        try:
            return self._objects[key]
        except KeyError:
            raise errors.APINotFoundError(errors.make_status(
                404, 'NotFound', f"Object {key!r} is not found."), status=404) from None

    async def _notify_added(self, obj: bodies.ManagedObject) -> None:
        if self._watching:
            for handler in self._handlers:
                await handler.on_added(obj.copy())

    async def _notify_updated(self, old: bodies.ManagedObject, new: bodies.ManagedObject) -> None:
        if self._watching:
            for handler in self._handlers:
                await handler.on_updated(old.copy(), new.copy())

    async def _notify_deleted(self, obj: bodies.ManagedObject) -> None:
        if self._watching:
            for handler in self._handlers:
                await handler.on_deleted(obj.copy())
