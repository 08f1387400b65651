"""
The translation of the watched objects' changes into the queued keys.

The adapter only enqueues: it never reads or writes the objects. All the
additions are rate-limited, so that the bursts of changes throttle themselves.
"""
import logging

from astertower._cogs.structs import bodies
from astertower._core.reactor import informing, queueing

logger = logging.getLogger(__name__)


class EventAdapter:

    def __init__(self, *, queue: queueing.RateLimitingQueue) -> None:
        super().__init__()
        self.queue = queue

    async def on_added(self, obj: bodies.ManagedObject) -> None:
        await self._enqueue(obj, reason='added')

    async def on_updated(self, old: bodies.ManagedObject, new: bodies.ManagedObject) -> None:
        # Periodic relistings deliver the same versions again: nothing has changed.
        if old.resource_version == new.resource_version:
            logger.debug(f"Skipping the update of {new.key!r}: same version {new.resource_version!r}.")
            return
        await self._enqueue(new, reason='updated')

    async def on_deleted(self, obj: bodies.ManagedObject | informing.DeletedFinalStateUnknown) -> None:
        await self._enqueue(obj, reason='deleted')

    async def _enqueue(
            self,
            obj: bodies.ManagedObject | informing.DeletedFinalStateUnknown,
            *,
            reason: str,
    ) -> None:
        # Both the objects and the tombstones know their keys.
        logger.debug(f"Enqueuing {obj.key!r} as {reason}.")
        await self.queue.add_rate_limited(obj.key)
