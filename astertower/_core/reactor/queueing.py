"""
The deduplicating, delaying, rate-limited queue of objects' keys.

The queue carries only the keys, never the objects: the objects are re-read
from the store at processing time, so the latest state is always used.

Every key goes through the following lifecycle in the queue:

* *Dirty*: the key is added and awaits processing (at most once in the queue).
  Multiple additions of a dirty key collapse into one.
* *Processing*: the key is taken by a worker via :meth:`RateLimitingQueue.get`.
  A key in processing is never given to another worker.
* *Done*: the worker reports the end of processing via
  :meth:`RateLimitingQueue.done`. If the key was added again while
  being processed, it is put back into the queue now -- so that no changes
  are lost, but there is never more than one processing of the same key.

Separately from this lifecycle, the keys can be added after a delay:
either an explicit one (:meth:`RateLimitingQueue.add_after`), or the one
calculated by the rate limiter from the history of the key's failures
(:meth:`RateLimitingQueue.add_rate_limited`). The history is dropped
by :meth:`RateLimitingQueue.forget` after the key is fully processed.
"""
import asyncio
import collections
import logging
from typing import NamedTuple

from astertower._cogs.aiokits import aiotasks
from astertower._cogs.configs import configuration
from astertower._cogs.structs import keys
from astertower._core.reactor import ratelimiting

logger = logging.getLogger(__name__)


class _Waiting(NamedTuple):
    ready_at: float  # in the event loop's time
    task: aiotasks.Task


class RateLimitingQueue:

    def __init__(
            self,
            *,
            name: str | None = None,
            settings: configuration.OperatorSettings | None = None,
            rate_limiter: ratelimiting.RateLimiter | None = None,
    ) -> None:
        super().__init__()
        settings = settings if settings is not None else configuration.OperatorSettings()
        self._name = name
        self._rate_limiter = (rate_limiter if rate_limiter is not None else
                              ratelimiting.default_controller_rate_limiter(settings))
        self._condition = asyncio.Condition()
        self._queue: collections.deque[keys.ObjectKey] = collections.deque()
        self._dirty: set[keys.ObjectKey] = set()
        self._processing: set[keys.ObjectKey] = set()
        self._waiting: dict[keys.ObjectKey, _Waiting] = {}
        self._shutting_down = False

    def __repr__(self) -> str:
        clsname = self.__class__.__name__
        name = f' {self._name}' if self._name else ''
        return f'<{clsname}{name}: {len(self._queue)} queued, {len(self._processing)} processing>'

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def name(self) -> str | None:
        return self._name

    def shutting_down(self) -> bool:
        return self._shutting_down

    async def add(self, key: keys.ObjectKey) -> None:
        """ Mark the key as needing processing; no-op if it is already marked. """
        async with self._condition:
            if self._shutting_down:
                return
            if key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return  # will be re-queued when done.
            self._queue.append(key)
            self._condition.notify()

    async def get(self) -> tuple[keys.ObjectKey | None, bool]:
        """
        Wait for a key to process; return it and whether the queue is shut down.

        Once the queue is shut down, all waiting and all future calls return
        immediately with no key, even if there are keys still queued.
        """
        async with self._condition:
            await self._condition.wait_for(lambda: bool(self._queue) or self._shutting_down)
            if self._shutting_down:
                return None, True
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key, False

    async def done(self, key: keys.ObjectKey) -> None:
        """ Mark the end of the key's processing; re-queue it if added meanwhile. """
        async with self._condition:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._condition.notify()

    def forget(self, key: keys.ObjectKey) -> None:
        """ Drop the history of the key's failures, so that the backoff starts anew. """
        self._rate_limiter.forget(key)

    def num_requeues(self, key: keys.ObjectKey) -> int:
        return self._rate_limiter.num_requeues(key)

    async def add_rate_limited(self, key: keys.ObjectKey) -> None:
        """ Add the key after the delay as decided by the rate limiter. """
        await self.add_after(key, self._rate_limiter.when(key))

    async def add_after(self, key: keys.ObjectKey, delay: float) -> None:
        """
        Add the key after the delay (in seconds) in the background.

        If the key is already waiting for a later addition, the earlier one wins.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            await self.add(key)
            return

        loop = asyncio.get_running_loop()
        ready_at = loop.time() + delay
        waiting = self._waiting.get(key)
        if waiting is not None:
            if waiting.ready_at <= ready_at:
                return
            waiting.task.cancel()

        task = asyncio.create_task(self._add_later(key, ready_at), name=f'delayed addition of {key}')
        self._waiting[key] = _Waiting(ready_at=ready_at, task=task)

    async def _add_later(self, key: keys.ObjectKey, ready_at: float) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(max(0.0, ready_at - loop.time()))

        # No awaiting between the check and the deletion: another addition can be scheduled.
        waiting = self._waiting.get(key)
        if waiting is not None and waiting.task is asyncio.current_task():
            del self._waiting[key]
        await self.add(key)

    async def shut_down(self) -> None:
        """ Stop accepting new keys and release all the waiting workers. """
        async with self._condition:
            self._shutting_down = True
            self._condition.notify_all()

        tasks = [waiting.task for waiting in self._waiting.values()]
        self._waiting.clear()
        await aiotasks.stop(tasks, title="delayed additions", logger=logger)
        if self._queue:
            logger.debug(f"Unprocessed keys are left in the queue {self!r}: {list(self._queue)!r}")
