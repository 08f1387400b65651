"""
The worker pool: the concurrent draining of the queue into the reconciler.

Every worker takes one key at a time, reconciles it, and reports the result
back to the queue: the successful keys are forgotten (their backoffs reset),
the failed ones are re-added with the growing backoff. The queue guarantees
that the same key is never given to two workers at once, so the workers
need no coordination between each other.

The workers are started only after the caches are fully synced. Otherwise,
the objects not yet seen in the caches would be considered as absent.
"""
import asyncio
import logging
from collections.abc import Callable, Collection

from astertower._cogs.aiokits import aioadapters, aiotasks
from astertower._cogs.configs import configuration
from astertower._core.reactor import queueing, reconciling

logger = logging.getLogger(__name__)


class CacheSyncError(Exception):
    """ Raised when the caches are not synced in time, or the controller is stopped before that. """


async def wait_for_cache_sync(
        *,
        has_synced: Collection[Callable[[], bool]],
        settings: configuration.OperatorSettings,
        stop_flag: aioadapters.Flag | None = None,
) -> None:
    loop = asyncio.get_running_loop()
    timeout = settings.working.sync_timeout
    deadline = loop.time() + timeout if timeout is not None else None
    while not all(fn() for fn in has_synced):
        if aioadapters.check_flag(stop_flag):
            raise CacheSyncError("Stopped before the caches are synced.")
        if deadline is not None and loop.time() >= deadline:
            raise CacheSyncError(f"Timed out waiting for the caches to sync in {timeout}s.")
        await asyncio.sleep(settings.working.sync_interval)


class WorkerPool:

    def __init__(
            self,
            *,
            queue: queueing.RateLimitingQueue,
            reconciler: reconciling.Reconciler,
            settings: configuration.OperatorSettings | None = None,
    ) -> None:
        super().__init__()
        self.queue = queue
        self.reconciler = reconciler
        self.settings = settings if settings is not None else configuration.OperatorSettings()

    async def run(
            self,
            *,
            worker_count: int | None = None,
            stop_flag: aioadapters.Flag | None = None,
            has_synced: Collection[Callable[[], bool]] = (),
    ) -> None:
        """
        Process the queue until stopped; fail if the caches are not synced.

        When stopped, the queue is shut down, and the workers finish their
        current keys within the exit timeout; after that, they are cancelled.
        Without a stop-flag, the pool runs until cancelled.
        """
        worker_count = worker_count if worker_count is not None else self.settings.working.workers
        if worker_count < 1:
            raise ValueError(f"At least one worker is needed, got {worker_count!r}.")

        try:
            logger.debug("Waiting for the caches to sync.")
            await wait_for_cache_sync(has_synced=has_synced, settings=self.settings, stop_flag=stop_flag)

            logger.info(f"Starting {worker_count} workers.")
            workers = [
                aiotasks.create_guarded_task(
                    coro=self._work(),
                    name=f"worker #{idx}",
                    finishable=True,
                    logger=logger,
                )
                for idx in range(worker_count)
            ]
            stopper = asyncio.create_task(aioadapters.wait_flag(stop_flag),
                                          name="stop-flag waiter")
            try:
                # The workers only exit on the queue's shutdown, or on unexpected errors.
                await aiotasks.wait([stopper, *workers], return_when=asyncio.FIRST_COMPLETED)
            finally:
                logger.info("Stopping the workers.")
                await self.queue.shut_down()
                _, pending = await aiotasks.wait(workers, timeout=self.settings.working.exit_timeout)
                await aiotasks.stop(pending, title="workers", logger=logger)
                await aiotasks.stop([stopper], title="stop-flag waiter", logger=logger)
            aiotasks.reraise(workers)
        finally:
            await self.queue.shut_down()

    async def _work(self) -> None:
        while await self.process_next_item():
            pass

    async def process_next_item(self) -> bool:
        """
        Process one key from the queue; return ``False`` if the queue is shut down.
        """
        key, shutdown = await self.queue.get()
        if shutdown or key is None:
            return False

        try:
            await self.reconciler.sync(key)
        except Exception as e:
            logger.exception(f"Reconciliation of {key!r} has failed; will retry: {e!r}")
            await self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
        finally:
            await self.queue.done(key)
        return True
