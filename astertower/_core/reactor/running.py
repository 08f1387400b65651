"""
The control loop: wiring and running the whole engine.

The controller starts the watching of the objects' changes, waits for
the caches to sync, starts the workers, and stops it all on a stop-flag.
The order matters: the handlers are subscribed before the watching begins
(so that no changes are missed), and the workers are started after
the caches are synced (so that no objects are mistaken as absent).

If the watching stops on its own, the workers are stopped too, and
the watching's error is raised: the cache is not updated anymore,
so the reconciliation would go on with the outdated objects.
"""
import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import Iterator

from astertower._cogs.aiokits import aioadapters, aiotasks
from astertower._cogs.clients import auth, piggybacking
from astertower._cogs.configs import configuration
from astertower._cogs.structs import credentials, references
from astertower._core.intents import policies
from astertower._core.reactor import adapting, informing, queueing, \
                                     ratelimiting, reconciling, working

logger = logging.getLogger(__name__)


class WatchingStoppedError(Exception):
    """ Raised when the watching exits without an error while the controller is running. """


class Controller:

    def __init__(
            self,
            *,
            source: informing.WatchSource,
            store: informing.ObjectStore,
            settings: configuration.OperatorSettings | None = None,
            policy: policies.ReconciliationPolicy | None = None,
            rate_limiter: ratelimiting.RateLimiter | None = None,
            name: str | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.source = source
        self.store = store
        self.settings = settings if settings is not None else configuration.OperatorSettings()
        self.queue = queueing.RateLimitingQueue(name=name, settings=self.settings, rate_limiter=rate_limiter)
        self.adapter = adapting.EventAdapter(queue=self.queue)
        self.reconciler = reconciling.Reconciler(store=store, settings=self.settings, policy=policy)
        self.pool = working.WorkerPool(queue=self.queue, reconciler=self.reconciler, settings=self.settings)
        self.source.subscribe(self.adapter)

    async def run(
            self,
            *,
            worker_count: int | None = None,
            stop_flag: aioadapters.Flag | None = None,
    ) -> None:
        """
        Run the controller until the stop-flag is raised (or forever if none).

        Raise :class:`CacheSyncError` if the caches are not synced in time.
        If the watching fails, its error is raised once the workers are stopped.
        """
        title = f"watching for {self.name}" if self.name else "watching"
        watcher = aiotasks.create_guarded_task(
            coro=self.source.watch(),
            name=title,
            cancellable=True,
            logger=logger,
        )
        stopper = asyncio.create_task(_wait_for_stop(watcher, stop_flag), name="stopper")
        try:
            try:
                await self.pool.run(
                    worker_count=worker_count,
                    stop_flag=stopper,
                    has_synced=[self.source.has_synced],
                )
            finally:
                await aiotasks.stop([stopper], title="stopper", logger=logger)
                await aiotasks.stop([watcher], title=title, logger=logger)
        except working.CacheSyncError:
            _check_watching(watcher)
            raise
        _check_watching(watcher)


def _check_watching(watcher: aiotasks.Task) -> None:
    # Cancelled means stopped by us; done otherwise means it has exited by itself.
    if watcher.done() and not watcher.cancelled():
        aiotasks.reraise([watcher])
        raise WatchingStoppedError("The watching has exited while the controller was running.")


async def _wait_for_stop(watcher: aiotasks.Task, stop_flag: aioadapters.Flag | None) -> None:
    waiter = asyncio.create_task(aioadapters.wait_flag(stop_flag), name="stop-flag waiter")
    try:
        await asyncio.wait([watcher, waiter], return_when=asyncio.FIRST_COMPLETED)
    finally:
        await aiotasks.stop([waiter], title="stop-flag waiter", logger=logger)
    if waiter.done() and not waiter.cancelled():
        result = waiter.result()
        if isinstance(result, signal.Signals):
            logger.info(f"Signal {result.name} is received. Controller is stopping.")
        else:
            logger.info("Stop-flag is raised. Controller is stopping.")


def run(
        *,
        source: informing.WatchSource,
        store: informing.ObjectStore,
        settings: configuration.OperatorSettings | None = None,
        policy: policies.ReconciliationPolicy | None = None,
        worker_count: int | None = None,
        stop_flag: aioadapters.Flag | None = None,
        name: str | None = None,
) -> None:
    """
    Run the whole controller synchronously.

    This function should be used to run a controller in normal sync mode.
    """
    try:
        asyncio.run(operator(
            source=source,
            store=store,
            settings=settings,
            policy=policy,
            worker_count=worker_count,
            stop_flag=stop_flag,
            name=name,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        source: informing.WatchSource,
        store: informing.ObjectStore,
        settings: configuration.OperatorSettings | None = None,
        policy: policies.ReconciliationPolicy | None = None,
        worker_count: int | None = None,
        stop_flag: aioadapters.Flag | None = None,
        name: str | None = None,
) -> None:
    """
    Run the whole controller asynchronously, stopping on OS signals too.

    This function should be used to run a controller in an asyncio event-loop
    if the controller is orchestrated explicitly and manually.
    """
    loop = asyncio.get_running_loop()
    signalled: aiotasks.Future = loop.create_future()
    controller = Controller(source=source, store=store, settings=settings, policy=policy, name=name)
    with _signal_handlers(loop, signalled):
        flag_waiter = asyncio.create_task(_wait_for_any(signalled, stop_flag), name="stop-flag waiter")
        try:
            await controller.run(worker_count=worker_count, stop_flag=flag_waiter)
        finally:
            await aiotasks.stop([flag_waiter], title="stop-flag waiter", logger=logger)


async def cluster_operator(
        *,
        resource: references.Resource,
        namespace: str | None = None,
        settings: configuration.OperatorSettings | None = None,
        policy: policies.ReconciliationPolicy | None = None,
        worker_count: int | None = None,
        stop_flag: aioadapters.Flag | None = None,
        connection: credentials.ConnectionInfo | None = None,
) -> None:
    """
    Run the controller for a resource in a real cluster via its API.

    If the connection info is not given, it is taken from the environment
    (a service account if in a cluster, or a kubeconfig file otherwise).
    """
    settings = settings if settings is not None else configuration.OperatorSettings()
    info = connection if connection is not None else piggybacking.login(logger=logger)
    context = auth.APIContext(info)
    token = auth.context_var.set(context)
    try:
        informer = informing.Informer(settings=settings, resource=resource, namespace=namespace)
        store = informing.ClusterStore(informer=informer, settings=settings)
        await operator(
            source=informer,
            store=store,
            settings=settings,
            policy=policy,
            worker_count=worker_count,
            stop_flag=stop_flag,
            name=repr(resource),
        )
    finally:
        auth.context_var.reset(token)
        await context.close()


@contextlib.contextmanager
def _signal_handlers(loop: asyncio.AbstractEventLoop, signalled: aiotasks.Future) -> Iterator[None]:
    """ Resolve the future on SIGINT/SIGTERM while inside; only in the main thread. """
    installed: list[signal.Signals] = []
    if threading.current_thread() is not threading.main_thread():
        logger.warning("OS signals are ignored: running not in the main thread.")
    else:
        for signum in [signal.SIGINT, signal.SIGTERM]:
            try:
                loop.add_signal_handler(signum, _resolve_signalled, signalled, signum)
            except NotImplementedError:
                logger.warning("OS signals are ignored: the event loop does not support them.")
                break
            installed.append(signum)
    try:
        yield
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def _resolve_signalled(signalled: aiotasks.Future, signum: signal.Signals) -> None:
    # Repeated signals while stopping.
    if not signalled.done():
        signalled.set_result(signum)


async def _wait_for_any(*flags: aioadapters.Flag | None) -> object:
    """ Return the result of the first raised flag. """
    waiters = [asyncio.create_task(aioadapters.wait_flag(flag)) for flag in flags]
    try:
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        await aiotasks.stop(waiters, title="flag waiters", logger=logger)
    return done.pop().result()
