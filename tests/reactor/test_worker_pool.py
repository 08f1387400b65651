import asyncio
from unittest.mock import AsyncMock

import async_timeout
import pytest

from astertower._cogs.clients.errors import APIConflictError, make_status
from astertower._core.reactor.queueing import RateLimitingQueue
from astertower._core.reactor.ratelimiting import ItemExponentialFailureRateLimiter
from astertower._core.reactor.reconciling import Reconciler
from astertower._core.reactor.working import CacheSyncError, WorkerPool, wait_for_cache_sync


class RecordingLimiter(ItemExponentialFailureRateLimiter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.delays = []

    def when(self, item):
        delay = super().when(item)
        self.delays.append(delay)
        return delay


@pytest.fixture()
def limiter():
    return RecordingLimiter(base_delay=0.01, max_delay=0.04)


@pytest.fixture()
def queue(limiter):
    return RateLimitingQueue(rate_limiter=limiter)


@pytest.fixture()
def reconciler(memstore, settings):
    reconciler = Reconciler(store=memstore, settings=settings)
    reconciler.sync = AsyncMock()
    return reconciler


@pytest.fixture()
def pool(queue, reconciler, settings):
    return WorkerPool(queue=queue, reconciler=reconciler, settings=settings)


async def test_successful_keys_are_forgotten(pool, queue, reconciler, mocker):
    forget = mocker.spy(queue, 'forget')
    done = mocker.spy(queue, 'done')
    add_rate_limited = mocker.spy(queue, 'add_rate_limited')
    await queue.add('ns/a')

    result = await pool.process_next_item()

    assert result is True
    assert reconciler.sync.await_args_list[0][0][0] == 'ns/a'
    assert forget.call_count == 1
    assert done.call_count == 1
    assert not add_rate_limited.called
    assert len(queue) == 0


async def test_failed_keys_are_requeued_with_backoff(pool, queue, reconciler, mocker, limiter, assert_logs):
    reconciler.sync.side_effect = APIConflictError(make_status(409, 'Conflict', 'stale'), status=409)
    forget = mocker.spy(queue, 'forget')
    done = mocker.spy(queue, 'done')
    await queue.add('ns/a')

    result = await pool.process_next_item()

    assert result is True
    assert not forget.called
    assert done.call_count == 1
    assert queue.num_requeues('ns/a') == 1
    assert limiter.delays == [0.01]
    assert_logs([r"Reconciliation of 'ns/a' has failed; will retry"])

    async with async_timeout.timeout(1.0):
        key, _ = await queue.get()
    assert key == 'ns/a'


async def test_unexpected_errors_are_requeued_too(pool, queue, reconciler):
    reconciler.sync.side_effect = ZeroDivisionError()
    await queue.add('ns/a')

    await pool.process_next_item()

    assert queue.num_requeues('ns/a') == 1
    await queue.shut_down()


async def test_done_is_called_even_on_cancellation(pool, queue, reconciler, mocker):
    reconciler.sync.side_effect = asyncio.CancelledError()
    done = mocker.spy(queue, 'done')
    await queue.add('ns/a')

    with pytest.raises(asyncio.CancelledError):
        await pool.process_next_item()

    assert done.call_count == 1
    assert queue.num_requeues('ns/a') == 0


async def test_nothing_is_processed_after_shutdown(pool, queue, reconciler):
    await queue.add('ns/a')
    await queue.shut_down()

    result = await pool.process_next_item()

    assert result is False
    assert not reconciler.sync.called


async def test_backoffs_grow_for_consecutive_failures_up_to_the_ceiling(pool, reconciler, queue, limiter):
    reconciler.sync.side_effect = RuntimeError("boo!")
    await queue.add('ns/a')

    stop_flag = asyncio.Event()
    task = asyncio.create_task(pool.run(worker_count=1, stop_flag=stop_flag))
    await asyncio.sleep(0.3)
    stop_flag.set()
    async with async_timeout.timeout(1.0):
        await task

    assert reconciler.sync.await_count >= 4
    assert limiter.delays[:3] == [0.01, 0.02, 0.04]
    assert set(limiter.delays[3:]) == {0.04}


async def test_same_key_is_never_processed_concurrently(queue, memstore, settings):
    running = 0
    max_running = 0
    calls = 0

    class GuardedReconciler(Reconciler):
        async def sync(self, key):
            nonlocal running, max_running, calls
            running += 1
            calls += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.01)
            running -= 1

    reconciler = GuardedReconciler(store=memstore, settings=settings)
    pool = WorkerPool(queue=queue, reconciler=reconciler, settings=settings)

    async def spam(n: int):
        for _ in range(n):
            await queue.add('ns/a')
            await asyncio.sleep(0.001)

    stop_flag = asyncio.Event()
    task = asyncio.create_task(pool.run(worker_count=5, stop_flag=stop_flag))
    await asyncio.gather(*[spam(20) for _ in range(10)])
    await asyncio.sleep(0.05)
    stop_flag.set()
    async with async_timeout.timeout(1.0):
        await task

    assert calls >= 1
    assert max_running == 1


async def test_distinct_keys_are_processed_concurrently(queue, memstore, settings):
    running = 0
    max_running = 0

    class SlowReconciler(Reconciler):
        async def sync(self, key):
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.05)
            running -= 1

    reconciler = SlowReconciler(store=memstore, settings=settings)
    pool = WorkerPool(queue=queue, reconciler=reconciler, settings=settings)
    for name in 'abc':
        await queue.add(f'ns/{name}')

    stop_flag = asyncio.Event()
    task = asyncio.create_task(pool.run(worker_count=3, stop_flag=stop_flag))
    await asyncio.sleep(0.1)
    stop_flag.set()
    async with async_timeout.timeout(1.0):
        await task

    assert max_running == 3


async def test_stopping_shuts_the_queue_down(pool, queue):
    stop_flag = asyncio.Event()
    task = asyncio.create_task(pool.run(worker_count=2, stop_flag=stop_flag))
    await asyncio.sleep(0.05)
    assert not queue.shutting_down()

    stop_flag.set()
    async with async_timeout.timeout(1.0):
        await task

    assert queue.shutting_down()


async def test_stuck_workers_are_cancelled_after_the_exit_timeout(pool, queue, reconciler, settings, timer):
    settings.working.exit_timeout = 0.1
    async def slow_sync(key):
        await asyncio.sleep(10)

    reconciler.sync.side_effect = slow_sync
    await queue.add('ns/a')

    stop_flag = asyncio.Event()
    task = asyncio.create_task(pool.run(worker_count=1, stop_flag=stop_flag))
    await asyncio.sleep(0.05)
    stop_flag.set()
    async with timer, async_timeout.timeout(1.0):
        await task

    assert 0.05 <= timer.seconds < 0.5


@pytest.mark.parametrize('worker_count', [0, -1])
async def test_at_least_one_worker_is_required(pool, worker_count):
    with pytest.raises(ValueError):
        await pool.run(worker_count=worker_count, stop_flag=asyncio.Event())


async def test_workers_are_not_started_if_the_caches_are_not_synced(pool, queue, reconciler, settings):
    settings.working.sync_timeout = 0.1
    await queue.add('ns/a')

    with pytest.raises(CacheSyncError):
        async with async_timeout.timeout(1.0):
            await pool.run(worker_count=1, stop_flag=asyncio.Event(), has_synced=[lambda: False])

    assert not reconciler.sync.called
    assert queue.shutting_down()


async def test_cache_sync_waits_until_synced(settings, timer):
    synced = False

    async def delayed_sync():
        nonlocal synced
        await asyncio.sleep(0.1)
        synced = True

    async with timer, async_timeout.timeout(1.0):
        task = asyncio.create_task(delayed_sync())
        await wait_for_cache_sync(has_synced=[lambda: True, lambda: synced], settings=settings)
        await task

    assert 0.09 <= timer.seconds < 0.5


async def test_cache_sync_is_instant_when_already_synced(settings, timer):
    async with timer, async_timeout.timeout(1.0):
        await wait_for_cache_sync(has_synced=[lambda: True], settings=settings)
    assert timer.seconds < 0.05


async def test_cache_sync_fails_on_timeout(settings, timer):
    settings.working.sync_timeout = 0.1

    with pytest.raises(CacheSyncError, match=r"Timed out"):
        async with timer, async_timeout.timeout(1.0):
            await wait_for_cache_sync(has_synced=[lambda: False], settings=settings)

    assert 0.09 <= timer.seconds < 0.5


async def test_cache_sync_fails_when_stopped(settings, timer):
    settings.working.sync_timeout = None
    stop_flag = asyncio.Event()
    stop_flag.set()

    with pytest.raises(CacheSyncError, match=r"Stopped"):
        async with timer, async_timeout.timeout(1.0):
            await wait_for_cache_sync(has_synced=[lambda: False], settings=settings, stop_flag=stop_flag)

    assert timer.seconds < 0.1
