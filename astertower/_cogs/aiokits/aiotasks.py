"""
Helpers for the background tasks of the controller.

The long-living tasks are "guarded": their failures are logged at once,
not only when (and if) someone awaits them later. The stopping is always
a cancellation followed by the awaiting, so that the tasks' cleanups
are over by the time the caller proceeds.
"""
import asyncio
from collections.abc import Collection, Coroutine
from typing import Any

from astertower._cogs.helpers import typedefs

Future = asyncio.Future[Any]
Task = asyncio.Task[Any]


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        logger: typedefs.Logger,
        finishable: bool = False,
        cancellable: bool = False,
) -> Task:
    """
    Start a task that reports its own fate to the logs.

    The errors are always logged. The cancellations are logged unless
    the task is expected to be cancelled. The normal exits are logged
    as warnings unless the task is expected to finish at some point.
    The outcome is kept in the task as usual, so it can be awaited.
    """
    return asyncio.create_task(
        _guard(coro, title=name.capitalize(), logger=logger,
               finishable=finishable, cancellable=cancellable),
        name=name,
    )


async def _guard(
        coro: Coroutine[Any, Any, Any],
        *,
        title: str,
        logger: typedefs.Logger,
        finishable: bool,
        cancellable: bool,
) -> Any:
    try:
        result = await coro
    except asyncio.CancelledError:
        if not cancellable:
            logger.debug(f"{title} is cancelled.")
        raise
    except Exception as e:
        logger.exception(f"{title} has failed: {e}")
        raise
    if not finishable:
        logger.warning(f"{title} has finished unexpectedly.")
    return result


async def wait(
        tasks: Collection[Task],
        *,
        timeout: float | None = None,
        return_when: str = asyncio.ALL_COMPLETED,
) -> tuple[set[Task], set[Task]]:
    """ The same as :func:`asyncio.wait`, but an empty collection is fine. """
    if not tasks:
        return set(), set()
    return await asyncio.wait(tasks, timeout=timeout, return_when=return_when)


async def stop(
        tasks: Collection[Task],
        *,
        title: str,
        logger: typedefs.Logger,
) -> None:
    """
    Cancel the unfinished tasks and wait until they are actually finished.

    The tasks' own errors are not raised here; see :func:`reraise` for that.
    """
    unfinished = [task for task in tasks if not task.done()]
    if not unfinished:
        return
    for task in unfinished:
        task.cancel()
    await asyncio.wait(unfinished)
    logger.debug(f"Stopped {len(unfinished)} {title} task(s).")


def reraise(tasks: Collection[Task]) -> None:
    """ Raise the error of the first failed task, if any; cancellations are ignored. """
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]
