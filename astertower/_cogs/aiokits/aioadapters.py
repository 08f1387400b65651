"""
Stop-flags: the primitives that tell a running controller to stop.

A flag is raised either from inside the event loop (asyncio events & futures),
or from other threads (threading events & concurrent futures), e.g. when
the controller is embedded into a synchronous application. The controller
only checks and awaits the flags, it never raises or resets them.
"""
import asyncio
import concurrent.futures
import threading
from typing import Any

Flag = asyncio.Future[Any] | asyncio.Event | concurrent.futures.Future[Any] | threading.Event

# How often the cross-thread flags are re-checked while awaited.
THREADED_FLAG_INTERVAL = 0.1


def check_flag(flag: Flag | None) -> bool:
    """ Whether the flag is raised. An absent flag is never raised. """
    if flag is None:
        return False
    elif isinstance(flag, (asyncio.Event, threading.Event)):
        return flag.is_set()
    elif isinstance(flag, (asyncio.Future, concurrent.futures.Future)):
        return flag.done()
    else:
        raise TypeError(f"Unsupported type of a flag: {flag!r}")


async def wait_flag(flag: Flag | None) -> Any:
    """
    Wait until the flag is raised; return the future's result if it has one.

    An absent flag is never raised, so it is awaited until cancelled.
    The awaiting never cancels or otherwise affects the flag itself.

    The cross-thread flags are polled instead of being awaited in an executor,
    so that no executor's thread is kept busy by a flag that is never raised.
    """
    if flag is None:
        await asyncio.Event().wait()
    elif isinstance(flag, asyncio.Event):
        await flag.wait()
    elif isinstance(flag, asyncio.Future):
        return await asyncio.shield(flag)
    elif isinstance(flag, (threading.Event, concurrent.futures.Future)):
        while not check_flag(flag):
            await asyncio.sleep(THREADED_FLAG_INTERVAL)
        if isinstance(flag, concurrent.futures.Future):
            return flag.result()
    else:
        raise TypeError(f"Unsupported type of a flag: {flag!r}")
    return None
