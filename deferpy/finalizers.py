from __future__ import annotations
import asyncio
import threading
from typing import Awaitable, Callable, Optional, Set
from .errors import CompositeCleanupError
from .logger import get_logger

# Strong references to scheduled jobs; the event loop only keeps weak ones.
_jobs: Set[asyncio.Task] = set()


def running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


async def _guarded(job: Callable[[], Awaitable[None]], what: str) -> None:
    # Nobody is waiting on this job, so failures can only be reported.
    log = get_logger()
    try:
        await job()
    except CompositeCleanupError as err:
        log.error(f"Error cleaning up {what}", error=err.render())
    except Exception as ex:
        log.error(f"Error cleaning up {what}", error=repr(ex))
    else:
        log.debug(f"Cleaned up {what}")


def _spawn(job: Callable[[], Awaitable[None]], what: str) -> None:
    task = asyncio.get_running_loop().create_task(_guarded(job, what))
    _jobs.add(task)
    task.add_done_callback(_jobs.discard)


def _run_on_worker(job: Callable[[], Awaitable[None]], what: str) -> threading.Thread:
    t = threading.Thread(target=asyncio.run, args=(_guarded(job, what),), name="deferpy-finalizer", daemon=True)
    t.start()
    return t


def schedule(job: Callable[[], Awaitable[None]], loop: Optional[asyncio.AbstractEventLoop], what: str) -> None:
    """Enqueue ``job`` from inside a GC finalizer without running it inline.

    The job goes to ``loop`` when it is still usable, otherwise to a fresh
    daemon worker thread running its own event loop. Finalizers may fire on
    any thread and at any allocation, so the job can interleave with code
    that believes it has exclusive access to the resources involved.
    """
    log = get_logger()
    if loop is not None and not loop.is_closed():
        try:
            loop.call_soon_threadsafe(_spawn, job, what)
            log.debug(f"Scheduled cleanup of {what} on event loop")
            return
        except RuntimeError:
            # loop closed between the check and the call
            pass
    _run_on_worker(job, what)
    log.debug(f"Scheduled cleanup of {what} on worker thread")
