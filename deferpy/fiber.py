from __future__ import annotations
import asyncio
from typing import Any, Callable, Coroutine, Generic, Optional, Set, TypeVar
import uuid
from .cause import Cause, Exit

A = TypeVar("A")

_live: Set[asyncio.Task] = set()


class Fiber(Generic[A]):
    """An asyncio task with a structured outcome.

    Args:
        task: The underlying asyncio task
        name: Optional name for debugging

    Attributes:
        id: Unique identifier for this fiber
        name: Optional name for debugging
        status: Current status ('running', 'done', 'failed', 'cancelled')
    """
    def __init__(self, task: asyncio.Task, name: Optional[str] = None):
        self._task = task
        self.id: str = uuid.uuid4().hex
        self.name: Optional[str] = name
        self._status: str = "running"
        task.add_done_callback(self._on_done)

    def _on_done(self, t: asyncio.Task) -> None:
        if t.cancelled(): self._status = "cancelled"
        elif t.exception() is not None: self._status = "failed"
        else: self._status = "done"

    @property
    def status(self) -> str:
        return self._status

    def poll(self) -> Optional[Exit[A]]:
        """The outcome if the fiber has finished, otherwise ``None``."""
        t = self._task
        if not t.done(): return None
        if t.cancelled(): return Exit(success=False, cause=Cause.interrupt())
        ex = t.exception()
        if ex is not None: return Exit(success=False, cause=Cause.die(ex))
        return Exit(success=True, value=t.result())

    def on_done(self, fn: Callable[["Fiber[A]"], Any]) -> None:
        """Call ``fn(fiber)`` from the event loop once the fiber has finished."""
        self._task.add_done_callback(lambda _t: fn(self))

    async def await_(self) -> Exit[A]:
        """Wait for completion and describe the outcome instead of raising.

        Example:
            ```python
            exit_ = await fiber.await_()
            if not exit_.success:
                print(exit_.cause.render())
            ```
        """
        try:
            v = await self._task
            return Exit(success=True, value=v)
        except asyncio.CancelledError:
            if not self._task.cancelled(): raise
            return Exit(success=False, cause=Cause.interrupt())
        except Exception as ex:
            return Exit(success=False, cause=Cause.die(ex))

    def interrupt(self) -> None:
        self._task.cancel()


def spawn(coro: Coroutine[Any, Any, A], name: Optional[str] = None) -> Fiber[A]:
    """Start ``coro`` as a fiber on the running loop.

    The fiber is kept alive until it finishes even if the caller drops it.
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _live.add(task)
    task.add_done_callback(_live.discard)
    return Fiber(task, name=name)
