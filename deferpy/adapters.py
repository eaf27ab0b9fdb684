from __future__ import annotations
import asyncio
from typing import Any, AsyncContextManager, Awaitable, Callable, ContextManager, Optional, Tuple, TypeVar
from .channel import Channel
from .context import ResourceContext
from .current import resource
from .errors import AdapterTaskFailure
from .fiber import Fiber, spawn
from .logger import get_logger

A = TypeVar("A")


@resource
async def enter_do(ctx: ResourceContext, acquire: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
    """Turn a callback-shaped acquisition into a plain return value.

    ``acquire(callback, *args, **kwargs)`` is expected to set a resource up,
    ``await callback(*values)`` and tear the resource down once the callback
    returns. ``enter_do`` runs it in a child fiber and returns the values the
    callback was given (a single value unwrapped, several as a tuple). The
    child stays suspended inside the callback until ``ctx`` is cleaned up;
    the teardown then runs and its outcome is reported to whichever task is
    running the cleanup.

    Awaited cleanup (``async with context()``, ``await ctx.cleanup()``)
    waits for the teardown and raises its failure. Synchronous cleanup only
    lets the child finish; a teardown failure is logged at ERROR.

    Raises:
        AdapterTaskFailure: If ``acquire`` fails, or returns, before calling
            back. Teardown failures raise it later, from cleanup.

    Example:
        ```python
        async def connection(callback, url):
            conn = await connect(url)
            try:
                await callback(conn)
            finally:
                await conn.close()

        async with context():
            conn = await enter_do(connection, "db://local")
        ```
    """
    values: Channel[Optional[Tuple[Any, ...]]] = Channel(maxsize=1)
    done: Channel[bool] = Channel(maxsize=1)
    called = False

    async def proxy(*vals: Any) -> None:
        nonlocal called
        if called: raise RuntimeError("enter_do callback invoked more than once")
        called = True
        await values.send(vals)
        await done.receive()

    async def child() -> Any:
        try:
            result = await acquire(proxy, *args, **kwargs)
        except BaseException:
            # the parent may still be waiting; never block here
            values.offer(None)
            raise
        if not called: values.offer(None)
        return result

    name = getattr(acquire, "__qualname__", None) or type(acquire).__name__
    fiber = spawn(child(), name=f"enter_do:{name}")
    try:
        vals = await values.receive()
    except asyncio.CancelledError:
        fiber.interrupt()
        raise
    if vals is None:
        error = await _failure(fiber)
        if error is None:
            error = RuntimeError(f"{name} returned without invoking its callback")
        raise AdapterTaskFailure(fiber, error, "setup")

    release = _Release(fiber, done, name)
    ctx.register(release)

    if len(vals) == 1: return vals[0]
    return vals if vals else None


async def _failure(fiber: Fiber[Any]) -> Optional[BaseException]:
    exit_ = await fiber.await_()
    if exit_.success: return None
    assert exit_.cause is not None
    return next(exit_.cause.defects(), None) or asyncio.CancelledError(f"{fiber.name} was cancelled")


async def _teardown(fiber: Fiber[Any]) -> None:
    error = await _failure(fiber)
    if error is not None:
        raise AdapterTaskFailure(fiber, error, "teardown")


class _Release:
    """Cleanup action that lets an ``enter_do`` child run its teardown.

    Awaited cleanup (``aclose``) waits for the child and raises its teardown
    failure. Synchronous cleanup (``close``), or cleanup from another event
    loop, only signals the child; a teardown failure is then logged once the
    child finishes.
    """
    def __init__(self, fiber: Fiber[Any], done: Channel[bool], name: str):
        self._fiber = fiber
        self._done = done
        self._loop = asyncio.get_running_loop()
        self.__qualname__ = f"enter_do:{name}.release"

    def _signal(self) -> None:
        self._done.offer(True)
        self._fiber.on_done(_report)

    def close(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop: self._signal()
        else: self._loop.call_soon_threadsafe(self._signal)

    async def aclose(self) -> None:
        if asyncio.get_running_loop() is not self._loop:
            self.close()
            return
        self._done.offer(True)
        await _teardown(self._fiber)


def _report(fiber: Fiber[Any]) -> None:
    exit_ = fiber.poll()
    if exit_ is None or exit_.success: return
    assert exit_.cause is not None
    get_logger().error("enter_do teardown failed after synchronous cleanup",
                       fiber=fiber.name, error=exit_.cause.render(include_traces=False).strip())


@resource
def enter_context(ctx: ResourceContext, cm: ContextManager[A]) -> A:
    """Enter ``cm`` and register its exit on ``ctx``; returns what ``__enter__`` gave."""
    cm_type = type(cm)
    value = cm_type.__enter__(cm)
    exit_ = cm_type.__exit__

    def close() -> None:
        exit_(cm, None, None, None)
    close.__qualname__ = f"{cm_type.__qualname__}.__exit__"
    ctx.register(close)
    return value


@resource
async def aenter_context(ctx: ResourceContext, cm: AsyncContextManager[A]) -> A:
    cm_type = type(cm)
    value = await cm_type.__aenter__(cm)
    aexit = cm_type.__aexit__

    def close() -> Awaitable[Any]:
        return aexit(cm, None, None, None)
    close.__qualname__ = f"{cm_type.__qualname__}.__aexit__"
    ctx.register(close)
    return value
