from __future__ import annotations
import contextvars
import functools
import inspect
from typing import Any, Callable, Optional, Tuple, TypeVar, overload
from .context import ResourceContext
from .current import bind, unbind
from .errors import CompositeCleanupError
from .logger import get_logger

F = TypeVar("F", bound=Callable[..., Any])
_Entry = Tuple[ResourceContext, contextvars.Token]


class ContextScope:
    """Lexical resource scope with guaranteed cleanup.

    Entering creates a fresh ``ResourceContext`` and makes it the current
    context; leaving (normally or by exception) restores the previous current
    context and cleans the scope's context up, last registered first.

    Usable as ``with``, ``async with`` (awaits asynchronous cleanup actions),
    or as a decorator on plain and ``async def`` functions, where each call
    gets its own context.

    When the body raises and cleanup fails as well, the body's exception
    keeps propagating and carries the cleanup failure as a note. A cleanup
    failure after a successful body raises ``CompositeCleanupError``.

    Example:
        ```python
        with context() as ctx:
            f = ctx.register(open("in.txt"))
            lk = lock(threading.Lock())       # registers release on ctx
            ...
        # lock released, then f closed

        @context
        async def handler(path):
            tmp = temp_dir()
            ...
        ```
    """
    def __init__(self) -> None:
        # one stack of open entries per task or thread sharing this instance
        self._entries: contextvars.ContextVar[Tuple[_Entry, ...]] = contextvars.ContextVar(
            f"deferpy_scope_{id(self):x}", default=())

    def _enter(self) -> ResourceContext:
        ctx = ResourceContext(needs_finalizer=False)
        self._entries.set(self._entries.get() + ((ctx, bind(ctx)),))
        return ctx

    def _leave(self) -> ResourceContext:
        stack = self._entries.get()
        ctx, token = stack[-1]
        self._entries.set(stack[:-1])
        unbind(token)
        return ctx

    def __enter__(self) -> ResourceContext:
        return self._enter()

    def __exit__(self, et, exc, tb) -> bool:
        ctx = self._leave()
        try:
            ctx.cleanup_sync()
        except CompositeCleanupError as err:
            if exc is None: raise
            _attach(exc, err)
        return False

    async def __aenter__(self) -> ResourceContext:
        return self._enter()

    async def __aexit__(self, et, exc, tb) -> bool:
        ctx = self._leave()
        try:
            await ctx.cleanup()
        except CompositeCleanupError as err:
            if exc is None: raise
            _attach(exc, err)
        return False

    def __call__(self, fn: F) -> F:
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_scoped(*args: Any, **kwargs: Any) -> Any:
                async with ContextScope():
                    return await fn(*args, **kwargs)
            return async_scoped  # type: ignore[return-value]

        @functools.wraps(fn)
        def scoped(*args: Any, **kwargs: Any) -> Any:
            with ContextScope():
                return fn(*args, **kwargs)
        return scoped  # type: ignore[return-value]


def _attach(exc: BaseException, err: CompositeCleanupError) -> None:
    exc.add_note(f"While cleaning up the scope: {err}")
    get_logger().error("Scope cleanup failed while an exception was propagating",
                       body_error=repr(exc), error=err.render())


@overload
def context() -> ContextScope: ...
@overload
def context(fn: F) -> F: ...
def context(fn: Optional[F] = None) -> Any:
    """Open a resource scope: ``with context() as ctx`` or ``@context``."""
    if fn is None: return ContextScope()
    return ContextScope()(fn)
