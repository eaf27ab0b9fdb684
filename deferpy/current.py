from __future__ import annotations
import asyncio
import atexit
import contextvars
import functools
import inspect
import sys
from types import FrameType
from typing import Any, Callable, Optional, TypeVar
from .config import settings
from .context import ResourceContext
from .errors import CompositeCleanupError
from .logger import get_logger

F = TypeVar("F", bound=Callable[..., Any])

_current: contextvars.ContextVar[Optional[ResourceContext]] = contextvars.ContextVar("deferpy_context", default=None)

# Process-wide fallback used when no scope is active. Never finalized by GC;
# drained by global_cleanup() and at interpreter exit.
_global = ResourceContext(needs_finalizer=False)

_TOP_LEVEL = {"<module>"}


def bind(ctx: ResourceContext) -> contextvars.Token:
    return _current.set(ctx)


def unbind(token: contextvars.Token) -> None:
    _current.reset(token)


def active_context() -> Optional[ResourceContext]:
    """The innermost scope's context, or None. Never falls back."""
    return _current.get()


def global_context() -> ResourceContext:
    return _global


def _resolve(frame: Optional[FrameType]) -> ResourceContext:
    ctx = _current.get()
    if ctx is not None:
        return ctx
    _fallback_diagnostic(frame)
    return _global


def _fallback_diagnostic(frame: Optional[FrameType]) -> None:
    log = get_logger()
    fields: dict[str, Any] = {"group": "context"}
    top_level = True
    if frame is not None:
        code = frame.f_code
        fields.update(file=code.co_filename, line=frame.f_lineno, function=code.co_name)
        top_level = code.co_name in _TOP_LEVEL
    msg = ("Using global ResourceContext; use a 'with context()' block to avoid this warning. "
           "Use deferpy.global_cleanup() to clean up the resource.")
    # Interactive sessions and scripts get a notice, library code a warning.
    if top_level: log.info(msg, **fields)
    else: log.warn(msg, **fields)


def current_context() -> ResourceContext:
    """Resolve the context a resource operation should register with.

    Returns the context of the innermost active ``context()`` scope in this
    thread or task. Outside any scope this falls back to the global context
    and logs a diagnostic: a notice for module-level and interactive callers,
    a warning for callers inside a function body.
    """
    return _resolve(sys._getframe(1))


def defer(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Call ``fn(*args, **kwargs)`` when the current context is cleaned up."""
    _resolve(sys._getframe(1)).defer(fn, *args, **kwargs)


def resource(fn: F) -> F:
    """Declare a resource-creating operation.

    ``fn`` takes the context as its first parameter, or as its second one
    when the first is ``self`` / ``cls``. Callers may pass a
    ``ResourceContext`` there explicitly (positionally or by name) or leave
    it out, in which case the current context is resolved at the call site.

    Example:
        ```python
        @resource
        def open_log(ctx, path):
            return ctx.register(open(path, "a"))

        with context():
            f = open_log("app.log")        # current scope's context
        f2 = open_log(ctx, "other.log")    # explicit
        ```
    """
    params = list(inspect.signature(fn).parameters.values())
    idx = 1 if params and params[0].name in ("self", "cls") else 0
    if len(params) <= idx:
        raise TypeError(f"{fn.__qualname__} must accept the context as parameter {idx + 1}")
    name = params[idx].name

    def _args(frame: Optional[FrameType], args: tuple, kwargs: dict) -> tuple:
        if name in kwargs: return args
        if len(args) > idx and isinstance(args[idx], ResourceContext): return args
        return args[:idx] + (_resolve(frame),) + args[idx:]

    if inspect.iscoroutinefunction(fn):
        @functools.wraps(fn)
        async def async_op(*args: Any, **kwargs: Any) -> Any:
            return await fn(*_args(sys._getframe(1), args, kwargs), **kwargs)
        return async_op  # type: ignore[return-value]

    @functools.wraps(fn)
    def op(*args: Any, **kwargs: Any) -> Any:
        return fn(*_args(sys._getframe(1), args, kwargs), **kwargs)
    return op  # type: ignore[return-value]


def global_cleanup() -> None:
    """Drain the global context now. Safe to call repeatedly."""
    _global.cleanup_sync()


async def aglobal_cleanup() -> None:
    await _global.cleanup()


def _drain_at_exit() -> None:
    if not len(_global): return
    log = get_logger()
    try:
        asyncio.run(_global.cleanup())
    except CompositeCleanupError as err:
        log.error("Error cleaning up global ResourceContext at exit", error=err.render())
    except Exception as ex:
        log.error("Error cleaning up global ResourceContext at exit", error=repr(ex))


if settings.global_atexit:
    atexit.register(_drain_at_exit)
