from __future__ import annotations
import inspect
import weakref
from typing import Any, Callable, List, Optional, TypeVar
from .errors import CleanupActionError, CompositeCleanupError
from .finalizers import running_loop, schedule

A = TypeVar("A")


class ResourceContext:
    """Ordered collection of pending cleanup actions.

    Actions are zero-argument callables (which may return an awaitable) or
    objects with a ``close()`` / ``aclose()`` method. ``cleanup`` runs them
    last-registered first, attempts every one of them even when some fail,
    and then raises a single ``CompositeCleanupError`` describing all the
    failures. Once cleaned up the context is empty, so cleaning up again
    does nothing.

    Args:
        needs_finalizer: Also run pending actions when this context object is
            garbage collected. Scopes create their contexts without one.

    Example:
        ```python
        ctx = ResourceContext()
        f = ctx.register(open("data.csv"))
        ctx.defer(print, "done")
        try:
            process(f)
        finally:
            ctx.cleanup_sync()   # prints "done", then closes f
        ```
    """
    def __init__(self, needs_finalizer: bool = False):
        self._actions: List[Any] = []
        self.detached = False
        self._finalizer: Optional[weakref.finalize] = None
        if needs_finalizer:
            # the callback must not reference self, only the shared action list
            self._finalizer = weakref.finalize(self, _finalize_actions, self._actions, running_loop())
            self._finalizer.atexit = False

    def __len__(self) -> int: return len(self._actions)

    def __contains__(self, obj: Any) -> bool:
        """Whether ``obj`` is a pending action, or the owner of a pending bound method."""
        return any(a is obj or getattr(a, "__self__", None) is obj for a in self._actions)

    def __repr__(self) -> str:
        state = " detached" if self.detached else ""
        return f"<ResourceContext pending={len(self._actions)}{state}>"

    def register(self, action: A) -> A:
        """Add a cleanup action and return it unchanged.

        Raises:
            TypeError: If ``action`` is neither callable nor closable
        """
        if not (callable(action) or hasattr(action, "close") or hasattr(action, "aclose")):
            raise TypeError(f"cleanup action must be callable or have close()/aclose(), got {type(action).__name__}")
        self._actions.append(action)
        return action

    def defer(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Call ``fn(*args, **kwargs)`` when this context is cleaned up."""
        if not callable(fn): raise TypeError(f"defer() needs a callable, got {type(fn).__name__}")
        if args or kwargs:
            def action() -> Any: return fn(*args, **kwargs)
            action.__qualname__ = getattr(fn, "__qualname__", type(fn).__name__)
            self._actions.append(action)
        else:
            self._actions.append(fn)

    async def cleanup(self, finalizing: bool = False) -> None:
        """Run the pending actions, awaiting any awaitable they return.

        A detached context ignores this unless ``finalizing`` is set; its
        cleanup then belongs to the finalizer of the value it was detached to.

        Raises:
            CompositeCleanupError: If one or more actions failed
        """
        if self.detached and not finalizing: return
        await run_actions(_take(self._actions))

    def cleanup_sync(self, finalizing: bool = False) -> None:
        """Synchronous ``cleanup``. Awaitable results count as failures."""
        if self.detached and not finalizing: return
        run_actions_sync(_take(self._actions))


def _take(actions: List[Any]) -> List[Any]:
    pending = actions[::-1]
    actions.clear()
    return pending


async def _invoke(action: Any) -> None:
    if callable(action): r = action()
    elif hasattr(action, "aclose"): r = action.aclose()
    else: r = action.close()
    if inspect.isawaitable(r):
        await r


def _invoke_sync(action: Any) -> None:
    if callable(action): r = action()
    elif hasattr(action, "close"): r = action.close()
    else: raise TypeError(f"{type(action).__name__} only has aclose(); use 'await ctx.cleanup()'")
    if inspect.isawaitable(r):
        if inspect.iscoroutine(r): r.close()
        raise TypeError("cleanup action returned an awaitable; use 'await ctx.cleanup()'")


async def run_actions(pending: List[Any]) -> None:
    """Attempt every action in ``pending`` in order, then report failures.

    ``BaseException``s that are not ``Exception``s (cancellation, keyboard
    interrupt) do not stop the remaining actions; the first one is re-raised
    at the end with the collected failures as its context.
    """
    errors: List[CleanupActionError] = []
    interrupt: Optional[BaseException] = None
    for action in pending:
        try:
            await _invoke(action)
        except Exception as ex:
            errors.append(CleanupActionError(action, ex))
        except BaseException as ex:
            if interrupt is None: interrupt = ex
    _finish(errors, interrupt)


def run_actions_sync(pending: List[Any]) -> None:
    errors: List[CleanupActionError] = []
    interrupt: Optional[BaseException] = None
    for action in pending:
        try:
            _invoke_sync(action)
        except Exception as ex:
            errors.append(CleanupActionError(action, ex))
        except BaseException as ex:
            if interrupt is None: interrupt = ex
    _finish(errors, interrupt)


def _finish(errors: List[CleanupActionError], interrupt: Optional[BaseException]) -> None:
    composite = CompositeCleanupError(errors) if errors else None
    if interrupt is not None:
        if composite is not None: interrupt.__context__ = composite
        raise interrupt
    if composite is not None:
        raise composite


def _finalize_actions(actions: List[Any], loop: Any) -> None:
    if not actions: return
    pending = _take(actions)
    async def job() -> None: await run_actions(pending)
    schedule(job, loop, "collected ResourceContext")
