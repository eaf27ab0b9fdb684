from __future__ import annotations
import weakref
from typing import TypeVar
from .context import ResourceContext
from .current import resource
from .finalizers import running_loop, schedule

V = TypeVar("V")


@resource
def detach(ctx: ResourceContext, value: V) -> V:
    """Tie cleanup of ``ctx`` to the lifetime of ``value`` and return ``value``.

    The context stops cleaning up when its scope exits. Once ``value`` has
    been garbage collected, the pending actions run on an event loop task
    (the loop running at the time of this call) or on a worker thread. Errors
    there cannot reach any caller and are logged instead, which makes this a
    last resort for handing resources to code that knows nothing about
    contexts.

    ``value`` must support weak references; wrap ints, strings, tuples and
    other immutable values in a small object first.

    The pending actions are kept alive until they run, so ``value`` must not
    be one of them (or the owner of a bound method registered as one), and
    no action may otherwise refer to it. Detach onto a wrapper instead.

    Raises:
        TypeError: If ``value`` does not support weak references
        ValueError: If ``value`` is itself a pending action of the context

    Example:
        ```python
        with context():
            d = Workdir(temp_dir())
            (d.path / "a.txt").write_text("hi")
            workdir = detach(d)
        # the directory lives until `workdir` is collected
        ```
    """
    try:
        weakref.ref(value)
    except TypeError:
        raise TypeError(f"cannot detach a context onto {type(value).__name__}: "
                        "it does not support weak references, wrap it in a mutable object") from None
    if value in ctx:
        raise ValueError(f"cannot detach a context onto {type(value).__name__}: it is one of the context's "
                         "own cleanup actions and would never be collected, detach onto an object that wraps it")
    ctx.detached = True
    loop = running_loop()

    async def job() -> None:
        await ctx.cleanup(finalizing=True)

    fin = weakref.finalize(value, schedule, job, loop, "detached ResourceContext")
    fin.atexit = False
    return value
