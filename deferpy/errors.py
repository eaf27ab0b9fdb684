from __future__ import annotations
from typing import Any, Optional, Sequence, TYPE_CHECKING
from .cause import Cause

if TYPE_CHECKING:
    from .fiber import Fiber


class DeferError(Exception):
    """Base class for errors raised by deferpy."""


class SetupError(DeferError):
    """Raised by an acquisition before it registered any cleanup action.

    Nothing needs to be cleaned up when this propagates.
    """


class CleanupActionError(DeferError):
    """One deferred action failed while its context was cleaned up.

    The original exception is available as ``error``; this error carries its
    traceback and is caused by it. Inside a ``CompositeCleanupError`` each
    failure except the oldest is instead caused by the next older failure of
    the same cleanup call, so the default traceback display walks all of them.
    """
    def __init__(self, action: Any, error: BaseException):
        super().__init__(f"cleanup action {_describe(action)} failed: {error!r}")
        self.action = action
        self.error = error
        self.__traceback__ = error.__traceback__
        self.__cause__ = error


class CompositeCleanupError(DeferError):
    """Raised once per cleanup call when one or more actions failed.

    ``errors`` is ordered the way the actions were attempted: most recently
    registered first. ``__cause__`` points at the first of them, each one is
    caused by the next older failure, and ``cause`` holds the same sequence
    as a ``Cause.then`` chain.

    Example:
        ```python
        ctx = ResourceContext()
        ctx.defer(fail_a)
        ctx.defer(fail_b)
        try:
            ctx.cleanup_sync()
        except CompositeCleanupError as err:
            err.errors[0].action   # fail_b
            err.errors[1].action   # fail_a
        ```
    """
    def __init__(self, errors: Sequence[CleanupActionError]):
        if not errors: raise ValueError("CompositeCleanupError needs at least one error")
        self.errors: list[CleanupActionError] = list(errors)
        for newer, older in zip(self.errors, self.errors[1:]):
            newer.__cause__ = older
        n = len(self.errors)
        head = f"{n} cleanup action{'s' if n != 1 else ''} failed"
        super().__init__(head + ": " + "; ".join(repr(e.error) for e in self.errors))
        self.cause = Cause.sequential([e.error for e in self.errors])
        self.__cause__ = self.errors[0]

    @property
    def exceptions(self) -> list[BaseException]:
        return [e.error for e in self.errors]

    def render(self, include_traces: bool = True) -> str:
        return str(self) + "\n" + self.cause.render("  ", include_traces)


class AdapterTaskFailure(DeferError):
    """The acquisition function behind ``enter_do`` failed.

    Raised straight from ``enter_do`` when it fails before handing out the
    resource, and from cleanup when its teardown fails afterwards.
    """
    def __init__(self, fiber: Optional["Fiber"], error: BaseException, phase: str):
        name = f" {fiber.name!r}" if fiber is not None and fiber.name else ""
        super().__init__(f"adapter task{name} failed during {phase}: {error!r}")
        self.fiber = fiber
        self.error = error
        self.phase = phase
        self.__cause__ = error


def _describe(action: Any) -> str:
    name = getattr(action, "__qualname__", None) or getattr(action, "__name__", None)
    if name is not None: return name
    return type(action).__name__
