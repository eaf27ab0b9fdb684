from __future__ import annotations
from dataclasses import dataclass
import traceback
from typing import Generic, Iterator, Optional, Sequence, TypeVar

A = TypeVar("A")

@dataclass(frozen=True)
class Cause:
    """Structured description of why something failed.

    ``die`` wraps a single exception, ``then`` records two failures that
    happened one after the other (left first), ``interrupt`` marks a
    cancelled fiber.
    """
    kind: str
    left: Optional["Cause"] = None
    right: Optional["Cause"] = None
    defect: Optional[BaseException] = None

    def render(self, indent: str = "", include_traces: bool = True) -> str:
        def line(s: str) -> str: return indent + s + "\n"
        if self.kind == 'die':
            s = line(f"Die({self.defect!r})")
            if include_traces and self.defect is not None and self.defect.__traceback__:
                tb = ''.join(traceback.format_exception(type(self.defect), self.defect, self.defect.__traceback__))
                s += ''.join(indent + '  ' + l for l in tb.splitlines(True))
            return s
        if self.kind == 'interrupt': return line("Interrupt")
        if self.kind == 'then':
            l = self.left.render(indent + "  ", include_traces) if self.left else indent + "  (empty)\n"
            r = self.right.render(indent + "  ", include_traces) if self.right else indent + "  (empty)\n"
            return line("Then:") + l + r
        return line(f"Unknown({self.kind})")

    def defects(self) -> Iterator[BaseException]:
        """Walk the wrapped exceptions left to right."""
        if self.kind == 'die' and self.defect is not None:
            yield self.defect
        elif self.kind == 'then':
            if self.left: yield from self.left.defects()
            if self.right: yield from self.right.defects()

    @staticmethod
    def die(ex: BaseException) -> "Cause": return Cause(kind='die', defect=ex)
    @staticmethod
    def interrupt() -> "Cause": return Cause(kind='interrupt')
    @staticmethod
    def then(l: "Cause", r: "Cause") -> "Cause": return Cause(kind='then', left=l, right=r)

    @staticmethod
    def sequential(errors: Sequence[BaseException]) -> "Cause":
        """Chain ``errors`` in order as nested ``then`` causes."""
        if not errors: raise ValueError("sequential() needs at least one error")
        c = Cause.die(errors[-1])
        for ex in reversed(errors[:-1]):
            c = Cause.then(Cause.die(ex), c)
        return c

@dataclass
class Exit(Generic[A]):
    success: bool
    value: Optional[A] = None
    cause: Optional[Cause] = None
