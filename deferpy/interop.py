"""Context-aware versions of common acquire/release pairs.

Every function here performs one acquisition and registers its inverse on
the context, so the resource is released when the scope closes::

    with context():
        path, f = temp_file()
        redirect_stdout(f)
        print("captured")
    # stdout restored, file closed and removed
"""
from __future__ import annotations
import os
import shutil
import subprocess
import sys
import tempfile
from typing import IO, Any, Optional, Sequence, Tuple, Union
from .adapters import enter_context
from .context import ResourceContext
from .current import resource
from .errors import SetupError

PathLike = Union[str, "os.PathLike[str]"]


# Filesystem

@resource
def open_file(ctx: ResourceContext, path: PathLike, mode: str = "r", **kwargs: Any) -> IO[Any]:
    return ctx.register(open(path, mode, **kwargs))


@resource
def temp_file(ctx: ResourceContext, suffix: Optional[str] = None, prefix: Optional[str] = None,
              dir: Optional[PathLike] = None, mode: str = "w+b") -> Tuple[str, IO[Any]]:
    """Create a temporary file; returns ``(path, file)``. Closed and removed on cleanup."""
    fd, path = tempfile.mkstemp(suffix=suffix, prefix=prefix, dir=dir)
    try:
        f = os.fdopen(fd, mode)
    except BaseException:
        os.close(fd); os.unlink(path)
        raise

    def remove() -> None:
        try:
            f.close()
        finally:
            if os.path.lexists(path): os.unlink(path)
    ctx.register(remove)
    return path, f


@resource
def temp_dir(ctx: ResourceContext, dir: Optional[PathLike] = None, prefix: str = "deferpy_") -> str:
    path = tempfile.mkdtemp(prefix=prefix, dir=dir)
    ctx.defer(shutil.rmtree, path, ignore_errors=True)
    return path


@resource
def chdir(ctx: ResourceContext, path: Optional[PathLike] = None) -> str:
    """Change the working directory (home by default) until cleanup."""
    old = os.getcwd()
    os.chdir(os.path.expanduser("~") if path is None else path)
    ctx.defer(os.chdir, old)
    return os.getcwd()


# Locks

@resource
def lock(ctx: ResourceContext, lk: Any, timeout: float = -1) -> Any:
    """Acquire ``lk`` (anything with ``acquire``/``release``) until cleanup.

    Raises:
        SetupError: If ``timeout`` elapsed before the lock was acquired
    """
    if not lk.acquire(timeout=timeout):
        raise SetupError(f"timed out after {timeout}s acquiring {lk!r}")
    ctx.defer(lk.release)
    return lk


# Standard streams

def _swap(ctx: ResourceContext, name: str, stream: Any) -> Any:
    prev = getattr(sys, name)
    setattr(sys, name, stream)
    ctx.defer(setattr, sys, name, prev)
    return stream


@resource
def redirect_stdout(ctx: ResourceContext, stream: IO[str]) -> IO[str]:
    return _swap(ctx, "stdout", stream)


@resource
def redirect_stderr(ctx: ResourceContext, stream: IO[str]) -> IO[str]:
    return _swap(ctx, "stderr", stream)


@resource
def redirect_stdin(ctx: ResourceContext, stream: IO[str]) -> IO[str]:
    return _swap(ctx, "stdin", stream)


# Processes

@resource
def run(ctx: ResourceContext, args: Union[str, Sequence[str]], **popen_kwargs: Any) -> subprocess.Popen:
    """Start a subprocess; cleanup closes its pipes and waits for it to exit."""
    return enter_context(ctx, subprocess.Popen(args, **popen_kwargs))
