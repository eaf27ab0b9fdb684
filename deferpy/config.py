from __future__ import annotations
from dataclasses import dataclass
import os
from typing import Mapping, Optional

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Process-wide knobs, read from the environment once at import.

    Attributes:
        log_level: Minimum level of the package logger (``DEFERPY_LOG_LEVEL``)
        log_json: Emit single-line JSON records (``DEFERPY_LOG_JSON``)
        global_atexit: Drain the global context at exit (``DEFERPY_GLOBAL_ATEXIT``)
    """
    log_level: str = "INFO"
    log_json: bool = False
    global_atexit: bool = True


def _flag(raw: Optional[str], default: bool) -> bool:
    if raw is None: return default
    v = raw.strip().lower()
    if v in _TRUTHY: return True
    if v in _FALSY: return False
    raise ValueError(f"Expected a boolean flag, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        log_level=env.get("DEFERPY_LOG_LEVEL", "INFO").upper(),
        log_json=_flag(env.get("DEFERPY_LOG_JSON"), False),
        global_atexit=_flag(env.get("DEFERPY_GLOBAL_ATEXIT"), True),
    )


settings = load_settings()
