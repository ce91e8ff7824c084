# -----------------------------------------------------------------------------
#  Utility functions
# -----------------------------------------------------------------------------

from __future__ import annotations

import os
import shutil


class UserInputError(Exception):
    pass


class InvalidConfigurationError(UserInputError, ValueError):
    """Rejected before any computation starts (bad n, p < 1, unknown kind/mode)."""


class ResourceExhaustedError(RuntimeError):
    """A worker could not be started, or died without handing back its result."""


def available_parallelism(default: int = 1) -> int:
    """
    Parallelism hint for the default thread count.

    Prefers the CPUs this process may actually run on (affinity mask / 3.13's
    process_cpu_count) over the machine-wide cpu_count().
    """
    counter = getattr(os, "process_cpu_count", None)
    if counter is not None:
        n = counter()
        if n:
            return n
    if hasattr(os, "sched_getaffinity"):
        try:
            return len(os.sched_getaffinity(0)) or default
        except OSError:
            pass
    return os.cpu_count() or default


def get_terminal_width(default=80):
    try:
        return shutil.get_terminal_size((default, 24)).columns
    except Exception:
        return default


def typename(v: object) -> str:
    return type(v).__name__


def flatten_dotted(d: dict, prefix: str = "") -> dict[str, object]:
    out: dict[str, object] = {}
    for k, v in (d or {}).items():
        key = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict):
            out.update(flatten_dotted(v, key))
        else:
            out[key] = v
    return out
