# src/big_factorial/parallel.py
"""
Factorial entry points: partition [1, n] across workers, reduce each slice
with the balanced product tree, then combine the partial products the same way.

Fork-join only: one worker per non-empty slice, started once per call. Workers
share nothing; each hands back exactly one (slot, ok, payload) message through
a queue, so the coordinator never locks anything and the result does not depend
on which worker finishes first.
"""
from __future__ import annotations

import multiprocessing
import operator
import pickle
import queue
import threading
from collections.abc import Callable
from typing import Any

from big_factorial.kinds import MPZ, NumberKind, get_kind
from big_factorial.product import balanced_product, range_product
from big_factorial.utility import InvalidConfigurationError, ResourceExhaustedError

WORKER_MODES = ("thread", "process")

# How often the coordinator checks for process workers that died silently.
_POLL_S = 0.5

ProgressCallback = Callable[[int, int], None]


def _check_n(n) -> int:
    if isinstance(n, bool):
        raise InvalidConfigurationError(f"factorial argument must be an integer, got {n!r}")
    try:
        n = operator.index(n)
    except TypeError:
        raise InvalidConfigurationError(f"factorial argument must be an integer, got {n!r}") from None
    if n < 0:
        raise InvalidConfigurationError(f"factorial argument must be non-negative, got {n}")
    return n


def _check_threads(p) -> int:
    if isinstance(p, bool) or not isinstance(p, int):
        raise InvalidConfigurationError(f"thread count must be an integer, got {p!r}")
    if p < 1:
        raise InvalidConfigurationError(f"thread count must be at least 1, got {p}")
    return p


def partition(n: int, p: int) -> list[tuple[int, int]]:
    """
    Split [1, n+1) into p contiguous half-open ranges of nearly equal count.

    Sizes differ by at most one; the first n % p ranges take the extra index.
    With p > n the trailing ranges are empty.
    """
    n = _check_n(n)
    p = _check_threads(p)
    base, extra = divmod(n, p)
    out: list[tuple[int, int]] = []
    lo = 1
    for i in range(p):
        hi = lo + base + (1 if i < extra else 0)
        out.append((lo, hi))
        lo = hi
    return out


def _unsendable(what: str, kind: NumberKind, e: Exception) -> InvalidConfigurationError:
    return InvalidConfigurationError(
        f"{what} of kind '{kind.name}' cannot be sent between processes ({e}); "
        "use workers='thread'"
    )


def _product_worker(q, slot: int, lo: int, hi: int, kind: NumberKind, pickled: bool = False) -> None:
    """
    Worker body for both threads and processes.
    Result or exception is put into the queue; a process worker checks that
    the payload pickles first, since the queue drops messages it cannot send.
    """
    try:
        msg = (slot, True, range_product(lo, hi, kind))
    except BaseException as e:  # propagate errors to the coordinator
        msg = (slot, False, e)
    if pickled:
        try:
            pickle.dumps(msg[2])
        except Exception as e:
            what = "result" if msg[1] else "error"
            msg = (slot, False, _unsendable(what, kind, e))
    q.put(msg)


def _abandon(started: list, workers: str) -> None:
    for w in started:
        if workers == "process":
            w.terminate()
        w.join()


def _next_message(q, started: list, reported: set[int], workers: str):
    if workers == "thread":
        return q.get()
    while True:
        try:
            return q.get(timeout=_POLL_S)
        except queue.Empty:
            pass
        dead = [w for slot, w in enumerate(started) if slot not in reported and w.exitcode is not None]
        if not dead:
            continue
        # a worker may have flushed its message just before exiting
        try:
            return q.get_nowait()
        except queue.Empty:
            pass
        w = dead[0]
        _abandon(started, workers)
        if w.exitcode:
            raise ResourceExhaustedError(
                f"worker {w.name} exited with code {w.exitcode} before returning its product"
            )
        raise ResourceExhaustedError(f"worker {w.name} exited without returning its product")


def _run_workers(
    ranges: list[tuple[int, int]],
    kind: NumberKind,
    workers: str,
    on_progress: ProgressCallback | None,
) -> list[Any]:
    if workers == "process":
        q = multiprocessing.Queue()
        spawn = multiprocessing.Process
    else:
        q = queue.Queue()
        spawn = threading.Thread

    started: list = []
    try:
        for slot, (lo, hi) in enumerate(ranges):
            w = spawn(
                target=_product_worker,
                args=(q, slot, lo, hi, kind, workers == "process"),
                name=f"factorial[{lo},{hi})",
                daemon=True,
            )
            w.start()
            started.append(w)
    except (RuntimeError, OSError) as e:
        _abandon(started, workers)
        raise ResourceExhaustedError(
            f"could not start {workers} worker {len(started) + 1} of {len(ranges)}: {e}"
        ) from e
    except (pickle.PicklingError, AttributeError, TypeError) as e:
        # spawn and forkserver start methods pickle the worker arguments
        _abandon(started, workers)
        raise _unsendable("definition", kind, e) from e

    total = len(ranges)
    partials: list[Any] = [None] * total
    reported: set[int] = set()
    failure: BaseException | None = None
    for done in range(1, total + 1):
        slot, ok, payload = _next_message(q, started, reported, workers)
        reported.add(slot)
        if ok:
            partials[slot] = payload
        elif failure is None:
            failure = payload
        if on_progress is not None:
            on_progress(done, total)

    # Queue is drained first: a process cannot exit while its result is still buffered.
    for w in started:
        w.join()

    if failure is not None:
        raise failure
    return partials


def parallel_factorial(
    n: int,
    p: int,
    kind: NumberKind | str = MPZ,
    *,
    workers: str = "thread",
    on_progress: ProgressCallback | None = None,
) -> Any:
    """
    n! computed by p workers.

    Raises InvalidConfigurationError for p < 1, negative/non-integer n or an
    unknown worker mode, or a kind that cannot be pickled in process mode;
    ResourceExhaustedError when a worker cannot be started or a process
    exits without returning its product. The value is identical for every p and every worker mode.
    """
    p = _check_threads(p)
    n = _check_n(n)
    if workers not in WORKER_MODES:
        raise InvalidConfigurationError(
            f"unknown worker mode '{workers}' (choose from: {', '.join(WORKER_MODES)})"
        )
    kind = get_kind(kind)
    if workers == "process":
        try:
            pickle.dumps(kind)
        except Exception as e:
            raise _unsendable("definition", kind, e) from e
    if n <= 1:
        return kind.one

    ranges = [(lo, hi) for lo, hi in partition(n, p) if hi > lo]
    partials = _run_workers(ranges, kind, workers, on_progress)
    return balanced_product(0, len(partials), partials.__getitem__, kind.mul)


def factorial(n: int, kind: NumberKind | str = MPZ) -> Any:
    """n! in the calling thread; same value as parallel_factorial(n, 1, kind)."""
    n = _check_n(n)
    kind = get_kind(kind)
    if n <= 1:
        return kind.one
    return range_product(1, n + 1, kind)
