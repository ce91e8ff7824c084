# tests/test_factorial.py
"""
Tests for the factorial engine: materializer, product tree, partition,
and the thread/process coordinator.

Run: pytest -v
"""

from __future__ import annotations

import math
import multiprocessing
import os
import threading

import gmpy2
import pytest
import sympy

from big_factorial import (
    INT,
    MPZ,
    SYMPY,
    U64,
    U128,
    InvalidConfigurationError,
    NumberKind,
    ResourceExhaustedError,
    balanced_product,
    factorial,
    get_kind,
    materialize,
    parallel_factorial,
    partition,
    range_product,
)

# ---------- helpers -----------------------------------------------------------


class Opaque:
    """Integer wrapper with + and * only: no int conversion, no ordering."""

    __slots__ = ("v",)

    def __init__(self, v: int):
        self.v = v

    def __add__(self, other):
        return Opaque(self.v + other.v)

    def __mul__(self, other):
        return Opaque(self.v * other.v)

    def __eq__(self, other):
        return isinstance(other, Opaque) and self.v == other.v

    __hash__ = None

    def __repr__(self):
        return f"Opaque({self.v})"


OPAQUE = NumberKind("opaque", Opaque(1))


class _Unsendable(int):
    def __reduce__(self):
        raise TypeError("not picklable")


class _Abort(BaseException):
    pass


# Module-level so process workers can pickle them by reference.
def _unsendable_mul(a, b):
    return _Unsendable(a * b)


def _exit_3_mul(a, b):
    os._exit(3)


def _exit_0_mul(a, b):
    os._exit(0)


def _abort_mul(a, b):
    raise _Abort("stop")


def _slow_materialize(k: int, kind: NumberKind):
    acc = kind.one
    for _ in range(k - 1):
        acc = kind.add(acc, kind.one)
    return acc


def _counting_kind() -> tuple[NumberKind, dict[str, int]]:
    calls = {"add": 0, "mul": 0}

    def add(a, b):
        calls["add"] += 1
        return a + b

    def mul(a, b):
        calls["mul"] += 1
        return a * b

    return NumberKind("counting", 1, add, mul), calls


# ---------- materializer ------------------------------------------------------


@pytest.mark.parametrize("kind", [INT, MPZ, SYMPY, OPAQUE], ids=lambda k: k.name)
def test_materialize_matches_slow_fold(kind):
    for k in range(1, 130):
        assert materialize(k, kind) == _slow_materialize(k, kind), k


@pytest.mark.parametrize("k", [1, 2, 3, 7, 8, 255, 256, 1_000_003, 2**40 + 5])
def test_materialize_uses_logarithmic_additions(k):
    kind, calls = _counting_kind()
    assert materialize(k, kind) == k
    assert calls["mul"] == 0
    assert calls["add"] == (k.bit_length() - 1) + (bin(k).count("1") - 1)


def test_materialize_rejects_zero():
    with pytest.raises(AssertionError):
        materialize(0, INT)


# ---------- product tree ------------------------------------------------------


@pytest.mark.parametrize("lo,hi", [(1, 2), (1, 11), (5, 6), (7, 100), (1000, 1037)])
def test_range_product_matches_prod(lo, hi):
    assert range_product(lo, hi, INT) == math.prod(range(lo, hi))


def test_range_product_generic_kind():
    assert range_product(1, 21, OPAQUE) == Opaque(math.factorial(20))


def test_balanced_product_single_leaf_and_identity_leaf():
    parts = [2, 3, 5, 7, 11]
    assert balanced_product(0, 1, parts.__getitem__, INT.mul) == 2
    assert balanced_product(0, len(parts), parts.__getitem__, INT.mul) == 2310


def test_balanced_product_splits_evenly():
    seen: list[tuple[int, int]] = []

    def mul(a, b):
        seen.append((a, b))
        return a * b

    ones = [1] * 8
    balanced_product(0, 8, lambda i: ones[i] * (i + 1), mul)
    # root combines [0,4) and [4,8): 1*2*3*4 and 5*6*7*8
    assert seen[-1] == (24, 1680)


def test_balanced_product_rejects_empty_range():
    with pytest.raises(AssertionError):
        balanced_product(3, 3, lambda i: i, INT.mul)


# ---------- partition ---------------------------------------------------------

PARTITION_CASES = [
    (10, 1, [(1, 11)]),
    (10, 3, [(1, 5), (5, 8), (8, 11)]),
    (10, 4, [(1, 4), (4, 7), (7, 9), (9, 11)]),
    (4, 8, [(1, 2), (2, 3), (3, 4), (4, 5), (5, 5), (5, 5), (5, 5), (5, 5)]),
    (0, 2, [(1, 1), (1, 1)]),
]


@pytest.mark.parametrize("n,p,expected", PARTITION_CASES, ids=[f"n{n}_p{p}" for n, p, _ in PARTITION_CASES])
def test_partition_layout(n, p, expected):
    assert partition(n, p) == expected


@pytest.mark.parametrize("n", [1, 2, 17, 100, 1001])
@pytest.mark.parametrize("p", [1, 2, 3, 7, 16, 200])
def test_partition_covers_range_contiguously(n, p):
    ranges = partition(n, p)
    assert len(ranges) == p
    assert ranges[0][0] == 1 and ranges[-1][1] == n + 1
    for (_, hi), (lo, _) in zip(ranges, ranges[1:]):
        assert hi == lo
    sizes = [hi - lo for lo, hi in ranges]
    assert max(sizes) - min(sizes) <= 1
    assert sizes == sorted(sizes, reverse=True)


# ---------- factorial / parallel_factorial -------------------------------------


def test_small_scenarios():
    assert factorial(4, INT) == 24
    assert parallel_factorial(4, 8, INT) == 24
    assert factorial(0) == factorial(1) == MPZ.one
    assert parallel_factorial(0, 3) == parallel_factorial(1, 3) == MPZ.one


@pytest.mark.parametrize("n", [0, 1, 2, 3, 5, 10, 33, 100, 257, 1000])
def test_factorial_matches_math(n):
    assert factorial(n, INT) == math.factorial(n)


@pytest.mark.parametrize("n", [0, 1, 2, 9, 64, 500, 2001])
@pytest.mark.parametrize("p", [1, 2, 3, 8, 13])
def test_parallel_equals_single_threaded(n, p):
    assert parallel_factorial(n, p, MPZ) == factorial(n, MPZ)


def test_parallel_is_deterministic_across_thread_counts():
    values = {int(parallel_factorial(3000, p)) for p in (1, 2, 5, 16, 64)}
    assert len(values) == 1


def test_recurrence():
    prev = factorial(0, INT)
    for n in range(1, 150):
        cur = factorial(n, INT)
        assert cur == INT.mul(prev, materialize(n, INT))
        prev = cur


@pytest.mark.parametrize("kind", [INT, MPZ, SYMPY, U128, OPAQUE], ids=lambda k: k.name)
def test_kinds_agree(kind):
    expected = math.factorial(30)
    got = parallel_factorial(30, 4, kind)
    if kind is OPAQUE:
        assert got == Opaque(expected)
    else:
        assert int(got) == expected


def test_result_types_follow_kind():
    assert isinstance(factorial(25, MPZ), type(gmpy2.mpz(1)))
    assert isinstance(factorial(25, SYMPY), sympy.Integer)
    assert type(factorial(25, INT)) is int


def test_kind_by_name():
    assert parallel_factorial(12, 2, "int") == 479001600
    assert get_kind("MPZ") is MPZ
    with pytest.raises(InvalidConfigurationError):
        get_kind("float")


def test_fixed_width_overflow_propagates():
    assert factorial(20, U64) == math.factorial(20)
    with pytest.raises(OverflowError):
        factorial(21, U64)
    with pytest.raises(OverflowError):
        parallel_factorial(21, 3, U64)


def test_progress_callback_reports_every_worker():
    calls: list[tuple[int, int]] = []
    parallel_factorial(100, 4, on_progress=lambda d, t: calls.append((d, t)))
    assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]


def test_no_workers_for_trivial_inputs(monkeypatch):
    def boom(self):
        raise AssertionError("no worker should start")

    monkeypatch.setattr(threading.Thread, "start", boom)
    assert parallel_factorial(1, 4, INT) == 1


# ---------- process workers ---------------------------------------------------


@pytest.mark.parametrize("n,p", [(2, 2), (20, 3), (500, 4), (1234, 7)])
def test_process_workers_match(n, p):
    assert parallel_factorial(n, p, MPZ, workers="process") == factorial(n, MPZ)


def test_process_workers_propagate_overflow():
    with pytest.raises(OverflowError):
        parallel_factorial(30, 2, U64, workers="process")


def test_process_worker_death_is_fatal():
    kind = NumberKind("exit3", 1, mul=_exit_3_mul)
    with pytest.raises(ResourceExhaustedError, match="code 3"):
        parallel_factorial(50, 2, kind, workers="process")


def test_process_worker_clean_exit_without_result_is_fatal():
    kind = NumberKind("exit0", 1, mul=_exit_0_mul)
    with pytest.raises(ResourceExhaustedError, match="without returning its product"):
        parallel_factorial(50, 2, kind, workers="process")


def test_process_result_that_cannot_be_pickled_is_reported():
    kind = NumberKind("unsendable", 1, mul=_unsendable_mul)
    with pytest.raises(InvalidConfigurationError, match="result of kind 'unsendable'"):
        parallel_factorial(50, 2, kind, workers="process")


def test_unpicklable_kind_rejected_for_processes():
    kind = NumberKind("inline", 1, mul=lambda a, b: a * b)
    with pytest.raises(InvalidConfigurationError, match="workers='thread'"):
        parallel_factorial(50, 2, kind, workers="process")
    assert parallel_factorial(10, 2, kind) == math.factorial(10)


def test_process_spawn_failure_terminates_started_workers(monkeypatch):
    real_start = multiprocessing.Process.start
    started: list = []

    def start_one(self):
        if started:
            raise OSError(11, "Resource temporarily unavailable")
        started.append(self)
        real_start(self)

    monkeypatch.setattr(multiprocessing.Process, "start", start_one)
    with pytest.raises(ResourceExhaustedError, match="process worker 2 of 3"):
        parallel_factorial(3000, 3, MPZ, workers="process")
    assert len(started) == 1
    assert all(p.exitcode is not None for p in started)


# ---------- errors ------------------------------------------------------------


@pytest.mark.parametrize("n", [0, 1, 5, 10_000])
def test_zero_threads_rejected(n):
    with pytest.raises(InvalidConfigurationError):
        parallel_factorial(n, 0)


@pytest.mark.parametrize("p", [-1, 2.0, True, "4", None])
def test_bad_thread_counts_rejected(p):
    with pytest.raises(InvalidConfigurationError):
        parallel_factorial(5, p)


@pytest.mark.parametrize("n", [-1, 3.5, "7", None, False])
def test_bad_arguments_rejected(n):
    with pytest.raises(InvalidConfigurationError):
        parallel_factorial(n, 2)
    with pytest.raises(InvalidConfigurationError):
        factorial(n)


def test_invalid_configuration_is_a_value_error():
    with pytest.raises(ValueError):
        parallel_factorial(3, 0)


def test_unknown_worker_mode_rejected():
    with pytest.raises(InvalidConfigurationError):
        parallel_factorial(10, 2, workers="fiber")


def test_thread_spawn_failure_is_fatal(monkeypatch):
    def refuse(self):
        raise RuntimeError("can't start new thread")

    monkeypatch.setattr(threading.Thread, "start", refuse)
    with pytest.raises(ResourceExhaustedError):
        parallel_factorial(100, 4, INT)


def test_partial_spawn_failure_waits_for_started_workers(monkeypatch):
    real_start = threading.Thread.start
    started: list[threading.Thread] = []

    def start_two(self):
        if len(started) == 2:
            raise RuntimeError("can't start new thread")
        started.append(self)
        real_start(self)

    monkeypatch.setattr(threading.Thread, "start", start_two)
    with pytest.raises(ResourceExhaustedError, match="worker 3 of 4"):
        parallel_factorial(100, 4, INT)
    assert all(not t.is_alive() for t in started)


def test_base_exception_in_thread_worker_is_reraised():
    kind = NumberKind("abort", 1, mul=_abort_mul)
    with pytest.raises(_Abort):
        parallel_factorial(50, 2, kind)
