# src/big_factorial/product.py
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from big_factorial.kinds import NumberKind


def materialize(k: int, kind: NumberKind) -> Any:
    """
    Build the value of index ``k`` from ``kind.one`` using additions only.

    Binary doubling over the bits of k, most significant first: the leading
    bit seeds the accumulator with one, every further bit doubles it and adds
    one more when set. O(log k) additions, no multiplications.
    """
    assert k >= 1, f"materialize() needs k >= 1, got {k}"
    one, add = kind.one, kind.add
    acc = one
    for bit in bin(k)[3:]:
        acc = add(acc, acc)
        if bit == "1":
            acc = add(acc, one)
    return acc


def balanced_product(lo: int, hi: int, leaf: Callable[[int], Any], mul: Callable[[Any, Any], Any]) -> Any:
    """
    Product of ``leaf(i)`` for i in [lo, hi) by balanced binary splitting.

    Both halves stay at comparable size at every level, so the multiplications
    near the root see operands of similar bit-length. Shared by the per-worker
    reduction (leaf = materialize) and the final combine (leaf = partials[i]).
    """
    assert hi > lo, f"empty range [{lo}, {hi})"
    if hi - lo == 1:
        return leaf(lo)
    mid = lo + (hi - lo) // 2
    return mul(balanced_product(lo, mid, leaf, mul), balanced_product(mid, hi, leaf, mul))


def range_product(lo: int, hi: int, kind: NumberKind) -> Any:
    """Product of the materialized indices lo, lo+1, ..., hi-1."""
    return balanced_product(lo, hi, lambda i: materialize(i, kind), kind.mul)
