# src/big_factorial/kinds.py
"""
Number kinds: the capability interface the factorial engine is generic over.

A kind is just two binary operations and the multiplicative unit. The engine
never builds a value from a machine integer, never compares, subtracts or
divides; everything else is up to the concrete type.

Kinds used with process workers must pickle, so add/mul are builtin operators
or module-level functions here, never lambdas.
"""
from __future__ import annotations

import operator
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import gmpy2
import sympy

from big_factorial.utility import InvalidConfigurationError


@dataclass(frozen=True)
class NumberKind:
    name: str
    one: Any
    add: Callable[[Any, Any], Any] = operator.add
    mul: Callable[[Any, Any], Any] = operator.mul
    description: str = ""


# --- checked fixed-width kinds ------------------------------------------------

_U64_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1


def _fits(x: int, limit: int, bits: int) -> int:
    if x > limit:
        raise OverflowError(f"value does not fit in u{bits}")
    return x


def _add_u64(a: int, b: int) -> int:
    return _fits(a + b, _U64_MAX, 64)


def _mul_u64(a: int, b: int) -> int:
    return _fits(a * b, _U64_MAX, 64)


def _add_u128(a: int, b: int) -> int:
    return _fits(a + b, _U128_MAX, 128)


def _mul_u128(a: int, b: int) -> int:
    return _fits(a * b, _U128_MAX, 128)


# --- built-in kinds -----------------------------------------------------------

INT = NumberKind("int", 1, description="Python int (CPython bignum)")
MPZ = NumberKind("mpz", gmpy2.mpz(1), description="gmpy2.mpz (GMP, fastest for large n)")
SYMPY = NumberKind("sympy", sympy.Integer(1), description="sympy.Integer")
U64 = NumberKind("u64", 1, _add_u64, _mul_u64, description="checked 64-bit unsigned, n <= 20")
U128 = NumberKind("u128", 1, _add_u128, _mul_u128, description="checked 128-bit unsigned, n <= 34")

_KINDS: dict[str, NumberKind] = {k.name: k for k in (MPZ, INT, SYMPY, U64, U128)}


def get_kind(name: str | NumberKind) -> NumberKind:
    """Resolve a kind by name (case-insensitive); kinds pass through unchanged."""
    if isinstance(name, NumberKind):
        return name
    key = str(name or "").strip().lower()
    try:
        return _KINDS[key]
    except KeyError:
        raise InvalidConfigurationError(
            f"unknown number kind '{name}' (choose from: {', '.join(_KINDS)})"
        ) from None


def list_kinds() -> list[NumberKind]:
    return list(_KINDS.values())
