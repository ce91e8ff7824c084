# src/big_factorial/fmt.py
from __future__ import annotations

import math
import operator
from typing import Any, Literal

import gmpy2

from big_factorial.utility import InvalidConfigurationError

FormatMode = Literal["compact", "full", "abbr"]
FORMAT_MODES: tuple[str, ...] = ("compact", "full", "abbr")

# Significant bits of an IEEE double mantissa.
DOUBLE_PRECISION = 53

# Decimal digits per leaf of the divide-and-conquer conversion.
_CHUNK_DIGITS = 1000
_CHUNK_POW = gmpy2.mpz(10) ** _CHUNK_DIGITS


def _as_mpz(value: Any):
    if isinstance(value, gmpy2.mpz):
        return value
    return gmpy2.mpz(operator.index(value))


def dec_digits(value: Any) -> int:
    """Exact decimal digit count without building the decimal string."""
    v = abs(_as_mpz(value))
    if v == 0:
        return 1
    # gmpy2 may overshoot by one in base 10
    d = gmpy2.num_digits(v, 10)
    if v < gmpy2.mpz(10) ** (d - 1):
        d -= 1
    return d


def sci_mantissa_and_exponent(value: Any, precision: int = DOUBLE_PRECISION) -> tuple[float, int]:
    """
    Return (m, e) with m in [1, 2) and m * 2**e ~= value.

    m holds the top `precision` bits of the value, truncated (floor), and
    e = bit_length - 1. Zero gives (0.0, 0); negatives carry the sign on m.
    """
    if not 1 <= precision <= DOUBLE_PRECISION:
        raise InvalidConfigurationError(f"mantissa precision must be in 1..{DOUBLE_PRECISION}, got {precision}")
    v = _as_mpz(value)
    if v == 0:
        return 0.0, 0
    sign = -1.0 if v < 0 else 1.0
    a = abs(v)
    bits = a.bit_length()
    shift = bits - precision
    top = a >> shift if shift > 0 else a << -shift
    return sign * math.ldexp(float(top), 1 - precision), bits - 1


def _emit_digits(v, powers: list, level: int, out: list[str], pad: bool) -> None:
    # invariant: v < powers[level] ** 2 (powers[-1] == 10**_CHUNK_DIGITS at level -1)
    if level < 0:
        s = str(v)
        out.append(s.zfill(_CHUNK_DIGITS) if pad else s)
        return
    hi, lo = divmod(v, powers[level])
    if hi or pad:
        _emit_digits(hi, powers, level - 1, out, pad)
        _emit_digits(lo, powers, level - 1, out, True)
    else:
        _emit_digits(lo, powers, level - 1, out, pad)


def to_decimal(value: Any) -> str:
    """
    Exact decimal expansion of an arbitrarily large integer value.

    Splits by 10**(CHUNK * 2**k) top-down so every division works on operands
    of balanced size; the leaves are short enough to stringify directly.
    Unlike str(int), this is not capped by sys.get_int_max_str_digits().
    """
    v = _as_mpz(value)
    if v < 0:
        return "-" + to_decimal(-v)
    if v < _CHUNK_POW:
        return str(v)
    powers = [_CHUNK_POW]
    while powers[-1] * powers[-1] <= v:
        powers.append(powers[-1] * powers[-1])
    out: list[str] = []
    _emit_digits(v, powers, len(powers) - 1, out, False)
    return "".join(out)


def abbr_int_fast(value: Any, head: int = 10, tail: int = 10, threshold: int = 35, ellipsis: str = "…") -> str:
    """Abbreviate very large ints as first<head>…last<tail> without the full decimal string."""
    n = _as_mpz(value)
    if n == 0:
        return "0"

    sign = "-" if n < 0 else ""
    a = -n if n < 0 else n

    # If not long enough, fall back to the full expansion
    d = dec_digits(a)
    if d <= threshold or head + tail >= d:
        return sign + to_decimal(a)

    first = a // gmpy2.mpz(10) ** (d - head)
    last = a % gmpy2.mpz(10) ** tail
    # zero-pad last block to width 'tail'
    return f"{sign}{first}{ellipsis}{str(last).zfill(tail)}"


def format_compact(value: Any, mantissa_digits: int | None = None) -> str:
    """'<m>*2^<e>'; shortest round-trip mantissa unless mantissa_digits is set."""
    m, e = sci_mantissa_and_exponent(value)
    if m == 0:
        return "0"
    mant = repr(m) if mantissa_digits is None or mantissa_digits < 0 else f"{m:.{mantissa_digits}f}"
    return f"{mant}*2^{e}"


def format_value(
    value: Any,
    mode: FormatMode = "compact",
    *,
    mantissa_digits: int | None = None,
    head: int = 10,
    tail: int = 10,
    ellipsis: str = "…",
) -> str:
    """
    Render a factorial result for display.

    mode:
      "compact" -> m*2^e approximation (cheap for any size)
      "full"    -> exact decimal digits (slow for very large values)
      "abbr"    -> leading and trailing decimal digits around an ellipsis
    """
    m = str(mode).strip().lower()
    if m == "compact":
        return format_compact(value, mantissa_digits)
    if m == "full":
        return to_decimal(value)
    if m == "abbr":
        return abbr_int_fast(value, head, tail, ellipsis=ellipsis)
    raise InvalidConfigurationError(f"unknown format mode '{mode}' (choose from: {', '.join(FORMAT_MODES)})")


def format_duration(seconds: float) -> str:
    """ms if <1s; s with millis if <60s; else mm:ss.mmm (and hh:mm:ss.mmm if ≥1h)."""
    MAX_SECONDS = 60
    if seconds < 1:
        ms = round(seconds * 1000)
        return f"{ms} ms"
    if seconds < MAX_SECONDS:
        return f"{seconds:.3f} s"
    m, s = divmod(seconds, MAX_SECONDS)
    if m < MAX_SECONDS:
        return f"{int(m)}:{s:06.3f}"               # mm:ss.mmm
    h, m = divmod(int(m), MAX_SECONDS)
    return f"{h}:{m:02d}:{s:06.3f}"                # hh:mm:ss.mmm
