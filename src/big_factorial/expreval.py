# src/big_factorial/expreval.py
"""
Parse the factorial argument typed on the command line.

Accepts plain and grouped integers (1_000_000, 1 000 000, 1.000.000),
scientific notation (1e6, 25E4) and a small safe expression subset
(10**6, 2*10**5, (1<<20) + 1). Anything else is rejected.
"""
from __future__ import annotations

import ast
import operator as op
import re

from big_factorial.utility import UserInputError

# The original tool takes n as an unsigned 64-bit integer.
MAX_INDEX_BITS = 64

_THIN_SPACES = ("\u2009", "\u202F", "\u00A0")  # thin, narrow no-break, no-break
_SEP_CLASS = r"[ ,._\u00A0\u2009\u202F]"      # spaces/commas/dots/underscores & NBSP variants
_GROUPED_RE = re.compile(rf"^[+-]?\d{{1,3}}(?:{_SEP_CLASS}\d{{3}})+$")

# ---- allowed operators (safe subset) ----
_ALLOWED_BINOPS = {
    ast.Add:      op.add,
    ast.Sub:      op.sub,
    ast.Mult:     op.mul,
    ast.FloorDiv: op.floordiv,
    ast.Pow:      op.pow,
    ast.LShift:   op.lshift,
}
_ALLOWED_UNARYOPS = {
    ast.UAdd: op.pos,
    ast.USub: op.neg,
}

_MAX_NODES = 64  # sanity guard

_SCI_NOTATION_TOKEN = re.compile(
    r"""
    (?<![\w.])          # not immediately after a word char or dot
    (\d+)               # mantissa (digits)
    [eE]
    ([+\-]?\d+)         # exponent (optional sign + digits)
    (?![\w.])           # not immediately before a word char or dot
    """,
    re.VERBOSE,
)


class _IntExprError(Exception):
    pass


def _parse_int_literal(text: str) -> int | None:
    """Accepts: 42  1_000_000  0xFF  123.456.789  123 456 789
       Rejects: 3.14  1,23  12.34.56  0xG1"""
    s = text.strip()
    if not s:
        return None

    for ch in _THIN_SPACES:
        s = s.replace(ch, " ")

    if s.lower().startswith(("0x", "0b", "0o")):
        try:
            return int(s.replace("_", ""), 0)
        except ValueError:
            return None

    if re.fullmatch(r"[+-]?\d[\d_]*", s):
        try:
            return int(s.replace("_", ""))
        except ValueError:
            return None

    if _GROUPED_RE.match(s):
        return int(re.sub(_SEP_CLASS, "", s))

    return None


def _rewrite_scientific_notation(expr: str) -> str:
    """
    Rewrite base-10 scientific notation into exact integer math:

        1e6   -> 10**(6)
        25e4  -> (25)*10**(4)

    Negative exponents are not integers and are rejected.
    """

    def repl(m: re.Match) -> str:
        mant, exp = m.group(1), int(m.group(2))
        if exp < 0:
            raise _IntExprError("scientific notation with negative exponent is not an integer")
        if int(mant) == 0:
            return "0"
        if mant == "1":
            return f"10**({exp})"
        return f"({mant})*10**({exp})"

    return _SCI_NOTATION_TOKEN.sub(repl, expr)


def _eval_int_expr(expr: str) -> int:
    expr = _rewrite_scientific_notation(expr)
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as e:
        raise _IntExprError("invalid integer expression") from e

    if sum(1 for _ in ast.walk(tree)) > _MAX_NODES:
        raise _IntExprError("expression too large")

    def _eval(node) -> int:
        if isinstance(node, ast.Expression):
            return _eval(node.body)

        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, int):
                raise _IntExprError("only integer literals are allowed")
            return node.value

        if isinstance(node, ast.UnaryOp) and type(node.op) in _ALLOWED_UNARYOPS:
            return _ALLOWED_UNARYOPS[type(node.op)](_eval(node.operand))

        if isinstance(node, ast.BinOp) and type(node.op) in _ALLOWED_BINOPS:
            left = _eval(node.left)
            right = _eval(node.right)
            if isinstance(node.op, (ast.Pow, ast.LShift)):
                if right < 0:
                    raise _IntExprError("negative exponents and shifts are not allowed")
                # keep intermediate results near the 64-bit range
                grows = (abs(left).bit_length() - 1) * right if isinstance(node.op, ast.Pow) else right
                if grows > 4 * MAX_INDEX_BITS:
                    raise UserInputError(f"Invalid input: factorial argument must fit in {MAX_INDEX_BITS} bits.")
            if isinstance(node.op, ast.FloorDiv) and right == 0:
                raise _IntExprError("division by zero")
            return _ALLOWED_BINOPS[type(node.op)](left, right)

        raise _IntExprError(f"unsupported syntax: {type(node).__name__}")

    return _eval(tree)


def parse_index(s: str) -> int:
    """
    Parse the factorial argument. Raises UserInputError for anything that is
    not a non-negative integer below 2**64.
    """
    text = (s or "").strip()
    n = _parse_int_literal(text)
    if n is None:
        try:
            n = _eval_int_expr(text)
        except _IntExprError as e:
            raise UserInputError(f"Invalid input: '{s}' is not an integer ({e}).") from None

    if n < 0:
        raise UserInputError(f"Invalid input: factorial of a negative number ({n}) is not defined.")
    if n.bit_length() > MAX_INDEX_BITS:
        raise UserInputError(f"Invalid input: factorial argument must fit in {MAX_INDEX_BITS} bits.")
    return n
