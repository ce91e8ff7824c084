# tests/test_expreval.py
"""
Tests for parsing the factorial argument.

Run: pytest -v
"""

from __future__ import annotations

import pytest

from big_factorial.expreval import parse_index
from big_factorial.utility import UserInputError

VALID_CASES = [
    ("0", 0),
    ("24", 24),
    ("  1000 ", 1000),
    ("1_000_000", 1_000_000),
    ("1 000 000", 1_000_000),
    ("1.000.000", 1_000_000),
    ("0x10", 16),
    ("1e6", 1_000_000),
    ("25E4", 250_000),
    ("10**6", 1_000_000),
    ("2*10**5 + 1", 200_001),
    ("(1 << 20) - 1", 1_048_575),
    ("2**64 - 1", 2**64 - 1),
]


@pytest.mark.parametrize("text,expected", VALID_CASES, ids=[t for t, _ in VALID_CASES])
def test_parse_valid(text, expected):
    assert parse_index(text) == expected


INVALID_CASES = [
    "",
    "abc",
    "3.14",
    "-5",
    "1e-3",
    "10 ** -2",
    "2**64",
    "2**10000",
    "1 << 1000",
    "__import__('os')",
    "len('x')",
    "7 // 0",
    "True",
]


@pytest.mark.parametrize("text", INVALID_CASES, ids=[repr(t) for t in INVALID_CASES])
def test_parse_invalid(text):
    with pytest.raises(UserInputError):
        parse_index(text)
