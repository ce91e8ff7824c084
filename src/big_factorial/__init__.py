from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

# Version
try:
    __version__ = _pkg_version("big-factorial")
except PackageNotFoundError:
    __version__ = "0+unknown"

# Public API re-exports
from .fmt import format_value, sci_mantissa_and_exponent, to_decimal
from .kinds import INT, MPZ, SYMPY, U64, U128, NumberKind, get_kind, list_kinds
from .parallel import factorial, parallel_factorial, partition
from .product import balanced_product, materialize, range_product
from .utility import InvalidConfigurationError, ResourceExhaustedError, UserInputError

__all__ = [
    "INT",
    "MPZ",
    "SYMPY",
    "U64",
    "U128",
    "InvalidConfigurationError",
    "NumberKind",
    "ResourceExhaustedError",
    "UserInputError",
    "__version__",
    "balanced_product",
    "factorial",
    "format_value",
    "get_kind",
    "list_kinds",
    "materialize",
    "parallel_factorial",
    "partition",
    "range_product",
    "sci_mantissa_and_exponent",
    "to_decimal",
]
